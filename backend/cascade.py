"""
Cascading cleanup for project and account deletion.

Each cascade is an ordered list of named steps. Steps commit one at a time,
so an interrupted cascade leaves earlier steps applied; the failure is
reported as InternalError naming the step that broke. Every step only
deletes or unlinks what is still there, which makes re-running a cascade
after a partial failure safe.

Ordering matters: tasks go before the projects they reference, and the
project row goes last so that a retry can still find its collaborators.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from errors import InternalError
from membership import (
    detach_collaborator,
    lock_user,
    strip_all_assignments,
    unlink_owned_project,
    unshare_project,
)
from models import Invitation, Project, ProjectCollaborator, Task, User
from time_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeStep:
    name: str
    run: Callable[[Session], None]


def run_cascade(db: Session, label: str, steps: List[CascadeStep]) -> None:
    """
    Run cascade steps in order, committing after each one.

    Args:
        db: Database session
        label: Name of the cascade, used in logs and errors
        steps: Ordered steps to run

    Raises:
        InternalError: if a step fails; steps before it stay committed
    """
    logger.info(f"Starting {label} ({len(steps)} steps)")

    for index, step in enumerate(steps, start=1):
        try:
            step.run(db)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.exception(
                f"{label}: step {index}/{len(steps)} '{step.name}' failed; "
                f"steps 1-{index - 1} remain applied and need manual remediation"
            )
            raise InternalError(f"{label} was interrupted at step '{step.name}'") from e
        logger.debug(f"{label}: step {index}/{len(steps)} '{step.name}' committed")

    logger.info(f"Completed {label}")


def _delete_tasks_of(db: Session, project_ids: List[int]) -> None:
    if not project_ids:
        return
    # ORM deletes so the task_assignees rows go with each task
    for task in db.query(Task).filter(Task.project_id.in_(project_ids)).all():
        db.delete(task)


def _collaborator_ids(db: Session, project_id: int) -> List[int]:
    rows = db.query(ProjectCollaborator.user_id).filter(ProjectCollaborator.project_id == project_id).all()
    return [row.user_id for row in rows]


# ============== Project deletion ==============

def project_deletion_steps(project_id: int, owner_id: int) -> List[CascadeStep]:
    def delete_tasks(db: Session) -> None:
        _delete_tasks_of(db, [project_id])

    def unlink_from_owner(db: Session) -> None:
        owner = lock_user(db, owner_id)
        if owner is not None:
            unlink_owned_project(owner, project_id)

    def unshare_from_collaborators(db: Session) -> None:
        unshare_project(db, project_id, _collaborator_ids(db, project_id))

    def delete_invitations(db: Session) -> None:
        db.query(Invitation).filter(Invitation.project_id == project_id).delete(synchronize_session=False)

    def delete_project_record(db: Session) -> None:
        project = db.query(Project).filter(Project.id == project_id).first()
        if project is not None:
            db.delete(project)

    return [
        CascadeStep("delete project tasks", delete_tasks),
        CascadeStep("remove project from owner", unlink_from_owner),
        CascadeStep("remove project from collaborators", unshare_from_collaborators),
        CascadeStep("delete project invitations", delete_invitations),
        CascadeStep("delete project", delete_project_record),
    ]


def delete_project_cascade(db: Session, project: Project) -> None:
    run_cascade(
        db,
        f"deletion of project {project.id}",
        project_deletion_steps(project.id, project.owner_id),
    )


# ============== Account deletion ==============

def account_deletion_steps(user_id: int, email: str) -> List[CascadeStep]:
    email = email.strip().lower()

    def owned_project_ids(db: Session) -> List[int]:
        return [row.id for row in db.query(Project.id).filter(Project.owner_id == user_id).all()]

    def delete_owned_project_tasks(db: Session) -> None:
        _delete_tasks_of(db, owned_project_ids(db))

    def release_owned_projects(db: Session) -> None:
        project_ids = owned_project_ids(db)
        for project_id in project_ids:
            unshare_project(db, project_id, _collaborator_ids(db, project_id))
        if project_ids:
            db.query(Invitation).filter(Invitation.project_id.in_(project_ids)).delete(synchronize_session=False)

    def delete_owned_projects(db: Session) -> None:
        for project in db.query(Project).filter(Project.owner_id == user_id).all():
            db.delete(project)

    def leave_shared_projects(db: Session) -> None:
        rows = db.query(ProjectCollaborator).filter(ProjectCollaborator.user_id == user_id).all()
        for row in rows:
            detach_collaborator(db, row.project, user_id)

    def unassign_everywhere(db: Session) -> None:
        strip_all_assignments(db, user_id)

    def delete_invitations(db: Session) -> None:
        db.query(Invitation).filter(
            or_(Invitation.invited_by == user_id, Invitation.email == email)
        ).delete(synchronize_session=False)

    def delete_user_record(db: Session) -> None:
        user = db.query(User).filter(User.id == user_id).first()
        if user is not None:
            db.delete(user)

    return [
        CascadeStep("delete tasks of owned projects", delete_owned_project_tasks),
        CascadeStep("release owned projects", release_owned_projects),
        CascadeStep("delete owned projects", delete_owned_projects),
        CascadeStep("leave shared projects", leave_shared_projects),
        CascadeStep("remove task assignments", unassign_everywhere),
        CascadeStep("delete invitations", delete_invitations),
        CascadeStep("delete user", delete_user_record),
    ]


def delete_account_cascade(db: Session, user: User) -> None:
    run_cascade(db, f"deletion of account {user.id}", account_deletion_steps(user.id, user.email))


# ============== Invitation expiry ==============

def purge_expired_invitations(db: Session) -> int:
    """
    Delete invitations whose expiry time has passed.

    Returns:
        Number of invitations deleted
    """
    deleted = (
        db.query(Invitation)
        .filter(Invitation.expires_at < utc_now())
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        logger.info(f"Purged {deleted} expired invitations")
    return deleted
