"""
Membership mirror maintenance.

Project.collaborators and User.owned_projects / User.shared_projects describe
the same relationships from both sides. Every write to either side goes
through this module, so the two can only change together.

Functions here stage changes on the session. The caller decides when to
commit: a single collaborator change commits both sides at once, while the
cascades in cascade.py commit once per step.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from models import CollaboratorRole, Project, ProjectCollaborator, Task, User, task_assignees
from time_utils import utc_now

logger = logging.getLogger(__name__)


def find_collaborator(project: Project, user_id: int) -> Optional[ProjectCollaborator]:
    for collaborator in project.collaborators:
        if collaborator.user_id == user_id:
            return collaborator
    return None


def lock_user(db: Session, user_id: int) -> Optional[User]:
    """
    Load a user row locked for update, with its mirror lists read fresh.

    The mirror lists are rewritten as whole JSON values, so concurrent
    membership changes for the same user must serialize on the row.
    Pending changes are flushed first so the refresh cannot discard them.
    """
    db.flush()
    return (
        db.query(User)
        .filter(User.id == user_id)
        .populate_existing()
        .with_for_update()
        .first()
    )


# ============== Owned projects ==============

def link_owned_project(owner: User, project_id: int) -> None:
    if project_id not in owner.owned_projects:
        # JSON columns only detect reassignment, never in-place mutation
        owner.owned_projects = [*owner.owned_projects, project_id]


def unlink_owned_project(owner: User, project_id: int) -> None:
    owner.owned_projects = [pid for pid in owner.owned_projects if pid != project_id]


# ============== Shared projects ==============

def _without_shared_entry(user: User, project_id: int) -> list:
    return [entry for entry in user.shared_projects if entry.get("project_id") != project_id]


def attach_collaborator(project: Project, user: User, role: CollaboratorRole) -> ProjectCollaborator:
    """
    Add a collaborator row and the mirrored shared_projects entry.

    Both sides receive the same role value and timestamp.
    """
    now = utc_now()
    collaborator = ProjectCollaborator(user_id=user.id, role=role, added_at=now)
    project.collaborators.append(collaborator)

    user.shared_projects = _without_shared_entry(user, project.id) + [
        {"project_id": project.id, "role": role.value, "shared_at": now.isoformat()}
    ]
    logger.debug(f"Attached user {user.id} to project {project.id} as {role.value}")
    return collaborator


def detach_collaborator(db: Session, project: Project, user_id: int) -> bool:
    """
    Remove a collaborator row and the mirrored shared_projects entry.

    Safe to call when either side is already gone.

    Returns:
        True if a collaborator row was removed
    """
    collaborator = find_collaborator(project, user_id)
    if collaborator is not None:
        # delete-orphan cascade deletes the row on flush
        project.collaborators.remove(collaborator)

    user = lock_user(db, user_id)
    if user is not None:
        user.shared_projects = _without_shared_entry(user, project.id)

    logger.debug(f"Detached user {user_id} from project {project.id} (row removed: {collaborator is not None})")
    return collaborator is not None


def set_collaborator_role(
    db: Session, project: Project, collaborator: ProjectCollaborator, role: CollaboratorRole
) -> None:
    """
    Change a collaborator's role on the project row and in the mirror.
    """
    collaborator.role = role

    user = lock_user(db, collaborator.user_id)
    if user is None:
        return

    entries = []
    mirrored = False
    for entry in user.shared_projects:
        if entry.get("project_id") == project.id:
            entry = {**entry, "role": role.value}
            mirrored = True
        entries.append(entry)

    if not mirrored:
        logger.warning(
            f"User {user.id} had no shared_projects entry for project {project.id}; restoring it"
        )
        entries.append({
            "project_id": project.id,
            "role": role.value,
            "shared_at": utc_now().isoformat(),
        })

    user.shared_projects = entries


def unshare_project(db: Session, project_id: int, user_ids: Iterable[int]) -> None:
    """
    Drop a project from the shared_projects mirror of the given users.
    """
    for user_id in sorted(set(user_ids)):
        user = lock_user(db, user_id)
        if user is not None:
            user.shared_projects = _without_shared_entry(user, project_id)


# ============== Task assignments ==============

def strip_assignments(db: Session, project_id: int, user_id: int) -> int:
    """
    Remove a user from assigned_to on every task of a project.

    Returns:
        Number of tasks that were changed
    """
    changed = 0
    for task in db.query(Task).filter(Task.project_id == project_id).all():
        remaining = [user for user in task.assigned_to if user.id != user_id]
        if len(remaining) != len(task.assigned_to):
            task.assigned_to = remaining
            changed += 1

    logger.debug(f"Unassigned user {user_id} from {changed} tasks in project {project_id}")
    return changed


def strip_all_assignments(db: Session, user_id: int) -> int:
    """
    Remove a user from assigned_to on every task in every project.

    Returns:
        Number of assignment rows deleted
    """
    db.flush()
    result = db.execute(task_assignees.delete().where(task_assignees.c.user_id == user_id))
    # Loaded Task.assigned_to collections are stale after a bulk delete
    db.expire_all()
    return result.rowcount or 0
