"""
Tests for the project and account deletion cascades and invitation expiry.
"""

import logging
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session, sessionmaker

import main
import models
import project_service
import task_service
from cascade import (
    CascadeStep,
    delete_account_cascade,
    delete_project_cascade,
    project_deletion_steps,
    purge_expired_invitations,
    run_cascade,
)
from errors import InternalError
from time_utils import utc_now

logger = logging.getLogger(__name__)


def make_invitation(db: Session, project: models.Project, inviter: models.User, email: str, expired: bool = False):
    invitation = models.Invitation(
        project_id=project.id,
        email=email,
        role=models.CollaboratorRole.viewer,
        invited_by=inviter.id,
    )
    if expired:
        invitation.expires_at = utc_now() - timedelta(days=1)
    db.add(invitation)
    db.commit()
    return invitation


def assignee_ids(db: Session, user_id: int):
    rows = db.execute(
        models.task_assignees.select().where(models.task_assignees.c.user_id == user_id)
    ).fetchall()
    return [row.task_id for row in rows]


class TestProjectDeletion:
    def test_removes_tasks_memberships_and_invitations(
        self, test_db, shared_project, owner_user, editor_user, viewer_user
    ):
        project_id = shared_project.id
        task_service.create_task(
            test_db, owner_user.id, project_id, "Assigned task", assigned_to=[editor_user.id]
        )
        make_invitation(test_db, shared_project, owner_user, "newcomer@test.com")

        delete_project_cascade(test_db, shared_project)

        test_db.expire_all()
        assert test_db.query(models.Project).filter(models.Project.id == project_id).first() is None
        assert test_db.query(models.Task).filter(models.Task.project_id == project_id).count() == 0
        assert test_db.query(models.ProjectCollaborator).count() == 0
        assert test_db.query(models.Invitation).count() == 0
        assert assignee_ids(test_db, editor_user.id) == []
        assert owner_user.owned_projects == []
        assert editor_user.shared_projects == []
        assert viewer_user.shared_projects == []

    def test_failure_mid_cascade_keeps_earlier_steps_and_can_be_rerun(
        self, test_db, shared_project, owner_user, editor_user
    ):
        project_id = shared_project.id
        task_service.create_task(test_db, owner_user.id, project_id, "Doomed task")

        steps = project_deletion_steps(project_id, owner_user.id)

        def explode(db: Session) -> None:
            raise RuntimeError("storage went away")

        broken = steps[:2] + [CascadeStep("simulated outage", explode)] + steps[2:]

        with pytest.raises(InternalError) as exc_info:
            run_cascade(test_db, f"deletion of project {project_id}", broken)
        assert "simulated outage" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, RuntimeError)

        # Steps before the failure stay applied, later ones never ran
        test_db.expire_all()
        assert test_db.query(models.Task).filter(models.Task.project_id == project_id).count() == 0
        assert project_id not in owner_user.owned_projects
        assert test_db.query(models.Project).filter(models.Project.id == project_id).first() is not None
        assert any(e["project_id"] == project_id for e in editor_user.shared_projects)

        # Re-running the full cascade finishes the job
        delete_project_cascade(test_db, test_db.get(models.Project, project_id))
        test_db.expire_all()
        assert test_db.query(models.Project).filter(models.Project.id == project_id).first() is None
        assert editor_user.shared_projects == []

    def test_rerun_after_success_is_harmless(self, test_db, owner_user):
        project = project_service.create_project(test_db, owner_user.id, "Short lived")
        steps = project_deletion_steps(project.id, owner_user.id)

        run_cascade(test_db, "first run", steps)
        run_cascade(test_db, "second run", steps)

        test_db.expire_all()
        assert owner_user.owned_projects == []


class TestAccountDeletion:
    def test_leaves_nothing_referring_to_the_user(
        self, test_db, shared_project, owner_user, editor_user, viewer_user
    ):
        editor_id = editor_user.id
        own_project = project_service.create_project(test_db, editor_id, "Editor side project")
        project_service.add_collaborator(test_db, editor_id, own_project.id, viewer_user.id, "editor")
        task_service.create_task(test_db, editor_id, own_project.id, "Side task", assigned_to=[viewer_user.id])
        launch_task = task_service.create_task(
            test_db, owner_user.id, shared_project.id, "Launch task",
            assigned_to=[owner_user.id, editor_id],
        )
        make_invitation(test_db, own_project, editor_user, "someone@test.com")
        make_invitation(test_db, shared_project, owner_user, "bea@test.com")
        kept = make_invitation(test_db, shared_project, owner_user, "other@test.com")

        delete_account_cascade(test_db, editor_user)

        test_db.expire_all()
        assert test_db.query(models.User).filter(models.User.id == editor_id).first() is None
        assert test_db.query(models.Project).filter(models.Project.owner_id == editor_id).count() == 0
        assert test_db.query(models.ProjectCollaborator).filter(
            models.ProjectCollaborator.user_id == editor_id
        ).count() == 0
        assert assignee_ids(test_db, editor_id) == []
        assert [u.id for u in launch_task.assigned_to] == [owner_user.id]
        assert [i.id for i in test_db.query(models.Invitation).all()] == [kept.id]

        # Collaborators of the deleted user's projects lose their shared entries
        assert [e["project_id"] for e in viewer_user.shared_projects] == [shared_project.id]

        # The owner's project survives with the remaining collaborator
        assert [c.user_id for c in shared_project.collaborators] == [viewer_user.id]

    def test_deleting_a_user_with_nothing(self, test_db, outsider_user):
        user_id = outsider_user.id
        delete_account_cascade(test_db, outsider_user)
        assert test_db.query(models.User).filter(models.User.id == user_id).first() is None


class TestInvitationExpiry:
    def test_purge_removes_only_expired(self, test_db, shared_project, owner_user):
        make_invitation(test_db, shared_project, owner_user, "old@test.com", expired=True)
        fresh = make_invitation(test_db, shared_project, owner_user, "new@test.com")

        assert purge_expired_invitations(test_db) == 1
        assert [i.id for i in test_db.query(models.Invitation).all()] == [fresh.id]
        assert not fresh.is_expired()

    def test_startup_purges_expired(self, test_db, shared_project, owner_user):
        make_invitation(test_db, shared_project, owner_user, "old@test.com", expired=True)

        main.init_database(session_factory=sessionmaker(bind=test_db.get_bind()))

        test_db.expire_all()
        assert test_db.query(models.Invitation).count() == 0
