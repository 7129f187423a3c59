"""
Project-level access control.

A user's capability on a project is derived from the project aggregate alone:
the owner reference and the collaborator list. There is no separate membership
table and no global admin override.

    owner  -> may do everything, and is the only role that can delete the
              project, manage collaborators or delete tasks
    editor -> may update the project and create, edit and toggle tasks
    viewer -> read-only
    none   -> no access

The guard helpers raise AuthorizationError when the role is insufficient.
Callers resolve the project first (see load_project), so a missing project
surfaces as NotFoundError and an existing-but-forbidden one as
AuthorizationError.
"""

import enum
import logging

from sqlalchemy.orm import Session

from errors import AuthorizationError, NotFoundError
from models import CollaboratorRole, Project, Task

logger = logging.getLogger(__name__)


class ProjectRole(str, enum.Enum):
    owner = "owner"
    editor = "editor"
    viewer = "viewer"
    none = "none"


EDIT_ROLES = frozenset({ProjectRole.owner, ProjectRole.editor})


def role_of(project: Project, user_id: int) -> ProjectRole:
    """
    Resolve the role a user holds on a project.

    Args:
        project: Project aggregate with its collaborators
        user_id: ID of the user to resolve

    Returns:
        Exactly one of ProjectRole.owner, editor, viewer or none

    Example:
        >>> role_of(project, project.owner_id)
        <ProjectRole.owner: 'owner'>
    """
    if user_id == project.owner_id:
        return ProjectRole.owner

    for collaborator in project.collaborators:
        if collaborator.user_id == user_id:
            return ProjectRole(CollaboratorRole(collaborator.role).value)

    return ProjectRole.none


def has_access(project: Project, user_id: int) -> bool:
    """True if the user holds any role on the project."""
    return role_of(project, user_id) is not ProjectRole.none


def can_edit(project: Project, user_id: int) -> bool:
    """True if the user is the owner or an editor."""
    return role_of(project, user_id) in EDIT_ROLES


def is_owner(project: Project, user_id: int) -> bool:
    return role_of(project, user_id) is ProjectRole.owner


def require_access(project: Project, user_id: int) -> ProjectRole:
    """
    Require any role on the project.

    Raises:
        AuthorizationError: if the user is neither owner nor collaborator
    """
    role = role_of(project, user_id)
    if role is ProjectRole.none:
        logger.info(f"User {user_id} has no access to project {project.id}")
        raise AuthorizationError("You do not have access to this project")
    logger.debug(f"User {user_id} has role '{role.value}' on project {project.id}")
    return role


def require_edit(project: Project, user_id: int, action: str = "edit this project") -> ProjectRole:
    """
    Require the owner or editor role.

    Args:
        project: Project aggregate
        user_id: Requesting user
        action: Human-readable action used in the error message

    Raises:
        AuthorizationError: if the user is a viewer or has no role
    """
    role = role_of(project, user_id)
    if role not in EDIT_ROLES:
        logger.info(
            f"User {user_id} has role '{role.value}' on project {project.id}, "
            f"but 'editor' is required to {action}"
        )
        raise AuthorizationError(f"You do not have permission to {action}")
    return role


def require_owner(project: Project, user_id: int, action: str) -> ProjectRole:
    """
    Require the owner role.

    Raises:
        AuthorizationError: for editors, viewers and non-members alike
    """
    role = role_of(project, user_id)
    if role is not ProjectRole.owner:
        logger.info(
            f"User {user_id} has role '{role.value}' on project {project.id}, "
            f"but 'owner' is required to {action}"
        )
        raise AuthorizationError(f"Only the project owner can {action}")
    return role


def load_project(db: Session, project_id: int) -> Project:
    """
    Fetch a project or raise NotFoundError.
    """
    project = db.query(Project).filter(Project.id == project_id).first()
    if project is None:
        logger.info(f"Project {project_id} not found")
        raise NotFoundError("Project not found")
    return project


def load_task(db: Session, task_id: int) -> Task:
    """
    Fetch a task or raise NotFoundError.
    """
    task = db.query(Task).filter(Task.id == task_id).first()
    if task is None:
        logger.info(f"Task {task_id} not found")
        raise NotFoundError("Task not found")
    return task
