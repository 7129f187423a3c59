"""
Project aggregate operations.

Every function takes the requesting user's id explicitly and checks it
against the access-control evaluator before touching anything. Collaborator
changes are written through membership.py so the users' mirrored project
lists change in the same commit.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth.permissions import (
    ProjectRole,
    load_project,
    require_access,
    require_edit,
    require_owner,
)
from cascade import delete_project_cascade
from errors import ConflictError, NotFoundError, ValidationError
from membership import (
    attach_collaborator,
    detach_collaborator,
    find_collaborator,
    link_owned_project,
    lock_user,
    set_collaborator_role,
    strip_assignments,
)
from models import (
    DEFAULT_PROJECT_COLOR,
    CollaboratorRole,
    Project,
    ProjectCollaborator,
    ProjectStatus,
    Task,
    User,
)

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500


# ============== Field validation ==============

def clean_name(name: Any) -> str:
    if not isinstance(name, str) or not NAME_MIN_LENGTH <= len(name.strip()) <= NAME_MAX_LENGTH:
        raise ValidationError(
            f"Project name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters"
        )
    return name.strip()


def clean_description(description: Optional[str]) -> str:
    description = (description or "").strip()
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters")
    return description


def parse_project_status(value: Any) -> ProjectStatus:
    try:
        return ProjectStatus(value)
    except ValueError:
        raise ValidationError("Invalid project status. Must be one of: active, archived, completed")


def parse_collaborator_role(value: Any) -> CollaboratorRole:
    try:
        return CollaboratorRole(value)
    except ValueError:
        raise ValidationError("Invalid role. Must be viewer or editor")


def _ensure_name_available(db: Session, owner_id: int, name: str, exclude_id: Optional[int] = None) -> None:
    query = db.query(Project).filter(Project.owner_id == owner_id, Project.name == name)
    if exclude_id is not None:
        query = query.filter(Project.id != exclude_id)
    if query.first() is not None:
        logger.info(f"User {owner_id} already owns a project named '{name}'")
        raise ConflictError("You already have a project with this name")


def _commit_or_conflict(db: Session, message: str) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(message)


# ============== Projects ==============

def create_project(
    db: Session,
    requester_id: int,
    name: Any,
    description: Optional[str] = None,
    deadline: Optional[datetime] = None,
    color: Optional[str] = None,
) -> Project:
    """
    Create a project owned by the requester.

    Raises:
        ValidationError: name outside 3-100 characters after trimming
        ConflictError: requester already owns a project with this name
    """
    logger.debug(f"User {requester_id} creating project: {name!r}")

    name = clean_name(name)
    description = clean_description(description)
    _ensure_name_available(db, requester_id, name)

    owner = lock_user(db, requester_id)
    if owner is None:
        raise NotFoundError("User not found")

    project = Project(
        name=name,
        description=description,
        deadline=deadline,
        color=color or DEFAULT_PROJECT_COLOR,
        owner_id=requester_id,
    )
    db.add(project)
    db.flush()  # Get project ID without committing

    link_owned_project(owner, project.id)
    _commit_or_conflict(db, "You already have a project with this name")
    db.refresh(project)

    logger.info(f"Project created: {project.name} (ID: {project.id}) by user {requester_id}")
    return project


def list_projects(db: Session, requester_id: int) -> Tuple[List[Project], List[Project]]:
    """
    List projects the requester owns or collaborates on, newest first.

    Returns:
        (owned, shared) as two disjoint lists
    """
    logger.debug(f"User {requester_id} listing projects")

    collaborating = select(ProjectCollaborator.project_id).where(ProjectCollaborator.user_id == requester_id)
    projects = (
        db.query(Project)
        .filter(or_(Project.owner_id == requester_id, Project.id.in_(collaborating)))
        .order_by(desc(Project.created_at), desc(Project.id))
        .all()
    )

    owned = [p for p in projects if p.owner_id == requester_id]
    shared = [p for p in projects if p.owner_id != requester_id]

    logger.info(f"User {requester_id} retrieved {len(owned)} owned and {len(shared)} shared projects")
    return owned, shared


def get_project(db: Session, requester_id: int, project_id: int) -> Tuple[Project, List[Task], ProjectRole]:
    """
    Get a project with its tasks and the requester's role.

    Raises:
        NotFoundError: project does not exist
        AuthorizationError: requester has no role on the project
    """
    logger.debug(f"User {requester_id} requesting project {project_id}")

    project = load_project(db, project_id)
    role = require_access(project, requester_id)

    tasks = (
        db.query(Task)
        .filter(Task.project_id == project_id)
        .order_by(desc(Task.created_at), desc(Task.id))
        .all()
    )
    return project, tasks, role


def update_project(db: Session, requester_id: int, project_id: int, changes: Dict[str, Any]) -> Project:
    """
    Update the fields present in ``changes`` (requires owner or editor).

    Args:
        changes: Subset of name, description, deadline, color, status
    """
    logger.debug(f"User {requester_id} updating project {project_id}: {sorted(changes)}")

    project = load_project(db, project_id)
    require_edit(project, requester_id, "edit this project")

    # Validate every field before touching the project
    updates = {}
    if "name" in changes:
        updates["name"] = clean_name(changes["name"])
        if updates["name"] != project.name:
            _ensure_name_available(db, project.owner_id, updates["name"], exclude_id=project.id)

    if "description" in changes:
        updates["description"] = clean_description(changes["description"])

    if "deadline" in changes:
        updates["deadline"] = changes["deadline"] or None

    if "color" in changes:
        updates["color"] = changes["color"] or DEFAULT_PROJECT_COLOR

    if "status" in changes:
        updates["status"] = parse_project_status(changes["status"])

    for key, value in updates.items():
        setattr(project, key, value)

    _commit_or_conflict(db, "You already have a project with this name")
    db.refresh(project)

    logger.info(f"Project updated: {project.name} (ID: {project_id}) by user {requester_id}")
    return project


def delete_project(db: Session, requester_id: int, project_id: int) -> None:
    """
    Delete a project and everything that refers to it (owner only).

    Raises:
        InternalError: the cleanup cascade was interrupted
    """
    logger.debug(f"User {requester_id} deleting project {project_id}")

    project = load_project(db, project_id)
    require_owner(project, requester_id, "delete the project")

    delete_project_cascade(db, project)
    logger.info(f"Project deleted: ID {project_id} by user {requester_id}")


# ============== Collaborators ==============

def add_collaborator(db: Session, requester_id: int, project_id: int, user_id: Any, role: Any) -> Project:
    """
    Add a user to the project's collaborators (owner only).

    Raises:
        ValidationError: invalid role, missing user id, or the target is the owner
        NotFoundError: target user does not exist
        ConflictError: target is already a collaborator
    """
    logger.debug(f"User {requester_id} adding collaborator {user_id} to project {project_id} as {role}")

    project = load_project(db, project_id)
    require_owner(project, requester_id, "add collaborators")

    if user_id is None or role is None:
        raise ValidationError("Both user_id and role are required")
    role = parse_collaborator_role(role)

    target = lock_user(db, user_id)
    if target is None:
        raise NotFoundError("User not found")

    if target.id == project.owner_id:
        raise ValidationError("The project owner cannot be added as a collaborator")

    if find_collaborator(project, target.id) is not None:
        raise ConflictError("User is already a collaborator on this project")

    attach_collaborator(project, target, role)
    _commit_or_conflict(db, "User is already a collaborator on this project")
    db.refresh(project)

    logger.info(f"User {target.id} added to project {project_id} with role {role.value}")
    return project


def remove_collaborator(db: Session, requester_id: int, project_id: int, user_id: int) -> Project:
    """
    Remove a collaborator and unassign them from the project's tasks (owner only).

    Raises:
        NotFoundError: the user is not a collaborator on this project
    """
    logger.debug(f"User {requester_id} removing collaborator {user_id} from project {project_id}")

    project = load_project(db, project_id)
    require_owner(project, requester_id, "remove collaborators")

    if find_collaborator(project, user_id) is None:
        raise NotFoundError("User is not a collaborator on this project")

    detach_collaborator(db, project, user_id)
    strip_assignments(db, project.id, user_id)
    db.commit()
    db.refresh(project)

    logger.info(f"User {user_id} removed from project {project_id}")
    return project


def change_collaborator_role(db: Session, requester_id: int, project_id: int, user_id: int, role: Any) -> Project:
    """
    Change a collaborator's role (owner only).

    Raises:
        ValidationError: role is not viewer or editor
        NotFoundError: the user is not a collaborator on this project
    """
    logger.debug(f"User {requester_id} changing role of {user_id} on project {project_id} to {role}")

    project = load_project(db, project_id)
    require_owner(project, requester_id, "change collaborator roles")

    role = parse_collaborator_role(role)
    collaborator = find_collaborator(project, user_id)
    if collaborator is None:
        raise NotFoundError("User is not a collaborator on this project")

    set_collaborator_role(db, project, collaborator, role)
    db.commit()
    db.refresh(project)

    logger.info(f"User {user_id} now has role {role.value} on project {project_id}")
    return project
