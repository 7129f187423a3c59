"""
Task aggregate operations.

Tasks belong to exactly one project for their whole life. Creating, editing
and toggling require the owner or editor role on that project; deleting is
reserved to the owner. Assignees are validated against the project's current
members on every write, all-or-nothing.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from auth.permissions import load_project, load_task, require_access, require_edit, require_owner
from errors import ValidationError
from models import Project, Task, TaskPriority, TaskStatus, User
from time_utils import utc_now

logger = logging.getLogger(__name__)

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 100


# ============== Field validation ==============

def clean_title(title: Any) -> str:
    if not isinstance(title, str) or not TITLE_MIN_LENGTH <= len(title.strip()) <= TITLE_MAX_LENGTH:
        raise ValidationError(
            f"Task title must be between {TITLE_MIN_LENGTH} and {TITLE_MAX_LENGTH} characters"
        )
    return title.strip()


def parse_task_status(value: Any) -> TaskStatus:
    try:
        return TaskStatus(value)
    except ValueError:
        raise ValidationError("Invalid task status. Must be one of: pending, in-progress, completed")


def parse_task_priority(value: Any) -> TaskPriority:
    try:
        return TaskPriority(value)
    except ValueError:
        raise ValidationError("Invalid priority. Must be one of: low, medium, high")


def _parse_user_id(raw_id: Any) -> Optional[int]:
    # Only real integers or digit strings name a user; bools and floats do not
    if isinstance(raw_id, bool):
        return None
    if isinstance(raw_id, int):
        return raw_id
    if isinstance(raw_id, str) and raw_id.strip().isascii() and raw_id.strip().isdigit():
        return int(raw_id.strip())
    return None


def resolve_assignees(db: Session, project: Project, assigned_to: Any) -> List[User]:
    """
    Validate a requested assignee list against the project's members.

    Anything that is not a list resolves to no assignees. Every id must be the
    owner or a current collaborator; one bad id rejects the whole list.
    Duplicates collapse.

    Raises:
        ValidationError: an id is not a member of the project
    """
    if not isinstance(assigned_to, list) or not assigned_to:
        return []

    member_ids = {project.owner_id} | {c.user_id for c in project.collaborators}

    user_ids = []
    for raw_id in assigned_to:
        user_id = _parse_user_id(raw_id)
        if user_id not in member_ids:
            logger.info(f"Rejected assignee {raw_id!r}: not a member of project {project.id}")
            raise ValidationError("Tasks can only be assigned to project members")
        if user_id not in user_ids:
            user_ids.append(user_id)

    return db.query(User).filter(User.id.in_(user_ids)).order_by(User.id).all()


def apply_status(task: Task, status: TaskStatus) -> None:
    """
    Set a task's status and keep completed_at in step with it.

    completed_at is stamped on entering 'completed' (unless already set) and
    cleared on any other status.
    """
    task.status = status
    if status == TaskStatus.completed:
        if task.completed_at is None:
            task.completed_at = utc_now()
    else:
        task.completed_at = None


def _project_of(db: Session, task: Task) -> Project:
    return load_project(db, task.project_id)


# ============== Tasks ==============

def create_task(
    db: Session,
    requester_id: int,
    project_id: int,
    title: Any,
    description: Optional[str] = None,
    priority: Any = None,
    assigned_to: Any = None,
    due_date: Optional[datetime] = None,
) -> Task:
    """
    Create a task in a project (requires owner or editor).

    Raises:
        ValidationError: bad title or priority, or an assignee outside the project
    """
    logger.info(f"User {requester_id} creating task: {title!r} in project {project_id}")

    project = load_project(db, project_id)
    require_edit(project, requester_id, "create tasks in this project")

    title = clean_title(title)
    priority = parse_task_priority(priority) if priority is not None else TaskPriority.medium
    assignees = resolve_assignees(db, project, assigned_to)

    task = Task(
        title=title,
        description=(description or "").strip(),
        priority=priority,
        project_id=project.id,
        due_date=due_date or None,
        assigned_to=assignees,
    )
    apply_status(task, TaskStatus.pending)

    db.add(task)
    db.commit()
    db.refresh(task)

    logger.info(f"Task created successfully: id={task.id}")
    return task


def list_tasks(db: Session, requester_id: int, project_id: int) -> List[Task]:
    """List a project's tasks, newest first (requires any role)."""
    logger.debug(f"User {requester_id} listing tasks of project {project_id}")

    project = load_project(db, project_id)
    require_access(project, requester_id)

    return (
        db.query(Task)
        .filter(Task.project_id == project_id)
        .order_by(desc(Task.created_at), desc(Task.id))
        .all()
    )


def get_task(db: Session, requester_id: int, task_id: int) -> Task:
    """Get a single task (requires any role on its project)."""
    logger.debug(f"User {requester_id} requesting task {task_id}")

    task = load_task(db, task_id)
    require_access(_project_of(db, task), requester_id)
    return task


def update_task(db: Session, requester_id: int, task_id: int, changes: Dict[str, Any]) -> Task:
    """
    Update the fields present in ``changes`` (requires owner or editor).

    Args:
        changes: Subset of title, description, status, priority, assigned_to, due_date.
            A non-list assigned_to clears the assignees.
    """
    logger.debug(f"User {requester_id} updating task {task_id}: {sorted(changes)}")

    task = load_task(db, task_id)
    project = _project_of(db, task)
    require_edit(project, requester_id, "edit tasks in this project")

    # Validate every field before touching the task
    updates = {}
    if "title" in changes:
        updates["title"] = clean_title(changes["title"])

    if "description" in changes:
        updates["description"] = (changes["description"] or "").strip()

    if "priority" in changes:
        updates["priority"] = parse_task_priority(changes["priority"])

    if "assigned_to" in changes:
        updates["assigned_to"] = resolve_assignees(db, project, changes["assigned_to"])

    if "due_date" in changes:
        updates["due_date"] = changes["due_date"] or None

    status = parse_task_status(changes["status"]) if "status" in changes else None

    for key, value in updates.items():
        setattr(task, key, value)
    if status is not None and status != task.status:
        apply_status(task, status)

    db.commit()
    db.refresh(task)

    logger.info(f"Task updated: id={task.id} by user {requester_id}")
    return task


def delete_task(db: Session, requester_id: int, task_id: int) -> None:
    """Delete a task (owner only)."""
    logger.debug(f"User {requester_id} deleting task {task_id}")

    task = load_task(db, task_id)
    require_owner(_project_of(db, task), requester_id, "delete tasks")

    db.delete(task)
    db.commit()

    logger.info(f"Task deleted: id={task_id} by user {requester_id}")


def toggle_task_status(db: Session, requester_id: int, task_id: int) -> Task:
    """
    Flip a task between completed and pending (requires owner or editor).

    A completed task becomes pending; a pending or in-progress task becomes
    completed.
    """
    logger.debug(f"User {requester_id} toggling task {task_id}")

    task = load_task(db, task_id)
    require_edit(_project_of(db, task), requester_id, "change the status of this task")

    if task.status == TaskStatus.completed:
        apply_status(task, TaskStatus.pending)
    else:
        apply_status(task, TaskStatus.completed)

    db.commit()
    db.refresh(task)

    logger.info(f"Task {task.id} toggled to {task.status.value}")
    return task
