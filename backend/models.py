from sqlalchemy import (
    Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Table, Text, UniqueConstraint, JSON,
)
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import JSONB
import enum
import secrets

from database import Base
from time_utils import utc_now, as_utc, expiry_from_now


DEFAULT_PROJECT_COLOR = "#3b82f6"
INVITATION_TTL_DAYS = 7

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class CollaboratorRole(str, enum.Enum):
    viewer = "viewer"
    editor = "editor"


class ProjectStatus(str, enum.Enum):
    active = "active"
    archived = "archived"
    completed = "completed"


class TaskStatus(str, enum.Enum):
    pending = "pending"
    in_progress = "in-progress"
    completed = "completed"


class TaskPriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"


class InvitationStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    expired = "expired"


def _enum_type(enum_cls, name):
    # Store the enum values ("in-progress"), not the member names
    return Enum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


def default_preferences() -> dict:
    return {
        "theme": "light",
        "language": "es",
        "notifications": {
            "email": True,
            "project_shared": True,
            "task_updates": True,
        },
    }


task_assignees = Table(
    "task_assignees",
    Base.metadata,
    Column("task_id", Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)

    # Profile
    avatar = Column(String(512), nullable=True)
    bio = Column(String(200), nullable=False, default="")
    preferences = Column(JSONType, nullable=False, default=default_preferences)
    unread_notifications = Column(Integer, nullable=False, default=0)

    # Account state
    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)

    # Denormalized membership mirror, written only by membership.py:
    #   owned_projects:  [project_id, ...]
    #   shared_projects: [{"project_id": int, "role": str, "shared_at": iso8601}, ...]
    owned_projects = Column(JSONType, nullable=False, default=list)
    shared_projects = Column(JSONType, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @validates("email")
    def _normalize_email(self, key, value):
        return value.strip().lower() if value else value


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="uq_projects_owner_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    deadline = Column(DateTime(timezone=True), nullable=True)
    status = Column(_enum_type(ProjectStatus, "project_status"), nullable=False, default=ProjectStatus.active)
    color = Column(String(32), nullable=False, default=DEFAULT_PROJECT_COLOR)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    owner = relationship("User", foreign_keys=[owner_id])
    collaborators = relationship(
        "ProjectCollaborator",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectCollaborator.id",
    )

    @validates("owner_id")
    def _owner_is_immutable(self, key, value):
        if self.owner_id is not None and value != self.owner_id:
            raise ValueError("Project owner cannot be reassigned")
        return value


class ProjectCollaborator(Base):
    __tablename__ = "project_collaborators"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_collaborators_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(_enum_type(CollaboratorRole, "collaborator_role"), nullable=False, default=CollaboratorRole.viewer)
    added_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    # Relationships
    project = relationship("Project", back_populates="collaborators")
    user = relationship("User")


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(_enum_type(TaskStatus, "task_status"), nullable=False, default=TaskStatus.pending)
    priority = Column(_enum_type(TaskPriority, "task_priority"), nullable=False, default=TaskPriority.medium)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    project = relationship("Project")
    assigned_to = relationship("User", secondary=task_assignees, order_by="User.id")

    @validates("project_id")
    def _project_is_immutable(self, key, value):
        if self.project_id is not None and value != self.project_id:
            raise ValueError("Task cannot be moved to another project")
        return value


class Invitation(Base):
    __tablename__ = "invitations"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    role = Column(_enum_type(CollaboratorRole, "invitation_role"), nullable=False, default=CollaboratorRole.viewer)
    token = Column(String(64), unique=True, nullable=False, default=lambda: secrets.token_hex(32))
    invited_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(_enum_type(InvitationStatus, "invitation_status"), nullable=False, default=InvitationStatus.pending)
    expires_at = Column(
        DateTime(timezone=True), nullable=False, index=True,
        default=lambda: expiry_from_now(INVITATION_TTL_DAYS),
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    project = relationship("Project")
    inviter = relationship("User")

    @validates("email")
    def _normalize_email(self, key, value):
        return value.strip().lower() if value else value

    def is_expired(self) -> bool:
        return as_utc(self.expires_at) < utc_now()
