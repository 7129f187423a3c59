from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import datetime
from typing import Any, List, Optional
from enum import Enum


class CollaboratorRole(str, Enum):
    viewer = "viewer"
    editor = "editor"


class ProjectStatus(str, Enum):
    active = "active"
    archived = "archived"
    completed = "completed"


class TaskStatus(str, Enum):
    pending = "pending"
    in_progress = "in-progress"
    completed = "completed"


class TaskPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class Theme(str, Enum):
    light = "light"
    dark = "dark"
    auto = "auto"


class Language(str, Enum):
    es = "es"
    en = "en"


# Envelope
class Envelope(BaseModel):
    """Fields shared by every response body."""
    success: bool = True
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    error: str


# User schemas
class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    avatar: Optional[str] = None


class NotificationPreferences(BaseModel):
    email: bool = True
    project_shared: bool = True
    task_updates: bool = True


class Preferences(BaseModel):
    theme: Theme = Theme.light
    language: Language = Language.es
    notifications: NotificationPreferences = NotificationPreferences()


class SharedProjectEntry(BaseModel):
    project_id: int
    role: CollaboratorRole
    shared_at: datetime


class UserProfile(UserSummary):
    bio: str = ""
    is_active: bool
    is_verified: bool
    preferences: Preferences
    unread_notifications: int = 0
    owned_projects: List[int] = []
    shared_projects: List[SharedProjectEntry] = []
    created_at: Optional[datetime] = None


class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = None
    preferences: Optional[Preferences] = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str


class AccountDeletion(BaseModel):
    password: Optional[str] = None


class UserResponse(Envelope):
    user: UserProfile


class LoginResponse(Envelope):
    token: str
    token_type: str = "bearer"
    user: UserProfile


class UserSearchResponse(Envelope):
    users: List[UserSummary]


# Project schemas
class CollaboratorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    user: Optional[UserSummary] = None
    role: CollaboratorRole
    added_at: datetime


class ProjectCreate(BaseModel):
    name: str
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    color: Optional[str] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    color: Optional[str] = None
    status: Optional[ProjectStatus] = None


class Project(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    deadline: Optional[datetime] = None
    status: ProjectStatus
    color: str
    owner_id: int
    owner: Optional[UserSummary] = None
    collaborators: List[CollaboratorOut] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CollaboratorAdd(BaseModel):
    user_id: Optional[int] = None
    role: Optional[CollaboratorRole] = None


class CollaboratorRoleUpdate(BaseModel):
    role: CollaboratorRole


# Task schemas
class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    # Validated against project membership by the service, non-lists clear it
    assigned_to: Optional[Any] = None
    due_date: Optional[datetime] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assigned_to: Optional[Any] = None
    due_date: Optional[datetime] = None


class Task(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    project_id: int
    assigned_to: List[UserSummary] = []
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Response envelopes
class ProjectResponse(Envelope):
    project: Project


class ProjectBuckets(BaseModel):
    owned: List[Project]
    shared: List[Project]


class ProjectListResponse(Envelope):
    projects: ProjectBuckets


class ProjectDetailResponse(Envelope):
    project: Project
    tasks: List[Task]
    user_role: str


class TaskResponse(Envelope):
    task: Task


class TaskListResponse(Envelope):
    tasks: List[Task]
