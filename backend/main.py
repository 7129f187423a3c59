from fastapi import FastAPI, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import os

from database import get_db, engine, Base, SessionLocal
import models
import schemas
import project_service
import task_service
from cascade import purge_expired_invitations
from errors import TaskboardError
from auth.routes import router as auth_router
from auth.dependencies import get_current_user
from auth.security import is_production_like

# Configure logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

AUTO_CREATE_TABLES = os.environ.get("AUTO_CREATE_TABLES", "true").lower() in ("1", "true", "yes")

app = FastAPI(
    title="Taskboard API",
    description="Collaborative projects and tasks with owner, editor and viewer roles",
    version="1.0.0"
)

# CORS middleware for frontend
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000,http://127.0.0.1:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in FRONTEND_URL.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register authentication router
app.include_router(auth_router)


# ============== Error envelope ==============

def error_response(status_code: int, kind: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "error": kind},
    )


@app.exception_handler(TaskboardError)
async def taskboard_error_handler(request: Request, exc: TaskboardError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_response(exc.status_code, exc.kind, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    else:
        message = "Invalid request"
    logger.info(f"Request validation failed on {request.url.path}: {message}")
    return error_response(status.HTTP_400_BAD_REQUEST, "ValidationError", message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    kind = "NotFoundError" if exc.status_code == status.HTTP_404_NOT_FOUND else "HTTPError"
    return error_response(exc.status_code, kind, str(exc.detail))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    # Never leak internals outside development
    message = "Internal server error" if is_production_like() else f"Internal server error: {exc}"
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "InternalError", message)


# ============== Startup: Schema and Invitation Cleanup ==============

def init_database(session_factory=SessionLocal) -> None:
    """
    Create the schema (when AUTO_CREATE_TABLES is on) and purge expired invitations.
    """
    if AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)
        logger.info("Database schema ensured")

    db = session_factory()
    try:
        purge_expired_invitations(db)
    finally:
        db.close()


@app.on_event("startup")
async def on_startup():
    try:
        init_database()
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        # Don't fail startup - requests will surface the storage error


# Health check
@app.get("/health")
def health_check():
    return {"success": True, "status": "healthy"}


# ============== Projects ==============

@app.post("/api/projects", response_model=schemas.ProjectResponse, status_code=status.HTTP_201_CREATED)
def create_project(
    project: schemas.ProjectCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a project owned by the current user."""
    db_project = project_service.create_project(
        db,
        current_user.id,
        name=project.name,
        description=project.description,
        deadline=project.deadline,
        color=project.color,
    )
    return {"success": True, "message": "Project created successfully", "project": db_project}


@app.get("/api/projects", response_model=schemas.ProjectListResponse)
def list_projects(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the current user's owned and shared projects."""
    owned, shared = project_service.list_projects(db, current_user.id)
    return {"success": True, "projects": {"owned": owned, "shared": shared}}


@app.get("/api/projects/{project_id}", response_model=schemas.ProjectDetailResponse)
def get_project(
    project_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get a project with its tasks and the current user's role (requires viewer access)."""
    project, tasks, role = project_service.get_project(db, current_user.id, project_id)
    return {"success": True, "project": project, "tasks": tasks, "user_role": role.value}


@app.put("/api/projects/{project_id}", response_model=schemas.ProjectResponse)
def update_project(
    project_id: int,
    project_update: schemas.ProjectUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update a project (requires editor access)."""
    changes = project_update.model_dump(exclude_unset=True)
    project = project_service.update_project(db, current_user.id, project_id, changes)
    return {"success": True, "message": "Project updated successfully", "project": project}


@app.delete("/api/projects/{project_id}", response_model=schemas.Envelope)
def delete_project(
    project_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete a project with its tasks and memberships (requires owner)."""
    project_service.delete_project(db, current_user.id, project_id)
    return {"success": True, "message": "Project deleted successfully"}


# ============== Collaborators ==============

@app.post("/api/projects/{project_id}/collaborators", response_model=schemas.ProjectResponse)
def add_collaborator(
    project_id: int,
    collaborator: schemas.CollaboratorAdd,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Share a project with another user (requires owner)."""
    project = project_service.add_collaborator(
        db, current_user.id, project_id, collaborator.user_id, collaborator.role
    )
    return {"success": True, "message": "Collaborator added successfully", "project": project}


@app.put("/api/projects/{project_id}/collaborators/{user_id}", response_model=schemas.ProjectResponse)
def change_collaborator_role(
    project_id: int,
    user_id: int,
    role_update: schemas.CollaboratorRoleUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change a collaborator's role (requires owner)."""
    project = project_service.change_collaborator_role(
        db, current_user.id, project_id, user_id, role_update.role
    )
    return {"success": True, "message": "Collaborator role updated", "project": project}


@app.delete("/api/projects/{project_id}/collaborators/{user_id}", response_model=schemas.ProjectResponse)
def remove_collaborator(
    project_id: int,
    user_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Remove a collaborator and their task assignments (requires owner)."""
    project = project_service.remove_collaborator(db, current_user.id, project_id, user_id)
    return {"success": True, "message": "Collaborator removed successfully", "project": project}


# ============== Tasks ==============

@app.post("/api/projects/{project_id}/tasks", response_model=schemas.TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    project_id: int,
    task: schemas.TaskCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a task in a project (requires editor access)."""
    db_task = task_service.create_task(
        db,
        current_user.id,
        project_id,
        title=task.title,
        description=task.description,
        priority=task.priority,
        assigned_to=task.assigned_to,
        due_date=task.due_date,
    )
    return {"success": True, "message": "Task created successfully", "task": db_task}


@app.get("/api/projects/{project_id}/tasks", response_model=schemas.TaskListResponse)
def list_tasks(
    project_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List a project's tasks (requires viewer access)."""
    tasks = task_service.list_tasks(db, current_user.id, project_id)
    return {"success": True, "tasks": tasks}


@app.get("/api/tasks/{task_id}", response_model=schemas.TaskResponse)
def get_task(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get a single task (requires viewer access to its project)."""
    task = task_service.get_task(db, current_user.id, task_id)
    return {"success": True, "task": task}


@app.put("/api/tasks/{task_id}", response_model=schemas.TaskResponse)
def update_task(
    task_id: int,
    task_update: schemas.TaskUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update a task (requires editor access)."""
    changes = task_update.model_dump(exclude_unset=True)
    task = task_service.update_task(db, current_user.id, task_id, changes)
    return {"success": True, "message": "Task updated successfully", "task": task}


@app.delete("/api/tasks/{task_id}", response_model=schemas.Envelope)
def delete_task(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete a task (requires owner)."""
    task_service.delete_task(db, current_user.id, task_id)
    return {"success": True, "message": "Task deleted successfully"}


@app.patch("/api/tasks/{task_id}/toggle", response_model=schemas.TaskResponse)
def toggle_task(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Flip a task between completed and pending (requires editor access)."""
    task = task_service.toggle_task_status(db, current_user.id, task_id)
    return {"success": True, "message": "Task status updated", "task": task}
