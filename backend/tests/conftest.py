"""
Test configuration and fixtures for Taskboard tests.

Provides:
- Test database with SQLite in-memory for speed
- FastAPI test client with database dependency override
- Authentication helpers (session token generation)
- Common fixtures for users and a shared project
"""

import os
import sys
import logging
from typing import Callable, Dict, Generator

# Configure the app before it is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db
from main import app
import models
import project_service
from auth.security import hash_password, create_access_token

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# SQLite in-memory database for fast testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

DEFAULT_PASSWORD = "secret123"


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.

    This ensures test isolation and fast execution.
    """
    logger.debug("Creating test database")

    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        logger.debug("Test database cleaned up")


@pytest.fixture(scope="function")
def client(test_db: Session) -> TestClient:
    """
    Create FastAPI test client with database dependency override.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def make_user(test_db: Session) -> Callable[..., models.User]:
    """
    Factory fixture creating users with a known password.
    """
    def _make_user(name: str, email: str, password: str = DEFAULT_PASSWORD, is_active: bool = True) -> models.User:
        user = models.User(
            name=name,
            email=email,
            password_hash=hash_password(password),
            preferences=models.default_preferences(),
            is_active=is_active,
        )
        test_db.add(user)
        test_db.commit()
        test_db.refresh(user)
        logger.info(f"Created user {email} with ID: {user.id}")
        return user

    return _make_user


@pytest.fixture(scope="function")
def owner_user(make_user) -> models.User:
    return make_user("Ana Owner", "ana@test.com")


@pytest.fixture(scope="function")
def editor_user(make_user) -> models.User:
    return make_user("Bea Editor", "bea@test.com")


@pytest.fixture(scope="function")
def viewer_user(make_user) -> models.User:
    return make_user("Carlos Viewer", "carlos@test.com")


@pytest.fixture(scope="function")
def outsider_user(make_user) -> models.User:
    return make_user("Dana Outsider", "dana@test.com")


@pytest.fixture(scope="function")
def auth_headers() -> Callable[[models.User], Dict[str, str]]:
    """
    Build an Authorization header carrying a session token for a user.
    """
    def _auth_headers(user: models.User) -> Dict[str, str]:
        token = create_access_token({"sub": str(user.id), "email": user.email})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture(scope="function")
def shared_project(
    test_db: Session,
    owner_user: models.User,
    editor_user: models.User,
    viewer_user: models.User,
) -> models.Project:
    """
    Project owned by owner_user, shared with editor_user (editor) and viewer_user (viewer).
    """
    project = project_service.create_project(test_db, owner_user.id, "Launch", description="Product launch")
    project_service.add_collaborator(test_db, owner_user.id, project.id, editor_user.id, "editor")
    project_service.add_collaborator(test_db, owner_user.id, project.id, viewer_user.id, "viewer")
    test_db.refresh(project)
    logger.info(f"Created shared project with ID: {project.id}")
    return project
