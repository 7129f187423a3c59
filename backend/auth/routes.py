"""
Identity API endpoints.

This module provides REST API endpoints for:
- User registration
- Login/logout
- Profile read/update and password change
- Self-service account deletion (cascading through projects and tasks)
- User search for sharing projects
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

import schemas
from cascade import delete_account_cascade
from database import get_db
from errors import AuthenticationError, AuthorizationError, ConflictError, ValidationError
from models import User, default_preferences
from auth.security import (
    hash_password,
    verify_password,
    create_access_token,
    ACCESS_TOKEN_EXPIRE_MINUTES,
    COOKIE_DOMAIN,
    COOKIE_SAMESITE,
    COOKIE_SECURE,
    TOKEN_COOKIE_NAME,
)
from auth.dependencies import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 6
BIO_MAX_LENGTH = 200
SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 10


def _clean_name(name: Optional[str]) -> str:
    if not name or not NAME_MIN_LENGTH <= len(name.strip()) <= NAME_MAX_LENGTH:
        raise ValidationError(f"Name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters")
    return name.strip()


def _check_password_length(password: str, label: str = "Password") -> None:
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"{label} must be at least {PASSWORD_MIN_LENGTH} characters")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _clear_token_cookie(response: Response) -> None:
    # Browser requires matching domain/path/secure/samesite to delete a cookie
    response.delete_cookie(
        key=TOKEN_COOKIE_NAME,
        path="/",
        domain=COOKIE_DOMAIN,
        secure=COOKIE_SECURE,
        samesite=COOKIE_SAMESITE,
    )


@router.post("/register", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
async def register(request: schemas.RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a new user account.

    Raises:
        ValidationError: name or password outside bounds
        ConflictError: email already registered
    """
    logger.info(f"Registration attempt for email: {request.email}")

    name = _clean_name(request.name)
    _check_password_length(request.password)
    email = request.email.lower()

    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        logger.info(f"Registration failed: email already exists: {email}")
        raise ConflictError("Email already registered")

    new_user = User(
        name=name,
        email=email,
        password_hash=hash_password(request.password),
        preferences=default_preferences(),
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    logger.info(f"User registered successfully: {new_user.email} (ID: {new_user.id})")
    return {"success": True, "message": "User registered successfully", "user": new_user}


@router.post("/login", response_model=schemas.LoginResponse)
async def login(request: schemas.LoginRequest, response: Response, db: Session = Depends(get_db)):
    """
    Login with email and password.

    Returns the session token in the body and also sets it as an httpOnly cookie.

    Raises:
        AuthenticationError: unknown email or wrong password
        AuthorizationError: account is inactive
    """
    logger.info(f"Login attempt for email: {request.email}")

    user = db.query(User).filter(User.email == request.email.lower()).first()
    if not user or not verify_password(request.password, user.password_hash):
        logger.info(f"Login failed: invalid credentials: {request.email}")
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        logger.info(f"Login failed: inactive user: {request.email}")
        raise AuthorizationError("Account is inactive")

    token = create_access_token({"sub": str(user.id), "email": user.email})

    response.set_cookie(
        key=TOKEN_COOKIE_NAME,
        value=token,
        path="/",
        httponly=True,
        secure=COOKIE_SECURE,
        samesite=COOKIE_SAMESITE,
        domain=COOKIE_DOMAIN,
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )

    logger.info(f"User logged in successfully: {user.email} (ID: {user.id})")
    return {"success": True, "message": "Login successful", "token": token, "user": user}


@router.post("/logout", response_model=schemas.Envelope)
async def logout(response: Response):
    """
    Clear the session cookie.

    Does not require authentication, so users can always log out even with an
    expired token. Tokens are stateless; a client holding a copy in storage
    must discard it.
    """
    _clear_token_cookie(response)
    logger.info("User logged out")
    return {"success": True, "message": "Logged out successfully"}


@router.get("/profile", response_model=schemas.UserResponse)
async def get_profile(current_user: User = Depends(get_current_user)):
    """Get the authenticated user's profile, including their project lists."""
    logger.debug(f"Fetching profile for: {current_user.email}")
    return {"success": True, "user": current_user}


@router.put("/profile", response_model=schemas.UserResponse)
async def update_profile(
    profile_update: schemas.ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update name, avatar, bio and preferences of the authenticated user.
    """
    logger.debug(f"User {current_user.id} updating profile")

    update_data = profile_update.model_dump(exclude_unset=True)

    updates = {}
    if "name" in update_data:
        updates["name"] = _clean_name(update_data["name"])
    if "bio" in update_data:
        bio = (update_data["bio"] or "").strip()
        if len(bio) > BIO_MAX_LENGTH:
            raise ValidationError(f"Bio cannot exceed {BIO_MAX_LENGTH} characters")
        updates["bio"] = bio
    if "avatar" in update_data:
        updates["avatar"] = update_data["avatar"] or None
    if update_data.get("preferences") is not None:
        updates["preferences"] = profile_update.preferences.model_dump(mode="json")

    for key, value in updates.items():
        setattr(current_user, key, value)

    db.commit()
    db.refresh(current_user)

    logger.info(f"Profile updated for user {current_user.id}")
    return {"success": True, "message": "Profile updated successfully", "user": current_user}


@router.put("/password", response_model=schemas.Envelope)
async def change_password(
    request: schemas.PasswordChange,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Change the authenticated user's password.

    Raises:
        AuthenticationError: current password is wrong
        ValidationError: new password too short or identical to the current one
    """
    logger.info(f"Password change requested by user {current_user.id}")

    _check_password_length(request.new_password, "New password")

    if not verify_password(request.current_password, current_user.password_hash):
        logger.info(f"Password change failed: wrong current password for user {current_user.id}")
        raise AuthenticationError("Current password is incorrect")

    if verify_password(request.new_password, current_user.password_hash):
        raise ValidationError("New password must be different from the current one")

    current_user.password_hash = hash_password(request.new_password)
    db.commit()

    logger.info(f"Password changed for user {current_user.id}")
    return {"success": True, "message": "Password updated successfully"}


@router.delete("/account", response_model=schemas.Envelope)
async def delete_account(
    request: schemas.AccountDeletion,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete the authenticated user's account and everything they own.

    Requires the current password as confirmation. Owned projects and their
    tasks are deleted, collaborations and task assignments elsewhere are
    removed, and related invitations are deleted.

    Raises:
        ValidationError: password missing
        AuthenticationError: password is wrong
        InternalError: the cleanup cascade was interrupted
    """
    logger.info(f"Account deletion requested by user {current_user.id}")

    if not request.password:
        raise ValidationError("Password is required to confirm account deletion")

    if not verify_password(request.password, current_user.password_hash):
        logger.info(f"Account deletion failed: wrong password for user {current_user.id}")
        raise AuthenticationError("Incorrect password")

    user_id = current_user.id
    delete_account_cascade(db, current_user)
    _clear_token_cookie(response)

    logger.info(f"Account deleted: user {user_id}")
    return {"success": True, "message": "Account deleted successfully"}


@router.get("/search", response_model=schemas.UserSearchResponse)
async def search_users(
    q: Optional[str] = Query(None),
    query: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Search active users by name or email prefix, case-insensitively.

    Queries shorter than two characters return no users. The requester is
    never included, and at most ten users are returned.
    """
    term = (q or query or "").strip()
    if len(term) < SEARCH_MIN_LENGTH:
        return {"success": True, "users": []}

    pattern = f"{_escape_like(term)}%"
    users = (
        db.query(User)
        .filter(
            and_(
                or_(User.email.ilike(pattern, escape="\\"), User.name.ilike(pattern, escape="\\")),
                User.is_active.is_(True),
                User.id != current_user.id,
            )
        )
        .order_by(User.name)
        .limit(SEARCH_LIMIT)
        .all()
    )

    logger.debug(f"User search '{term}' by {current_user.id} returned {len(users)} users")
    return {"success": True, "users": users}
