"""Authentication API endpoints.

Provides login, token refresh, self-service registration and current user
info. Registration is open only while the settings allow it, and new users
receive the configured default role.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

import structlog

from src.meetingsync.api.deps import get_component, get_current_user
from src.meetingsync.core.security import (
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_password,
    verify_token,
)
from src.meetingsync.users.repository import DuplicateEmailError
from src.meetingsync.users.schemas import (
    LoginRequest,
    RegisterRequest,
    TokenRefreshRequest,
    TokenResponse,
    User,
    UserResponse,
    user_to_response,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _issue_tokens(user: User) -> TokenResponse:
    token_data = {
        "sub": user.id,
        "email": user.email,
        "role": user.role.value,
    }
    return TokenResponse(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(token_data),
    )


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, request: Request):
    """Authenticate a user and return JWT tokens."""
    users = get_component(request, "user_repository", "User repository")
    user = await users.get_user_by_email(body.email)

    if not user or not user.hashed_password:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    if not verify_password(body.password, user.hashed_password):
        logger.info("auth.login_failed", user_id=user.id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    logger.info("auth.login", user_id=user.id)
    return _issue_tokens(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(body: TokenRefreshRequest, request: Request):
    """Refresh an expired access token using a valid refresh token."""
    payload = verify_token(body.refresh_token, token_type="refresh")

    users = get_component(request, "user_repository", "User repository")
    user = await users.get_user(payload["sub"])
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return _issue_tokens(user)


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, request: Request):
    """Create an account when self-service registration is enabled."""
    settings_repo = get_component(request, "settings_repository", "Settings repository")
    users = get_component(request, "user_repository", "User repository")

    app_settings = await settings_repo.get_or_create()
    if not app_settings.allow_registration:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Registration is currently disabled",
        )
    try:
        user = await users.create_user(
            email=body.email,
            name=body.name,
            hashed_password=hash_password(body.password),
            role=app_settings.default_role,
        )
    except DuplicateEmailError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )
    return user_to_response(user)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Return the authenticated user."""
    return user_to_response(current_user)
