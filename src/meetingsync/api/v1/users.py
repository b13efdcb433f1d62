"""User management (admin) and profile endpoints."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.meetingsync.api.deps import get_component, get_current_user, require_admin
from src.meetingsync.core.security import hash_password, verify_password
from src.meetingsync.users.repository import DuplicateEmailError
from src.meetingsync.users.schemas import (
    PasswordChange,
    ProfileUpdate,
    RoleUpdate,
    User,
    UserCreate,
    UserResponse,
    user_to_response,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])
profile_router = APIRouter(prefix="/profile", tags=["profile"])


def _get_user_repository(request: Request) -> Any:
    return get_component(request, "user_repository", "User repository")


async def _get_user_or_404(repo: Any, user_id: str) -> User:
    user = await repo.get_user(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User not found: {user_id}",
        )
    return user


# ── Admin user management ────────────────────────────────────────────────────


@router.get("", response_model=list[UserResponse])
async def list_users(request: Request, admin: User = Depends(require_admin)):
    repo = _get_user_repository(request)
    return [user_to_response(u) for u in await repo.list_users()]


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(body: UserCreate, request: Request, admin: User = Depends(require_admin)):
    """POST /users -> 201, 409 when the email is taken."""
    repo = _get_user_repository(request)
    try:
        user = await repo.create_user(
            email=body.email,
            name=body.name,
            hashed_password=hash_password(body.password),
            role=body.role,
        )
    except DuplicateEmailError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )
    return user_to_response(user)


@router.patch("/{user_id}/role", response_model=UserResponse)
async def update_role(
    user_id: str,
    body: RoleUpdate,
    request: Request,
    admin: User = Depends(require_admin),
):
    repo = _get_user_repository(request)
    await _get_user_or_404(repo, user_id)
    if user_id == admin.id and body.role != admin.role:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot change your own role",
        )
    updated = await repo.update_user(user_id, role=body.role)
    logger.info("users.role_changed", user_id=user_id, role=body.role.value, by=admin.id)
    return user_to_response(updated)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str, request: Request, admin: User = Depends(require_admin)):
    repo = _get_user_repository(request)
    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own account",
        )
    await _get_user_or_404(repo, user_id)
    await repo.delete_user(user_id)


@router.post("/{user_id}/reset-password")
async def reset_password(user_id: str, request: Request, admin: User = Depends(require_admin)):
    """Set the user's password to the configured default reset password."""
    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Use the profile page to change your own password",
        )
    repo = _get_user_repository(request)
    settings_repo = get_component(request, "settings_repository", "Settings repository")
    await _get_user_or_404(repo, user_id)

    app_settings = await settings_repo.get_or_create()
    if not app_settings.default_reset_password_hash:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No default reset password is configured",
        )
    await repo.update_user(user_id, hashed_password=app_settings.default_reset_password_hash)
    logger.info("users.password_reset", user_id=user_id, by=admin.id)
    return {"status": "reset"}


# ── Own profile ──────────────────────────────────────────────────────────────


@profile_router.get("", response_model=UserResponse)
async def get_profile(current_user: User = Depends(get_current_user)):
    return user_to_response(current_user)


@profile_router.put("", response_model=UserResponse)
async def update_profile(
    body: ProfileUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    repo = _get_user_repository(request)
    updated = await repo.update_user(current_user.id, name=body.name)
    return user_to_response(updated or current_user)


@profile_router.put("/password")
async def change_password(
    body: PasswordChange,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    """Change the caller's password; the current password must match."""
    if not current_user.hashed_password or not verify_password(
        body.current_password, current_user.hashed_password
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )
    repo = _get_user_repository(request)
    await repo.update_user(current_user.id, hashed_password=hash_password(body.new_password))
    logger.info("users.password_changed", user_id=current_user.id)
    return {"status": "changed"}
