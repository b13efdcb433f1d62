"""Pydantic schemas for users, authentication and application settings."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, EmailStr, Field

DEFAULT_APP_NAME = "MeetingSync"
DEFAULT_APP_DESCRIPTION = "Efficiently manage and schedule your Zoom meetings."


class UserRole(str, Enum):
    admin = "admin"
    member = "member"


# ── Domain ──────────────────────────────────────────────────────────────────


class User(BaseModel):
    """A stored user. hashed_password never leaves the API layer."""

    id: str
    email: str
    name: str
    role: UserRole = UserRole.member
    hashed_password: str | None = None
    is_active: bool = True
    created_at: datetime | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin


class AppSettings(BaseModel):
    """The settings singleton."""

    allow_registration: bool = True
    default_role: UserRole = UserRole.member
    default_reset_password_hash: str | None = None
    app_name: str = DEFAULT_APP_NAME
    app_description: str = DEFAULT_APP_DESCRIPTION
    updated_at: datetime | None = None


# ── Auth Requests / Responses ───────────────────────────────────────────────


class LoginRequest(BaseModel):
    """Request schema for user login."""

    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="User password")


class RegisterRequest(BaseModel):
    """Self-service registration, honoured only when registration is enabled."""

    email: EmailStr
    name: str = Field(..., min_length=1, max_length=200)
    password: str = Field(..., min_length=8)


class TokenResponse(BaseModel):
    """Response schema with access and refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefreshRequest(BaseModel):
    """Request schema to refresh an access token."""

    refresh_token: str = Field(..., description="Valid refresh token")


class UserResponse(BaseModel):
    """Public view of a user."""

    id: str
    email: str
    name: str
    role: str
    created_at: str | None = None


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role.value,
        created_at=user.created_at.isoformat() if user.created_at else None,
    )


# ── User Management ─────────────────────────────────────────────────────────


class UserCreate(BaseModel):
    """Admin-created user."""

    email: EmailStr
    name: str = Field(..., min_length=1, max_length=200)
    password: str = Field(..., min_length=8)
    role: UserRole = UserRole.member


class RoleUpdate(BaseModel):
    role: UserRole


class ProfileUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)


# ── Settings Requests / Responses ───────────────────────────────────────────


class SettingsUpdate(BaseModel):
    """Partial settings update. default_reset_password is hashed before storage."""

    allow_registration: bool | None = None
    default_role: UserRole | None = None
    default_reset_password: str | None = Field(default=None, min_length=8)
    app_name: str | None = Field(default=None, min_length=1, max_length=200)
    app_description: str | None = None


class PublicSettingsResponse(BaseModel):
    allow_registration: bool
    app_name: str
    app_description: str


class AdminSettingsResponse(PublicSettingsResponse):
    default_role: str
    has_default_reset_password: bool
    updated_at: str | None = None
