"""User and settings persistence models.

- UserModel: application users with bcrypt password hashes
- SettingsModel: singleton row (id=1) holding registration and branding settings
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.meetingsync.core.database import Base


class UserModel(Base):
    """Application user.

    Email uniqueness is enforced by the unique index; the repository turns
    violations into DuplicateEmailError.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    hashed_password: Mapped[str | None] = mapped_column(String(200), nullable=True)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default=text("'member'")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )


class SettingsModel(Base):
    """Singleton application settings row, created lazily with defaults."""

    __tablename__ = "app_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    allow_registration: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )
    default_role: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default=text("'member'")
    )
    default_reset_password_hash: Mapped[str | None] = mapped_column(
        String(200), nullable=True
    )
    app_name: Mapped[str] = mapped_column(
        String(200), nullable=False, server_default=text("'MeetingSync'")
    )
    app_description: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )
