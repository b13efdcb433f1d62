"""Meeting and room persistence models.

- MeetingModel: scheduled meetings, optionally hosted on a provider account
- RoomModel: physical meeting rooms

ends_at is denormalized from starts_at + duration_minutes so overlap queries
can run entirely in SQL. MeetingRepository keeps it in sync on every write.
Both tables soft-delete through deleted_at.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.meetingsync.core.database import Base


class MeetingModel(Base):
    """A scheduled meeting.

    participants holds a JSON list of email addresses. Provider linkage
    columns stay NULL for meetings that are not hosted.
    """

    __tablename__ = "meetings"
    __table_args__ = (
        Index("ix_meetings_window", "starts_at", "ends_at"),
        Index("ix_meetings_room_window", "room_id", "starts_at"),
        Index("ix_meetings_provider_account", "provider_account_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    organizer_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    participants: Mapped[list] = mapped_column(
        JSON, nullable=False, server_default=text("'[]'::json")
    )
    kind: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default=text("'internal'")
    )
    hosted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )
    room_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Provider linkage
    provider_meeting_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True, unique=True
    )
    provider_account_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    join_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    start_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    access_password: Mapped[str | None] = mapped_column(String(10), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class RoomModel(Base):
    """Physical meeting room."""

    __tablename__ = "meeting_rooms"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    location: Mapped[str] = mapped_column(String(300), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
