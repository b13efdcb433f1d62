"""Pydantic schemas for meetings and rooms.

Meeting is the domain object shared by the directory, the scheduling core and
the API. Incoming datetimes without a timezone are read as UTC.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, EmailStr, Field, field_validator


class MeetingKind(str, Enum):
    internal = "internal"
    external = "external"


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Meetings ────────────────────────────────────────────────────────────────


class Meeting(BaseModel):
    """A stored meeting."""

    id: str
    title: str
    description: str | None = None
    starts_at: datetime
    duration_minutes: int = Field(..., gt=0)
    organizer_id: str
    participants: list[str] = Field(default_factory=list)
    kind: MeetingKind = MeetingKind.internal
    hosted: bool = False
    room_id: str | None = None
    provider_meeting_id: str | None = None
    provider_account_id: str | None = None
    join_url: str | None = None
    start_url: str | None = None
    access_password: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @field_validator("starts_at")
    @classmethod
    def normalize_start(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration_minutes)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap: touching intervals do not collide."""
        return self.starts_at < end and self.ends_at > start


class MeetingCreate(BaseModel):
    """Request body for creating a meeting."""

    title: str = Field(..., min_length=3, max_length=500)
    description: str | None = None
    starts_at: datetime
    duration_minutes: int = Field(..., ge=5, le=24 * 60)
    participants: list[EmailStr] = Field(default_factory=list)
    kind: MeetingKind = MeetingKind.internal
    hosted: bool = True
    room_id: str | None = None
    access_password: str | None = Field(default=None, max_length=10)

    @field_validator("starts_at")
    @classmethod
    def normalize_start(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class MeetingUpdate(BaseModel):
    """Partial update; omitted fields keep their stored values."""

    title: str | None = Field(default=None, min_length=3, max_length=500)
    description: str | None = None
    starts_at: datetime | None = None
    duration_minutes: int | None = Field(default=None, ge=5, le=24 * 60)
    participants: list[EmailStr] | None = None
    kind: MeetingKind | None = None
    room_id: str | None = None
    access_password: str | None = Field(default=None, max_length=10)

    @field_validator("starts_at")
    @classmethod
    def normalize_start(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class MeetingFilter(BaseModel):
    """Directory listing filter. window_* select meetings overlapping the window."""

    window_start: datetime | None = None
    window_end: datetime | None = None
    room_id: str | None = None
    organizer_id: str | None = None
    participant: str | None = None
    kind: MeetingKind | None = None
    hosted: bool | None = None
    provider_account_id: str | None = None
    include_deleted: bool = False


class DayCount(BaseModel):
    day: date
    count: int


class WeeklyStats(BaseModel):
    """Meetings per day for the Monday-based week containing a reference date."""

    week_start: date
    week_end: date
    total: int
    days: list[DayCount]


# ── Rooms ───────────────────────────────────────────────────────────────────


class Room(BaseModel):
    id: str
    name: str
    capacity: int
    location: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def label(self) -> str:
        return f"{self.name} - {self.location}"


class RoomCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    capacity: int = Field(..., ge=1)
    location: str = Field(..., min_length=1, max_length=300)


class RoomUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    capacity: int | None = Field(default=None, ge=1)
    location: str | None = Field(default=None, min_length=1, max_length=300)
