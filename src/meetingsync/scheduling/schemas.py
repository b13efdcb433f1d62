"""Pydantic schemas for the scheduling core.

These payloads are consumed by the booking form, so they serialize with
camelCase aliases (hasAvailableAccount, canSubmit, meetingId, ...). Python
code constructs them with snake_case field names.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.meetingsync.meetings.schemas import Meeting, MeetingKind, ensure_utc

VALID_KINDS = frozenset(k.value for k in MeetingKind)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConflictType(str, Enum):
    ROOM_CONFLICT = "ROOM_CONFLICT"
    ACCOUNT_CAPACITY = "ACCOUNT_CAPACITY"
    PARTICIPANT_CONFLICT = "PARTICIPANT_CONFLICT"
    INVALID_TYPE = "INVALID_TYPE"


class Severity(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"


class AccountChangeType(str, Enum):
    ADDED = "ADDED"
    REMOVED = "REMOVED"
    UPDATED = "UPDATED"


# ── Meeting summaries ───────────────────────────────────────────────────────


class MeetingSummary(CamelModel):
    """The parts of a colliding meeting that are safe to show to any user."""

    id: str
    title: str
    start: datetime
    end: datetime
    room_id: str | None = None
    provider_account_id: str | None = None

    @classmethod
    def from_meeting(cls, meeting: Meeting) -> MeetingSummary:
        return cls(
            id=meeting.id,
            title=meeting.title,
            start=meeting.starts_at,
            end=meeting.ends_at,
            room_id=meeting.room_id,
            provider_account_id=meeting.provider_account_id,
        )


# ── Capacity ────────────────────────────────────────────────────────────────


class CapacityResult(CamelModel):
    has_available_account: bool
    total_accounts: int
    total_max_concurrent: int
    current_total_usage: int
    available_slots: int
    conflicting_meetings: list[MeetingSummary] = Field(default_factory=list)
    suggested_account_id: str | None = None

    @classmethod
    def unavailable(cls) -> CapacityResult:
        """Zero-capacity result used when the store cannot be read."""
        return cls(
            has_available_account=False,
            total_accounts=0,
            total_max_concurrent=0,
            current_total_usage=0,
            available_slots=0,
        )


class AccountLoad(CamelModel):
    account_id: str
    current_load: int
    max_capacity: int
    utilization_percentage: float


class CapacityStatus(CamelModel):
    total_accounts: int
    total_capacity: int
    current_usage: int
    available_slots: int
    utilization_percentage: float

    @classmethod
    def empty(cls) -> CapacityStatus:
        return cls(
            total_accounts=0,
            total_capacity=0,
            current_usage=0,
            available_slots=0,
            utilization_percentage=0.0,
        )


# ── Conflicts ───────────────────────────────────────────────────────────────


class ConflictInfo(CamelModel):
    type: ConflictType
    severity: Severity
    message: str
    meeting_id: str | None = None
    conflicting_meetings: list[MeetingSummary] = Field(default_factory=list)


class TimeSlot(CamelModel):
    start: datetime
    end: datetime


class RoomSuggestion(CamelModel):
    """A room that is free for the whole proposed window."""

    id: str
    name: str
    capacity: int
    location: str


class ConflictReport(CamelModel):
    conflicts: list[ConflictInfo] = Field(default_factory=list)
    suggestions: list[TimeSlot] = Field(default_factory=list)
    alternative_rooms: list[RoomSuggestion] = Field(default_factory=list)
    can_submit: bool = True

    @property
    def has_errors(self) -> bool:
        return any(c.severity == Severity.ERROR for c in self.conflicts)

    @classmethod
    def degraded(cls) -> ConflictReport:
        """Soft warning returned when a meeting cannot be validated."""
        return cls(
            conflicts=[
                ConflictInfo(
                    type=ConflictType.INVALID_TYPE,
                    severity=Severity.WARNING,
                    message="Unable to validate meeting at this time. Please try again.",
                )
            ],
            suggestions=[],
            alternative_rooms=[],
            can_submit=True,
        )


class MeetingProposal(CamelModel):
    """A meeting as submitted for validation.

    kind is a plain string so an unrecognized value reaches the detector
    and comes back as an INVALID_TYPE warning instead of a 422.
    """

    title: str = ""
    starts_at: datetime
    duration_minutes: int = Field(..., gt=0)
    kind: str = MeetingKind.internal.value
    hosted: bool = True
    room_id: str | None = None
    participants: list[str] = Field(default_factory=list)
    exclude_meeting_id: str | None = None

    @field_validator("starts_at")
    @classmethod
    def normalize_start(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration_minutes)

    @classmethod
    def from_meeting(cls, meeting: Meeting, **overrides: object) -> MeetingProposal:
        """Proposal re-validating a stored meeting (excluded from its own checks)."""
        values: dict = {
            "title": meeting.title,
            "starts_at": meeting.starts_at,
            "duration_minutes": meeting.duration_minutes,
            "kind": meeting.kind.value,
            "hosted": meeting.hosted,
            "room_id": meeting.room_id,
            "participants": list(meeting.participants),
            "exclude_meeting_id": meeting.id,
        }
        values.update(overrides)
        return cls(**values)


# ── Notifier events ─────────────────────────────────────────────────────────


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CapacityUpdateEvent(CamelModel):
    type: Literal["capacity_updated"] = "capacity_updated"
    timestamp: datetime = Field(default_factory=_utcnow)
    change_type: AccountChangeType
    account_id: str
    previous_capacity: int
    new_capacity: int
    added_accounts: list[str] = Field(default_factory=list)
    removed_accounts: list[str] = Field(default_factory=list)
    total_accounts: int


class ConflictNotification(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    meeting_id: str
    meeting_title: str
    conflicts: list[ConflictInfo]
    severity: Severity
    message: str
    created_at: datetime = Field(default_factory=_utcnow)
    is_read: bool = False
