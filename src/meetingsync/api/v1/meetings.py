"""Meeting endpoints: CRUD, validation, weekly stats and the merged schedule.

Create and update re-validate against current bookings and answer 409 with
the conflict report when the meeting is blocked. Only an admin or the
organizer may change or delete a meeting. Join and start URLs are shown to
the organizer, participants and admins only.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from src.meetingsync.api.deps import get_component, get_current_user
from src.meetingsync.meetings.schemas import (
    Meeting,
    MeetingCreate,
    MeetingFilter,
    MeetingKind,
    MeetingUpdate,
    WeeklyStats,
    ensure_utc,
)
from src.meetingsync.meetings.service import (
    HostingUnavailableError,
    MeetingConflictError,
    ScheduleEntry,
)
from src.meetingsync.providers.zoom import ProviderError
from src.meetingsync.scheduling.schemas import ConflictReport, MeetingProposal
from src.meetingsync.users.schemas import User

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/meetings", tags=["meetings"])
schedule_router = APIRouter(prefix="/schedule", tags=["meetings"])


# ── Response Schemas ─────────────────────────────────────────────────────────


class MeetingResponse(BaseModel):
    """Response for meeting data, serializes datetimes to ISO strings."""

    id: str
    title: str
    description: str | None = None
    starts_at: str
    ends_at: str
    duration_minutes: int
    organizer_id: str
    participants: list[str] = Field(default_factory=list)
    kind: str
    hosted: bool
    room_id: str | None = None
    provider_account_id: str | None = None
    provider_meeting_id: str | None = None
    join_url: str | None = None
    start_url: str | None = None
    access_password: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ValidationRequest(MeetingProposal):
    """Proposal posted to /meetings/validate. Ids must be UUIDs."""

    @field_validator("room_id", "exclude_meeting_id")
    @classmethod
    def require_uuid(cls, value: str | None) -> str | None:
        if not value:
            return None
        uuid.UUID(value)
        return value


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_directory(request: Request) -> Any:
    return get_component(request, "meeting_directory", "Meeting directory")


def _get_meeting_service(request: Request) -> Any:
    return get_component(request, "meeting_service", "Meeting service")


def _get_conflict_detector(request: Request) -> Any:
    return get_component(request, "conflict_detector", "Conflict detector")


def _can_see_links(meeting: Meeting, user: User) -> bool:
    return (
        user.is_admin
        or meeting.organizer_id == user.id
        or user.email.lower() in {p.lower() for p in meeting.participants}
    )


def _can_edit(meeting: Meeting, user: User) -> bool:
    return user.is_admin or meeting.organizer_id == user.id


def _meeting_to_response(meeting: Meeting, user: User) -> MeetingResponse:
    show_links = _can_see_links(meeting, user)
    return MeetingResponse(
        id=meeting.id,
        title=meeting.title,
        description=meeting.description,
        starts_at=meeting.starts_at.isoformat(),
        ends_at=meeting.ends_at.isoformat(),
        duration_minutes=meeting.duration_minutes,
        organizer_id=meeting.organizer_id,
        participants=meeting.participants,
        kind=meeting.kind.value,
        hosted=meeting.hosted,
        room_id=meeting.room_id,
        provider_account_id=meeting.provider_account_id,
        provider_meeting_id=meeting.provider_meeting_id,
        join_url=meeting.join_url if show_links else None,
        start_url=meeting.start_url if _can_edit(meeting, user) else None,
        access_password=meeting.access_password if show_links else None,
        created_at=meeting.created_at.isoformat() if meeting.created_at else None,
        updated_at=meeting.updated_at.isoformat() if meeting.updated_at else None,
    )


def _conflict_response(report: ConflictReport) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "detail": "Meeting has blocking conflicts",
            "report": report.model_dump(mode="json", by_alias=True),
        },
    )


async def _get_editable_meeting(request: Request, meeting_id: str, user: User) -> Meeting:
    directory = _get_directory(request)
    meeting = await directory.find_by_id(meeting_id)
    if meeting is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Meeting not found: {meeting_id}",
        )
    if not _can_edit(meeting, user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the organizer or an admin can change this meeting",
        )
    return meeting


async def _check_room(request: Request, room_id: str | None) -> None:
    if not room_id:
        return
    repo = get_component(request, "meeting_repository", "Meeting repository")
    if await repo.get_room(room_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Room not found: {room_id}",
        )


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("", response_model=list[MeetingResponse])
async def list_meetings(
    request: Request,
    start: datetime | None = Query(None, description="Window start (overlap)"),
    end: datetime | None = Query(None, description="Window end (overlap)"),
    room_id: uuid.UUID | None = Query(None),
    organizer_id: uuid.UUID | None = Query(None),
    participant: str | None = Query(None),
    kind: MeetingKind | None = Query(None),
    mine: bool = Query(False, description="Only meetings I organize or attend"),
    current_user: User = Depends(get_current_user),
):
    """List meetings overlapping an optional window, ordered by start time."""
    directory = _get_directory(request)
    filters = MeetingFilter(
        window_start=ensure_utc(start) if start else None,
        window_end=ensure_utc(end) if end else None,
        room_id=str(room_id) if room_id else None,
        organizer_id=str(organizer_id) if organizer_id else None,
        participant=participant,
        kind=kind,
    )
    meetings = await directory.list(filters)
    if mine:
        email = current_user.email.lower()
        meetings = [
            m
            for m in meetings
            if m.organizer_id == current_user.id or email in {p.lower() for p in m.participants}
        ]
    return [_meeting_to_response(m, current_user) for m in meetings]


@router.post("/validate", response_model=ConflictReport)
async def validate_meeting(
    body: ValidationRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    """Conflicts and alternative slots for a proposed meeting. Never fails hard."""
    detector = _get_conflict_detector(request)
    return await detector.validate_meeting(body)


@router.get("/stats/weekly", response_model=WeeklyStats)
async def weekly_stats(
    request: Request,
    reference: date | None = Query(None, description="Any day of the week; default today"),
    current_user: User = Depends(get_current_user),
):
    directory = _get_directory(request)
    return await directory.weekly_stats(reference or datetime.now(timezone.utc).date())


@router.post("", response_model=MeetingResponse, status_code=status.HTTP_201_CREATED)
async def create_meeting(
    body: MeetingCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    """POST /meetings -> 201; 409 on blocking conflicts or no hosting capacity."""
    service = _get_meeting_service(request)
    await _check_room(request, body.room_id)
    try:
        meeting = await service.create_meeting(current_user.id, body)
    except MeetingConflictError as exc:
        return _conflict_response(exc.report)
    except HostingUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except ProviderError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return _meeting_to_response(meeting, current_user)


@router.get("/{meeting_id}", response_model=MeetingResponse)
async def get_meeting(
    meeting_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    directory = _get_directory(request)
    meeting = await directory.find_by_id(meeting_id)
    if meeting is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Meeting not found: {meeting_id}",
        )
    return _meeting_to_response(meeting, current_user)


@router.patch("/{meeting_id}", response_model=MeetingResponse)
async def update_meeting(
    meeting_id: str,
    body: MeetingUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    meeting = await _get_editable_meeting(request, meeting_id, current_user)
    service = _get_meeting_service(request)
    if "room_id" in body.model_fields_set:
        await _check_room(request, body.room_id)
    try:
        updated = await service.update_meeting(meeting, body)
    except MeetingConflictError as exc:
        return _conflict_response(exc.report)
    except HostingUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except ProviderError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return _meeting_to_response(updated, current_user)


@router.delete("/{meeting_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_meeting(
    meeting_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    meeting = await _get_editable_meeting(request, meeting_id, current_user)
    service = _get_meeting_service(request)
    try:
        await service.delete_meeting(meeting)
    except ProviderError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


# ── Merged schedule ──────────────────────────────────────────────────────────


@schedule_router.get("", response_model=list[ScheduleEntry])
async def get_schedule(
    request: Request,
    start: datetime | None = Query(None),
    days: int = Query(7, ge=1, le=62),
    current_user: User = Depends(get_current_user),
):
    """Local meetings merged with provider meetings created outside the app."""
    service = _get_meeting_service(request)
    window_start = ensure_utc(start) if start else datetime.now(timezone.utc)
    return await service.merged_schedule(window_start, window_start + timedelta(days=days))
