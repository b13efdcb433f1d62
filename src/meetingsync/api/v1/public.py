"""Public read-only calendar.

No authentication. Join URLs, start URLs and passwords are never included.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from src.meetingsync.api.deps import get_component
from src.meetingsync.meetings.schemas import Meeting, MeetingFilter, ensure_utc

router = APIRouter(prefix="/public", tags=["public"])


class PublicMeeting(BaseModel):
    id: str
    title: str
    start: str
    end: str
    duration_minutes: int
    kind: str
    room: str | None = None
    status: str  # upcoming | ongoing | finished


def meeting_status(meeting: Meeting, now: datetime) -> str:
    if now < meeting.starts_at:
        return "upcoming"
    if now < meeting.ends_at:
        return "ongoing"
    return "finished"


@router.get("/meetings", response_model=list[PublicMeeting])
async def public_meetings(
    request: Request,
    start: datetime | None = Query(None),
    days: int = Query(30, ge=1, le=92),
):
    """Meetings from start (default: today 00:00 UTC) for the given number of days."""
    directory = get_component(request, "meeting_directory", "Meeting directory")
    repo = get_component(request, "meeting_repository", "Meeting repository")

    now = datetime.now(timezone.utc)
    window_start = (
        ensure_utc(start) if start else now.replace(hour=0, minute=0, second=0, microsecond=0)
    )
    meetings = await directory.list(
        MeetingFilter(window_start=window_start, window_end=window_start + timedelta(days=days))
    )
    rooms = {r.id: r.label for r in await repo.list_rooms()}
    return [
        PublicMeeting(
            id=m.id,
            title=m.title,
            start=m.starts_at.isoformat(),
            end=m.ends_at.isoformat(),
            duration_minutes=m.duration_minutes,
            kind=m.kind.value,
            room=rooms.get(m.room_id) if m.room_id else None,
            status=meeting_status(m, now),
        )
        for m in meetings
    ]
