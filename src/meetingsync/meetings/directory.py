"""MeetingDirectory -- read-only projection over stored meetings.

Every query used by capacity and conflict math goes through this class so
soft-delete filtering is applied in one place. The directory re-checks
deleted_at and the overlap predicate on whatever the repository returns,
which keeps the guarantee even for repositories that filter loosely.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from src.meetingsync.meetings.schemas import DayCount, Meeting, MeetingFilter, Room, WeeklyStats


class MeetingDirectory:
    """Read-through view of meetings. Holds no cache across calls.

    Args:
        repository: A MeetingRepository (or a test double with the same reads).
    """

    def __init__(self, repository: Any) -> None:
        self._repository = repository

    async def list(self, filters: MeetingFilter | None = None) -> list[Meeting]:
        """Meetings matching the filter, ordered by start time.

        Soft-deleted meetings are excluded unless include_deleted is set.
        """
        filters = filters or MeetingFilter()
        meetings = await self._repository.list_meetings(filters)
        if not filters.include_deleted:
            meetings = [m for m in meetings if not m.is_deleted]
        if filters.participant:
            wanted = filters.participant.lower()
            meetings = [
                m for m in meetings if wanted in {p.lower() for p in m.participants}
            ]
        if filters.window_start is not None and filters.window_end is not None:
            meetings = [
                m for m in meetings if m.overlaps(filters.window_start, filters.window_end)
            ]
        return sorted(meetings, key=lambda m: m.starts_at)

    async def find_by_id(self, meeting_id: str) -> Meeting | None:
        meeting = await self._repository.get_meeting(meeting_id)
        if meeting is None or meeting.is_deleted:
            return None
        return meeting

    async def overlapping(
        self,
        start: datetime,
        end: datetime,
        *,
        room_id: str | None = None,
        account_id: str | None = None,
        hosted_only: bool = False,
        exclude_meeting_id: str | None = None,
    ) -> list[Meeting]:
        """Live meetings overlapping [start, end), minus the excluded one."""
        meetings = await self._repository.find_overlapping(
            start,
            end,
            room_id=room_id,
            account_id=account_id,
            hosted_only=hosted_only,
            exclude_meeting_id=exclude_meeting_id,
        )
        return [
            m
            for m in meetings
            if not m.is_deleted
            and m.id != exclude_meeting_id
            and m.overlaps(start, end)
            and (room_id is None or m.room_id == room_id)
            and (account_id is None or m.provider_account_id == account_id)
            and (not hosted_only or m.provider_account_id is not None)
        ]

    async def rooms(self) -> list[Room]:
        """Rooms that are not deleted, ordered by name."""
        rooms = await self._repository.list_rooms()
        return [r for r in rooms if r.deleted_at is None]

    async def weekly_stats(self, reference: date) -> WeeklyStats:
        """Count meetings per UTC day for the Monday-based week holding reference."""
        week_start = reference - timedelta(days=reference.weekday())
        window_start = datetime.combine(week_start, time.min, tzinfo=timezone.utc)
        window_end = window_start + timedelta(days=7)
        meetings = await self.list(
            MeetingFilter(window_start=window_start, window_end=window_end)
        )
        counts = {week_start + timedelta(days=i): 0 for i in range(7)}
        for meeting in meetings:
            day = meeting.starts_at.astimezone(timezone.utc).date()
            if day in counts:
                counts[day] += 1
        return WeeklyStats(
            week_start=week_start,
            week_end=week_start + timedelta(days=6),
            total=sum(counts.values()),
            days=[DayCount(day=d, count=c) for d, c in counts.items()],
        )
