"""ConflictDetector -- classifies conflicts for a proposed meeting.

Checks run in a fixed order, each contributing zero or more conflicts:

1. Type validity: an unknown kind short-circuits to the degraded report
   (one INVALID_TYPE warning, submission allowed).
2. Room: every other meeting booked in the same room over the window (ERROR).
3. Account capacity: hosted meetings need a provider account with a free
   slot (ERROR). With more than one account and at most one slot left, a
   low-capacity WARNING is added.
4. Participants: every other meeting over the window listing the same
   email, compared case-insensitively (WARNING).

A report allows submission unless it holds an ERROR. When it does not,
alternative slots are searched forward from the proposed start in fixed
increments until the end of the following day. Candidates are tested against
one snapshot of meetings and accounts loaded for the whole horizon.
When the room is taken, other rooms free over the same window are listed
as alternatives.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone

import structlog

from src.meetingsync.core.monitoring import conflicts_detected_total
from src.meetingsync.meetings.directory import MeetingDirectory
from src.meetingsync.meetings.schemas import Meeting, Room
from src.meetingsync.providers.schemas import ProviderAccount
from src.meetingsync.scheduling.capacity import CapacityEvaluator, evaluate
from src.meetingsync.scheduling.fallback import degrade_to
from src.meetingsync.scheduling.schemas import (
    VALID_KINDS,
    ConflictInfo,
    ConflictReport,
    ConflictType,
    MeetingProposal,
    MeetingSummary,
    RoomSuggestion,
    Severity,
    TimeSlot,
)

logger = structlog.get_logger(__name__)

ROOM_SUGGESTION_LIMIT = 5


def _hhmm(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%H:%M")


class ConflictDetector:
    """Validates proposed meetings against existing bookings.

    Args:
        directory: MeetingDirectory for meeting lookups.
        capacity: CapacityEvaluator for account snapshots.
        increment_minutes: Step between candidate alternative slots.
        horizon_days: Candidates run until the end of start day + horizon_days.
        suggestion_limit: Maximum number of alternative slots returned.
    """

    def __init__(
        self,
        directory: MeetingDirectory,
        capacity: CapacityEvaluator,
        increment_minutes: int = 30,
        horizon_days: int = 1,
        suggestion_limit: int = 3,
    ) -> None:
        if increment_minutes <= 0:
            raise ValueError("increment_minutes must be positive")
        self._directory = directory
        self._capacity = capacity
        self._increment = timedelta(minutes=increment_minutes)
        self._horizon_days = horizon_days
        self._suggestion_limit = suggestion_limit

    def _candidate_limit(self, start: datetime) -> datetime:
        """First instant after the horizon: midnight UTC ending start day + horizon_days."""
        day = start.astimezone(timezone.utc).date() + timedelta(days=self._horizon_days + 1)
        return datetime.combine(day, time.min, tzinfo=timezone.utc)

    @degrade_to(ConflictReport.degraded, "conflicts.validation_failed")
    async def validate_meeting(self, proposal: MeetingProposal) -> ConflictReport:
        """Classify conflicts for the proposal and suggest alternatives when blocked."""
        if proposal.kind not in VALID_KINDS:
            logger.info("conflicts.invalid_kind", kind=proposal.kind)
            return ConflictReport.degraded()

        start, end = proposal.starts_at, proposal.ends_at
        limit = self._candidate_limit(start)
        # One snapshot covers the proposal and every candidate slot
        snapshot_end = max(end, limit + timedelta(minutes=proposal.duration_minutes))
        meetings = await self._directory.overlapping(
            start, snapshot_end, exclude_meeting_id=proposal.exclude_meeting_id
        )
        accounts = await self._capacity.load_accounts() if proposal.hosted else []

        conflicts = self.check_slot(proposal, start, end, meetings, accounts)
        report = ConflictReport(conflicts=conflicts)
        report.can_submit = not report.has_errors

        if not report.can_submit:
            report.suggestions = self._suggest(proposal, limit, meetings, accounts)
        if any(c.type == ConflictType.ROOM_CONFLICT for c in conflicts):
            rooms = await self._directory.rooms()
            report.alternative_rooms = self._free_rooms(proposal, rooms, meetings)

        for conflict in conflicts:
            conflicts_detected_total.labels(
                conflict_type=conflict.type.value, severity=conflict.severity.value
            ).inc()
        if conflicts:
            logger.info(
                "conflicts.detected",
                count=len(conflicts),
                can_submit=report.can_submit,
                suggestions=len(report.suggestions),
            )
        return report

    def check_slot(
        self,
        proposal: MeetingProposal,
        start: datetime,
        end: datetime,
        meetings: list[Meeting],
        accounts: list[ProviderAccount],
    ) -> list[ConflictInfo]:
        """Room, capacity and participant checks for one window on a snapshot."""
        others = [
            m
            for m in meetings
            if not m.is_deleted
            and m.id != proposal.exclude_meeting_id
            and m.overlaps(start, end)
        ]
        conflicts: list[ConflictInfo] = []

        if proposal.room_id:
            for m in others:
                if m.room_id == proposal.room_id:
                    conflicts.append(
                        ConflictInfo(
                            type=ConflictType.ROOM_CONFLICT,
                            severity=Severity.ERROR,
                            message=(
                                f'Room is already booked for "{m.title}" '
                                f"({_hhmm(m.starts_at)}-{_hhmm(m.ends_at)})"
                            ),
                            meeting_id=m.id,
                        )
                    )

        if proposal.hosted:
            capacity = evaluate(accounts, others, start, end, proposal.exclude_meeting_id)
            if not capacity.has_available_account:
                if capacity.total_accounts == 0:
                    message = "No video conferencing accounts are configured"
                else:
                    message = (
                        "All video conferencing accounts are at capacity "
                        f"({capacity.current_total_usage}/{capacity.total_max_concurrent})"
                    )
                conflicts.append(
                    ConflictInfo(
                        type=ConflictType.ACCOUNT_CAPACITY,
                        severity=Severity.ERROR,
                        message=message,
                        conflicting_meetings=capacity.conflicting_meetings,
                    )
                )
            elif capacity.total_accounts > 1 and capacity.available_slots <= 1:
                conflicts.append(
                    ConflictInfo(
                        type=ConflictType.ACCOUNT_CAPACITY,
                        severity=Severity.WARNING,
                        message=(
                            "Video conferencing capacity is running low: "
                            f"{capacity.available_slots} slot(s) remaining"
                        ),
                    )
                )

        seen: set[str] = set()
        for email in proposal.participants:
            key = email.strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            for m in others:
                if key in {p.lower() for p in m.participants}:
                    conflicts.append(
                        ConflictInfo(
                            type=ConflictType.PARTICIPANT_CONFLICT,
                            severity=Severity.WARNING,
                            message=f'{key} is already attending "{m.title}"',
                            meeting_id=m.id,
                            conflicting_meetings=[MeetingSummary.from_meeting(m)],
                        )
                    )
        return conflicts

    def _suggest(
        self,
        proposal: MeetingProposal,
        limit: datetime,
        meetings: list[Meeting],
        accounts: list[ProviderAccount],
    ) -> list[TimeSlot]:
        duration = timedelta(minutes=proposal.duration_minutes)
        slots: list[TimeSlot] = []
        candidate = proposal.starts_at + self._increment
        while candidate < limit and len(slots) < self._suggestion_limit:
            found = self.check_slot(proposal, candidate, candidate + duration, meetings, accounts)
            if not any(c.severity == Severity.ERROR for c in found):
                slots.append(TimeSlot(start=candidate, end=candidate + duration))
            candidate += self._increment
        return slots

    def _free_rooms(
        self, proposal: MeetingProposal, rooms: list[Room], meetings: list[Meeting]
    ) -> list[RoomSuggestion]:
        """Rooms other than the requested one with no booking over the window."""
        start, end = proposal.starts_at, proposal.ends_at
        busy = {
            m.room_id
            for m in meetings
            if m.room_id
            and not m.is_deleted
            and m.id != proposal.exclude_meeting_id
            and m.overlaps(start, end)
        }
        free = [r for r in rooms if r.id != proposal.room_id and r.id not in busy]
        return [
            RoomSuggestion(id=r.id, name=r.name, capacity=r.capacity, location=r.location)
            for r in free[:ROOM_SUGGESTION_LIMIT]
        ]
