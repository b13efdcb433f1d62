"""MeetingService -- create, update and delete flows for meetings.

Creation re-validates the proposal, then for hosted meetings picks the
least-utilized provider account with a free slot, creates the provider
meeting, and persists locally. Validation and account choice happen right
before the provider call and the insert; a concurrent request can still
take the last slot in between (no cross-request lock), and the overbooking
then shows up as a conflict on the next validation.

Unlike the read-only checks, failures here surface to the caller.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Literal

import structlog
from pydantic import BaseModel

from src.meetingsync.meetings.directory import MeetingDirectory
from src.meetingsync.meetings.schemas import Meeting, MeetingCreate, MeetingFilter, MeetingUpdate
from src.meetingsync.providers.schemas import ProviderAccount
from src.meetingsync.providers.zoom import ProviderError, ZoomClient
from src.meetingsync.scheduling.capacity import CapacityEvaluator
from src.meetingsync.scheduling.conflicts import ConflictDetector
from src.meetingsync.scheduling.schemas import ConflictReport, MeetingProposal

logger = structlog.get_logger(__name__)

# Fields whose change requires re-validation
_SCHEDULING_FIELDS = {"starts_at", "duration_minutes", "room_id", "participants", "kind"}


class MeetingConflictError(Exception):
    """The proposal has blocking conflicts."""

    def __init__(self, report: ConflictReport) -> None:
        super().__init__("Meeting has blocking conflicts")
        self.report = report


class HostingUnavailableError(Exception):
    """No provider account can host the meeting in its window."""


class ScheduleEntry(BaseModel):
    """One row of the merged schedule (local meeting or provider-only meeting)."""

    source: Literal["local", "provider"]
    id: str
    title: str
    start: datetime | None = None
    duration_minutes: int | None = None
    join_url: str | None = None
    provider_meeting_id: str | None = None
    provider_account_id: str | None = None


class MeetingService:
    """Orchestrates validation, account choice, provider calls and persistence.

    Args:
        repository: MeetingRepository (writes).
        directory: MeetingDirectory (reads).
        detector: ConflictDetector for re-validation.
        capacity: CapacityEvaluator for account choice.
        account_repository: ProviderAccountRepository.
        provider: ZoomClient.
    """

    def __init__(
        self,
        repository: Any,
        directory: MeetingDirectory,
        detector: ConflictDetector,
        capacity: CapacityEvaluator,
        account_repository: Any,
        provider: ZoomClient,
    ) -> None:
        self._repository = repository
        self._directory = directory
        self._detector = detector
        self._capacity = capacity
        self._accounts = account_repository
        self._provider = provider

    async def _validate(self, proposal: MeetingProposal) -> ConflictReport:
        report = await self._detector.validate_meeting(proposal)
        if not report.can_submit:
            raise MeetingConflictError(report)
        return report

    async def create_meeting(self, organizer_id: str, data: MeetingCreate) -> Meeting:
        """Validate, host (when requested) and persist a new meeting.

        Raises:
            MeetingConflictError: Blocking conflicts at submission time.
            HostingUnavailableError: No account has a free slot.
            ProviderError: The provider rejected the meeting.
        """
        proposal = MeetingProposal(
            title=data.title,
            starts_at=data.starts_at,
            duration_minutes=data.duration_minutes,
            kind=data.kind.value,
            hosted=data.hosted,
            room_id=data.room_id,
            participants=[str(p) for p in data.participants],
        )
        await self._validate(proposal)

        if not data.hosted:
            return await self._repository.create_meeting(organizer_id, data)

        account = await self._capacity.pick_account(proposal.starts_at, proposal.ends_at)
        if account is None:
            logger.warning("meetings.no_hosting_account", starts_at=proposal.starts_at.isoformat())
            raise HostingUnavailableError("No video conferencing account is available")

        hosted = await self._provider.create_meeting(
            account,
            topic=data.title,
            start_time=data.starts_at,
            duration_minutes=data.duration_minutes,
            agenda=data.description,
            password=data.access_password,
        )
        try:
            return await self._repository.create_meeting(
                organizer_id,
                data,
                provider_account_id=account.id,
                provider_meeting_id=hosted.provider_meeting_id,
                join_url=hosted.join_url,
                start_url=hosted.start_url,
                access_password=hosted.password,
            )
        except Exception:
            logger.error(
                "meetings.persist_failed_after_provider_create",
                provider_meeting_id=hosted.provider_meeting_id,
                account_id=account.id,
                exc_info=True,
            )
            await self._cleanup_provider_meeting(account, hosted.provider_meeting_id)
            raise

    async def _cleanup_provider_meeting(self, account: ProviderAccount, provider_meeting_id: str) -> None:
        try:
            await self._provider.delete_meeting(account, provider_meeting_id)
        except ProviderError:
            logger.warning(
                "meetings.provider_cleanup_failed",
                provider_meeting_id=provider_meeting_id,
                exc_info=True,
            )

    async def update_meeting(self, meeting: Meeting, data: MeetingUpdate) -> Meeting:
        """Apply a partial update, re-validating when scheduling fields change.

        Raises:
            MeetingConflictError: The new values have blocking conflicts.
            HostingUnavailableError: The hosting account is full at the new time
                and no other account has a free slot.
            ProviderError: The provider rejected the change.
        """
        changes = data.model_dump(exclude_unset=True)
        if "participants" in changes and changes["participants"] is None:
            changes["participants"] = []
        # Explicit nulls on non-nullable columns mean "leave as is"
        for key in ("title", "starts_at", "duration_minutes", "kind"):
            if key in changes and changes[key] is None:
                del changes[key]
        if not changes:
            return meeting

        if _SCHEDULING_FIELDS & set(changes):
            overrides = {k: v for k, v in changes.items() if k in _SCHEDULING_FIELDS}
            if "kind" in overrides:
                overrides["kind"] = overrides["kind"].value
            if "participants" in overrides:
                overrides["participants"] = [str(p) for p in overrides["participants"]]
            # Its own hosting account slot is freed by excluding the meeting
            await self._validate(MeetingProposal.from_meeting(meeting, **overrides))

        if meeting.provider_meeting_id and meeting.provider_account_id:
            provider_fields = {"title", "starts_at", "duration_minutes", "description", "access_password"}
            moved = bool({"starts_at", "duration_minutes"} & set(changes))
            if provider_fields & set(changes):
                account = await self._accounts.get_account(meeting.provider_account_id)
                if account is None:
                    logger.warning(
                        "meetings.provider_account_missing",
                        meeting_id=meeting.id,
                        account_id=meeting.provider_account_id,
                    )
                elif moved and await self._account_full(account, meeting, changes):
                    return await self._rehost(meeting, account, changes)
                else:
                    await self._provider.update_meeting(
                        account,
                        meeting.provider_meeting_id,
                        topic=changes.get("title"),
                        start_time=changes.get("starts_at"),
                        duration_minutes=changes.get("duration_minutes"),
                        agenda=changes.get("description"),
                        password=changes.get("access_password"),
                    )

        updated = await self._repository.update_meeting(meeting.id, **changes)
        return updated if updated is not None else meeting

    @staticmethod
    def _new_window(meeting: Meeting, changes: dict[str, Any]) -> tuple[datetime, datetime]:
        start = changes.get("starts_at", meeting.starts_at)
        duration = changes.get("duration_minutes", meeting.duration_minutes)
        return start, start + timedelta(minutes=duration)

    async def _account_full(
        self, account: ProviderAccount, meeting: Meeting, changes: dict[str, Any]
    ) -> bool:
        """Whether the meeting's own account has no slot left in the new window."""
        start, end = self._new_window(meeting, changes)
        used = await self._capacity.count_concurrent(
            account.id, start, end, exclude_meeting_id=meeting.id
        )
        return used >= account.max_concurrent_meetings

    async def _rehost(
        self, meeting: Meeting, old_account: ProviderAccount, changes: dict[str, Any]
    ) -> Meeting:
        """Move the meeting to another account when its own is full at the new time.

        The replacement provider meeting is created first; the old one is
        removed only after the local row points at the new one.
        """
        start, end = self._new_window(meeting, changes)
        target = await self._capacity.pick_account(start, end)
        if target is None or target.id == old_account.id:
            logger.warning(
                "meetings.no_hosting_account",
                meeting_id=meeting.id,
                starts_at=start.isoformat(),
            )
            raise HostingUnavailableError("No video conferencing account is available")

        hosted = await self._provider.create_meeting(
            target,
            topic=changes.get("title", meeting.title),
            start_time=start,
            duration_minutes=changes.get("duration_minutes", meeting.duration_minutes),
            agenda=changes.get("description", meeting.description),
            password=changes.get("access_password", meeting.access_password),
        )
        changes.update(
            provider_account_id=target.id,
            provider_meeting_id=hosted.provider_meeting_id,
            join_url=hosted.join_url,
            start_url=hosted.start_url,
            access_password=hosted.password,
        )
        try:
            updated = await self._repository.update_meeting(meeting.id, **changes)
        except Exception:
            logger.error(
                "meetings.persist_failed_after_provider_create",
                provider_meeting_id=hosted.provider_meeting_id,
                account_id=target.id,
                exc_info=True,
            )
            await self._cleanup_provider_meeting(target, hosted.provider_meeting_id)
            raise

        await self._cleanup_provider_meeting(old_account, meeting.provider_meeting_id)
        logger.info(
            "meetings.rehosted",
            meeting_id=meeting.id,
            from_account=old_account.id,
            to_account=target.id,
        )
        return updated if updated is not None else meeting

    async def delete_meeting(self, meeting: Meeting) -> None:
        """Delete the provider meeting (404 counts as done), then soft-delete locally."""
        if meeting.provider_meeting_id and meeting.provider_account_id:
            account = await self._accounts.get_account(meeting.provider_account_id)
            if account is None:
                logger.warning(
                    "meetings.provider_account_missing",
                    meeting_id=meeting.id,
                    account_id=meeting.provider_account_id,
                )
            else:
                await self._provider.delete_meeting(account, meeting.provider_meeting_id)
        await self._repository.soft_delete_meeting(meeting.id)

    async def merged_schedule(self, window_start: datetime, window_end: datetime) -> list[ScheduleEntry]:
        """Local meetings plus provider meetings not linked to any local meeting.

        A provider that cannot be listed is skipped; the local part is always returned.
        """
        local = await self._directory.list(
            MeetingFilter(window_start=window_start, window_end=window_end)
        )
        entries = [
            ScheduleEntry(
                source="local",
                id=m.id,
                title=m.title,
                start=m.starts_at,
                duration_minutes=m.duration_minutes,
                join_url=m.join_url,
                provider_meeting_id=m.provider_meeting_id,
                provider_account_id=m.provider_account_id,
            )
            for m in local
        ]
        linked = {
            m.provider_meeting_id
            for m in await self._directory.list(MeetingFilter(include_deleted=True))
            if m.provider_meeting_id
        }

        for account in await self._capacity.load_accounts():
            try:
                remote = await self._provider.list_meetings(account)
            except ProviderError:
                logger.warning("meetings.schedule_provider_skipped", account_id=account.id)
                continue
            for pm in remote:
                if pm.provider_meeting_id in linked or pm.start_time is None:
                    continue
                if not (window_start <= pm.start_time < window_end):
                    continue
                entries.append(
                    ScheduleEntry(
                        source="provider",
                        id=pm.provider_meeting_id,
                        title=pm.topic,
                        start=pm.start_time,
                        duration_minutes=pm.duration_minutes,
                        join_url=pm.join_url,
                        provider_meeting_id=pm.provider_meeting_id,
                        provider_account_id=account.id,
                    )
                )
        return sorted(entries, key=lambda e: e.start)
