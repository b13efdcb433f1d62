"""CapacityEvaluator -- concurrent-meeting counts per provider account.

A provider account can carry at most max_concurrent_meetings hosted meetings
at the same instant. A meeting occupies its account over [start, end) and
two windows overlap when existing.start < query_end and existing.end >
query_start.

evaluate() and rank_accounts() are pure and work on a snapshot, so the
conflict detector can test many candidate slots against one load. The async
methods load a snapshot through the MeetingDirectory and the account
repository and degrade to their safe defaults when the store fails.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from src.meetingsync.meetings.directory import MeetingDirectory
from src.meetingsync.meetings.schemas import Meeting
from src.meetingsync.providers.schemas import ProviderAccount
from src.meetingsync.scheduling.fallback import degrade_to
from src.meetingsync.scheduling.schemas import (
    AccountLoad,
    CapacityResult,
    CapacityStatus,
    MeetingSummary,
)

logger = structlog.get_logger(__name__)

# Width of the window used when load is measured "now"
INSTANT = timedelta(microseconds=1)


def _utilization(load: int, capacity: int) -> float:
    if capacity <= 0:
        return 100.0
    return round(load / capacity * 100, 2)


def _usage_by_account(
    accounts: list[ProviderAccount],
    meetings: list[Meeting],
    start: datetime,
    end: datetime,
    exclude_meeting_id: str | None = None,
) -> tuple[Counter, list[Meeting]]:
    usable_ids = {a.id for a in accounts if a.is_usable}
    colliding = [
        m
        for m in meetings
        if not m.is_deleted
        and m.id != exclude_meeting_id
        and m.provider_account_id in usable_ids
        and m.overlaps(start, end)
    ]
    return Counter(m.provider_account_id for m in colliding), colliding


def evaluate(
    accounts: list[ProviderAccount],
    meetings: list[Meeting],
    start: datetime,
    end: datetime,
    exclude_meeting_id: str | None = None,
) -> CapacityResult:
    """Aggregate capacity of the usable accounts for [start, end)."""
    usable = [a for a in accounts if a.is_usable]
    usage, colliding = _usage_by_account(usable, meetings, start, end, exclude_meeting_id)

    total_max = sum(a.max_concurrent_meetings for a in usable)
    total_usage = sum(usage.values())
    suggested = next(
        (a.id for a in usable if usage[a.id] < a.max_concurrent_meetings), None
    )
    return CapacityResult(
        has_available_account=suggested is not None,
        total_accounts=len(usable),
        total_max_concurrent=total_max,
        current_total_usage=total_usage,
        available_slots=max(0, total_max - total_usage),
        conflicting_meetings=[MeetingSummary.from_meeting(m) for m in colliding],
        suggested_account_id=suggested,
    )


def rank_accounts(
    accounts: list[ProviderAccount],
    meetings: list[Meeting],
    start: datetime,
    end: datetime,
) -> list[AccountLoad]:
    """Usable accounts ordered by ascending utilization.

    sorted() is stable, so accounts with equal utilization keep the order
    they were given in (creation order from the repository).
    """
    usable = [a for a in accounts if a.is_usable]
    usage, _ = _usage_by_account(usable, meetings, start, end)
    loads = [
        AccountLoad(
            account_id=a.id,
            current_load=usage[a.id],
            max_capacity=a.max_concurrent_meetings,
            utilization_percentage=_utilization(usage[a.id], a.max_concurrent_meetings),
        )
        for a in usable
    ]
    return sorted(loads, key=lambda load: load.utilization_percentage)


class CapacityEvaluator:
    """Capacity checks against live data.

    Args:
        directory: MeetingDirectory used for every meeting lookup.
        account_repository: ProviderAccountRepository (or test double).
    """

    def __init__(self, directory: MeetingDirectory, account_repository: Any) -> None:
        self._directory = directory
        self._accounts = account_repository

    async def load_accounts(self) -> list[ProviderAccount]:
        """Usable accounts in creation order. Raises on store failure."""
        accounts = await self._accounts.list_accounts()
        return [a for a in accounts if a.is_usable]

    async def load_hosted(
        self, start: datetime, end: datetime, exclude_meeting_id: str | None = None
    ) -> list[Meeting]:
        """Hosted meetings overlapping the window. Raises on store failure."""
        return await self._directory.overlapping(
            start, end, hosted_only=True, exclude_meeting_id=exclude_meeting_id
        )

    @degrade_to(int, "capacity.count_failed")
    async def count_concurrent(
        self,
        account_id: str,
        start: datetime,
        end: datetime,
        exclude_meeting_id: str | None = None,
    ) -> int:
        """Meetings hosted on account_id overlapping [start, end)."""
        meetings = await self._directory.overlapping(
            start, end, account_id=account_id, exclude_meeting_id=exclude_meeting_id
        )
        return len(meetings)

    @degrade_to(CapacityResult.unavailable, "capacity.check_failed")
    async def check_capacity(
        self,
        start: datetime,
        end: datetime,
        exclude_meeting_id: str | None = None,
    ) -> CapacityResult:
        return await self._evaluate_window(start, end, exclude_meeting_id)

    async def _evaluate_window(
        self, start: datetime, end: datetime, exclude_meeting_id: str | None = None
    ) -> CapacityResult:
        accounts = await self.load_accounts()
        meetings = await self.load_hosted(start, end, exclude_meeting_id)
        result = evaluate(accounts, meetings, start, end, exclude_meeting_id)
        logger.debug(
            "capacity.checked",
            available=result.has_available_account,
            usage=result.current_total_usage,
            total=result.total_max_concurrent,
        )
        return result

    @degrade_to(list, "capacity.load_balancing_failed")
    async def get_load_balancing(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> list[AccountLoad]:
        """Accounts by ascending utilization for the window (default: now)."""
        if start is None:
            start = datetime.now(timezone.utc)
        if end is None:
            end = start + INSTANT
        accounts = await self.load_accounts()
        meetings = await self.load_hosted(start, end)
        return rank_accounts(accounts, meetings, start, end)

    @degrade_to(lambda: None, "capacity.pick_failed")
    async def pick_account(self, start: datetime, end: datetime) -> ProviderAccount | None:
        """Least-utilized account with a free slot for [start, end), if any."""
        accounts = await self.load_accounts()
        meetings = await self.load_hosted(start, end)
        by_id = {a.id: a for a in accounts}
        for load in rank_accounts(accounts, meetings, start, end):
            if load.current_load < load.max_capacity:
                return by_id[load.account_id]
        return None

    @degrade_to(CapacityStatus.empty, "capacity.status_failed")
    async def get_capacity_status(self) -> CapacityStatus:
        """Aggregate totals right now."""
        return await self.measure_capacity_status()

    async def measure_capacity_status(self) -> CapacityStatus:
        """Aggregate totals right now. Raises on store failure, for callers that cache."""
        now = datetime.now(timezone.utc)
        result = await self._evaluate_window(now, now + INSTANT)
        return CapacityStatus(
            total_accounts=result.total_accounts,
            total_capacity=result.total_max_concurrent,
            current_usage=result.current_total_usage,
            available_slots=result.available_slots,
            utilization_percentage=(
                _utilization(result.current_total_usage, result.total_max_concurrent)
                if result.total_max_concurrent
                else 0.0
            ),
        )
