"""CapacityNotifier -- reacts to provider-account changes.

Lifecycle: uninitialized -> initialized -> destroyed. The application
lifespan constructs one instance, initializes it, and destroys it on
shutdown; request handlers reach it through app.state.

On every account change the cached capacity status is dropped, totals are
recomputed, and a capacity_updated event goes to each capacity subscriber in
subscription order. When capacity shrinks, upcoming hosted meetings are
re-validated and those now in conflict are queued as notifications (newest
first, bounded).

Subscribers and the queue are shared between request contexts and guarded
by a lock; callbacks run outside the lock over a copy of the subscriber list.
"""

from __future__ import annotations

import inspect
import threading
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import structlog

from src.meetingsync.core.monitoring import (
    provider_accounts_active,
    provider_capacity_available_slots,
)
from src.meetingsync.meetings.directory import MeetingDirectory
from src.meetingsync.meetings.schemas import MeetingFilter
from src.meetingsync.scheduling.capacity import CapacityEvaluator
from src.meetingsync.scheduling.conflicts import ConflictDetector
from src.meetingsync.scheduling.fallback import degrade_to
from src.meetingsync.scheduling.schemas import (
    AccountChangeType,
    CapacityStatus,
    CapacityUpdateEvent,
    ConflictNotification,
    MeetingProposal,
    Severity,
)

logger = structlog.get_logger(__name__)

Callback = Callable[[Any], Any]


class NotifierState(str, Enum):
    uninitialized = "uninitialized"
    initialized = "initialized"
    destroyed = "destroyed"


class _Channel(str, Enum):
    capacity = "capacity"
    conflicts = "conflicts"


class CapacityNotifier:
    """Publishes capacity changes and keeps the conflict notification queue.

    Args:
        capacity: CapacityEvaluator used to recompute totals.
        detector: ConflictDetector used to re-validate upcoming meetings.
        directory: MeetingDirectory listing upcoming hosted meetings.
        cache_ttl_seconds: Lifetime of the cached capacity status.
        queue_limit: Maximum notifications kept.
        lookahead_days: How far ahead meetings are re-validated.
        clock: Monotonic clock, replaceable in tests.
    """

    def __init__(
        self,
        capacity: CapacityEvaluator,
        detector: ConflictDetector,
        directory: MeetingDirectory,
        cache_ttl_seconds: float = 30,
        queue_limit: int = 50,
        lookahead_days: int = 30,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._capacity = capacity
        self._detector = detector
        self._directory = directory
        self._cache_ttl = cache_ttl_seconds
        self._queue_limit = queue_limit
        self._lookahead = timedelta(days=lookahead_days)
        self._clock = clock

        self._lock = threading.Lock()
        self._state = NotifierState.uninitialized
        self._subscribers: dict[str, tuple[_Channel, Callback]] = {}
        self._queue: list[ConflictNotification] = []
        self._known_capacity: dict[str, int] = {}
        self._cached_status: CapacityStatus | None = None
        self._cached_at = 0.0

    @property
    def state(self) -> NotifierState:
        return self._state

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Record the current accounts. Calling it again has no effect."""
        with self._lock:
            if self._state != NotifierState.uninitialized:
                return
            self._state = NotifierState.initialized
        try:
            accounts = await self._capacity.load_accounts()
        except Exception:
            logger.warning("notifier.initial_load_failed", exc_info=True)
            return
        with self._lock:
            self._known_capacity = {a.id: a.max_concurrent_meetings for a in accounts}
        logger.info("notifier.initialized", accounts=len(accounts))

    def destroy(self) -> None:
        """Drop subscribers, queue and cache. Later publishes reach nobody."""
        with self._lock:
            self._state = NotifierState.destroyed
            self._subscribers.clear()
            self._queue.clear()
            self._cached_status = None
        logger.info("notifier.destroyed")

    # ── Subscriptions ────────────────────────────────────────────────────

    def _subscribe(self, channel: _Channel, callback: Callback) -> str:
        subscription_id = str(uuid.uuid4())
        with self._lock:
            if self._state == NotifierState.destroyed:
                raise RuntimeError("Notifier has been destroyed")
            self._subscribers[subscription_id] = (channel, callback)
        return subscription_id

    def subscribe_to_capacity_updates(self, callback: Callback) -> str:
        """Register a callback for CapacityUpdateEvent. Returns the subscription id."""
        return self._subscribe(_Channel.capacity, callback)

    def subscribe_to_conflict_notifications(self, callback: Callback) -> str:
        return self._subscribe(_Channel.conflicts, callback)

    def unsubscribe(self, subscription_id: str) -> bool:
        with self._lock:
            return self._subscribers.pop(subscription_id, None) is not None

    async def _publish(self, channel: _Channel, payload: Any) -> int:
        with self._lock:
            if self._state == NotifierState.destroyed:
                return 0
            callbacks = [cb for ch, cb in self._subscribers.values() if ch == channel]
        delivered = 0
        for callback in callbacks:
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception("notifier.subscriber_failed", channel=channel.value)
        return delivered

    # ── Account changes ──────────────────────────────────────────────────

    async def handle_account_change(
        self,
        change_type: AccountChangeType,
        account_id: str,
        payload: dict | None = None,
    ) -> CapacityUpdateEvent | None:
        """Recompute capacity after an account change and publish the result.

        Returns the published event, or None when the notifier is destroyed
        or the accounts could not be reloaded.
        """
        if self._state == NotifierState.destroyed:
            logger.warning("notifier.change_after_destroy", account_id=account_id)
            return None
        if self._state == NotifierState.uninitialized:
            await self.initialize()

        self.invalidate_cache()
        try:
            accounts = await self._capacity.load_accounts()
        except Exception:
            logger.error(
                "notifier.recompute_failed",
                change_type=change_type.value,
                account_id=account_id,
                exc_info=True,
            )
            return None

        new_capacity_map = {a.id: a.max_concurrent_meetings for a in accounts}
        with self._lock:
            previous = self._known_capacity
            self._known_capacity = new_capacity_map

        event = CapacityUpdateEvent(
            change_type=change_type,
            account_id=account_id,
            previous_capacity=sum(previous.values()),
            new_capacity=sum(new_capacity_map.values()),
            added_accounts=[a for a in new_capacity_map if a not in previous],
            removed_accounts=[a for a in previous if a not in new_capacity_map],
            total_accounts=len(new_capacity_map),
        )
        provider_accounts_active.set(event.total_accounts)
        logger.info(
            "notifier.capacity_updated",
            change_type=change_type.value,
            account_id=account_id,
            previous_capacity=event.previous_capacity,
            new_capacity=event.new_capacity,
            total_accounts=event.total_accounts,
            details=payload or {},
        )
        await self._publish(_Channel.capacity, event)

        if event.new_capacity < event.previous_capacity:
            await self.check_upcoming_conflicts()
        return event

    @degrade_to(list, "notifier.revalidation_failed")
    async def check_upcoming_conflicts(self) -> list[ConflictNotification]:
        """Re-validate upcoming hosted meetings and queue those now blocked."""
        now = datetime.now(timezone.utc)
        meetings = await self._directory.list(
            MeetingFilter(window_start=now, window_end=now + self._lookahead, hosted=True)
        )
        created: list[ConflictNotification] = []
        for meeting in meetings:
            report = await self._detector.validate_meeting(MeetingProposal.from_meeting(meeting))
            blocking = [c for c in report.conflicts if c.severity == Severity.ERROR]
            if not blocking:
                continue
            notification = ConflictNotification(
                meeting_id=meeting.id,
                meeting_title=meeting.title,
                conflicts=report.conflicts,
                severity=Severity.ERROR,
                message=(
                    f'"{meeting.title}" on {meeting.starts_at:%Y-%m-%d %H:%M} UTC has '
                    f"{len(blocking)} blocking conflict(s) after a provider account change"
                ),
            )
            self._enqueue(notification)
            created.append(notification)
            await self._publish(_Channel.conflicts, notification)
        if created:
            logger.info("notifier.conflicts_queued", count=len(created))
        return created

    # ── Notification queue ───────────────────────────────────────────────

    def _enqueue(self, notification: ConflictNotification) -> None:
        with self._lock:
            if self._state == NotifierState.destroyed:
                return
            self._queue.insert(0, notification)
            del self._queue[self._queue_limit:]

    def get_notification_queue(self) -> list[ConflictNotification]:
        """Newest first. The returned list is a copy."""
        with self._lock:
            return list(self._queue)

    def clear_notification_queue(self) -> None:
        with self._lock:
            self._queue.clear()

    def mark_notification_as_read(self, notification_id: str) -> bool:
        """Mark one notification read; an unknown id is ignored."""
        with self._lock:
            for notification in self._queue:
                if notification.id == notification_id:
                    notification.is_read = True
                    return True
        return False

    # ── Capacity status ──────────────────────────────────────────────────

    def invalidate_cache(self) -> None:
        with self._lock:
            self._cached_status = None

    @degrade_to(CapacityStatus.empty, "notifier.status_failed")
    async def get_capacity_status(self) -> CapacityStatus:
        """Aggregate totals, cached for cache_ttl_seconds."""
        with self._lock:
            cached = self._cached_status
            fresh = cached is not None and self._clock() - self._cached_at < self._cache_ttl
        if fresh:
            return cached
        status = await self._capacity.measure_capacity_status()
        with self._lock:
            self._cached_status = status
            self._cached_at = self._clock()
        provider_accounts_active.set(status.total_accounts)
        provider_capacity_available_slots.set(status.available_slots)
        return status

    async def force_refresh(self) -> CapacityStatus:
        self.invalidate_cache()
        return await self.get_capacity_status()
