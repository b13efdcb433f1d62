"""Tests for MeetingDirectory filtering and weekly stats."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from src.meetingsync.meetings.repository import MeetingRepository
from src.meetingsync.meetings.schemas import Meeting, MeetingFilter, MeetingKind

MON = datetime(2030, 3, 4, 9, 0, tzinfo=timezone.utc)  # a Monday


@pytest.mark.asyncio
async def test_list_hides_soft_deleted(directory, make_meeting):
    live = make_meeting(MON)
    make_meeting(MON, deleted_at=MON)

    assert [m.id for m in await directory.list()] == [live.id]
    assert len(await directory.list(MeetingFilter(include_deleted=True))) == 2


@pytest.mark.asyncio
async def test_list_window_is_half_open_and_sorted(directory, make_meeting):
    later = make_meeting(MON + timedelta(hours=2))
    earlier = make_meeting(MON)
    make_meeting(MON + timedelta(hours=3))  # starts exactly at window end

    meetings = await directory.list(
        MeetingFilter(window_start=MON, window_end=MON + timedelta(hours=3))
    )
    assert [m.id for m in meetings] == [earlier.id, later.id]


@pytest.mark.asyncio
async def test_participant_filter_is_case_insensitive(directory, make_meeting):
    match = make_meeting(MON, participants=["ana@example.com"])
    make_meeting(MON, participants=["bo@example.com"])

    meetings = await directory.list(MeetingFilter(participant="ANA@Example.com"))
    assert [m.id for m in meetings] == [match.id]


@pytest.mark.asyncio
async def test_kind_and_room_filters(directory, make_meeting):
    make_meeting(MON, kind=MeetingKind.internal, room_id="r1")
    external = make_meeting(MON, kind=MeetingKind.external, room_id="r1")
    make_meeting(MON, kind=MeetingKind.external, room_id="r2")

    meetings = await directory.list(MeetingFilter(kind=MeetingKind.external, room_id="r1"))
    assert [m.id for m in meetings] == [external.id]


@pytest.mark.asyncio
async def test_find_by_id_hides_deleted(directory, make_meeting):
    deleted = make_meeting(MON, deleted_at=MON)
    assert await directory.find_by_id(deleted.id) is None


@pytest.mark.asyncio
async def test_overlapping_rechecks_loose_repository_results(make_meeting):
    """A repository that returns too much must not leak into the results."""
    from src.meetingsync.meetings.directory import MeetingDirectory

    stored = [
        make_meeting(MON, room_id="r1"),
        make_meeting(MON, room_id="r2"),
        make_meeting(MON + timedelta(hours=5), room_id="r1"),
        make_meeting(MON, room_id="r1", deleted_at=MON),
    ]

    class LooseRepository:
        async def find_overlapping(self, start, end, **kwargs) -> list[Meeting]:
            return stored

    directory = MeetingDirectory(LooseRepository())
    result = await directory.overlapping(MON, MON + timedelta(minutes=30), room_id="r1")
    assert [m.id for m in result] == [stored[0].id]


@pytest.mark.asyncio
async def test_weekly_stats_counts_monday_to_sunday(directory, make_meeting):
    make_meeting(MON)
    make_meeting(MON + timedelta(hours=4))
    make_meeting(MON + timedelta(days=2))
    make_meeting(MON + timedelta(days=6, hours=14))  # Sunday
    make_meeting(MON + timedelta(days=7))  # next Monday
    make_meeting(MON - timedelta(days=1))  # previous Sunday
    make_meeting(MON + timedelta(days=1), deleted_at=MON)

    stats = await directory.weekly_stats(date(2030, 3, 6))

    assert stats.week_start == date(2030, 3, 4)
    assert stats.week_end == date(2030, 3, 10)
    assert stats.total == 4
    assert [d.count for d in stats.days] == [2, 0, 1, 0, 0, 0, 1]


# ── Repository key parsing ───────────────────────────────────────────────────


class UnusedSession:
    async def execute(self, stmt):
        raise AssertionError("query should not run for a malformed id")


async def _unused_session():
    yield UnusedSession()


@pytest.mark.asyncio
async def test_repository_malformed_ids_match_nothing():
    repo = MeetingRepository(_unused_session)

    assert await repo.list_meetings(MeetingFilter(room_id="abc")) == []
    assert await repo.list_meetings(MeetingFilter(organizer_id="not-a-uuid")) == []
    assert await repo.find_overlapping(MON, MON + timedelta(hours=1), room_id="abc") == []
    assert await repo.get_room("abc") is None
