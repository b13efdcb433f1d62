"""Integration tests for meeting, schedule and public calendar endpoints.

Runs the v1 router over the in-memory repositories from conftest with real
JWTs for an admin and two members.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.meetingsync.meetings.schemas import RoomCreate
from src.meetingsync.providers.schemas import ProviderMeeting

T10 = datetime(2030, 3, 4, 10, 0, tzinfo=timezone.utc)


def _body(**fields) -> dict:
    values = {
        "title": "Roadmap review",
        "starts_at": T10.isoformat(),
        "duration_minutes": 30,
        "hosted": False,
    }
    values.update(fields)
    return values


async def _create(client, headers, **fields) -> dict:
    response = await client.post("/api/v1/meetings", json=_body(**fields), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


# ── Auth ─────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_meetings_require_auth(client):
    response = await client.get("/api/v1/meetings")
    assert response.status_code == 401


# ── Create / read ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_and_get_meeting(client, member_headers, member_user):
    created = await _create(client, member_headers, participants=["Guest@Example.com"])

    assert created["organizer_id"] == member_user.id
    assert created["ends_at"] == (T10 + timedelta(minutes=30)).isoformat()
    assert created["participants"] == ["guest@example.com"]

    response = await client.get(f"/api/v1/meetings/{created['id']}", headers=member_headers)
    assert response.status_code == 200
    assert response.json()["title"] == "Roadmap review"


@pytest.mark.asyncio
async def test_create_validation_errors_are_422(client, member_headers):
    response = await client.post(
        "/api/v1/meetings",
        json=_body(title="ab", duration_minutes=2),
        headers=member_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_with_unknown_room_is_400(client, member_headers):
    response = await client.post(
        "/api/v1/meetings", json=_body(room_id="no-such-room"), headers=member_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_room_conflict_returns_409_with_report(client, member_headers, meeting_repo):
    room = await meeting_repo.create_room(RoomCreate(name="Orion", capacity=8, location="Floor 2"))
    await _create(client, member_headers, room_id=room.id)

    response = await client.post(
        "/api/v1/meetings",
        json=_body(room_id=room.id, starts_at=(T10 + timedelta(minutes=15)).isoformat()),
        headers=member_headers,
    )

    assert response.status_code == 409
    report = response.json()["report"]
    assert report["canSubmit"] is False
    assert report["conflicts"][0]["type"] == "ROOM_CONFLICT"
    assert report["suggestions"][0]["start"].startswith("2030-03-04T10:45")
    assert report["alternativeRooms"] == []


@pytest.mark.asyncio
async def test_hosted_create_without_accounts_is_409(client, member_headers):
    response = await client.post("/api/v1/meetings", json=_body(hosted=True), headers=member_headers)
    assert response.status_code == 409
    assert response.json()["report"]["conflicts"][0]["type"] == "ACCOUNT_CAPACITY"


@pytest.mark.asyncio
async def test_provider_failure_is_502(client, member_headers, make_account, zoom):
    await make_account()
    zoom.fail_on.add("create")

    response = await client.post("/api/v1/meetings", json=_body(hosted=True), headers=member_headers)
    assert response.status_code == 502


@pytest.mark.asyncio
async def test_links_hidden_from_non_participants(
    client, member_headers, other_headers, admin_headers, make_account
):
    await make_account()
    created = await _create(client, member_headers, hosted=True)
    assert created["join_url"] and created["start_url"]

    as_other = (await client.get(f"/api/v1/meetings/{created['id']}", headers=other_headers)).json()
    assert as_other["join_url"] is None
    assert as_other["start_url"] is None
    assert as_other["access_password"] is None

    as_admin = (await client.get(f"/api/v1/meetings/{created['id']}", headers=admin_headers)).json()
    assert as_admin["join_url"] == created["join_url"]


@pytest.mark.asyncio
async def test_participant_sees_join_url_but_not_start_url(
    client, member_headers, other_headers, make_account
):
    await make_account()
    created = await _create(client, member_headers, hosted=True, participants=["other@example.com"])

    as_participant = (
        await client.get(f"/api/v1/meetings/{created['id']}", headers=other_headers)
    ).json()
    assert as_participant["join_url"] == created["join_url"]
    assert as_participant["start_url"] is None


# ── Listing ──────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_window_and_mine(client, member_headers, other_headers):
    await _create(client, member_headers, title="Mine early")
    await _create(client, other_headers, title="Theirs", starts_at=(T10 + timedelta(hours=1)).isoformat())
    await _create(client, member_headers, title="Mine next day", starts_at=(T10 + timedelta(days=1)).isoformat())

    response = await client.get(
        "/api/v1/meetings",
        params={"start": T10.isoformat(), "end": (T10 + timedelta(hours=12)).isoformat()},
        headers=member_headers,
    )
    assert [m["title"] for m in response.json()] == ["Mine early", "Theirs"]

    response = await client.get("/api/v1/meetings", params={"mine": "true"}, headers=member_headers)
    assert [m["title"] for m in response.json()] == ["Mine early", "Mine next day"]


@pytest.mark.asyncio
async def test_weekly_stats(client, member_headers):
    await _create(client, member_headers)
    await _create(client, member_headers, starts_at=(T10 + timedelta(days=2)).isoformat())

    response = await client.get(
        "/api/v1/meetings/stats/weekly", params={"reference": "2030-03-07"}, headers=member_headers
    )
    data = response.json()
    assert data["week_start"] == "2030-03-04"
    assert data["total"] == 2
    assert [d["count"] for d in data["days"]] == [1, 0, 1, 0, 0, 0, 0]


# ── Validate ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_validate_accepts_camel_case_and_reports_participants(client, member_headers):
    await _create(client, member_headers, participants=["ana@example.com"])

    response = await client.post(
        "/api/v1/meetings/validate",
        json={
            "title": "Overlap",
            "startsAt": T10.isoformat(),
            "durationMinutes": 30,
            "kind": "internal",
            "hosted": False,
            "participants": ["ANA@example.com"],
        },
        headers=member_headers,
    )
    data = response.json()
    assert response.status_code == 200
    assert data["canSubmit"] is True
    assert data["conflicts"][0]["type"] == "PARTICIPANT_CONFLICT"
    assert data["conflicts"][0]["severity"] == "WARNING"


@pytest.mark.asyncio
async def test_validate_unknown_kind_is_soft_warning(client, member_headers):
    response = await client.post(
        "/api/v1/meetings/validate",
        json={"starts_at": T10.isoformat(), "duration_minutes": 30, "kind": "webinar"},
        headers=member_headers,
    )
    data = response.json()
    assert data["canSubmit"] is True
    assert data["conflicts"][0]["type"] == "INVALID_TYPE"


@pytest.mark.asyncio
async def test_validate_rejects_malformed_ids(client, member_headers):
    for field in ("roomId", "excludeMeetingId"):
        response = await client.post(
            "/api/v1/meetings/validate",
            json={"startsAt": T10.isoformat(), "durationMinutes": 30, "hosted": False, field: "abc"},
            headers=member_headers,
        )
        assert response.status_code == 422, field


@pytest.mark.asyncio
async def test_list_rejects_malformed_filter_ids(client, member_headers):
    for param in ("room_id", "organizer_id"):
        response = await client.get(
            "/api/v1/meetings", params={param: "abc"}, headers=member_headers
        )
        assert response.status_code == 422, param


# ── Update / delete ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_member_cannot_edit_others_meeting(client, member_headers, other_headers):
    created = await _create(client, member_headers)

    response = await client.patch(
        f"/api/v1/meetings/{created['id']}", json={"title": "Hijacked"}, headers=other_headers
    )
    assert response.status_code == 403

    response = await client.delete(f"/api/v1/meetings/{created['id']}", headers=other_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_organizer_and_admin_can_edit(client, member_headers, admin_headers):
    created = await _create(client, member_headers)

    response = await client.patch(
        f"/api/v1/meetings/{created['id']}", json={"title": "Renamed"}, headers=member_headers
    )
    assert response.status_code == 200
    assert response.json()["title"] == "Renamed"

    response = await client.patch(
        f"/api/v1/meetings/{created['id']}", json={"duration_minutes": 60}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["ends_at"] == (T10 + timedelta(minutes=60)).isoformat()


@pytest.mark.asyncio
async def test_update_into_conflict_is_409(client, member_headers, meeting_repo):
    room = await meeting_repo.create_room(RoomCreate(name="Vega", capacity=4, location="Floor 1"))
    await _create(client, member_headers, room_id=room.id)
    later = await _create(
        client, member_headers, room_id=room.id, starts_at=(T10 + timedelta(hours=1)).isoformat()
    )

    response = await client.patch(
        f"/api/v1/meetings/{later['id']}",
        json={"starts_at": T10.isoformat()},
        headers=member_headers,
    )
    assert response.status_code == 409
    assert response.json()["report"]["conflicts"][0]["type"] == "ROOM_CONFLICT"


@pytest.mark.asyncio
async def test_delete_soft_deletes(client, member_headers):
    created = await _create(client, member_headers)

    response = await client.delete(f"/api/v1/meetings/{created['id']}", headers=member_headers)
    assert response.status_code == 204

    response = await client.get(f"/api/v1/meetings/{created['id']}", headers=member_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_missing_component_is_503(app, client, member_headers):
    app.state.meeting_directory = None
    response = await client.get("/api/v1/meetings", headers=member_headers)
    assert response.status_code == 503


# ── Schedule / public calendar ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_schedule_merges_provider_meetings(client, member_headers, make_account, zoom):
    account = await make_account()
    await _create(client, member_headers, hosted=True)
    zoom.remote[account.id] = [
        ProviderMeeting(provider_meeting_id="ext-9", topic="Booked in Zoom", start_time=T10 + timedelta(hours=3)),
    ]

    response = await client.get(
        "/api/v1/schedule",
        params={"start": (T10 - timedelta(hours=1)).isoformat(), "days": 1},
        headers=member_headers,
    )
    assert [(e["source"], e["title"]) for e in response.json()] == [
        ("local", "Roadmap review"),
        ("provider", "Booked in Zoom"),
    ]


@pytest.mark.asyncio
async def test_public_calendar_hides_links(client, member_headers, make_account):
    await make_account()
    await _create(client, member_headers, hosted=True, access_password="pw")

    response = await client.get("/api/v1/public/meetings", params={"start": "2030-03-04T00:00:00Z"})

    assert response.status_code == 200
    [entry] = response.json()
    assert entry["title"] == "Roadmap review"
    assert entry["status"] == "upcoming"
    assert "join_url" not in entry
    assert "access_password" not in entry
