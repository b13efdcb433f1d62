"""Tests for the settings singleton endpoints."""

from __future__ import annotations

import pytest

from src.meetingsync.core.security import verify_password


@pytest.mark.asyncio
async def test_anonymous_gets_public_subset(client):
    response = await client.get("/api/v1/settings")
    assert response.status_code == 200
    data = response.json()
    assert data == {
        "allow_registration": True,
        "app_name": "MeetingSync",
        "app_description": "Efficiently manage and schedule your Zoom meetings.",
    }


@pytest.mark.asyncio
async def test_admin_sees_full_view(client, admin_headers):
    data = (await client.get("/api/v1/settings", headers=admin_headers)).json()
    assert data["default_role"] == "member"
    assert data["has_default_reset_password"] is False
    assert "default_reset_password_hash" not in data


@pytest.mark.asyncio
async def test_member_cannot_update(client, member_headers):
    response = await client.put(
        "/api/v1/settings", json={"allow_registration": False}, headers=member_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_update_hashes_reset_password(client, admin_headers, settings_repo):
    response = await client.put(
        "/api/v1/settings",
        json={
            "allow_registration": False,
            "default_role": "admin",
            "default_reset_password": "welcome-back-1",
            "app_name": "Team Rooms",
        },
        headers=admin_headers,
    )
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["allow_registration"] is False
    assert data["default_role"] == "admin"
    assert data["has_default_reset_password"] is True
    assert data["app_name"] == "Team Rooms"

    stored = await settings_repo.get_or_create()
    assert verify_password("welcome-back-1", stored.default_reset_password_hash)


@pytest.mark.asyncio
async def test_short_reset_password_is_422(client, admin_headers):
    response = await client.put(
        "/api/v1/settings", json={"default_reset_password": "short"}, headers=admin_headers
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_registered_user_gets_configured_default_role(client, admin_headers):
    await client.put("/api/v1/settings", json={"default_role": "admin"}, headers=admin_headers)

    response = await client.post(
        "/api/v1/auth/register",
        json={"email": "lead@example.com", "name": "Lead", "password": "lead-password"},
    )
    assert response.json()["role"] == "admin"
