"""Observability and startup tests.

Tests cover:
- MetricsMiddleware labels requests by route pattern, not raw path
- /metrics exposition and the health endpoints
- degrade_to returning a fresh default on failure
- Initial admin seeding on an empty user table
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from prometheus_client import REGISTRY

from src.meetingsync.config import Settings
from src.meetingsync.core.monitoring import MetricsMiddleware
from src.meetingsync.main import create_app, seed_initial_admin
from src.meetingsync.scheduling.fallback import degrade_to
from src.meetingsync.users.schemas import UserRole


def _sample(name: str, labels: dict) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


# ── Metrics Middleware ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_metrics_use_route_pattern():
    app = FastAPI()
    app.add_middleware(MetricsMiddleware)

    @app.get("/things/{thing_id}")
    async def thing(thing_id: str):
        return {"id": thing_id}

    labels = {"method": "GET", "endpoint": "/things/{thing_id}", "status_code": "200"}
    before = _sample("http_requests_total", labels)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        await client.get("/things/a1")
        await client.get("/things/b2")

    assert _sample("http_requests_total", labels) == before + 2
    assert _sample(
        "http_requests_total",
        {"method": "GET", "endpoint": "/things/a1", "status_code": "200"},
    ) == 0.0


@pytest.mark.asyncio
async def test_metrics_and_health_endpoints():
    # No lifespan: the endpoints below need neither the database nor app.state
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        metrics = await client.get("/metrics")
        health = await client.get("/health")
        version = await client.get("/version")

    assert metrics.status_code == 200
    assert "http_requests_total" in metrics.text
    assert health.json()["status"] == "ok"
    assert version.json()["name"] == "meetingsync"


# ── Fallback policy ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_degrade_to_returns_fresh_default():
    calls = []

    @degrade_to(list, "test.read_failed")
    async def flaky(fail: bool) -> list[str]:
        calls.append(fail)
        if fail:
            raise ConnectionError("store offline")
        return ["value"]

    assert await flaky(False) == ["value"]
    first = await flaky(True)
    second = await flaky(True)
    assert first == [] and second == []
    assert first is not second
    assert flaky.__name__ == "flaky"


# ── Initial admin ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_seed_initial_admin_on_empty_table(user_repo):
    settings = Settings(INITIAL_ADMIN_EMAIL="Root@Example.com", INITIAL_ADMIN_PASSWORD="root-pass-1")

    await seed_initial_admin(user_repo, settings)
    await seed_initial_admin(user_repo, settings)

    users = await user_repo.list_users()
    assert len(users) == 1
    assert users[0].email == "root@example.com"
    assert users[0].role == UserRole.admin


@pytest.mark.asyncio
async def test_seed_skipped_without_configuration(user_repo):
    await seed_initial_admin(user_repo, Settings(INITIAL_ADMIN_EMAIL="", INITIAL_ADMIN_PASSWORD=""))
    assert await user_repo.count_users() == 0


@pytest.mark.asyncio
async def test_seed_skipped_when_users_exist(user_repo, member_user):
    settings = Settings(INITIAL_ADMIN_EMAIL="root@example.com", INITIAL_ADMIN_PASSWORD="root-pass-1")
    await seed_initial_admin(user_repo, settings)
    assert await user_repo.count_users() == 1
