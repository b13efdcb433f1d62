"""V1 API router -- aggregates all v1 endpoint routers under /api/v1."""

from __future__ import annotations

from fastapi import APIRouter

from src.meetingsync.api.v1 import (
    auth,
    meetings,
    notifications,
    provider_accounts,
    public,
    rooms,
    settings,
    users,
)

router = APIRouter(prefix="/api/v1")

router.include_router(auth.router)
router.include_router(users.router)
router.include_router(users.profile_router)
router.include_router(settings.router)
router.include_router(meetings.router)
router.include_router(meetings.schedule_router)
router.include_router(rooms.router)
router.include_router(provider_accounts.router)
router.include_router(provider_accounts.capacity_router)
router.include_router(notifications.router)
router.include_router(public.router)
