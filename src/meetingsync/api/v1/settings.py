"""Application settings endpoints.

GET is public: anonymous callers and members see the branding and the
registration flag, admins also see the default role and whether a reset
password is configured. The reset password hash itself is never returned.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request

from src.meetingsync.api.deps import get_component, get_optional_user, require_admin
from src.meetingsync.core.security import hash_password
from src.meetingsync.users.schemas import (
    AdminSettingsResponse,
    AppSettings,
    PublicSettingsResponse,
    SettingsUpdate,
    User,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


def _get_settings_repository(request: Request) -> Any:
    return get_component(request, "settings_repository", "Settings repository")


def _admin_view(settings: AppSettings) -> AdminSettingsResponse:
    return AdminSettingsResponse(
        allow_registration=settings.allow_registration,
        app_name=settings.app_name,
        app_description=settings.app_description,
        default_role=settings.default_role.value,
        has_default_reset_password=bool(settings.default_reset_password_hash),
        updated_at=settings.updated_at.isoformat() if settings.updated_at else None,
    )


@router.get("", response_model=AdminSettingsResponse | PublicSettingsResponse)
async def get_app_settings(request: Request, user: User | None = Depends(get_optional_user)):
    repo = _get_settings_repository(request)
    settings = await repo.get_or_create()
    if user is not None and user.is_admin:
        return _admin_view(settings)
    return PublicSettingsResponse(
        allow_registration=settings.allow_registration,
        app_name=settings.app_name,
        app_description=settings.app_description,
    )


@router.put("", response_model=AdminSettingsResponse)
async def update_app_settings(
    body: SettingsUpdate,
    request: Request,
    admin: User = Depends(require_admin),
):
    """Partial update. default_reset_password (min 8 chars) is stored hashed."""
    repo = _get_settings_repository(request)
    fields = body.model_dump(exclude_unset=True, exclude={"default_reset_password"})
    fields = {k: v for k, v in fields.items() if v is not None}
    if body.default_reset_password:
        fields["default_reset_password_hash"] = hash_password(body.default_reset_password)
    settings = await repo.update(**fields)
    logger.info("settings.changed", by=admin.id, fields=sorted(fields))
    return _admin_view(settings)
