"""Provider account management and capacity endpoints.

Account CRUD and credential checks are admin-only; every successful
mutation is reported to the CapacityNotifier so cached capacity is dropped
and subscribers hear about it. Capacity reads are open to any user.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.meetingsync.api.deps import get_component, get_current_user, require_admin
from src.meetingsync.meetings.schemas import ensure_utc
from src.meetingsync.providers.repository import DuplicateAccountError
from src.meetingsync.providers.schemas import (
    CredentialCheck,
    ProviderAccountCreate,
    ProviderAccountResponse,
    ProviderAccountUpdate,
    account_to_response,
)
from src.meetingsync.scheduling.schemas import (
    AccountChangeType,
    AccountLoad,
    CapacityResult,
    CapacityStatus,
)
from src.meetingsync.users.schemas import User

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/provider-accounts", tags=["provider-accounts"])
capacity_router = APIRouter(prefix="/capacity-status", tags=["capacity"])


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_account_repository(request: Request) -> Any:
    return get_component(request, "provider_account_repository", "Provider account repository")


def _get_capacity(request: Request) -> Any:
    return get_component(request, "capacity_evaluator", "Capacity evaluator")


def _get_notifier(request: Request) -> Any:
    return get_component(request, "capacity_notifier", "Capacity notifier")


def _get_provider(request: Request) -> Any:
    return get_component(request, "zoom_client", "Provider client")


def _window(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    start, end = ensure_utc(start), ensure_utc(end)
    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end must be after start",
        )
    return start, end


# ── Account management (admin) ───────────────────────────────────────────────


@router.get("", response_model=list[ProviderAccountResponse])
async def list_accounts(
    request: Request,
    include_inactive: bool = Query(True),
    admin: User = Depends(require_admin),
):
    repo = _get_account_repository(request)
    accounts = await repo.list_accounts(include_inactive=include_inactive)
    return [account_to_response(a) for a in accounts]


@router.post("", response_model=ProviderAccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    body: ProviderAccountCreate,
    request: Request,
    admin: User = Depends(require_admin),
):
    """POST /provider-accounts -> 201, 409 when the credentials already exist."""
    repo = _get_account_repository(request)
    notifier = _get_notifier(request)
    try:
        account = await repo.create_account(body)
    except DuplicateAccountError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this client ID and account ID already exists",
        )
    await notifier.handle_account_change(AccountChangeType.ADDED, account.id)
    return account_to_response(account)


@router.patch("/{account_id}", response_model=ProviderAccountResponse)
async def update_account(
    account_id: str,
    body: ProviderAccountUpdate,
    request: Request,
    admin: User = Depends(require_admin),
):
    """Rotate credentials or toggle activation."""
    repo = _get_account_repository(request)
    notifier = _get_notifier(request)
    fields = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    if "host_key" in body.model_fields_set and body.host_key is None:
        fields["host_key"] = None
    try:
        account = await repo.update_account(account_id, **fields)
    except DuplicateAccountError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this client ID and account ID already exists",
        )
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Provider account not found: {account_id}",
        )
    provider = getattr(request.app.state, "zoom_client", None)
    if provider is not None:
        provider.invalidate_token(account_id)
    await notifier.handle_account_change(
        AccountChangeType.UPDATED, account_id, {"fields": sorted(fields)}
    )
    return account_to_response(account)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(account_id: str, request: Request, admin: User = Depends(require_admin)):
    """Soft-delete an account. Its meetings stop counting toward capacity."""
    repo = _get_account_repository(request)
    notifier = _get_notifier(request)
    if not await repo.soft_delete_account(account_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Provider account not found: {account_id}",
        )
    provider = getattr(request.app.state, "zoom_client", None)
    if provider is not None:
        provider.invalidate_token(account_id)
    await notifier.handle_account_change(AccountChangeType.REMOVED, account_id)


@router.post("/verify")
async def verify_credentials(
    body: CredentialCheck,
    request: Request,
    admin: User = Depends(require_admin),
):
    """Check credentials against the provider before saving them."""
    provider = _get_provider(request)
    valid = await provider.verify_credentials(body.client_id, body.client_secret, body.account_id)
    if not valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The provider rejected these credentials",
        )
    return {"valid": True}


# ── Capacity reads ───────────────────────────────────────────────────────────


@router.get("/capacity", response_model=CapacityResult)
async def check_capacity(
    request: Request,
    start: datetime = Query(...),
    end: datetime = Query(...),
    exclude_meeting_id: str | None = Query(None, alias="excludeMeetingId"),
    current_user: User = Depends(get_current_user),
):
    capacity = _get_capacity(request)
    start, end = _window(start, end)
    return await capacity.check_capacity(start, end, exclude_meeting_id)


@router.get("/load-balancing", response_model=list[AccountLoad])
async def load_balancing(
    request: Request,
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    current_user: User = Depends(get_current_user),
):
    capacity = _get_capacity(request)
    if start is not None and end is not None:
        start, end = _window(start, end)
    elif start is not None or end is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start and end must be given together",
        )
    return await capacity.get_load_balancing(start, end)


@router.get("/{account_id}/concurrent")
async def concurrent_meetings(
    account_id: str,
    request: Request,
    start: datetime = Query(...),
    end: datetime = Query(...),
    exclude_meeting_id: str | None = Query(None, alias="excludeMeetingId"),
    current_user: User = Depends(get_current_user),
):
    capacity = _get_capacity(request)
    start, end = _window(start, end)
    count = await capacity.count_concurrent(account_id, start, end, exclude_meeting_id)
    return {"accountId": account_id, "concurrentMeetings": count}


@capacity_router.get("", response_model=CapacityStatus)
async def capacity_status(request: Request, current_user: User = Depends(get_current_user)):
    notifier = _get_notifier(request)
    return await notifier.get_capacity_status()


@capacity_router.post("/refresh", response_model=CapacityStatus)
async def refresh_capacity_status(request: Request, current_user: User = Depends(get_current_user)):
    notifier = _get_notifier(request)
    return await notifier.force_refresh()
