"""Pydantic schemas for provider accounts and provider-side meetings."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


def mask_secret(secret: str) -> str:
    """Keep only the last four characters visible."""
    if len(secret) <= 4:
        return "*" * len(secret)
    return "*" * (len(secret) - 4) + secret[-4:]


class ProviderAccount(BaseModel):
    """A provider credential set as the scheduling core sees it."""

    id: str
    client_id: str
    client_secret: str
    account_id: str
    host_key: str | None = None
    is_active: bool = True
    max_concurrent_meetings: int = 2
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_usable(self) -> bool:
        """Active and not soft-deleted, i.e. counted by capacity math."""
        return self.is_active and self.deleted_at is None


class ProviderAccountCreate(BaseModel):
    client_id: str = Field(..., min_length=1, max_length=200)
    client_secret: str = Field(..., min_length=1)
    account_id: str = Field(..., min_length=1, max_length=200)
    host_key: str | None = Field(default=None, max_length=20)
    is_active: bool = True


class ProviderAccountUpdate(BaseModel):
    """Credential rotation or activation toggle."""

    client_id: str | None = Field(default=None, min_length=1, max_length=200)
    client_secret: str | None = Field(default=None, min_length=1)
    account_id: str | None = Field(default=None, min_length=1, max_length=200)
    host_key: str | None = Field(default=None, max_length=20)
    is_active: bool | None = None


class CredentialCheck(BaseModel):
    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(..., min_length=1)
    account_id: str = Field(..., min_length=1)


class ProviderAccountResponse(BaseModel):
    id: str
    client_id: str
    client_secret_masked: str
    account_id: str
    has_host_key: bool
    is_active: bool
    max_concurrent_meetings: int
    created_at: str | None = None


def account_to_response(account: ProviderAccount) -> ProviderAccountResponse:
    return ProviderAccountResponse(
        id=account.id,
        client_id=account.client_id,
        client_secret_masked=mask_secret(account.client_secret),
        account_id=account.account_id,
        has_host_key=bool(account.host_key),
        is_active=account.is_active,
        max_concurrent_meetings=account.max_concurrent_meetings,
        created_at=account.created_at.isoformat() if account.created_at else None,
    )


class ProviderMeeting(BaseModel):
    """A meeting as the provider reports it."""

    provider_meeting_id: str
    topic: str = ""
    start_time: datetime | None = None
    duration_minutes: int | None = None
    join_url: str | None = None
    start_url: str | None = None
    password: str | None = None
    account_id: str | None = None
