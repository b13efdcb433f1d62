"""Provider account repository -- async CRUD with soft delete."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.meetingsync.providers.models import ProviderAccountModel
from src.meetingsync.providers.schemas import ProviderAccount, ProviderAccountCreate

logger = structlog.get_logger(__name__)


class DuplicateAccountError(Exception):
    """A live account already uses this client_id and account_id pair."""


class ProviderAccountRepository:
    """Async CRUD for provider accounts.

    Accounts are returned in creation order, which is the tie-break order
    for load balancing.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
        max_concurrent_meetings: Policy cap stamped on every loaded account.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncGenerator[AsyncSession, None]],
        max_concurrent_meetings: int = 2,
    ) -> None:
        self._session_factory = session_factory
        self._max_concurrent = max_concurrent_meetings

    def _to_account(self, model: ProviderAccountModel) -> ProviderAccount:
        return ProviderAccount(
            id=str(model.id),
            client_id=model.client_id,
            client_secret=model.client_secret,
            account_id=model.account_id,
            host_key=model.host_key,
            is_active=model.is_active,
            max_concurrent_meetings=self._max_concurrent,
            created_at=model.created_at,
            updated_at=model.updated_at,
            deleted_at=model.deleted_at,
        )

    async def _find_duplicate(
        self, session: AsyncSession, client_id: str, account_id: str, exclude_id: uuid.UUID | None
    ) -> ProviderAccountModel | None:
        stmt = select(ProviderAccountModel).where(
            ProviderAccountModel.client_id == client_id,
            ProviderAccountModel.account_id == account_id,
            ProviderAccountModel.deleted_at.is_(None),
        )
        if exclude_id is not None:
            stmt = stmt.where(ProviderAccountModel.id != exclude_id)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def create_account(self, data: ProviderAccountCreate) -> ProviderAccount:
        """Insert a new account.

        Raises:
            DuplicateAccountError: If a live account has the same credentials.
        """
        async for session in self._session_factory():
            if await self._find_duplicate(session, data.client_id, data.account_id, None):
                raise DuplicateAccountError(data.client_id)
            model = ProviderAccountModel(
                client_id=data.client_id,
                client_secret=data.client_secret,
                account_id=data.account_id,
                host_key=data.host_key,
                is_active=data.is_active,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("provider_accounts.created", account_id=str(model.id))
            return self._to_account(model)

    async def get_account(self, account_id: str) -> ProviderAccount | None:
        try:
            key = uuid.UUID(account_id)
        except ValueError:
            return None
        async for session in self._session_factory():
            model = await session.get(ProviderAccountModel, key)
            if model is None or model.deleted_at is not None:
                return None
            return self._to_account(model)

    async def list_accounts(self, include_inactive: bool = False) -> list[ProviderAccount]:
        """Live accounts in creation order; inactive ones only when asked."""
        async for session in self._session_factory():
            stmt = select(ProviderAccountModel).where(
                ProviderAccountModel.deleted_at.is_(None)
            )
            if not include_inactive:
                stmt = stmt.where(ProviderAccountModel.is_active == True)  # noqa: E712
            stmt = stmt.order_by(ProviderAccountModel.created_at, ProviderAccountModel.id)
            result = await session.execute(stmt)
            return [self._to_account(m) for m in result.scalars().all()]

    async def update_account(self, account_id: str, /, **fields: Any) -> ProviderAccount | None:
        """Rotate credentials or toggle is_active.

        Raises:
            DuplicateAccountError: If the new credentials collide with another account.
        """
        async for session in self._session_factory():
            model = await session.get(ProviderAccountModel, uuid.UUID(account_id))
            if model is None or model.deleted_at is not None:
                return None
            client_id = fields.get("client_id", model.client_id)
            provider_account = fields.get("account_id", model.account_id)
            if await self._find_duplicate(session, client_id, provider_account, model.id):
                raise DuplicateAccountError(client_id)
            for key, value in fields.items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            logger.info("provider_accounts.updated", account_id=account_id, fields=sorted(fields))
            return self._to_account(model)

    async def soft_delete_account(self, account_id: str) -> bool:
        async for session in self._session_factory():
            model = await session.get(ProviderAccountModel, uuid.UUID(account_id))
            if model is None or model.deleted_at is not None:
                return False
            model.deleted_at = datetime.now(timezone.utc)
            await session.commit()
            logger.info("provider_accounts.soft_deleted", account_id=account_id)
            return True
