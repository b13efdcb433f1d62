"""User and settings repositories -- async CRUD using the session_factory pattern."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.meetingsync.users.models import SettingsModel, UserModel
from src.meetingsync.users.schemas import (
    DEFAULT_APP_DESCRIPTION,
    DEFAULT_APP_NAME,
    AppSettings,
    User,
    UserRole,
)

logger = structlog.get_logger(__name__)

SETTINGS_ROW_ID = 1


class DuplicateEmailError(Exception):
    """A user with this email already exists."""


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_user(model: UserModel) -> User:
    return User(
        id=str(model.id),
        email=model.email,
        name=model.name,
        role=UserRole(model.role),
        hashed_password=model.hashed_password,
        is_active=model.is_active,
        created_at=model.created_at,
    )


def _model_to_settings(model: SettingsModel) -> AppSettings:
    return AppSettings(
        allow_registration=model.allow_registration,
        default_role=UserRole(model.default_role),
        default_reset_password_hash=model.default_reset_password_hash,
        app_name=model.app_name,
        app_description=model.app_description,
        updated_at=model.updated_at,
    )


# ── Users ───────────────────────────────────────────────────────────────────


class UserRepository:
    """Async CRUD operations for users.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def create_user(
        self,
        email: str,
        name: str,
        hashed_password: str | None,
        role: UserRole = UserRole.member,
    ) -> User:
        """Insert a user. Emails are stored lower-cased.

        Raises:
            DuplicateEmailError: If the email is already registered.
        """
        async for session in self._session_factory():
            model = UserModel(
                email=email.lower(),
                name=name,
                hashed_password=hashed_password,
                role=role.value,
                is_active=True,
            )
            session.add(model)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateEmailError(email) from exc
            await session.refresh(model)
            logger.info("users.created", user_id=str(model.id), role=model.role)
            return _model_to_user(model)

    async def get_user(self, user_id: str) -> User | None:
        async for session in self._session_factory():
            try:
                key = uuid.UUID(user_id)
            except ValueError:
                return None
            model = await session.get(UserModel, key)
            if model is None or not model.is_active:
                return None
            return _model_to_user(model)

    async def get_user_by_email(self, email: str) -> User | None:
        async for session in self._session_factory():
            stmt = select(UserModel).where(
                UserModel.email == email.lower(),
                UserModel.is_active == True,  # noqa: E712
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            return _model_to_user(model) if model else None

    async def list_users(self) -> list[User]:
        async for session in self._session_factory():
            stmt = (
                select(UserModel)
                .where(UserModel.is_active == True)  # noqa: E712
                .order_by(UserModel.created_at)
            )
            result = await session.execute(stmt)
            return [_model_to_user(m) for m in result.scalars().all()]

    async def count_users(self) -> int:
        async for session in self._session_factory():
            result = await session.execute(select(func.count()).select_from(UserModel))
            return int(result.scalar_one())

    async def update_user(self, user_id: str, **fields: object) -> User | None:
        """Set the given columns (name, role, hashed_password) on a user.

        Returns None when the user does not exist.
        """
        async for session in self._session_factory():
            model = await session.get(UserModel, uuid.UUID(user_id))
            if model is None or not model.is_active:
                return None
            for key, value in fields.items():
                if isinstance(value, UserRole):
                    value = value.value
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_user(model)

    async def delete_user(self, user_id: str) -> bool:
        async for session in self._session_factory():
            model = await session.get(UserModel, uuid.UUID(user_id))
            if model is None:
                return False
            await session.delete(model)
            await session.commit()
            logger.info("users.deleted", user_id=user_id)
            return True


# ── Settings ────────────────────────────────────────────────────────────────


class SettingsRepository:
    """Access to the settings singleton.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def get_or_create(self) -> AppSettings:
        """Return the settings row, inserting the defaults on first read."""
        async for session in self._session_factory():
            model = await session.get(SettingsModel, SETTINGS_ROW_ID)
            if model is None:
                model = SettingsModel(
                    id=SETTINGS_ROW_ID,
                    allow_registration=True,
                    default_role=UserRole.member.value,
                    app_name=DEFAULT_APP_NAME,
                    app_description=DEFAULT_APP_DESCRIPTION,
                )
                session.add(model)
                try:
                    await session.commit()
                except IntegrityError:
                    # Another request created it first
                    await session.rollback()
                    model = await session.get(SettingsModel, SETTINGS_ROW_ID)
                else:
                    logger.info("settings.created_defaults")
            return _model_to_settings(model)

    async def update(self, **fields: object) -> AppSettings:
        await self.get_or_create()
        async for session in self._session_factory():
            model = await session.get(SettingsModel, SETTINGS_ROW_ID)
            for key, value in fields.items():
                if isinstance(value, UserRole):
                    value = value.value
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            logger.info("settings.updated", fields=sorted(fields))
            return _model_to_settings(model)
