"""Meeting repository -- async CRUD for meetings and rooms.

Provides MeetingRepository with the session_factory callable pattern shared by
every repository in the application. Soft-deleted rows are filtered in SQL
here, and again by MeetingDirectory on whatever comes back.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.meetingsync.meetings.models import MeetingModel, RoomModel
from src.meetingsync.meetings.schemas import (
    Meeting,
    MeetingCreate,
    MeetingFilter,
    MeetingKind,
    Room,
    RoomCreate,
)

logger = structlog.get_logger(__name__)

# Columns callers may change through update_meeting
_MEETING_MUTABLE = {
    "title",
    "description",
    "starts_at",
    "duration_minutes",
    "participants",
    "kind",
    "hosted",
    "room_id",
    "provider_meeting_id",
    "provider_account_id",
    "join_url",
    "start_url",
    "access_password",
}


# ── Serialization Helpers ───────────────────────────────────────────────────


def _uuid_or_none(value: str | None) -> uuid.UUID | None:
    return uuid.UUID(value) if value else None


def _parse_uuid(value: str) -> uuid.UUID | None:
    """UUID for a lookup key, or None when the key is not UUID-shaped."""
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


def _model_to_meeting(model: MeetingModel) -> Meeting:
    """Convert MeetingModel to Meeting schema."""
    return Meeting(
        id=str(model.id),
        title=model.title,
        description=model.description,
        starts_at=model.starts_at,
        duration_minutes=model.duration_minutes,
        organizer_id=str(model.organizer_id),
        participants=list(model.participants or []),
        kind=MeetingKind(model.kind),
        hosted=model.hosted,
        room_id=str(model.room_id) if model.room_id else None,
        provider_meeting_id=model.provider_meeting_id,
        provider_account_id=(
            str(model.provider_account_id) if model.provider_account_id else None
        ),
        join_url=model.join_url,
        start_url=model.start_url,
        access_password=model.access_password,
        created_at=model.created_at,
        updated_at=model.updated_at,
        deleted_at=model.deleted_at,
    )


def _model_to_room(model: RoomModel) -> Room:
    return Room(
        id=str(model.id),
        name=model.name,
        capacity=model.capacity,
        location=model.location,
        created_at=model.created_at,
        updated_at=model.updated_at,
        deleted_at=model.deleted_at,
    )


# ── Repository ──────────────────────────────────────────────────────────────


class MeetingRepository:
    """Async CRUD operations for meetings and rooms.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Meetings ─────────────────────────────────────────────────────────

    async def create_meeting(
        self,
        organizer_id: str,
        data: MeetingCreate,
        *,
        provider_account_id: str | None = None,
        provider_meeting_id: str | None = None,
        join_url: str | None = None,
        start_url: str | None = None,
        access_password: str | None = None,
    ) -> Meeting:
        """Insert a meeting, with provider linkage when it was hosted.

        Args:
            organizer_id: User UUID string of the organizer.
            data: Validated MeetingCreate request.

        Returns:
            Meeting with all persisted fields.
        """
        async for session in self._session_factory():
            model = MeetingModel(
                title=data.title,
                description=data.description,
                starts_at=data.starts_at,
                duration_minutes=data.duration_minutes,
                ends_at=data.starts_at + timedelta(minutes=data.duration_minutes),
                organizer_id=uuid.UUID(organizer_id),
                participants=[str(p).lower() for p in data.participants],
                kind=data.kind.value,
                hosted=data.hosted,
                room_id=_uuid_or_none(data.room_id),
                provider_account_id=_uuid_or_none(provider_account_id),
                provider_meeting_id=provider_meeting_id,
                join_url=join_url,
                start_url=start_url,
                access_password=access_password or data.access_password,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info(
                "meetings.created",
                meeting_id=str(model.id),
                hosted=model.hosted,
                provider_account_id=provider_account_id,
            )
            return _model_to_meeting(model)

    async def get_meeting(
        self, meeting_id: str, include_deleted: bool = False
    ) -> Meeting | None:
        """Get a meeting by ID. Soft-deleted meetings are hidden by default."""
        try:
            key = uuid.UUID(meeting_id)
        except ValueError:
            return None
        async for session in self._session_factory():
            model = await session.get(MeetingModel, key)
            if model is None:
                return None
            if model.deleted_at is not None and not include_deleted:
                return None
            return _model_to_meeting(model)

    async def list_meetings(self, filters: MeetingFilter | None = None) -> list[Meeting]:
        """List meetings ordered by start time.

        The participant filter is not applied here (JSON column);
        MeetingDirectory handles it.
        """
        filters = filters or MeetingFilter()
        async for session in self._session_factory():
            stmt = select(MeetingModel)
            if not filters.include_deleted:
                stmt = stmt.where(MeetingModel.deleted_at.is_(None))
            if filters.window_start is not None:
                stmt = stmt.where(MeetingModel.ends_at > filters.window_start)
            if filters.window_end is not None:
                stmt = stmt.where(MeetingModel.starts_at < filters.window_end)
            for column, value in (
                (MeetingModel.room_id, filters.room_id),
                (MeetingModel.organizer_id, filters.organizer_id),
                (MeetingModel.provider_account_id, filters.provider_account_id),
            ):
                if not value:
                    continue
                key = _parse_uuid(value)
                if key is None:
                    # A malformed id matches no row
                    return []
                stmt = stmt.where(column == key)
            if filters.kind is not None:
                stmt = stmt.where(MeetingModel.kind == filters.kind.value)
            if filters.hosted is not None:
                stmt = stmt.where(MeetingModel.hosted == filters.hosted)
            stmt = stmt.order_by(MeetingModel.starts_at, MeetingModel.created_at)
            result = await session.execute(stmt)
            return [_model_to_meeting(m) for m in result.scalars().all()]

    async def find_overlapping(
        self,
        start: datetime,
        end: datetime,
        *,
        room_id: str | None = None,
        account_id: str | None = None,
        hosted_only: bool = False,
        exclude_meeting_id: str | None = None,
    ) -> list[Meeting]:
        """Non-deleted meetings whose [starts_at, ends_at) overlaps [start, end)."""
        async for session in self._session_factory():
            stmt = select(MeetingModel).where(
                MeetingModel.deleted_at.is_(None),
                MeetingModel.starts_at < end,
                MeetingModel.ends_at > start,
            )
            for column, value in (
                (MeetingModel.room_id, room_id),
                (MeetingModel.provider_account_id, account_id),
            ):
                if not value:
                    continue
                key = _parse_uuid(value)
                if key is None:
                    return []
                stmt = stmt.where(column == key)
            if hosted_only:
                stmt = stmt.where(MeetingModel.provider_account_id.is_not(None))
            excluded = _parse_uuid(exclude_meeting_id) if exclude_meeting_id else None
            if excluded is not None:
                stmt = stmt.where(MeetingModel.id != excluded)
            stmt = stmt.order_by(MeetingModel.starts_at)
            result = await session.execute(stmt)
            return [_model_to_meeting(m) for m in result.scalars().all()]

    async def update_meeting(self, meeting_id: str, **fields: Any) -> Meeting | None:
        """Apply column updates and keep ends_at in sync.

        Returns None when the meeting does not exist or is soft-deleted.
        """
        unknown = set(fields) - _MEETING_MUTABLE
        if unknown:
            raise ValueError(f"Cannot update meeting fields: {sorted(unknown)}")
        async for session in self._session_factory():
            model = await session.get(MeetingModel, uuid.UUID(meeting_id))
            if model is None or model.deleted_at is not None:
                return None
            for key, value in fields.items():
                if key in ("room_id", "provider_account_id"):
                    value = _uuid_or_none(value)
                elif key == "kind" and isinstance(value, MeetingKind):
                    value = value.value
                elif key == "participants":
                    value = [str(p).lower() for p in value]
                setattr(model, key, value)
            model.ends_at = model.starts_at + timedelta(minutes=model.duration_minutes)
            await session.commit()
            await session.refresh(model)
            logger.info("meetings.updated", meeting_id=meeting_id, fields=sorted(fields))
            return _model_to_meeting(model)

    async def soft_delete_meeting(self, meeting_id: str) -> bool:
        async for session in self._session_factory():
            model = await session.get(MeetingModel, uuid.UUID(meeting_id))
            if model is None or model.deleted_at is not None:
                return False
            model.deleted_at = datetime.now(timezone.utc)
            await session.commit()
            logger.info("meetings.soft_deleted", meeting_id=meeting_id)
            return True

    # ── Rooms ────────────────────────────────────────────────────────────

    async def create_room(self, data: RoomCreate) -> Room:
        async for session in self._session_factory():
            model = RoomModel(name=data.name, capacity=data.capacity, location=data.location)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("rooms.created", room_id=str(model.id))
            return _model_to_room(model)

    async def get_room(self, room_id: str) -> Room | None:
        try:
            key = uuid.UUID(room_id)
        except ValueError:
            return None
        async for session in self._session_factory():
            model = await session.get(RoomModel, key)
            if model is None or model.deleted_at is not None:
                return None
            return _model_to_room(model)

    async def list_rooms(self) -> list[Room]:
        async for session in self._session_factory():
            stmt = (
                select(RoomModel)
                .where(RoomModel.deleted_at.is_(None))
                .order_by(RoomModel.name)
            )
            result = await session.execute(stmt)
            return [_model_to_room(m) for m in result.scalars().all()]

    async def update_room(self, room_id: str, **fields: Any) -> Room | None:
        async for session in self._session_factory():
            model = await session.get(RoomModel, uuid.UUID(room_id))
            if model is None or model.deleted_at is not None:
                return None
            for key, value in fields.items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_room(model)

    async def soft_delete_room(self, room_id: str) -> bool:
        async for session in self._session_factory():
            model = await session.get(RoomModel, uuid.UUID(room_id))
            if model is None or model.deleted_at is not None:
                return False
            model.deleted_at = datetime.now(timezone.utc)
            await session.commit()
            logger.info("rooms.soft_deleted", room_id=room_id)
            return True
