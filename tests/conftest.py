"""Test fixtures for the scheduling core and the API.

Provides:
- In-memory repository doubles mirroring MeetingRepository,
  ProviderAccountRepository, UserRepository and SettingsRepository
- A recording fake of ZoomClient
- The real MeetingDirectory / CapacityEvaluator / ConflictDetector /
  MeetingService / CapacityNotifier wired over the doubles
- A FastAPI app carrying the v1 router with those components on app.state
- Admin and member users with ready-made Bearer headers
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.meetingsync.api.v1.router import router as v1_router
from src.meetingsync.core.security import create_access_token, hash_password
from src.meetingsync.meetings.directory import MeetingDirectory
from src.meetingsync.meetings.schemas import (
    Meeting,
    MeetingCreate,
    MeetingFilter,
    MeetingKind,
    Room,
    RoomCreate,
)
from src.meetingsync.meetings.service import MeetingService
from src.meetingsync.providers.repository import DuplicateAccountError
from src.meetingsync.providers.schemas import (
    ProviderAccount,
    ProviderAccountCreate,
    ProviderMeeting,
)
from src.meetingsync.providers.zoom import ProviderError
from src.meetingsync.scheduling.capacity import CapacityEvaluator
from src.meetingsync.scheduling.conflicts import ConflictDetector
from src.meetingsync.scheduling.notifier import CapacityNotifier
from src.meetingsync.users.repository import DuplicateEmailError
from src.meetingsync.users.schemas import AppSettings, User, UserRole

TEST_PASSWORD = "correct-horse-battery"


# ── In-Memory Test Doubles ───────────────────────────────────────────────────


class StoreUnavailable(RuntimeError):
    pass


class InMemoryMeetingRepository:
    """In-memory MeetingRepository. Set fail=True to simulate an outage."""

    def __init__(self) -> None:
        self._meetings: dict[str, Meeting] = {}
        self._rooms: dict[str, Room] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise StoreUnavailable("meeting store unavailable")

    def add(self, meeting: Meeting) -> Meeting:
        self._meetings[meeting.id] = meeting
        return meeting

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
        self._check()
        now = datetime.now(timezone.utc)
        meeting = Meeting(
            id=str(uuid.uuid4()),
            title=data.title,
            description=data.description,
            starts_at=data.starts_at,
            duration_minutes=data.duration_minutes,
            organizer_id=organizer_id,
            participants=[str(p).lower() for p in data.participants],
            kind=data.kind,
            hosted=data.hosted,
            room_id=data.room_id,
            provider_account_id=provider_account_id,
            provider_meeting_id=provider_meeting_id,
            join_url=join_url,
            start_url=start_url,
            access_password=access_password or data.access_password,
            created_at=now,
            updated_at=now,
        )
        return self.add(meeting)

    async def get_meeting(self, meeting_id: str, include_deleted: bool = False) -> Meeting | None:
        self._check()
        meeting = self._meetings.get(meeting_id)
        if meeting is None or (meeting.is_deleted and not include_deleted):
            return None
        return meeting

    async def list_meetings(self, filters: MeetingFilter | None = None) -> list[Meeting]:
        self._check()
        filters = filters or MeetingFilter()
        result = list(self._meetings.values())
        if not filters.include_deleted:
            result = [m for m in result if not m.is_deleted]
        if filters.room_id:
            result = [m for m in result if m.room_id == filters.room_id]
        if filters.organizer_id:
            result = [m for m in result if m.organizer_id == filters.organizer_id]
        if filters.kind is not None:
            result = [m for m in result if m.kind == filters.kind]
        if filters.hosted is not None:
            result = [m for m in result if m.hosted == filters.hosted]
        if filters.provider_account_id:
            result = [m for m in result if m.provider_account_id == filters.provider_account_id]
        return sorted(result, key=lambda m: m.starts_at)

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
        self._check()
        return [
            m
            for m in sorted(self._meetings.values(), key=lambda m: m.starts_at)
            if not m.is_deleted
            and m.overlaps(start, end)
            and m.id != exclude_meeting_id
            and (room_id is None or m.room_id == room_id)
            and (account_id is None or m.provider_account_id == account_id)
            and (not hosted_only or m.provider_account_id is not None)
        ]

    async def update_meeting(self, meeting_id: str, **fields: Any) -> Meeting | None:
        self._check()
        meeting = self._meetings.get(meeting_id)
        if meeting is None or meeting.is_deleted:
            return None
        if "participants" in fields:
            fields["participants"] = [str(p).lower() for p in fields["participants"]]
        fields["updated_at"] = datetime.now(timezone.utc)
        updated = meeting.model_copy(update=fields)
        self._meetings[meeting_id] = updated
        return updated

    async def soft_delete_meeting(self, meeting_id: str) -> bool:
        self._check()
        meeting = self._meetings.get(meeting_id)
        if meeting is None or meeting.is_deleted:
            return False
        self._meetings[meeting_id] = meeting.model_copy(
            update={"deleted_at": datetime.now(timezone.utc)}
        )
        return True

    async def create_room(self, data: RoomCreate) -> Room:
        room = Room(
            id=str(uuid.uuid4()),
            name=data.name,
            capacity=data.capacity,
            location=data.location,
            created_at=datetime.now(timezone.utc),
        )
        self._rooms[room.id] = room
        return room

    async def get_room(self, room_id: str) -> Room | None:
        room = self._rooms.get(room_id)
        if room is None or room.deleted_at is not None:
            return None
        return room

    async def list_rooms(self) -> list[Room]:
        return sorted(
            (r for r in self._rooms.values() if r.deleted_at is None), key=lambda r: r.name
        )

    async def update_room(self, room_id: str, **fields: Any) -> Room | None:
        room = await self.get_room(room_id)
        if room is None:
            return None
        updated = room.model_copy(update=fields)
        self._rooms[room_id] = updated
        return updated

    async def soft_delete_room(self, room_id: str) -> bool:
        room = await self.get_room(room_id)
        if room is None:
            return False
        self._rooms[room_id] = room.model_copy(update={"deleted_at": datetime.now(timezone.utc)})
        return True


class InMemoryAccountRepository:
    """In-memory ProviderAccountRepository keeping creation order."""

    def __init__(self, max_concurrent_meetings: int = 2) -> None:
        self._accounts: dict[str, ProviderAccount] = {}
        self._max_concurrent = max_concurrent_meetings
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise StoreUnavailable("account store unavailable")

    def _duplicate(self, client_id: str, account_id: str, exclude: str | None = None) -> bool:
        return any(
            a.client_id == client_id and a.account_id == account_id
            for a in self._accounts.values()
            if a.deleted_at is None and a.id != exclude
        )

    async def create_account(self, data: ProviderAccountCreate) -> ProviderAccount:
        self._check()
        if self._duplicate(data.client_id, data.account_id):
            raise DuplicateAccountError(data.client_id)
        account = ProviderAccount(
            id=str(uuid.uuid4()),
            client_id=data.client_id,
            client_secret=data.client_secret,
            account_id=data.account_id,
            host_key=data.host_key,
            is_active=data.is_active,
            max_concurrent_meetings=self._max_concurrent,
            created_at=datetime.now(timezone.utc),
        )
        self._accounts[account.id] = account
        return account

    async def get_account(self, account_id: str) -> ProviderAccount | None:
        self._check()
        account = self._accounts.get(account_id)
        if account is None or account.deleted_at is not None:
            return None
        return account

    async def list_accounts(self, include_inactive: bool = False) -> list[ProviderAccount]:
        self._check()
        return [
            a
            for a in self._accounts.values()
            if a.deleted_at is None and (include_inactive or a.is_active)
        ]

    async def update_account(self, account_id: str, /, **fields: Any) -> ProviderAccount | None:
        self._check()
        account = await self.get_account(account_id)
        if account is None:
            return None
        client_id = fields.get("client_id", account.client_id)
        provider_account = fields.get("account_id", account.account_id)
        if self._duplicate(client_id, provider_account, exclude=account_id):
            raise DuplicateAccountError(client_id)
        updated = account.model_copy(update=fields)
        self._accounts[account_id] = updated
        return updated

    async def soft_delete_account(self, account_id: str) -> bool:
        self._check()
        account = await self.get_account(account_id)
        if account is None:
            return False
        self._accounts[account_id] = account.model_copy(
            update={"deleted_at": datetime.now(timezone.utc)}
        )
        return True


class InMemoryUserRepository:
    def __init__(self) -> None:
        self._users: dict[str, User] = {}

    async def create_user(
        self,
        email: str,
        name: str,
        hashed_password: str | None,
        role: UserRole = UserRole.member,
    ) -> User:
        if any(u.email == email.lower() for u in self._users.values()):
            raise DuplicateEmailError(email)
        user = User(
            id=str(uuid.uuid4()),
            email=email.lower(),
            name=name,
            role=role,
            hashed_password=hashed_password,
            created_at=datetime.now(timezone.utc),
        )
        self._users[user.id] = user
        return user

    async def get_user(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        return next((u for u in self._users.values() if u.email == email.lower()), None)

    async def list_users(self) -> list[User]:
        return list(self._users.values())

    async def count_users(self) -> int:
        return len(self._users)

    async def update_user(self, user_id: str, **fields: object) -> User | None:
        user = self._users.get(user_id)
        if user is None:
            return None
        updated = user.model_copy(update=fields)
        self._users[user_id] = updated
        return updated

    async def delete_user(self, user_id: str) -> bool:
        return self._users.pop(user_id, None) is not None


class InMemorySettingsRepository:
    def __init__(self) -> None:
        self._settings: AppSettings | None = None

    async def get_or_create(self) -> AppSettings:
        if self._settings is None:
            self._settings = AppSettings(updated_at=datetime.now(timezone.utc))
        return self._settings

    async def update(self, **fields: object) -> AppSettings:
        current = await self.get_or_create()
        fields["updated_at"] = datetime.now(timezone.utc)
        self._settings = current.model_copy(update=fields)
        return self._settings


class FakeZoomClient:
    """Records provider calls. Set fail_on to an operation name to raise ProviderError."""

    def __init__(self) -> None:
        self.created: list[dict] = []
        self.updated: list[tuple[str, dict]] = []
        self.deleted: list[str] = []
        self.invalidated: list[str] = []
        self.remote: dict[str, list[ProviderMeeting]] = {}
        self.valid_credentials = True
        self.fail_on: set[str] = set()
        self._counter = 0

    async def create_meeting(self, account, *, topic, start_time, duration_minutes, agenda=None, password=None):
        if "create" in self.fail_on:
            raise ProviderError("Failed to create provider meeting", 500)
        self._counter += 1
        meeting_id = str(880000 + self._counter)
        self.created.append({"account_id": account.id, "topic": topic, "start_time": start_time})
        return ProviderMeeting(
            provider_meeting_id=meeting_id,
            topic=topic,
            start_time=start_time,
            duration_minutes=duration_minutes,
            join_url=f"https://zoom.example/j/{meeting_id}",
            start_url=f"https://zoom.example/s/{meeting_id}",
            password=password or "abc123",
            account_id=account.id,
        )

    async def update_meeting(self, account, provider_meeting_id, **changes):
        if "update" in self.fail_on:
            raise ProviderError("Failed to update provider meeting", 500)
        self.updated.append((provider_meeting_id, changes))

    async def delete_meeting(self, account, provider_meeting_id):
        if "delete" in self.fail_on:
            raise ProviderError("Failed to delete provider meeting", 500)
        self.deleted.append(provider_meeting_id)

    async def list_meetings(self, account):
        if "list" in self.fail_on:
            raise ProviderError("Failed to list provider meetings", 503)
        return list(self.remote.get(account.id, []))

    async def verify_credentials(self, client_id, client_secret, account_id):
        return self.valid_credentials

    def invalidate_token(self, account_id):
        self.invalidated.append(account_id)


# ── Core fixtures ────────────────────────────────────────────────────────────


@pytest.fixture
def meeting_repo() -> InMemoryMeetingRepository:
    return InMemoryMeetingRepository()


@pytest.fixture
def account_repo() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def zoom() -> FakeZoomClient:
    return FakeZoomClient()


@pytest.fixture
def directory(meeting_repo) -> MeetingDirectory:
    return MeetingDirectory(meeting_repo)


@pytest.fixture
def capacity(directory, account_repo) -> CapacityEvaluator:
    return CapacityEvaluator(directory, account_repo)


@pytest.fixture
def detector(directory, capacity) -> ConflictDetector:
    return ConflictDetector(directory, capacity)


@pytest.fixture
def service(meeting_repo, directory, detector, capacity, account_repo, zoom) -> MeetingService:
    return MeetingService(meeting_repo, directory, detector, capacity, account_repo, zoom)


@pytest.fixture
def notifier(capacity, detector, directory) -> CapacityNotifier:
    return CapacityNotifier(capacity, detector, directory)


@pytest.fixture
def make_meeting(meeting_repo):
    """Seed a stored meeting. Defaults: internal, 30 minutes, not hosted."""

    def _make(starts_at: datetime, duration_minutes: int = 30, **fields: Any) -> Meeting:
        values: dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "title": "Existing meeting",
            "starts_at": starts_at,
            "duration_minutes": duration_minutes,
            "organizer_id": str(uuid.uuid4()),
            "kind": MeetingKind.internal,
            "created_at": datetime.now(timezone.utc),
        }
        if fields.get("provider_account_id"):
            values["hosted"] = True
        values.update(fields)
        return meeting_repo.add(Meeting(**values))

    return _make


@pytest.fixture
def make_account(account_repo):
    """Create a provider account; returns the stored ProviderAccount."""

    async def _make(client_id: str | None = None, **fields: Any) -> ProviderAccount:
        data = ProviderAccountCreate(
            client_id=client_id or f"client-{uuid.uuid4().hex[:8]}",
            client_secret="s3cret-value-1234",
            account_id=fields.pop("account_id", "acct-1"),
            **fields,
        )
        return await account_repo.create_account(data)

    return _make


def upcoming(days: int = 1, hour: int = 10, minute: int = 0) -> datetime:
    """A UTC datetime days ahead of today at hour:minute."""
    base = datetime.now(timezone.utc).replace(hour=hour, minute=minute, second=0, microsecond=0)
    return base + timedelta(days=days)


@pytest.fixture
def future():
    return upcoming


# ── App fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture
def user_repo() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def settings_repo() -> InMemorySettingsRepository:
    return InMemorySettingsRepository()


@pytest.fixture
def app(
    meeting_repo,
    account_repo,
    user_repo,
    settings_repo,
    directory,
    capacity,
    detector,
    service,
    notifier,
    zoom,
) -> FastAPI:
    application = FastAPI()
    application.include_router(v1_router)
    application.state.user_repository = user_repo
    application.state.settings_repository = settings_repo
    application.state.meeting_repository = meeting_repo
    application.state.provider_account_repository = account_repo
    application.state.meeting_directory = directory
    application.state.capacity_evaluator = capacity
    application.state.conflict_detector = detector
    application.state.meeting_service = service
    application.state.capacity_notifier = notifier
    application.state.zoom_client = zoom
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def _bearer(user: User) -> dict[str, str]:
    token = create_access_token({"sub": user.id, "email": user.email, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def admin_user(user_repo) -> User:
    return await user_repo.create_user(
        "admin@example.com", "Ada Admin", hash_password(TEST_PASSWORD), UserRole.admin
    )


@pytest_asyncio.fixture
async def member_user(user_repo) -> User:
    return await user_repo.create_user(
        "member@example.com", "Max Member", hash_password(TEST_PASSWORD), UserRole.member
    )


@pytest_asyncio.fixture
async def other_member(user_repo) -> User:
    return await user_repo.create_user(
        "other@example.com", "Olga Other", hash_password(TEST_PASSWORD), UserRole.member
    )


@pytest.fixture
def admin_headers(admin_user) -> dict[str, str]:
    return _bearer(admin_user)


@pytest.fixture
def member_headers(member_user) -> dict[str, str]:
    return _bearer(member_user)


@pytest.fixture
def other_headers(other_member) -> dict[str, str]:
    return _bearer(other_member)


@pytest.fixture
def password() -> str:
    """Plain-text password of every seeded user."""
    return TEST_PASSWORD
