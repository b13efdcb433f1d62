"""Meeting room endpoints. Reads are open to users, writes are admin-only."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from src.meetingsync.api.deps import get_component, get_current_user, require_admin
from src.meetingsync.meetings.schemas import Room, RoomCreate, RoomUpdate, ensure_utc
from src.meetingsync.scheduling.schemas import MeetingSummary
from src.meetingsync.users.schemas import User

router = APIRouter(prefix="/rooms", tags=["rooms"])


class RoomResponse(BaseModel):
    id: str
    name: str
    capacity: int
    location: str
    label: str
    created_at: str | None = None


class RoomAvailability(BaseModel):
    room: RoomResponse
    available: bool
    bookings: list[MeetingSummary] = Field(default_factory=list)


def _get_meeting_repository(request: Request) -> Any:
    return get_component(request, "meeting_repository", "Meeting repository")


def _room_to_response(room: Room) -> RoomResponse:
    return RoomResponse(
        id=room.id,
        name=room.name,
        capacity=room.capacity,
        location=room.location,
        label=room.label,
        created_at=room.created_at.isoformat() if room.created_at else None,
    )


@router.get("", response_model=list[RoomResponse])
async def list_rooms(request: Request, current_user: User = Depends(get_current_user)):
    repo = _get_meeting_repository(request)
    return [_room_to_response(r) for r in await repo.list_rooms()]


@router.get("/availability", response_model=list[RoomAvailability])
async def room_availability(
    request: Request,
    start: datetime = Query(...),
    end: datetime = Query(...),
    current_user: User = Depends(get_current_user),
):
    """Every room with its bookings overlapping [start, end)."""
    start, end = ensure_utc(start), ensure_utc(end)
    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end must be after start",
        )
    repo = _get_meeting_repository(request)
    directory = get_component(request, "meeting_directory", "Meeting directory")
    result = []
    for room in await repo.list_rooms():
        bookings = await directory.overlapping(start, end, room_id=room.id)
        result.append(
            RoomAvailability(
                room=_room_to_response(room),
                available=not bookings,
                bookings=[MeetingSummary.from_meeting(m) for m in bookings],
            )
        )
    return result


@router.post("", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(body: RoomCreate, request: Request, admin: User = Depends(require_admin)):
    repo = _get_meeting_repository(request)
    return _room_to_response(await repo.create_room(body))


@router.patch("/{room_id}", response_model=RoomResponse)
async def update_room(
    room_id: str,
    body: RoomUpdate,
    request: Request,
    admin: User = Depends(require_admin),
):
    repo = _get_meeting_repository(request)
    if await repo.get_room(room_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Room not found: {room_id}")
    fields = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    room = await repo.update_room(room_id, **fields)
    return _room_to_response(room)


@router.delete("/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_room(room_id: str, request: Request, admin: User = Depends(require_admin)):
    repo = _get_meeting_repository(request)
    if await repo.get_room(room_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Room not found: {room_id}")
    await repo.soft_delete_room(room_id)
