"""Conflict notification queue endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from src.meetingsync.api.deps import get_component, get_current_user
from src.meetingsync.scheduling.schemas import ConflictNotification
from src.meetingsync.users.schemas import User

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[ConflictNotification])
async def list_notifications(
    request: Request,
    unread_only: bool = False,
    current_user: User = Depends(get_current_user),
):
    """Queued conflict notifications, newest first."""
    notifier = get_component(request, "capacity_notifier", "Capacity notifier")
    queue = notifier.get_notification_queue()
    if unread_only:
        queue = [n for n in queue if not n.is_read]
    return queue


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    """Unknown ids are accepted and ignored."""
    notifier = get_component(request, "capacity_notifier", "Capacity notifier")
    return {"marked": notifier.mark_notification_as_read(notification_id)}


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_notifications(request: Request, current_user: User = Depends(get_current_user)):
    notifier = get_component(request, "capacity_notifier", "Capacity notifier")
    notifier.clear_notification_queue()
