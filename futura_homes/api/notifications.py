"""
Notification endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends

from .deps import FuturaSystem, get_system
from .responses import envelope
from .schemas import MarkAllReadRequest, BroadcastRequest
from ..exceptions import ValidationError


router = APIRouter()


@router.get("")
async def list_notifications(
    recipient_id: Optional[str] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 50,
    system: FuturaSystem = Depends(get_system)
):
    notifications = system.notification_engine.list_notifications(recipient_id, role, status, limit)
    return envelope(notifications, total=len(notifications))


@router.get("/unread-count")
async def get_unread_count(
    recipient_id: Optional[str] = None,
    system: FuturaSystem = Depends(get_system)
):
    if not recipient_id:
        raise ValidationError("recipient_id is required")
    return envelope({"unread_count": system.notification_engine.get_unread_count(recipient_id)})


@router.post("/read-all")
async def mark_all_as_read(
    request: MarkAllReadRequest,
    system: FuturaSystem = Depends(get_system)
):
    updated = system.notification_engine.mark_all_as_read(request.recipient_id)
    return envelope({"updated": updated}, "Notifications marked as read")


@router.post("/broadcast")
async def broadcast(
    request: BroadcastRequest,
    system: FuturaSystem = Depends(get_system)
):
    """Send a system notification to one or more roles"""
    notifications = system.notification_engine.broadcast(
        request.title, request.message, request.roles,
        priority=request.priority, action_url=request.action_url
    )
    return envelope(notifications, "Notification sent", total=len(notifications))


@router.post("/{notification_id}/read")
async def mark_as_read(
    notification_id: str,
    system: FuturaSystem = Depends(get_system)
):
    return envelope(system.notification_engine.mark_as_read(notification_id), "Notification marked as read")
