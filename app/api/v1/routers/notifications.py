from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.db.session import get_db
from app.schemas.notifications import NotificationDTO, NotificationListResponse
from app.services import notifications
from app.services.store_guard import guarded

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse, summary="Current user's notifications, newest first")
async def list_notifications(
    current_user: deps.CurrentUser = Depends(
        deps.require_permission(PermissionCode.NOTIFICATION_VIEW_OWN)
    ),
    db: AsyncSession = Depends(get_db),
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
) -> NotificationListResponse:
    items = await guarded(
        notifications.list_notifications(db, current_user.id, unread_only=unread_only, limit=limit),
        operation="notification.list",
    )
    unread = await guarded(notifications.count_unread(db, current_user.id), operation="notification.count")
    return NotificationListResponse(
        items=[NotificationDTO.model_validate(item) for item in items],
        unread_count=unread,
    )


@router.post("/{notification_id}/read", response_model=NotificationDTO, summary="Mark a notification as read")
async def mark_notification_read(
    notification_id: UUID,
    current_user: deps.CurrentUser = Depends(
        deps.require_permission(PermissionCode.NOTIFICATION_VIEW_OWN)
    ),
    db: AsyncSession = Depends(get_db),
) -> NotificationDTO:
    notification = await guarded(
        notifications.mark_read(db, notification_id, recipient_id=current_user.id),
        operation="notification.mark_read",
    )
    return NotificationDTO.model_validate(notification)
