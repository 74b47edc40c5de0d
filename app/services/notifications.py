from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.approval_notification import NOTIFICATION_TYPES, ApprovalNotification
from app.services.audit import record_audit_event
from app.services.workflow_errors import AccessDenied, NotificationNotFound

logger = logging.getLogger(__name__)


def notify(
    db: AsyncSession,
    request_id,
    notification_type: str,
    recipients: Iterable[UUID | None],
    *,
    title: str,
    message: str,
    metadata: dict[str, Any] | None = None,
) -> list[ApprovalNotification]:
    """Stage one notification per distinct recipient.

    Rows join the caller's transaction; nothing is committed here.
    """
    if notification_type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {notification_type}")
    sent_at = datetime.now(timezone.utc)
    seen: set[str] = set()
    created: list[ApprovalNotification] = []
    for recipient in recipients:
        if recipient is None or str(recipient) in seen:
            continue
        seen.add(str(recipient))
        notification = ApprovalNotification(
            approval_request_id=request_id,
            recipient_id=recipient,
            notification_type=notification_type,
            title=title,
            message=message,
            is_read=False,
            sent_at=sent_at,
            read_at=None,
            notification_metadata=dict(metadata or {}),
        )
        db.add(notification)
        created.append(notification)
    logger.info(
        "Notifications staged",
        extra={
            "approval_request_id": str(request_id),
            "notification_type": notification_type,
            "recipient_count": len(created),
        },
    )
    return created


async def list_notifications(
    db: AsyncSession,
    recipient_id,
    *,
    unread_only: bool = False,
    limit: int | None = None,
) -> list[ApprovalNotification]:
    stmt = select(ApprovalNotification).where(ApprovalNotification.recipient_id == recipient_id)
    if unread_only:
        stmt = stmt.where(ApprovalNotification.is_read.is_(False))
    stmt = stmt.order_by(ApprovalNotification.sent_at.desc(), ApprovalNotification.id.desc())
    if limit:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def count_unread(db: AsyncSession, recipient_id) -> int:
    stmt = select(func.count(ApprovalNotification.id)).where(
        ApprovalNotification.recipient_id == recipient_id,
        ApprovalNotification.is_read.is_(False),
    )
    result = await db.execute(stmt)
    return int(result.scalar_one_or_none() or 0)


async def mark_read(db: AsyncSession, notification_id, *, recipient_id) -> ApprovalNotification:
    """Flip ``is_read`` once; later calls leave ``read_at`` untouched."""
    stmt = (
        select(ApprovalNotification)
        .where(ApprovalNotification.id == notification_id)
        .with_for_update()
    )
    result = await db.execute(stmt)
    notification = result.scalar_one_or_none()
    if notification is None:
        raise NotificationNotFound(
            "Notification not found", details={"notification_id": str(notification_id)}
        )
    if str(notification.recipient_id) != str(recipient_id):
        raise AccessDenied(
            "Notification belongs to another user",
            details={"notification_id": str(notification_id)},
        )
    if notification.is_read:
        return notification

    notification.is_read = True
    notification.read_at = datetime.now(timezone.utc)
    db.add(notification)
    await db.commit()
    record_audit_event(
        "notification.read",
        actor_id=recipient_id,
        resource_type="approval_notification",
        resource_id=notification.id,
    )
    return notification
