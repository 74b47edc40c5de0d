import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID

from app.db.base import Base


NOTIFICATION_TYPES = ("new_request", "status_update", "assignment", "reminder")


class ApprovalNotification(Base):
    __tablename__ = "approval_notifications"
    __table_args__ = (
        CheckConstraint(
            "notification_type IN ('new_request', 'status_update', 'assignment', 'reminder')",
            name="ck_approval_notifications_type",
        ),
        CheckConstraint(
            "is_read OR read_at IS NULL",
            name="ck_approval_notifications_read_at",
        ),
        Index("ix_approval_notifications_recipient_sent", "recipient_id", "sent_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    approval_request_id = Column(
        UUID(as_uuid=True),
        ForeignKey("approval_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    recipient_id = Column(UUID(as_uuid=True), nullable=False)
    notification_type = Column(String(20), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    sent_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    read_at = Column(DateTime(timezone=True), nullable=True)
    # "metadata" is reserved on declarative classes
    notification_metadata = Column("metadata", JSONB, nullable=False, default=dict)
