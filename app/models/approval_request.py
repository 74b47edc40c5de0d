import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID

from app.db.base import Base


REQUEST_TYPES = (
    "loan_application",
    "kyc_document",
    "profile_update",
    "payment",
    "document_upload",
)

REQUEST_STATUSES = (
    "pending",
    "under_review",
    "approved",
    "rejected",
    "requires_info",
)

TERMINAL_STATUSES = ("approved", "rejected")

PRIORITIES = ("low", "normal", "high", "urgent")


class ApprovalRequest(Base):
    __tablename__ = "approval_requests"
    __table_args__ = (
        CheckConstraint(
            "request_type IN ('loan_application', 'kyc_document', 'profile_update', 'payment', 'document_upload')",
            name="ck_approval_requests_type",
        ),
        CheckConstraint(
            "status IN ('pending', 'under_review', 'approved', 'rejected', 'requires_info')",
            name="ck_approval_requests_status",
        ),
        CheckConstraint(
            "priority IN ('low', 'normal', 'high', 'urgent')",
            name="ck_approval_requests_priority",
        ),
        CheckConstraint(
            "(status IN ('approved', 'rejected')) = (reviewed_at IS NOT NULL AND reviewer_id IS NOT NULL)",
            name="ck_approval_requests_review_stamp",
        ),
        CheckConstraint(
            "reference_id IS NULL OR status = 'approved'",
            name="ck_approval_requests_reference_approved",
        ),
        Index("ix_approval_requests_status_created", "status", "created_at"),
        Index("ix_approval_requests_type_status", "request_type", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    request_type = Column(String(30), nullable=False)
    request_data = Column(JSONB, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="pending")
    priority = Column(String(10), nullable=False, default="normal")
    assigned_to = Column(UUID(as_uuid=True), nullable=True, index=True)
    review_notes = Column(Text, nullable=True)
    risk_score = Column(Numeric(5, 2), nullable=True)
    auto_approve_eligible = Column(Boolean, nullable=False, default=False)
    compliance_flags = Column(JSONB, nullable=False, default=list)
    reference_id = Column(UUID(as_uuid=True), nullable=True)
    reference_table = Column(String(50), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewer_id = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
