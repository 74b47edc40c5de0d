import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Index, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


KYC_DOCUMENT_STATUSES = ("pending", "approved", "rejected")


class KycDocument(Base):
    __tablename__ = "kyc_documents"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_kyc_documents_status",
        ),
        Index("ix_kyc_documents_user_type", "user_id", "document_type"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    document_type = Column(String(50), nullable=False)
    file_path = Column(String(1024), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
