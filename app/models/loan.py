import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class Loan(Base):
    __tablename__ = "loans"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_loans_amount_positive"),
        CheckConstraint("term_months >= 1", name="ck_loans_term_positive"),
        CheckConstraint("interest_rate >= 0", name="ck_loans_rate_nonneg"),
        CheckConstraint("monthly_payment >= 0", name="ck_loans_payment_nonneg"),
        CheckConstraint("total_repayment >= 0", name="ck_loans_total_nonneg"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    # One loan per approval request; the unique index backs the idempotency guard.
    approval_request_id = Column(
        UUID(as_uuid=True),
        ForeignKey("approval_requests.id", ondelete="RESTRICT"),
        nullable=True,
        unique=True,
    )
    amount = Column(Numeric(14, 2), nullable=False)
    term_months = Column(Integer, nullable=False)
    interest_rate = Column(Numeric(6, 2), nullable=False)
    monthly_payment = Column(Numeric(14, 2), nullable=False)
    total_repayment = Column(Numeric(14, 2), nullable=False)
    purpose = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="approved")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
