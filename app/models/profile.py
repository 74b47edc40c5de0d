from sqlalchemy import Boolean, Column, DateTime, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class Profile(Base):
    """Applicant display data keyed by the identity provider's user id."""

    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=True), primary_key=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone_number = Column(String(50), nullable=True)
    employment_status = Column(String(50), nullable=True)
    monthly_income = Column(Numeric(14, 2), nullable=True)
    verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
