from sqlalchemy import Column, DateTime, Integer, MetaData, Numeric, String, Table, Text
from sqlalchemy.dialects.postgresql import UUID

from app.core.settings import settings

# Views are created by migrations, never by metadata.create_all().
view_metadata = MetaData()

loan_applications_unified = Table(
    settings.unified_view_name,
    view_metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    Column("source", String(10), nullable=False),
    Column("user_id", UUID(as_uuid=True), nullable=False),
    Column("approval_request_id", UUID(as_uuid=True), nullable=True),
    Column("status", String(20), nullable=False),
    Column("priority", String(10), nullable=True),
    Column("amount", Numeric(14, 2), nullable=True),
    Column("term_months", Integer, nullable=True),
    Column("purpose", Text, nullable=True),
    Column("applicant_first_name", String(100), nullable=True),
    Column("applicant_last_name", String(100), nullable=True),
    Column("applicant_email", String(255), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("employment_status", String(50), nullable=True),
    Column("monthly_income", Numeric(14, 2), nullable=True),
)
