from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ApplicationSource(str, Enum):
    APPROVAL = "approval"
    LOAN = "loan"


class UnifiedApplicationDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: UUID
    source: ApplicationSource
    user_id: UUID
    approval_request_id: UUID | None = None
    status: str
    priority: str | None = None
    applicant_name: str
    applicant_email: str | None = None
    amount: Decimal | None = None
    term_months: int | None = None
    purpose: str | None = None
    created_at: datetime
    employment_status: str | None = None
    monthly_income: Decimal | None = None


class UnifiedApplicationListResponse(BaseModel):
    items: list[UnifiedApplicationDTO]
    total: int
    strategy: str
