from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.settings import settings


class RequestType(str, Enum):
    LOAN_APPLICATION = "loan_application"
    KYC_DOCUMENT = "kyc_document"
    PROFILE_UPDATE = "profile_update"
    PAYMENT = "payment"
    DOCUMENT_UPLOAD = "document_upload"


class RequestStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    REQUIRES_INFO = "requires_info"


class RequestPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class LoanApplicationPayload(BaseModel):
    """Shape a loan application must have before it can enter review."""

    model_config = ConfigDict(extra="allow")

    amount: Decimal = Field(gt=0)
    term_months: int = Field(ge=1)
    purpose: str | None = None
    interest_rate: Decimal | None = None
    employment_status: str | None = None
    monthly_income: Decimal | None = Field(default=None, ge=0)
    monthly_expenses: Decimal | None = Field(default=None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def accept_term_alias(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("term_months") is None and "term" in data:
            return {**data, "term_months": data["term"]}
        return data

    @field_validator("interest_rate")
    @classmethod
    def within_apr_limit(cls, v: Decimal | None) -> Decimal | None:
        if v is None:
            return v
        limit = Decimal(str(settings.apr_limit_percent))
        if v <= 0 or v > limit:
            raise ValueError(f"interest_rate must be greater than 0 and at most {limit}%")
        return v


class KycDocumentPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    document_id: UUID
    document_type: str = Field(min_length=1)


class ApprovalRequestCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    request_type: RequestType
    request_data: dict[str, Any]
    priority: RequestPriority = RequestPriority.NORMAL


class ApprovalStatusUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    status: RequestStatus
    notes: str | None = None
    assigned_to: UUID | None = None


class ApprovalRequestDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    request_type: str
    request_data: dict[str, Any]
    status: str
    priority: str
    assigned_to: UUID | None = None
    review_notes: str | None = None
    risk_score: Decimal | None = None
    auto_approve_eligible: bool = False
    compliance_flags: list[Any] = []
    reference_id: UUID | None = None
    reference_table: str | None = None
    reviewed_at: datetime | None = None
    reviewer_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    user_first_name: str | None = None
    user_last_name: str | None = None
    user_email: str | None = None


class ApprovalRequestListResponse(BaseModel):
    items: list[ApprovalRequestDTO]
    total: int
    degraded: bool = False


class ApprovalHistoryDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    approval_request_id: UUID
    previous_status: str | None = None
    new_status: str
    changed_by: UUID
    change_reason: str | None = None
    changed_at: datetime | None = None


class ProcessOutcomeDTO(BaseModel):
    request_id: UUID
    request_type: str
    loan_id: UUID | None = None
    already_processed: bool = False
    kyc_document_updated: bool | None = None
    profile_verified: bool | None = None
    errors: list[str] = []


class StatusUpdateResponse(BaseModel):
    request: ApprovalRequestDTO
    follow_up: ProcessOutcomeDTO | None = None


class ApprovalStatisticsDTO(BaseModel):
    total: int
    pending: int
    under_review: int
    approved: int
    rejected: int
    by_type: dict[str, int]
    by_priority: dict[str, int]
    avg_processing_time_hours: float
