"""Downstream effects of an approved request.

``process_loan_application`` is the one operation that must be all-or-nothing:
the loan row and the request's back-reference commit together or not at all.
The KYC path is a pair of independently idempotent steps.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.settings import settings
from app.models.approval_request import ApprovalRequest
from app.models.kyc_document import KycDocument
from app.models.loan import Loan
from app.models.profile import Profile
from app.services import loan_terms
from app.services.audit import record_audit_event
from app.services.workflow_errors import (
    AlreadyProcessed,
    ApprovalValidationError,
    NotApproved,
    RequestNotFound,
    WorkflowError,
    WrongType,
)

logger = logging.getLogger(__name__)

LOANS_TABLE = "loans"


@dataclass
class ProcessOutcome:
    request_id: UUID
    request_type: str
    loan_id: UUID | None = None
    already_processed: bool = False
    kyc_document_updated: bool | None = None
    profile_verified: bool | None = None
    errors: list[str] = field(default_factory=list)


def _terms_from_request(request: ApprovalRequest) -> loan_terms.LoanTerms:
    data = request.request_data or {}
    amount = data.get("amount")
    term = data.get("term_months", data.get("term"))
    if amount is None or term is None:
        raise ApprovalValidationError(
            "Loan request is missing amount or term",
            details={"request_id": str(request.id)},
        )
    rate = data.get("interest_rate")
    if rate in (None, ""):
        rate = settings.loan_interest_rate_percent
    try:
        return loan_terms.compute_loan_terms(Decimal(str(amount)), int(term), rate)
    except (ArithmeticError, TypeError, ValueError) as exc:
        raise ApprovalValidationError(
            "Loan request has non-numeric terms",
            details={"request_id": str(request.id)},
        ) from exc


async def _load_locked(db: AsyncSession, request_id) -> ApprovalRequest:
    # Refresh from the locked row; an identity-map copy may predate a concurrent commit.
    stmt = (
        select(ApprovalRequest)
        .where(ApprovalRequest.id == request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    request = result.scalar_one_or_none()
    if request is None:
        raise RequestNotFound(
            "Approval request not found", details={"request_id": str(request_id)}
        )
    return request


async def _convert_to_loan(db: AsyncSession, request_id) -> Loan:
    request = await _load_locked(db, request_id)
    if request.reference_id is not None:
        raise AlreadyProcessed(request.reference_id)
    if request.status != "approved":
        raise NotApproved(
            "Only approved requests can be processed",
            details={"request_id": str(request_id), "status": request.status},
        )
    if request.request_type != "loan_application":
        raise WrongType(
            "Only loan applications can be converted into loans",
            details={"request_id": str(request_id), "request_type": request.request_type},
        )

    terms = _terms_from_request(request)
    now = datetime.now(timezone.utc)
    loan = Loan(
        user_id=request.user_id,
        approval_request_id=request.id,
        amount=terms.amount,
        term_months=terms.term_months,
        interest_rate=terms.interest_rate,
        monthly_payment=terms.monthly_payment,
        total_repayment=terms.total_repayment,
        purpose=(request.request_data or {}).get("purpose"),
        status="approved",
        created_at=now,
        updated_at=now,
    )
    db.add(loan)
    await db.flush()

    request.reference_id = loan.id
    request.reference_table = LOANS_TABLE
    request.updated_at = now
    db.add(request)
    await db.flush()
    return loan


async def process_loan_application(db: AsyncSession, request_id, *, actor_id=None) -> ProcessOutcome:
    """Turn an approved loan application into exactly one loan.

    The row lock, precondition checks, insert and back-reference share one
    transaction. A repeat call reports the loan created the first time.
    """
    try:
        loan = await _convert_to_loan(db, request_id)
        await db.commit()
    except AlreadyProcessed as exc:
        await db.rollback()
        logger.info(
            "Loan application already processed",
            extra={"approval_request_id": str(request_id), "loan_id": str(exc.loan_id)},
        )
        return ProcessOutcome(
            request_id=request_id,
            request_type="loan_application",
            loan_id=exc.loan_id,
            already_processed=True,
        )
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Loan created from approval request",
        extra={"approval_request_id": str(request_id), "loan_id": str(loan.id)},
    )
    record_audit_event(
        "loan.create",
        actor_id=actor_id,
        resource_type="loan",
        resource_id=loan.id,
        new_value={
            "approval_request_id": request_id,
            "amount": loan.amount,
            "term_months": loan.term_months,
            "monthly_payment": loan.monthly_payment,
        },
    )
    return ProcessOutcome(request_id=request_id, request_type="loan_application", loan_id=loan.id)


async def _mark_document_approved(db: AsyncSession, request: ApprovalRequest) -> bool:
    raw_id = (request.request_data or {}).get("document_id")
    try:
        document_id = UUID(str(raw_id))
    except ValueError:
        return False
    result = await db.execute(select(KycDocument).where(KycDocument.id == document_id))
    document = result.scalar_one_or_none()
    if document is None:
        return False
    if str(document.user_id) != str(request.user_id):
        logger.warning(
            "KYC request names a document owned by another user",
            extra={
                "approval_request_id": str(request.id),
                "document_id": str(document.id),
                "submitter_id": str(request.user_id),
            },
        )
        return False
    if document.status != "approved":
        document.status = "approved"
        document.approved_at = datetime.now(timezone.utc)
        document.approved_by = request.reviewer_id
        db.add(document)
    return True


async def _verify_profile_if_complete(db: AsyncSession, user_id) -> bool:
    stmt = select(KycDocument.document_type).where(
        KycDocument.user_id == user_id,
        KycDocument.status == "approved",
    )
    result = await db.execute(stmt)
    approved_types = set(result.scalars().all())
    required = set(settings.kyc_required_document_types)
    if not required.issubset(approved_types):
        return False
    profile_result = await db.execute(select(Profile).where(Profile.id == user_id))
    profile = profile_result.scalar_one_or_none()
    if profile is None:
        return False
    if not profile.verified:
        profile.verified = True
        db.add(profile)
    return True


async def process_kyc_document(db: AsyncSession, request_id, *, actor_id=None) -> ProcessOutcome:
    """Approve the referenced document, then verify the user once all required types are in.

    Each step runs in its own savepoint; a failing step is logged and the
    other still runs.
    """
    result = await db.execute(select(ApprovalRequest).where(ApprovalRequest.id == request_id))
    request = result.scalar_one_or_none()
    if request is None:
        raise RequestNotFound(
            "Approval request not found", details={"request_id": str(request_id)}
        )
    if request.request_type != "kyc_document":
        raise WrongType(
            "Only KYC document requests can run the KYC path",
            details={"request_id": str(request_id), "request_type": request.request_type},
        )
    if request.status != "approved":
        raise NotApproved(
            "Only approved requests can be processed",
            details={"request_id": str(request_id), "status": request.status},
        )

    outcome = ProcessOutcome(request_id=request.id, request_type="kyc_document")
    try:
        async with db.begin_nested():
            outcome.kyc_document_updated = await _mark_document_approved(db, request)
    except SQLAlchemyError as exc:
        outcome.kyc_document_updated = False
        outcome.errors.append("kyc_document_update_failed")
        logger.warning(
            "Failed to mark KYC document approved",
            extra={"approval_request_id": str(request_id)},
            exc_info=exc,
        )

    try:
        async with db.begin_nested():
            outcome.profile_verified = await _verify_profile_if_complete(db, request.user_id)
    except SQLAlchemyError as exc:
        outcome.profile_verified = False
        outcome.errors.append("profile_verification_failed")
        logger.warning(
            "Failed to update profile verification",
            extra={"approval_request_id": str(request_id), "user_id": str(request.user_id)},
            exc_info=exc,
        )

    await db.commit()
    record_audit_event(
        "kyc_document.process",
        actor_id=actor_id,
        resource_type="approval_request",
        resource_id=request.id,
        new_value={
            "kyc_document_updated": outcome.kyc_document_updated,
            "profile_verified": outcome.profile_verified,
        },
    )
    return outcome


async def process_request(db: AsyncSession, request_id, *, actor_id=None) -> ProcessOutcome:
    """Dispatch an approved request to the effect its type requires."""
    result = await db.execute(
        select(ApprovalRequest.request_type).where(ApprovalRequest.id == request_id)
    )
    request_type = result.scalar_one_or_none()
    if request_type is None:
        raise RequestNotFound(
            "Approval request not found", details={"request_id": str(request_id)}
        )
    if request_type == "loan_application":
        return await process_loan_application(db, request_id, actor_id=actor_id)
    if request_type == "kyc_document":
        return await process_kyc_document(db, request_id, actor_id=actor_id)
    raise WrongType(
        f"Requests of type '{request_type}' have no downstream processing",
        details={"request_id": str(request_id), "request_type": request_type},
    )


async def run_decision_effects(db: AsyncSession, request: ApprovalRequest, *, actor_id) -> ProcessOutcome | None:
    """Follow-up after a committed approval; failures are reported, never raised."""
    if request.status != "approved" or request.request_type not in ("loan_application", "kyc_document"):
        return None
    try:
        return await process_request(db, request.id, actor_id=actor_id)
    except WorkflowError as exc:
        logger.warning(
            "Follow-up processing failed after approval",
            extra={"approval_request_id": str(request.id), "error_code": exc.code},
            exc_info=exc,
        )
        return ProcessOutcome(
            request_id=request.id,
            request_type=request.request_type,
            errors=[exc.code],
        )
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.warning(
            "Follow-up processing failed after approval",
            extra={"approval_request_id": str(request.id)},
            exc_info=exc,
        )
        return ProcessOutcome(
            request_id=request.id,
            request_type=request.request_type,
            errors=["store_error"],
        )
