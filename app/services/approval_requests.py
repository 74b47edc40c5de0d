from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.approval_request import (
    PRIORITIES,
    REQUEST_STATUSES,
    REQUEST_TYPES,
    TERMINAL_STATUSES,
    ApprovalRequest,
)
from app.models.approval_workflow_history import ApprovalWorkflowHistory
from app.models.profile import Profile
from app.schemas.approvals import KycDocumentPayload, LoanApplicationPayload
from app.services import notifications, role_assignment
from app.services.audit import record_audit_event
from app.services.workflow_errors import (
    AccessDenied,
    ApprovalValidationError,
    InvalidTransition,
    RequestNotFound,
)

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"under_review", "approved", "rejected", "requires_info"}),
    "under_review": frozenset({"approved", "rejected", "requires_info"}),
    "requires_info": frozenset({"pending", "under_review"}),
    "approved": frozenset(),
    "rejected": frozenset(),
}

PAYLOAD_MODELS: dict[str, type[BaseModel]] = {
    "loan_application": LoanApplicationPayload,
    "kyc_document": KycDocumentPayload,
}

STATUS_TITLES = {
    "pending": "Request resubmitted",
    "under_review": "Request under review",
    "approved": "Request approved",
    "rejected": "Request rejected",
    "requires_info": "More information required",
}


@dataclass
class ApprovalRequestFilters:
    status: str | None = None
    request_type: str | None = None
    priority: str | None = None
    assigned_to: Any | None = None


@dataclass
class EnrichedApprovalRequest:
    request: ApprovalRequest
    user_first_name: str | None
    user_last_name: str | None
    user_email: str | None


@dataclass
class ApprovalStatistics:
    total: int
    pending: int
    under_review: int
    approved: int
    rejected: int
    by_type: dict[str, int]
    by_priority: dict[str, int]
    avg_processing_time_hours: float


def _now() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_transition(current_status: str, new_status: str) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(current_status, frozenset())


def placeholder_submitter(user_id) -> tuple[str, str, str]:
    return "Unknown", "User", f"User {str(user_id)[:8]}..."


def validate_request_data(request_type: str, request_data: Any) -> dict[str, Any]:
    """Check ``request_data`` against the shape required for ``request_type``.

    Types without a registered payload model only need a non-empty mapping.
    The returned dict keeps unknown keys; recognised aliases are normalized.
    """
    if request_type not in REQUEST_TYPES:
        raise ApprovalValidationError(
            f"Unsupported request type: {request_type}",
            details={"request_type": request_type, "allowed": list(REQUEST_TYPES)},
        )
    if not isinstance(request_data, dict) or not request_data:
        raise ApprovalValidationError(
            "request_data must be a non-empty object",
            details={"request_type": request_type},
        )
    model = PAYLOAD_MODELS.get(request_type)
    if model is None:
        return dict(request_data)
    try:
        parsed = model.model_validate(request_data)
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False)
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ())) or "request_data"
        raise ApprovalValidationError(
            f"{field}: {first.get('msg', 'invalid value')}",
            details={"request_type": request_type, "errors": errors},
        ) from exc

    normalized = dict(request_data)
    if isinstance(parsed, LoanApplicationPayload):
        normalized["term_months"] = parsed.term_months
    return normalized


def _append_history(
    db: AsyncSession,
    request: ApprovalRequest,
    *,
    previous_status: str | None,
    new_status: str,
    changed_by,
    change_reason: str | None,
    changed_at: datetime,
) -> ApprovalWorkflowHistory:
    entry = ApprovalWorkflowHistory(
        approval_request_id=request.id,
        previous_status=previous_status,
        new_status=new_status,
        changed_by=changed_by,
        change_reason=change_reason,
        changed_at=changed_at,
    )
    db.add(entry)
    return entry


def _notification_metadata(request: ApprovalRequest) -> dict[str, Any]:
    return {
        "request_type": request.request_type,
        "status": request.status,
        "priority": request.priority,
    }


async def submit(
    db: AsyncSession,
    *,
    user_id,
    request_type: str,
    request_data: Any,
    priority: str = "normal",
) -> ApprovalRequest:
    payload = validate_request_data(request_type, request_data)
    if priority not in PRIORITIES:
        raise ApprovalValidationError(
            f"Unsupported priority: {priority}",
            details={"priority": priority, "allowed": list(PRIORITIES)},
        )

    now = _now()
    request = ApprovalRequest(
        user_id=user_id,
        request_type=request_type,
        request_data=payload,
        status="pending",
        priority=priority,
        auto_approve_eligible=False,
        compliance_flags=[],
        created_at=now,
        updated_at=now,
    )
    db.add(request)
    await db.flush()

    _append_history(
        db,
        request,
        previous_status=None,
        new_status="pending",
        changed_by=user_id,
        change_reason="Request submitted",
        changed_at=now,
    )
    reviewers = [rid for rid in await role_assignment.reviewer_pool(db) if str(rid) != str(user_id)]
    notifications.notify(
        db,
        request.id,
        "new_request",
        reviewers,
        title="New approval request",
        message=f"A new {request_type.replace('_', ' ')} request is awaiting review",
        metadata=_notification_metadata(request),
    )
    await db.commit()
    record_audit_event(
        "approval_request.submit",
        actor_id=user_id,
        resource_type="approval_request",
        resource_id=request.id,
        new_value={"request_type": request_type, "priority": priority, "status": "pending"},
    )
    return request


async def get_request(db: AsyncSession, request_id, *, for_update: bool = False) -> ApprovalRequest:
    stmt = select(ApprovalRequest).where(ApprovalRequest.id == request_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    request = result.scalar_one_or_none()
    if request is None:
        raise RequestNotFound(
            "Approval request not found", details={"request_id": str(request_id)}
        )
    return request


async def get_request_for_actor(
    db: AsyncSession, request_id, *, actor_id, can_view_all: bool
) -> ApprovalRequest:
    request = await get_request(db, request_id)
    if not can_view_all and str(request.user_id) != str(actor_id):
        raise AccessDenied(
            "You can only view your own requests", details={"request_id": str(request_id)}
        )
    return request


def _apply_filters(stmt, filters: ApprovalRequestFilters):
    if filters.status:
        stmt = stmt.where(ApprovalRequest.status == filters.status)
    if filters.request_type:
        stmt = stmt.where(ApprovalRequest.request_type == filters.request_type)
    if filters.priority:
        stmt = stmt.where(ApprovalRequest.priority == filters.priority)
    if filters.assigned_to:
        stmt = stmt.where(ApprovalRequest.assigned_to == filters.assigned_to)
    return stmt


async def list_requests(
    db: AsyncSession, filters: ApprovalRequestFilters | None = None
) -> tuple[list[EnrichedApprovalRequest], bool]:
    """Newest-first listing with submitter display fields.

    Returns ``(items, degraded)``; ``degraded`` is true when the profile join
    failed and placeholder submitter labels were used instead.
    """
    filters = filters or ApprovalRequestFilters()
    enriched_stmt = _apply_filters(
        select(ApprovalRequest, Profile).outerjoin(Profile, Profile.id == ApprovalRequest.user_id),
        filters,
    ).order_by(ApprovalRequest.created_at.desc())
    try:
        result = await db.execute(enriched_stmt)
        rows = result.all()
    except DBAPIError as exc:
        if exc.connection_invalidated:
            raise
        logger.warning("Enriched approval listing unavailable; using fallback", exc_info=exc)
        await db.rollback()
    else:
        items = []
        for request, profile in rows:
            if profile is None:
                first, last, email = placeholder_submitter(request.user_id)
            else:
                first, last = profile.first_name, profile.last_name
                email = profile.email or (request.request_data or {}).get("email")
            items.append(EnrichedApprovalRequest(request, first, last, email))
        return items, False

    bare_stmt = _apply_filters(select(ApprovalRequest), filters).order_by(
        ApprovalRequest.created_at.desc()
    )
    result = await db.execute(bare_stmt)
    items = []
    for request in result.scalars().all():
        first, last, email = placeholder_submitter(request.user_id)
        items.append(EnrichedApprovalRequest(request, first, last, email))
    return items, True


async def list_own_requests(
    db: AsyncSession, user_id, *, status: str | None = None
) -> list[ApprovalRequest]:
    stmt = select(ApprovalRequest).where(ApprovalRequest.user_id == user_id)
    if status:
        stmt = stmt.where(ApprovalRequest.status == status)
    stmt = stmt.order_by(ApprovalRequest.created_at.desc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def update_status(
    db: AsyncSession,
    request_id,
    new_status: str,
    *,
    actor_id,
    notes: str | None = None,
    assigned_to=None,
) -> ApprovalRequest:
    """Move a request through the state machine in one locked write."""
    if new_status not in REQUEST_STATUSES:
        raise ApprovalValidationError(
            f"Unsupported status: {new_status}",
            details={"status": new_status, "allowed": list(REQUEST_STATUSES)},
        )

    request = await get_request(db, request_id, for_update=True)
    previous_status = request.status
    if not is_valid_transition(previous_status, new_status):
        await db.rollback()
        raise InvalidTransition(previous_status, new_status)

    now = _now()
    previous_assignee = request.assigned_to
    request.status = new_status
    request.updated_at = now
    if notes:
        request.review_notes = notes
    if assigned_to:
        request.assigned_to = assigned_to
    if new_status in TERMINAL_STATUSES:
        request.reviewed_at = now
        request.reviewer_id = actor_id
    db.add(request)

    _append_history(
        db,
        request,
        previous_status=previous_status,
        new_status=new_status,
        changed_by=actor_id,
        change_reason=notes,
        changed_at=now,
    )
    metadata = _notification_metadata(request)
    label = request.request_type.replace("_", " ")
    notifications.notify(
        db,
        request.id,
        "status_update",
        [request.user_id],
        title=STATUS_TITLES.get(new_status, "Request updated"),
        message=f"Your {label} request is now {new_status.replace('_', ' ')}",
        metadata=metadata,
    )
    if request.assigned_to and str(request.assigned_to) != str(request.user_id):
        is_new_assignee = str(request.assigned_to) != str(previous_assignee)
        notifications.notify(
            db,
            request.id,
            "assignment" if is_new_assignee else "status_update",
            [request.assigned_to],
            title="Request assigned to you" if is_new_assignee else "Assigned request updated",
            message=f"A {label} request assigned to you is now {new_status.replace('_', ' ')}",
            metadata=metadata,
        )
    await db.commit()
    record_audit_event(
        "approval_request.status_change",
        actor_id=actor_id,
        resource_type="approval_request",
        resource_id=request.id,
        old_value={"status": previous_status, "assigned_to": previous_assignee},
        new_value={"status": new_status, "assigned_to": request.assigned_to},
    )
    return request


async def get_history(db: AsyncSession, request_id) -> list[ApprovalWorkflowHistory]:
    stmt = (
        select(ApprovalWorkflowHistory)
        .where(ApprovalWorkflowHistory.approval_request_id == request_id)
        .order_by(ApprovalWorkflowHistory.changed_at.asc(), ApprovalWorkflowHistory.id.asc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


def summarize(rows: Iterable[tuple[str, str, str, datetime | None, datetime | None]]) -> ApprovalStatistics:
    """Aggregate ``(status, request_type, priority, created_at, reviewed_at)`` rows."""
    counts = {status: 0 for status in REQUEST_STATUSES}
    by_type: dict[str, int] = {}
    by_priority: dict[str, int] = {}
    total = 0
    durations: list[float] = []
    for status, request_type, priority, created_at, reviewed_at in rows:
        total += 1
        counts[status] = counts.get(status, 0) + 1
        by_type[request_type] = by_type.get(request_type, 0) + 1
        by_priority[priority] = by_priority.get(priority, 0) + 1
        if reviewed_at is not None and created_at is not None:
            durations.append((reviewed_at - created_at).total_seconds() / 3600)
    average = sum(durations) / len(durations) if durations else 0.0
    return ApprovalStatistics(
        total=total,
        pending=counts["pending"],
        under_review=counts["under_review"],
        approved=counts["approved"],
        rejected=counts["rejected"],
        by_type=by_type,
        by_priority=by_priority,
        avg_processing_time_hours=average,
    )


async def statistics(db: AsyncSession) -> ApprovalStatistics:
    stmt = select(
        ApprovalRequest.status,
        ApprovalRequest.request_type,
        ApprovalRequest.priority,
        ApprovalRequest.created_at,
        ApprovalRequest.reviewed_at,
    )
    result = await db.execute(stmt)
    return summarize(result.all())
