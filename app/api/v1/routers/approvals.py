from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.db.session import get_db
from app.models.approval_request import ApprovalRequest
from app.schemas.approvals import (
    ApprovalHistoryDTO,
    ApprovalRequestCreate,
    ApprovalRequestDTO,
    ApprovalRequestListResponse,
    ApprovalStatisticsDTO,
    ApprovalStatusUpdate,
    ProcessOutcomeDTO,
    RequestPriority,
    RequestStatus,
    RequestType,
    StatusUpdateResponse,
)
from app.services import approval_processing, approval_requests, authz
from app.services.approval_requests import ApprovalRequestFilters, EnrichedApprovalRequest
from app.services.store_guard import guarded
from app.services.workflow_errors import TransientStoreError

router = APIRouter(prefix="/approvals", tags=["approvals"])


def _request_dto(request: ApprovalRequest, enriched: EnrichedApprovalRequest | None = None) -> ApprovalRequestDTO:
    dto = ApprovalRequestDTO.model_validate(request)
    if enriched is None:
        return dto
    return dto.model_copy(
        update={
            "user_first_name": enriched.user_first_name,
            "user_last_name": enriched.user_last_name,
            "user_email": enriched.user_email,
        }
    )


def _outcome_dto(outcome: approval_processing.ProcessOutcome) -> ProcessOutcomeDTO:
    return ProcessOutcomeDTO(
        request_id=outcome.request_id,
        request_type=outcome.request_type,
        loan_id=outcome.loan_id,
        already_processed=outcome.already_processed,
        kyc_document_updated=outcome.kyc_document_updated,
        profile_verified=outcome.profile_verified,
        errors=list(outcome.errors),
    )


@router.post(
    "",
    response_model=ApprovalRequestDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a request for back-office approval",
)
async def submit_approval_request(
    payload: ApprovalRequestCreate,
    current_user: deps.CurrentUser = Depends(deps.require_permission(PermissionCode.APPROVAL_SUBMIT)),
    db: AsyncSession = Depends(get_db),
) -> ApprovalRequestDTO:
    request = await guarded(
        approval_requests.submit(
            db,
            user_id=current_user.id,
            request_type=payload.request_type,
            request_data=payload.request_data,
            priority=payload.priority,
        ),
        operation="approval.submit",
    )
    return _request_dto(request)


@router.get(
    "",
    response_model=ApprovalRequestListResponse,
    summary="List approval requests for reviewers",
)
async def list_approval_requests(
    current_user: deps.CurrentUser = Depends(deps.require_permission(PermissionCode.APPROVAL_VIEW_ALL)),
    db: AsyncSession = Depends(get_db),
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    request_type: RequestType | None = Query(default=None),
    priority: RequestPriority | None = Query(default=None),
    assigned_to: UUID | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> ApprovalRequestListResponse:
    filters = ApprovalRequestFilters(
        status=status_filter.value if status_filter else None,
        request_type=request_type.value if request_type else None,
        priority=priority.value if priority else None,
        assigned_to=assigned_to,
    )
    items, degraded = await guarded(
        approval_requests.list_requests(db, filters), operation="approval.list"
    )
    page = items[offset : offset + limit]
    return ApprovalRequestListResponse(
        items=[_request_dto(item.request, item) for item in page],
        total=len(items),
        degraded=degraded,
    )


@router.get(
    "/mine",
    response_model=list[ApprovalRequestDTO],
    summary="List the current user's own requests",
)
async def list_my_approval_requests(
    current_user: deps.CurrentUser = Depends(deps.require_permission(PermissionCode.APPROVAL_VIEW_OWN)),
    db: AsyncSession = Depends(get_db),
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
) -> list[ApprovalRequestDTO]:
    requests = await guarded(
        approval_requests.list_own_requests(
            db, current_user.id, status=status_filter.value if status_filter else None
        ),
        operation="approval.list_own",
    )
    return [_request_dto(request) for request in requests]


@router.get(
    "/statistics",
    response_model=ApprovalStatisticsDTO,
    summary="Aggregate counts and average review time",
)
async def get_approval_statistics(
    current_user: deps.CurrentUser = Depends(
        deps.require_permission(PermissionCode.APPROVAL_STATISTICS_VIEW)
    ),
    db: AsyncSession = Depends(get_db),
) -> ApprovalStatisticsDTO:
    stats = await guarded(approval_requests.statistics(db), operation="approval.statistics")
    return ApprovalStatisticsDTO(
        total=stats.total,
        pending=stats.pending,
        under_review=stats.under_review,
        approved=stats.approved,
        rejected=stats.rejected,
        by_type=stats.by_type,
        by_priority=stats.by_priority,
        avg_processing_time_hours=stats.avg_processing_time_hours,
    )


@router.get(
    "/{request_id}",
    response_model=ApprovalRequestDTO,
    summary="Fetch one request (owner or reviewer)",
)
async def get_approval_request(
    request_id: UUID,
    current_user: deps.CurrentUser = Depends(deps.require_permission(PermissionCode.APPROVAL_VIEW_OWN)),
    db: AsyncSession = Depends(get_db),
) -> ApprovalRequestDTO:
    request = await guarded(
        approval_requests.get_request_for_actor(
            db,
            request_id,
            actor_id=current_user.id,
            can_view_all=authz.has_permission(current_user, PermissionCode.APPROVAL_VIEW_ALL),
        ),
        operation="approval.get",
    )
    return _request_dto(request)


@router.patch(
    "/{request_id}/status",
    response_model=StatusUpdateResponse,
    summary="Move a request through the review workflow",
)
async def update_approval_status(
    request_id: UUID,
    payload: ApprovalStatusUpdate,
    current_user: deps.CurrentUser = Depends(deps.require_permission(PermissionCode.APPROVAL_REVIEW)),
    db: AsyncSession = Depends(get_db),
) -> StatusUpdateResponse:
    request = await guarded(
        approval_requests.update_status(
            db,
            request_id,
            payload.status,
            actor_id=current_user.id,
            notes=payload.notes,
            assigned_to=payload.assigned_to,
        ),
        operation="approval.update_status",
    )
    follow_up = None
    try:
        outcome = await guarded(
            approval_processing.run_decision_effects(db, request, actor_id=current_user.id),
            operation="approval.decision_effects",
        )
    except TransientStoreError as exc:
        follow_up = ProcessOutcomeDTO(
            request_id=request.id, request_type=request.request_type, errors=[exc.code]
        )
    else:
        follow_up = _outcome_dto(outcome) if outcome is not None else None
    return StatusUpdateResponse(request=_request_dto(request), follow_up=follow_up)


@router.get(
    "/{request_id}/history",
    response_model=list[ApprovalHistoryDTO],
    summary="Status transitions, oldest first",
)
async def get_approval_history(
    request_id: UUID,
    current_user: deps.CurrentUser = Depends(deps.require_permission(PermissionCode.APPROVAL_VIEW_OWN)),
    db: AsyncSession = Depends(get_db),
) -> list[ApprovalHistoryDTO]:
    await guarded(
        approval_requests.get_request_for_actor(
            db,
            request_id,
            actor_id=current_user.id,
            can_view_all=authz.has_permission(current_user, PermissionCode.APPROVAL_VIEW_ALL),
        ),
        operation="approval.get",
    )
    history = await guarded(approval_requests.get_history(db, request_id), operation="approval.history")
    return [ApprovalHistoryDTO.model_validate(entry) for entry in history]


@router.post(
    "/{request_id}/process",
    response_model=ProcessOutcomeDTO,
    summary="Run (or retry) the downstream effect of an approved request",
)
async def process_approval_request(
    request_id: UUID,
    current_user: deps.CurrentUser = Depends(deps.require_permission(PermissionCode.APPROVAL_PROCESS)),
    db: AsyncSession = Depends(get_db),
) -> ProcessOutcomeDTO:
    outcome = await guarded(
        approval_processing.process_request(db, request_id, actor_id=current_user.id),
        operation="approval.process",
    )
    return _outcome_dto(outcome)
