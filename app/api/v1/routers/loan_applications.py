from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.db.session import get_db
from app.schemas.loan_applications import UnifiedApplicationDTO, UnifiedApplicationListResponse
from app.services import unified_applications
from app.services.store_guard import guarded

router = APIRouter(prefix="/loan-applications", tags=["loan-applications"])


@router.get(
    "",
    response_model=UnifiedApplicationListResponse,
    summary="All loan applications, in flight or funded, without duplicates",
)
async def list_loan_applications(
    current_user: deps.CurrentUser = Depends(
        deps.require_permission(PermissionCode.LOAN_APPLICATION_VIEW_ALL)
    ),
    db: AsyncSession = Depends(get_db),
    status_filter: str | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, max_length=200),
    date_from: date | datetime | None = Query(default=None),
    date_to: date | datetime | None = Query(default=None),
    amount_min: Decimal | None = Query(default=None, ge=0),
    amount_max: Decimal | None = Query(default=None, ge=0),
    priority: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> UnifiedApplicationListResponse:
    if amount_min is not None and amount_max is not None and amount_min > amount_max:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="amount_min cannot exceed amount_max",
        )
    filters = unified_applications.ApplicationFilters(
        status=status_filter,
        search=search,
        date_from=date_from,
        date_to=date_to,
        amount_min=amount_min,
        amount_max=amount_max,
        priority=priority,
    )
    rows, strategy = await guarded(
        unified_applications.list_applications(db, filters),
        operation="loan_applications.list",
    )
    page = rows[offset : offset + limit]
    return UnifiedApplicationListResponse(
        items=[UnifiedApplicationDTO.model_validate(row) for row in page],
        total=len(rows),
        strategy=strategy,
    )
