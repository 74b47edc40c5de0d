"""One de-duplicated listing of loan applications across their lifecycle.

A loan application shows up exactly once: as its approval request until a
loan is materialized for it, then as the loan. Two interchangeable sources
produce that listing; the adapter picks the first one the store supports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Iterable, Protocol, Sequence
from uuid import UUID

from sqlalchemy import or_, select, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.settings import settings
from app.models.approval_request import ApprovalRequest
from app.models.loan import Loan
from app.models.profile import Profile
from app.models.unified_application import loan_applications_unified

logger = logging.getLogger(__name__)

SOURCE_APPROVAL = "approval"
SOURCE_LOAN = "loan"

IN_FLIGHT_STATUSES = ("pending", "under_review", "requires_info")


@dataclass
class UnifiedApplicationRow:
    id: UUID
    source: str
    user_id: UUID
    status: str
    applicant_name: str
    created_at: datetime
    approval_request_id: UUID | None = None
    priority: str | None = None
    applicant_email: str | None = None
    amount: Decimal | None = None
    term_months: int | None = None
    purpose: str | None = None
    employment_status: str | None = None
    monthly_income: Decimal | None = None


@dataclass
class ApplicationFilters:
    status: str | None = None
    search: str | None = None
    date_from: date | datetime | None = None
    date_to: date | datetime | None = None
    amount_min: Decimal | None = None
    amount_max: Decimal | None = None
    priority: str | None = None


def status_scope(status: str | None) -> tuple[str, ...] | None:
    """``pending`` covers everything still awaiting a decision."""
    if not status or status == "all":
        return None
    if status == "pending":
        return IN_FLIGHT_STATUSES
    return (status,)


def placeholder_name(user_id) -> str:
    return f"User {str(user_id)[:8]}"


def display_name(first: str | None, last: str | None, user_id) -> str:
    name = " ".join(part.strip() for part in (first, last) if part and part.strip())
    return name or placeholder_name(user_id)


def _as_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except ArithmeticError:
        return None


def _first_amount(*values: Any) -> Decimal | None:
    for value in values:
        amount = _as_decimal(value)
        if amount is not None:
            return amount
    return None


def _as_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class ApplicationSource(Protocol):
    name: str

    async def is_available(self, db: AsyncSession) -> bool: ...

    async def fetch(
        self, db: AsyncSession, statuses: Sequence[str] | None
    ) -> list[UnifiedApplicationRow]: ...


class UnifiedViewSource:
    """Reads the server-side reconciled view."""

    name = "unified_view"

    async def is_available(self, db: AsyncSession) -> bool:
        result = await db.execute(
            text("SELECT to_regclass(:name)"), {"name": settings.unified_view_name}
        )
        return result.scalar_one_or_none() is not None

    async def fetch(
        self, db: AsyncSession, statuses: Sequence[str] | None
    ) -> list[UnifiedApplicationRow]:
        view = loan_applications_unified
        stmt = select(view)
        if statuses:
            stmt = stmt.where(view.c.status.in_(statuses))
        stmt = stmt.order_by(view.c.created_at.desc())
        result = await db.execute(stmt)
        return [
            UnifiedApplicationRow(
                id=row.id,
                source=row.source,
                user_id=row.user_id,
                approval_request_id=row.approval_request_id,
                status=row.status,
                priority=row.priority if row.source == SOURCE_APPROVAL else None,
                applicant_name=display_name(
                    row.applicant_first_name, row.applicant_last_name, row.user_id
                ),
                applicant_email=row.applicant_email,
                amount=_as_decimal(row.amount),
                term_months=row.term_months,
                purpose=row.purpose,
                created_at=row.created_at,
                employment_status=row.employment_status,
                monthly_income=_as_decimal(row.monthly_income),
            )
            for row in result.all()
        ]


class LegacyConcatenationSource:
    """Queries requests and loans separately and concatenates them.

    A request whose loan exists (by back-reference or by the loan's
    ``approval_request_id``) is dropped from the request half.
    """

    name = "legacy"

    async def is_available(self, db: AsyncSession) -> bool:
        return True

    async def _profiles(self, db: AsyncSession, user_ids: Iterable[UUID]) -> dict[str, Profile]:
        ids = list({str(user_id): user_id for user_id in user_ids}.values())
        if not ids:
            return {}
        try:
            result = await db.execute(select(Profile).where(Profile.id.in_(ids)))
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise
            await db.rollback()
            logger.warning("Applicant enrichment failed; using placeholder names", exc_info=exc)
            return {}
        return {str(profile.id): profile for profile in result.scalars().all()}

    async def fetch(
        self, db: AsyncSession, statuses: Sequence[str] | None
    ) -> list[UnifiedApplicationRow]:
        loan_stmt = select(Loan)
        if statuses:
            loan_stmt = loan_stmt.where(Loan.status.in_(statuses))
        loans = list((await db.execute(loan_stmt.order_by(Loan.created_at.desc()))).scalars().all())

        request_stmt = select(ApprovalRequest).where(
            ApprovalRequest.request_type == "loan_application",
            or_(ApprovalRequest.status != "approved", ApprovalRequest.reference_id.is_(None)),
        )
        if statuses:
            request_stmt = request_stmt.where(ApprovalRequest.status.in_(statuses))
        requests = list(
            (await db.execute(request_stmt.order_by(ApprovalRequest.created_at.desc())))
            .scalars()
            .all()
        )

        materialized_loan_ids = {str(loan.id) for loan in loans}
        materialized_request_ids = {
            str(loan.approval_request_id) for loan in loans if loan.approval_request_id
        }
        in_flight = [
            request
            for request in requests
            if str(request.id) not in materialized_request_ids
            and not (
                request.reference_id is not None
                and (
                    str(request.reference_id) in materialized_loan_ids
                    or request.reference_table == "loans"
                )
            )
        ]

        profiles = await self._profiles(
            db, [request.user_id for request in in_flight] + [loan.user_id for loan in loans]
        )

        rows: list[UnifiedApplicationRow] = []
        for request in in_flight:
            data = request.request_data or {}
            profile = profiles.get(str(request.user_id))
            rows.append(
                UnifiedApplicationRow(
                    id=request.id,
                    source=SOURCE_APPROVAL,
                    user_id=request.user_id,
                    approval_request_id=request.id,
                    status=request.status,
                    priority=request.priority,
                    applicant_name=display_name(
                        profile.first_name if profile else None,
                        profile.last_name if profile else None,
                        request.user_id,
                    ),
                    applicant_email=(profile.email if profile else None) or data.get("email"),
                    amount=_as_decimal(data.get("amount")),
                    term_months=_as_int(data.get("term_months", data.get("term"))),
                    purpose=data.get("purpose"),
                    created_at=request.created_at,
                    employment_status=(profile.employment_status if profile else None)
                    or data.get("employment_status"),
                    monthly_income=_first_amount(
                        profile.monthly_income if profile else None, data.get("monthly_income")
                    ),
                )
            )
        for loan in loans:
            profile = profiles.get(str(loan.user_id))
            rows.append(
                UnifiedApplicationRow(
                    id=loan.id,
                    source=SOURCE_LOAN,
                    user_id=loan.user_id,
                    approval_request_id=loan.approval_request_id,
                    status=loan.status,
                    applicant_name=display_name(
                        profile.first_name if profile else None,
                        profile.last_name if profile else None,
                        loan.user_id,
                    ),
                    applicant_email=profile.email if profile else None,
                    amount=_as_decimal(loan.amount),
                    term_months=loan.term_months,
                    purpose=loan.purpose,
                    created_at=loan.created_at,
                    employment_status=profile.employment_status if profile else None,
                    monthly_income=_as_decimal(profile.monthly_income if profile else None),
                )
            )
        return rows


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _range_start(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return _aware(value)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _range_end(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return _aware(value)
    # a bare date includes the whole day
    return datetime.combine(value, time.max, tzinfo=timezone.utc)


def _amount_texts(amount: Decimal | None) -> list[str]:
    if amount is None:
        return []
    texts = {str(amount), format(amount.normalize(), "f")}
    return list(texts)


def _matches_search(row: UnifiedApplicationRow, term: str) -> bool:
    needle = term.strip().lower()
    if not needle:
        return True
    haystack = [
        row.applicant_name,
        row.applicant_email,
        row.purpose,
        str(row.id),
        str(row.approval_request_id) if row.approval_request_id else None,
        *_amount_texts(row.amount),
    ]
    return any(needle in value.lower() for value in haystack if value)


def apply_filters(
    rows: Iterable[UnifiedApplicationRow], filters: ApplicationFilters
) -> list[UnifiedApplicationRow]:
    scope = status_scope(filters.status)
    start = _range_start(filters.date_from) if filters.date_from else None
    end = _range_end(filters.date_to) if filters.date_to else None
    selected = []
    for row in rows:
        if scope and row.status not in scope:
            continue
        if filters.search and not _matches_search(row, filters.search):
            continue
        created = _aware(row.created_at)
        if start and created < start:
            continue
        if end and created > end:
            continue
        if filters.amount_min is not None and (row.amount is None or row.amount < filters.amount_min):
            continue
        if filters.amount_max is not None and (row.amount is None or row.amount > filters.amount_max):
            continue
        if filters.priority:
            # only approval-sourced rows carry a priority
            if row.source != SOURCE_APPROVAL or row.priority != filters.priority:
                continue
        selected.append(row)
    return selected


class UnifiedApplicationAdapter:
    def __init__(self, sources: Sequence[ApplicationSource] | None = None) -> None:
        self.sources: list[ApplicationSource] = list(
            sources or (UnifiedViewSource(), LegacyConcatenationSource())
        )

    async def list_applications(
        self, db: AsyncSession, filters: ApplicationFilters | None = None
    ) -> tuple[list[UnifiedApplicationRow], str]:
        """Return ``(rows, source_name)``; rows are newest-first."""
        filters = filters or ApplicationFilters()
        statuses = status_scope(filters.status)
        rows: list[UnifiedApplicationRow] | None = None
        used = ""
        for index, source in enumerate(self.sources):
            is_last = index == len(self.sources) - 1
            try:
                if not await source.is_available(db):
                    logger.warning("Application source unavailable", extra={"source": source.name})
                    continue
                rows = await source.fetch(db, statuses)
            except DBAPIError as exc:
                if is_last or exc.connection_invalidated:
                    raise
                await db.rollback()
                logger.warning(
                    "Application source failed; trying next",
                    extra={"source": source.name},
                    exc_info=exc,
                )
                continue
            used = source.name
            break
        if rows is None:
            raise RuntimeError("No loan application source is available")

        selected = apply_filters(rows, filters)
        selected.sort(key=lambda row: _aware(row.created_at), reverse=True)
        return selected, used


adapter = UnifiedApplicationAdapter()


async def list_applications(
    db: AsyncSession, filters: ApplicationFilters | None = None
) -> tuple[list[UnifiedApplicationRow], str]:
    return await adapter.list_applications(db, filters)
