from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy.exc import DBAPIError

from conftest import (
    FakeAsyncSession,
    FakeResult,
    column_handler,
    entity_handler,
    make_profile,
    make_request,
)

from app.models.approval_notification import ApprovalNotification
from app.models.approval_request import REQUEST_STATUSES, ApprovalRequest
from app.models.approval_workflow_history import ApprovalWorkflowHistory
from app.models.user_role import UserRole
from app.services import approval_requests
from app.services.approval_requests import ALLOWED_TRANSITIONS, ApprovalRequestFilters
from app.services.workflow_errors import (
    AccessDenied,
    ApprovalValidationError,
    InvalidTransition,
    RequestNotFound,
)


def _session_for(request: ApprovalRequest) -> FakeAsyncSession:
    db = FakeAsyncSession()
    db.on_execute(entity_handler(ApprovalRequest, FakeResult(scalar=request, items=[request])))
    return db


ILLEGAL_PAIRS = [
    (current, target)
    for current in REQUEST_STATUSES
    for target in REQUEST_STATUSES
    if target not in ALLOWED_TRANSITIONS[current]
]

LEGAL_PAIRS = [
    (current, target) for current, targets in ALLOWED_TRANSITIONS.items() for target in sorted(targets)
]


@pytest.mark.asyncio
@pytest.mark.parametrize("current, target", ILLEGAL_PAIRS)
async def test_illegal_transition_leaves_request_untouched(current, target):
    request = make_request(status=current)
    before = (request.status, request.reviewed_at, request.reviewer_id, request.review_notes)
    db = _session_for(request)

    with pytest.raises(InvalidTransition) as excinfo:
        await approval_requests.update_status(db, request.id, target, actor_id=uuid4(), notes="n")

    assert excinfo.value.current_status == current
    assert excinfo.value.attempted_status == target
    assert (request.status, request.reviewed_at, request.reviewer_id, request.review_notes) == before
    assert db.added_of(ApprovalWorkflowHistory) == []
    assert db.added_of(ApprovalNotification) == []
    assert db.commits == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("current, target", LEGAL_PAIRS)
async def test_legal_transition_writes_history_and_notifies_submitter(current, target):
    request = make_request(status=current)
    db = _session_for(request)
    actor_id = uuid4()

    updated = await approval_requests.update_status(db, request.id, target, actor_id=actor_id)

    assert updated.status == target
    history = db.added_of(ApprovalWorkflowHistory)
    assert len(history) == 1
    assert history[0].previous_status == current
    assert history[0].new_status == target
    assert history[0].changed_by == actor_id
    notifications = db.added_of(ApprovalNotification)
    assert [n.recipient_id for n in notifications] == [request.user_id]
    assert notifications[0].notification_type == "status_update"
    assert db.commits == 1


def test_state_machine_table_shape():
    assert ALLOWED_TRANSITIONS["approved"] == frozenset()
    assert ALLOWED_TRANSITIONS["rejected"] == frozenset()
    assert len(LEGAL_PAIRS) == 9
    assert len(ILLEGAL_PAIRS) == 16


@pytest.mark.asyncio
async def test_terminal_transition_stamps_reviewer():
    request = make_request(status="under_review")
    db = _session_for(request)
    actor_id = uuid4()

    await approval_requests.update_status(
        db, request.id, "approved", actor_id=actor_id, notes="meets criteria"
    )

    assert request.reviewed_at is not None
    assert request.reviewer_id == actor_id
    assert request.review_notes == "meets criteria"


@pytest.mark.asyncio
async def test_non_terminal_transition_does_not_stamp_reviewer():
    request = make_request(status="pending")
    db = _session_for(request)

    await approval_requests.update_status(db, request.id, "under_review", actor_id=uuid4())

    assert request.reviewed_at is None
    assert request.reviewer_id is None


@pytest.mark.asyncio
async def test_assignment_notifies_new_assignee():
    request = make_request(status="pending")
    db = _session_for(request)
    assignee = uuid4()

    await approval_requests.update_status(
        db, request.id, "under_review", actor_id=uuid4(), assigned_to=assignee
    )

    assert request.assigned_to == assignee
    by_recipient = {n.recipient_id: n for n in db.added_of(ApprovalNotification)}
    assert by_recipient[assignee].notification_type == "assignment"
    assert by_recipient[request.user_id].notification_type == "status_update"


@pytest.mark.asyncio
async def test_update_status_unknown_request():
    db = FakeAsyncSession()
    with pytest.raises(RequestNotFound):
        await approval_requests.update_status(db, uuid4(), "approved", actor_id=uuid4())


@pytest.mark.asyncio
async def test_update_status_rejects_unknown_status():
    db = FakeAsyncSession()
    with pytest.raises(ApprovalValidationError):
        await approval_requests.update_status(db, uuid4(), "archived", actor_id=uuid4())


@pytest.mark.asyncio
async def test_update_status_reads_request_under_row_lock():
    request = make_request(status="pending")
    db = _session_for(request)

    await approval_requests.update_status(db, request.id, "under_review", actor_id=uuid4())

    locked_read = db.executed[0]
    assert locked_read._for_update_arg is not None
    assert locked_read.get_execution_options().get("populate_existing") is True


@pytest.mark.asyncio
async def test_update_status_decides_on_the_locked_row():
    stale = make_request(status="pending")
    concurrent = make_request(id=stale.id, user_id=stale.user_id, status="rejected")
    db = FakeAsyncSession()
    db.on_execute(
        entity_handler(
            ApprovalRequest,
            lambda stmt: FakeResult(scalar=concurrent if stmt._for_update_arg is not None else stale),
        )
    )

    with pytest.raises(InvalidTransition) as excinfo:
        await approval_requests.update_status(db, stale.id, "approved", actor_id=uuid4())

    assert excinfo.value.current_status == "rejected"
    assert concurrent.status == "rejected"
    assert db.added_of(ApprovalWorkflowHistory) == []
    assert db.commits == 0


@pytest.mark.asyncio
async def test_submit_creates_pending_request_with_history_and_reviewer_notifications():
    submitter = uuid4()
    reviewers = [uuid4(), uuid4()]
    db = FakeAsyncSession()
    db.on_execute(column_handler(UserRole, "user_id", FakeResult(items=reviewers + [submitter])))

    request = await approval_requests.submit(
        db,
        user_id=submitter,
        request_type="loan_application",
        request_data={"amount": 5000, "term": 12, "purpose": "School fees"},
        priority="high",
    )

    assert request.status == "pending"
    assert request.priority == "high"
    assert request.id is not None
    assert request.request_data["term_months"] == 12
    history = db.added_of(ApprovalWorkflowHistory)
    assert len(history) == 1
    assert history[0].previous_status is None
    assert history[0].new_status == "pending"
    notified = {n.recipient_id for n in db.added_of(ApprovalNotification)}
    assert notified == set(reviewers)
    assert all(n.notification_type == "new_request" for n in db.added_of(ApprovalNotification))
    assert db.commits == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "request_type, request_data",
    [
        ("loan_application", {"amount": 0, "term_months": 12}),
        ("loan_application", {"amount": 100}),
        ("loan_application", {"amount": 100, "term_months": 12, "interest_rate": 45}),
        ("kyc_document", {"document_type": "id_card"}),
        ("payment", {}),
        ("unknown_type", {"a": 1}),
    ],
)
async def test_submit_rejects_invalid_payloads(request_type, request_data):
    db = FakeAsyncSession()
    with pytest.raises(ApprovalValidationError):
        await approval_requests.submit(
            db, user_id=uuid4(), request_type=request_type, request_data=request_data
        )
    assert db.added == []


@pytest.mark.asyncio
async def test_submit_rejects_unknown_priority():
    db = FakeAsyncSession()
    with pytest.raises(ApprovalValidationError):
        await approval_requests.submit(
            db,
            user_id=uuid4(),
            request_type="payment",
            request_data={"amount": 10},
            priority="critical",
        )


@pytest.mark.asyncio
async def test_list_requests_enriches_from_profiles():
    with_profile = make_request()
    without_profile = make_request()
    profile = make_profile(user_id=with_profile.user_id)
    db = FakeAsyncSession()
    db.on_execute(
        entity_handler(
            ApprovalRequest, FakeResult(rows=[(with_profile, profile), (without_profile, None)])
        )
    )

    items, degraded = await approval_requests.list_requests(db, ApprovalRequestFilters(status="pending"))

    assert degraded is False
    assert items[0].user_first_name == "Ada"
    assert items[0].user_email == "ada@example.com"
    assert items[1].user_first_name == "Unknown"
    assert items[1].user_last_name == "User"
    assert items[1].user_email == f"User {str(without_profile.user_id)[:8]}..."


@pytest.mark.asyncio
async def test_list_requests_falls_back_when_enrichment_fails():
    request = make_request()
    db = FakeAsyncSession()
    calls = {"count": 0}

    def _handler(stmt):
        calls["count"] += 1
        if calls["count"] == 1:
            return DBAPIError("SELECT", {}, Exception("relation profiles does not exist"))
        return FakeResult(items=[request])

    db.on_execute(_handler)

    items, degraded = await approval_requests.list_requests(db)

    assert degraded is True
    assert [item.request for item in items] == [request]
    assert items[0].user_first_name == "Unknown"
    assert items[0].user_email.startswith("User ")
    assert db.rollbacks == 1


@pytest.mark.asyncio
async def test_get_request_for_actor_limits_to_owner():
    request = make_request()
    db = _session_for(request)

    found = await approval_requests.get_request_for_actor(
        db, request.id, actor_id=request.user_id, can_view_all=False
    )
    assert found is request

    with pytest.raises(AccessDenied):
        await approval_requests.get_request_for_actor(
            db, request.id, actor_id=uuid4(), can_view_all=False
        )

    reviewer_view = await approval_requests.get_request_for_actor(
        db, request.id, actor_id=uuid4(), can_view_all=True
    )
    assert reviewer_view is request


def test_summarize_average_processing_time():
    created = datetime(2026, 1, 1, 8, 0, tzinfo=timezone.utc)
    rows = [
        ("approved", "loan_application", "normal", created, created + timedelta(hours=1)),
        ("rejected", "kyc_document", "high", created, created + timedelta(hours=2)),
        ("approved", "loan_application", "normal", created, created + timedelta(hours=3)),
        ("pending", "payment", "low", created, None),
        ("under_review", "loan_application", "urgent", created, None),
    ]

    stats = approval_requests.summarize(rows)

    assert stats.avg_processing_time_hours == pytest.approx(2.0)
    assert stats.total == 5
    assert stats.approved == 2
    assert stats.rejected == 1
    assert stats.pending == 1
    assert stats.under_review == 1
    assert stats.by_type == {"loan_application": 3, "kyc_document": 1, "payment": 1}
    assert stats.by_priority == {"normal": 2, "high": 1, "low": 1, "urgent": 1}


def test_summarize_empty():
    stats = approval_requests.summarize([])
    assert stats.total == 0
    assert stats.avg_processing_time_hours == 0.0


@pytest.mark.asyncio
async def test_statistics_reads_rows_from_store():
    created = datetime(2026, 1, 1, tzinfo=timezone.utc)
    db = FakeAsyncSession()
    db.on_execute_return(
        FakeResult(rows=[("approved", "payment", "normal", created, created + timedelta(hours=4))])
    )

    stats = await approval_requests.statistics(db)

    assert stats.total == 1
    assert stats.avg_processing_time_hours == pytest.approx(4.0)
