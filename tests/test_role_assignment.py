from uuid import uuid4

import pytest

from conftest import FakeAsyncSession, FakeResult, entity_handler, make_profile, make_user_role

from app.core.settings import settings
from app.models.profile import Profile
from app.models.user_role import UserRole
from app.services import role_assignment
from app.services.workflow_errors import RoleOperationDenied


def _session_with_roles(user_id, *roles: str) -> tuple[FakeAsyncSession, list[UserRole]]:
    rows = [make_user_role(user_id=user_id, role=role) for role in roles]
    db = FakeAsyncSession()
    db.on_execute(entity_handler(UserRole, FakeResult(items=rows)))
    return db, rows


@pytest.mark.asyncio
async def test_assign_role_to_empty_user():
    user_id = uuid4()
    db, _ = _session_with_roles(user_id)

    roles = await role_assignment.assign_role(db, user_id, "client", actor_id=uuid4())

    assert roles == ["client"]
    added = db.added_of(UserRole)
    assert len(added) == 1
    assert added[0].role == "client"
    assert added[0].user_id == user_id
    assert db.commits == 1


@pytest.mark.asyncio
async def test_promote_loan_officer_to_admin():
    user_id = uuid4()
    db, _ = _session_with_roles(user_id, "loan_officer")

    roles = await role_assignment.assign_role(db, user_id, "admin", actor_id=uuid4())

    assert roles == ["admin", "loan_officer"]


@pytest.mark.asyncio
async def test_denied_assignment_writes_nothing_and_keeps_reason():
    user_id = uuid4()
    db, _ = _session_with_roles(user_id, "client")

    with pytest.raises(RoleOperationDenied) as excinfo:
        await role_assignment.assign_role(db, user_id, "admin", actor_id=uuid4())

    assert "Remove the Client role first" in excinfo.value.message
    assert db.added_of(UserRole) == []
    assert db.commits == 0
    assert db.rollbacks == 1


@pytest.mark.asyncio
async def test_assigning_held_role_is_idempotent():
    user_id = uuid4()
    db, _ = _session_with_roles(user_id, "admin")

    roles = await role_assignment.assign_role(db, user_id, "admin", actor_id=uuid4())

    assert roles == ["admin"]
    assert db.added_of(UserRole) == []


@pytest.mark.asyncio
async def test_remove_role_deletes_matching_row():
    user_id = uuid4()
    db, rows = _session_with_roles(user_id, "admin", "loan_officer")

    roles = await role_assignment.remove_role(db, user_id, "loan_officer", actor_id=uuid4())

    assert roles == ["admin"]
    assert [row.role for row in db.deleted] == ["loan_officer"]
    assert db.commits == 1


@pytest.mark.asyncio
async def test_remove_role_not_held_is_denied():
    user_id = uuid4()
    db, _ = _session_with_roles(user_id, "client")

    with pytest.raises(RoleOperationDenied):
        await role_assignment.remove_role(db, user_id, "admin", actor_id=uuid4())

    assert db.deleted == []


@pytest.mark.asyncio
async def test_role_writes_take_advisory_lock_first():
    user_id = uuid4()
    db, _ = _session_with_roles(user_id)

    await role_assignment.assign_role(db, user_id, "client", actor_id=uuid4())

    assert "pg_advisory_xact_lock" in str(db.executed[0])


@pytest.mark.asyncio
async def test_super_admin_can_hold_any_combination(monkeypatch):
    user_id = uuid4()
    monkeypatch.setattr(settings, "super_admin_emails", ["root@example.com"])
    db, _ = _session_with_roles(user_id, "client")
    db.on_execute(
        entity_handler(Profile, FakeResult(scalar=make_profile(user_id=user_id, email="root@example.com")))
    )

    roles = await role_assignment.assign_role(db, user_id, "admin", actor_id=uuid4())

    assert roles == ["admin", "client"]


@pytest.mark.asyncio
async def test_describe_user_roles_reports_allowed_operations():
    user_id = uuid4()
    db, rows = _session_with_roles(user_id, "admin")

    listed, allowed, super_admin = await role_assignment.describe_user_roles(db, user_id)

    assert listed == rows
    assert allowed.can_add == ["loan_officer"]
    assert super_admin is False
