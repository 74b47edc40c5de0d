from uuid import uuid4

from conftest import FakeResult, entity_handler, make_user_role

from app.models.user_role import UserRole


def test_read_my_roles(client, fake_db, test_user):
    test_user.roles = []
    fake_db.on_execute(
        entity_handler(UserRole, FakeResult(items=[make_user_role(user_id=test_user.id, role="client")]))
    )

    resp = client.get("/api/v1/me/roles")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user_id"] == str(test_user.id)
    assert [role["role"] for role in data["roles"]] == ["client"]


def test_admin_reads_roles_with_allowed_operations(client, fake_db):
    user_id = uuid4()
    fake_db.on_execute(
        entity_handler(UserRole, FakeResult(items=[make_user_role(user_id=user_id, role="admin")]))
    )

    resp = client.get(f"/api/v1/admin/users/{user_id}/roles")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["allowed"]["can_add"] == ["loan_officer"]
    assert data["allowed"]["can_remove"] == ["admin"]
    assert data["is_super_admin"] is False


def test_assign_role_denied_returns_reason(client, fake_db):
    user_id = uuid4()
    fake_db.on_execute(
        entity_handler(UserRole, FakeResult(items=[make_user_role(user_id=user_id, role="client")]))
    )

    resp = client.post(f"/api/v1/admin/users/{user_id}/roles", json={"role": "loan_officer"})

    assert resp.status_code == 403
    body = resp.json()
    assert body["code"] == "role_operation_denied"
    assert "Remove the Client role first" in body["message"]
    assert fake_db.added_of(UserRole) == []


def test_assign_role_succeeds(client, fake_db):
    user_id = uuid4()

    resp = client.post(f"/api/v1/admin/users/{user_id}/roles", json={"role": "loan_officer"})

    assert resp.status_code == 200
    added = fake_db.added_of(UserRole)
    assert [row.role for row in added] == ["loan_officer"]
    assert fake_db.commits == 1


def test_remove_role(client, fake_db):
    user_id = uuid4()
    row = make_user_role(user_id=user_id, role="loan_officer")
    fake_db.on_execute(entity_handler(UserRole, FakeResult(items=[row])))

    resp = client.delete(f"/api/v1/admin/users/{user_id}/roles/loan_officer")

    assert resp.status_code == 200
    assert fake_db.deleted == [row]


def test_unknown_role_is_rejected(client):
    resp = client.post(f"/api/v1/admin/users/{uuid4()}/roles", json={"role": "superuser"})
    assert resp.status_code == 422


def test_loan_officers_cannot_manage_roles(client, fake_db, test_user):
    test_user.roles = ["loan_officer"]

    resp = client.post(f"/api/v1/admin/users/{uuid4()}/roles", json={"role": "client"})

    assert resp.status_code == 403
    assert resp.json()["message"] == "Missing permission: role.manage"
    assert fake_db.added == []
