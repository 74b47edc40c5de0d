from uuid import uuid4

from conftest import FakeResult, make_notification

from app.services import notifications


def test_list_notifications(client, monkeypatch, test_user):
    test_user.roles = []
    items = [make_notification(recipient_id=test_user.id)]
    seen = {}

    async def _list(db, recipient_id, *, unread_only=False, limit=None):
        seen.update(recipient_id=recipient_id, unread_only=unread_only, limit=limit)
        return items

    async def _count(db, recipient_id):
        return 1

    monkeypatch.setattr(notifications, "list_notifications", _list)
    monkeypatch.setattr(notifications, "count_unread", _count)

    resp = client.get("/api/v1/notifications", params={"unread_only": "true", "limit": 5})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["unread_count"] == 1
    assert data["items"][0]["id"] == str(items[0].id)
    assert data["items"][0]["metadata"]["request_type"] == "loan_application"
    assert seen == {"recipient_id": test_user.id, "unread_only": True, "limit": 5}


def test_mark_notification_read(client, fake_db, test_user):
    notification = make_notification(recipient_id=test_user.id)
    fake_db.on_execute_return(FakeResult(scalar=notification))

    resp = client.post(f"/api/v1/notifications/{notification.id}/read")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["is_read"] is True
    assert data["read_at"] is not None


def test_mark_other_users_notification_forbidden(client, fake_db):
    notification = make_notification(recipient_id=uuid4())
    fake_db.on_execute_return(FakeResult(scalar=notification))

    resp = client.post(f"/api/v1/notifications/{notification.id}/read")

    assert resp.status_code == 403
    assert notification.is_read is False


def test_mark_missing_notification(client):
    resp = client.post(f"/api/v1/notifications/{uuid4()}/read")
    assert resp.status_code == 404
    assert resp.json()["code"] == "notification_not_found"
