from __future__ import annotations

from trpi.models import Notification
from trpi.services.notification_service import notify


def test_notify_creates_a_row(db, make_user):
    user = make_user()

    notification = notify(db, user.id, "Hello", "World", "info", {"k": "v"})

    assert notification is not None
    assert db.query(Notification).filter(Notification.user_id == user.id).one().data == {"k": "v"}


def test_notifications_are_private_and_can_be_marked_read(client, db, make_user, auth_headers):
    owner = make_user()
    other = make_user()
    first = notify(db, owner.id, "First", "One", "session_booked")
    notify(db, owner.id, "Second", "Two", "session_cancelled")
    notify(db, other.id, "Theirs", "Three")
    headers = auth_headers(owner)

    listed = client.get("/notifications", headers=headers).json()["notifications"]
    assert {n["title"] for n in listed} == {"First", "Second"}
    assert client.get("/notifications/unread-count", headers=headers).json() == {"unread_count": 2}

    read = client.post(f"/notifications/{first.id}/read", headers=headers)
    assert read.status_code == 200
    assert read.json()["notification"]["is_read"] is True

    unread = client.get("/notifications", params={"unread_only": True}, headers=headers).json()["notifications"]
    assert [n["title"] for n in unread] == ["Second"]

    foreign = db.query(Notification).filter(Notification.user_id == other.id).one()
    assert client.post(f"/notifications/{foreign.id}/read", headers=headers).status_code == 404

    assert client.post("/notifications/read-all", headers=headers).json()["updated"] == 1
    assert client.get("/notifications/unread-count", headers=headers).json() == {"unread_count": 0}


def test_notifications_require_authentication(client):
    assert client.get("/notifications").status_code == 401
