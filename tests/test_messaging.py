from conftest import auth_headers

from edupulse.models import Notification
from edupulse.services.notifications import notify

MESSAGES = "/api/v1/messages"
NOTIFICATIONS = "/api/v1/notifications"


def _start(client, sender, *recipients, message="Hello there"):
    return client.post(
        f"{MESSAGES}/conversations",
        json={"participant_ids": [user.id for user in recipients], "subject": "Homework", "message": message},
        headers=auth_headers(sender),
    )


def test_start_conversation(client, db, teacher, student):
    r = _start(client, teacher, student)
    assert r.status_code == 201
    data = r.json()["data"]
    assert {user["id"] for user in data["participants"]} == {teacher.id, student.id}
    assert data["last_message"]["content"] == "Hello there"
    assert data["unread_count"] == 0

    notification = db.query(Notification).filter(Notification.user_id == student.id).one()
    assert notification.type == "NEW_MESSAGE"
    assert notification.title == f"New message from {teacher.first_name} {teacher.last_name}"


def test_conversation_needs_someone_else(client, teacher):
    r = client.post(
        f"{MESSAGES}/conversations", json={"participant_ids": [teacher.id]}, headers=auth_headers(teacher)
    )
    assert r.status_code == 400

    r = client.post(f"{MESSAGES}/conversations", json={"participant_ids": [999]}, headers=auth_headers(teacher))
    assert r.status_code == 404


def test_unread_counts_and_reading(client, teacher, student):
    conversation = _start(client, teacher, student).json()["data"]
    headers = auth_headers(student)

    assert client.get(f"{MESSAGES}/unread-count", headers=headers).json()["data"] == {"unread": 1}
    r = client.get(f"{MESSAGES}/conversations", headers=headers)
    assert r.json()["data"][0]["unread_count"] == 1

    r = client.get(f"{MESSAGES}/conversations/{conversation['id']}/messages", headers=headers)
    assert [message["content"] for message in r.json()["data"]] == ["Hello there"]
    assert client.get(f"{MESSAGES}/unread-count", headers=headers).json()["data"] == {"unread": 0}


def test_reply_notifies_other_participants(client, db, teacher, student, parent):
    conversation = _start(client, teacher, student, parent).json()["data"]
    long_reply = "x" * 120
    r = client.post(
        f"{MESSAGES}/conversations/{conversation['id']}/messages",
        json={"content": long_reply},
        headers=auth_headers(student),
    )
    assert r.status_code == 201
    assert r.json()["message"] == "Message sent"

    previews = [
        n.message for n in db.query(Notification).filter(Notification.user_id == teacher.id).all()
    ]
    assert previews == ["x" * 77 + "..."]
    assert db.query(Notification).filter(Notification.user_id == parent.id).count() == 2


def test_outsiders_cannot_read_conversation(client, teacher, student, other_student):
    conversation = _start(client, teacher, student).json()["data"]
    headers = auth_headers(other_student)
    assert client.get(f"{MESSAGES}/conversations/{conversation['id']}", headers=headers).status_code == 403
    r = client.post(
        f"{MESSAGES}/conversations/{conversation['id']}/messages", json={"content": "hi"}, headers=headers
    )
    assert r.status_code == 403


def test_notifications_inbox(client, db, student, other_student):
    first = notify(db, user_id=student.id, type="INFO", title="One", message="first")
    notify(db, user_id=student.id, type="INFO", title="Two", message="second")
    foreign = notify(db, user_id=other_student.id, type="INFO", title="Other", message="not yours")
    db.commit()
    headers = auth_headers(student)

    r = client.get(NOTIFICATIONS, headers=headers)
    assert r.json()["pagination"]["total"] == 2
    assert client.get(f"{NOTIFICATIONS}/unread-count", headers=headers).json()["data"] == {"unread": 2}

    r = client.patch(f"{NOTIFICATIONS}/{first.id}/read", headers=headers)
    assert r.json()["data"]["is_read"] is True
    r = client.get(NOTIFICATIONS, params={"unread_only": True}, headers=headers)
    assert [item["title"] for item in r.json()["data"]] == ["Two"]

    assert client.patch(f"{NOTIFICATIONS}/{foreign.id}/read", headers=headers).status_code == 403

    r = client.patch(f"{NOTIFICATIONS}/read-all", headers=headers)
    assert r.json()["data"] == {"updated": 1}

    r = client.delete(f"{NOTIFICATIONS}/{first.id}", headers=headers)
    assert r.json()["message"] == "Notification deleted"
    assert client.get(NOTIFICATIONS, headers=headers).json()["pagination"]["total"] == 1
