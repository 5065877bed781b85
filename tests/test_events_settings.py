from datetime import timedelta

from conftest import auth_headers, make_user

from edupulse.models import UserRole, utcnow

EVENTS = "/api/v1/events"
SETTINGS = "/api/v1/settings"


def _event(client, user, title, days_ahead=3, **fields):
    start = utcnow() + timedelta(days=days_ahead)
    payload = {
        "title": title,
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(hours=2)).isoformat(),
        **fields,
    }
    return client.post(EVENTS, json=payload, headers=auth_headers(user))


def test_teacher_creates_event(client, teacher):
    r = _event(client, teacher, "Science Fair", type="CULTURAL", target_roles=["STUDENT", "PARENT"])
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["type"] == "CULTURAL"
    assert data["target_roles"] == ["STUDENT", "PARENT"]
    assert data["created_by"] == teacher.id


def test_students_cannot_create_events(client, student):
    assert _event(client, student, "Party").status_code == 403


def test_event_dates_validated(client, teacher):
    start = utcnow() + timedelta(days=2)
    r = client.post(
        EVENTS,
        json={"title": "Backwards", "start_date": start.isoformat(), "end_date": (start - timedelta(hours=1)).isoformat()},
        headers=auth_headers(teacher),
    )
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


def test_events_filtered_by_audience(client, teacher, student, parent):
    _event(client, teacher, "Staff Meeting", type="MEETING", target_roles=["TEACHER"])
    _event(client, teacher, "Exams", days_ahead=5, type="EXAM", target_roles=["STUDENT"])
    _event(client, teacher, "Holiday", days_ahead=7, type="HOLIDAY")
    _event(client, teacher, "Private", days_ahead=8, is_public=False)

    titles = [event["title"] for event in client.get(EVENTS, headers=auth_headers(student)).json()["data"]]
    assert titles == ["Exams", "Holiday"]

    titles = [event["title"] for event in client.get(EVENTS, headers=auth_headers(parent)).json()["data"]]
    assert titles == ["Holiday"]

    r = client.get(EVENTS, params={"type": "EXAM"}, headers=auth_headers(teacher))
    assert [event["title"] for event in r.json()["data"]] == ["Exams"]


def test_hidden_event_is_not_found(client, teacher, student):
    event = _event(client, teacher, "Staff Only", target_roles=["TEACHER"]).json()["data"]
    assert client.get(f"{EVENTS}/{event['id']}", headers=auth_headers(student)).status_code == 404
    assert client.get(f"{EVENTS}/{event['id']}", headers=auth_headers(teacher)).status_code == 200


def test_upcoming_skips_past_events(client, teacher, student):
    _event(client, teacher, "Yesterday", days_ahead=-1)
    _event(client, teacher, "Soon", days_ahead=1)
    _event(client, teacher, "Later", days_ahead=10)
    r = client.get(f"{EVENTS}/upcoming", params={"limit": 1}, headers=auth_headers(student))
    assert [event["title"] for event in r.json()["data"]] == ["Soon"]


def test_only_creator_or_admin_edits(client, db, admin, teacher):
    event = _event(client, teacher, "Sports Day", type="SPORTS").json()["data"]
    colleague = make_user(db, UserRole.TEACHER, "colleague@example.com")

    r = client.put(f"{EVENTS}/{event['id']}", json={"title": "Renamed"}, headers=auth_headers(colleague))
    assert r.status_code == 403

    r = client.put(f"{EVENTS}/{event['id']}", json={"title": "Renamed"}, headers=auth_headers(admin))
    assert r.json()["data"]["title"] == "Renamed"

    past = (utcnow() - timedelta(days=30)).isoformat()
    r = client.put(f"{EVENTS}/{event['id']}", json={"end_date": past}, headers=auth_headers(teacher))
    assert r.status_code == 400

    assert client.delete(f"{EVENTS}/{event['id']}", headers=auth_headers(teacher)).status_code == 200


def test_settings_upsert_and_read(client, admin, student):
    headers = auth_headers(admin)
    r = client.put(f"{SETTINGS}/school_name", json={"value": "EduPulse High", "category": "General"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["message"] == "Setting saved"
    assert r.json()["data"]["category"] == "general"

    client.put(f"{SETTINGS}/school_name", json={"value": "EduPulse Academy"}, headers=headers)
    client.put(f"{SETTINGS}/library_loan_days", json={"value": "14", "category": "library"}, headers=headers)

    r = client.get(f"{SETTINGS}/school_name", headers=auth_headers(student))
    assert r.json()["data"]["value"] == "EduPulse Academy"

    r = client.get(SETTINGS, params={"category": "library"}, headers=auth_headers(student))
    assert [item["key"] for item in r.json()["data"]] == ["library_loan_days"]


def test_settings_writes_require_admin(client, teacher, admin):
    r = client.put(f"{SETTINGS}/school_name", json={"value": "Hacked"}, headers=auth_headers(teacher))
    assert r.status_code == 403

    assert client.delete(f"{SETTINGS}/missing", headers=auth_headers(admin)).status_code == 404
    r = client.get(f"{SETTINGS}/missing", headers=auth_headers(teacher))
    assert r.json()["error"]["message"] == "Setting not found"
