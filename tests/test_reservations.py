from datetime import timedelta

import pytest
from conftest import auth_headers, make_book

from edupulse.models import BookReservation, BookStatus, Notification, ReservationStatus, utcnow

API = "/api/v1/reservations"


@pytest.fixture()
def lent_book(client, db, teacher):
    book = make_book(db, copies=1)
    r = client.post("/api/v1/loans/borrow", json={"book_id": book.id}, headers=auth_headers(teacher))
    assert r.status_code == 201
    return book


def _reserve(client, user, book_id, **fields):
    return client.post(API, json={"book_id": book_id, **fields}, headers=auth_headers(user))


def test_reserve_unavailable_book(client, db, student, lent_book):
    r = _reserve(client, student, lent_book.id)
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["status"] == "PENDING"
    assert data["user_type"] == "student"

    db.refresh(lent_book)
    assert lent_book.status == BookStatus.RESERVED

    r = _reserve(client, student, lent_book.id)
    assert r.status_code == 409


def test_cannot_reserve_available_book(client, db, student):
    book = make_book(db)
    r = _reserve(client, student, book.id)
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Book is currently available - no need to reserve"


def test_availability_reports_queue_position(client, student, other_student, lent_book):
    r = client.get(f"{API}/availability", params={"book_id": lent_book.id}, headers=auth_headers(student))
    data = r.json()["data"]
    assert data["can_reserve"] is True
    assert data["queue_position"] == 1
    assert data["estimated_wait_time"] == "1 people ahead"

    _reserve(client, other_student, lent_book.id)
    _reserve(client, student, lent_book.id)
    r = client.get(f"{API}/availability", params={"book_id": lent_book.id}, headers=auth_headers(student))
    data = r.json()["data"]
    assert data["can_reserve"] is False
    assert data["existing_reservation"]["position"] == 2
    assert data["active_reservations"] == 2


def test_availability_for_someone_else_requires_admin(client, admin, student, other_student, lent_book):
    params = {"book_id": lent_book.id, "user_id": other_student.id}
    r = client.get(f"{API}/availability", params=params, headers=auth_headers(student))
    assert r.status_code == 403
    assert client.get(f"{API}/availability", params=params, headers=auth_headers(admin)).status_code == 200


def test_cancel_reservation(client, db, student, other_student, lent_book):
    reservation = _reserve(client, student, lent_book.id).json()["data"]

    r = client.post(f"{API}/{reservation['id']}/cancel", headers=auth_headers(other_student))
    assert r.status_code == 403

    r = client.post(f"{API}/{reservation['id']}/cancel", json={"reason": "found a copy"}, headers=auth_headers(student))
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "CANCELLED"
    assert "Cancelled: found a copy" in r.json()["data"]["notes"]

    db.refresh(lent_book)
    assert lent_book.status == BookStatus.BORROWED

    r = client.post(f"{API}/{reservation['id']}/cancel", headers=auth_headers(student))
    assert r.status_code == 400


def test_fulfill_reservation_creates_loan(client, db, admin, teacher, student, lent_book):
    reservation = _reserve(client, student, lent_book.id).json()["data"]
    headers = auth_headers(admin)

    r = client.post(f"{API}/{reservation['id']}/fulfill", headers=headers)
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Book is not available for fulfillment"

    loans = client.get("/api/v1/loans", headers=auth_headers(teacher)).json()["data"]
    client.post(f"/api/v1/loans/{loans[0]['id']}/return", headers=auth_headers(teacher))

    r = client.post(f"{API}/{reservation['id']}/fulfill", json={"loan_duration_days": 7}, headers=headers)
    assert r.status_code == 200
    result = r.json()["data"]
    assert result["reservation"]["status"] == "FULFILLED"
    assert result["loan"]["user_id"] == student.id
    assert result["loan"]["borrower_type"] == "student"

    db.refresh(lent_book)
    assert (lent_book.available_copies, lent_book.status) == (0, BookStatus.BORROWED)
    notification = db.query(Notification).filter(Notification.user_id == student.id).one()
    assert notification.type == "RESERVATION_FULFILLED"


def test_process_expired_reservations(client, db, admin, student, lent_book):
    reservation = _reserve(client, student, lent_book.id).json()["data"]
    stored = db.get(BookReservation, reservation["id"])
    stored.expires_at = utcnow() - timedelta(hours=1)
    db.commit()

    r = client.get(f"{API}/expired", headers=auth_headers(admin))
    assert r.json()["pagination"]["total"] == 1

    r = client.post(f"{API}/process-expired", headers=auth_headers(admin))
    assert r.json()["data"] == {"processed": 1}
    db.refresh(stored)
    assert stored.status == ReservationStatus.EXPIRED
    db.refresh(lent_book)
    assert lent_book.status == BookStatus.BORROWED


def test_expiring_reservations_are_notified(client, db, admin, student, lent_book):
    reservation = _reserve(client, student, lent_book.id).json()["data"]
    stored = db.get(BookReservation, reservation["id"])
    stored.expires_at = utcnow() + timedelta(hours=6)
    db.commit()

    r = client.post(f"{API}/notify", headers=auth_headers(admin))
    data = r.json()["data"]
    assert data["notifications_sent"] == 1
    assert data["reservations"][0]["reservation_id"] == reservation["id"]


def test_bulk_cancel_requires_pending(client, admin, student, other_student, lent_book):
    first = _reserve(client, student, lent_book.id).json()["data"]
    second = _reserve(client, other_student, lent_book.id).json()["data"]
    headers = auth_headers(admin)

    r = client.post(f"{API}/bulk-cancel", json={"reservation_ids": [first["id"], 999]}, headers=headers)
    assert r.status_code == 400

    r = client.post(f"{API}/bulk-cancel", json={"reservation_ids": [first["id"], second["id"]]}, headers=headers)
    assert r.json()["data"] == {"cancelled": 2}


def test_reservation_limit(client, db, student, teacher):
    for index in range(3):
        book = make_book(db, isbn=f"978111111111{index}")
        client.post("/api/v1/loans/borrow", json={"book_id": book.id}, headers=auth_headers(teacher))
        assert _reserve(client, student, book.id).status_code == 201

    extra = make_book(db, isbn="9781111111119")
    client.post("/api/v1/loans/borrow", json={"book_id": extra.id}, headers=auth_headers(teacher))
    r = _reserve(client, student, extra.id)
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "You have reached the maximum reservation limit of 3 books"

    summary = client.get(f"{API}/user/{student.id}", headers=auth_headers(student)).json()["data"]
    assert summary["total_active"] == 3
    assert summary["can_reserve"] is False


def _return_teacher_copy(client, teacher):
    loans = client.get("/api/v1/loans", headers=auth_headers(teacher)).json()["data"]
    r = client.post(f"/api/v1/loans/{loans[0]['id']}/return", headers=auth_headers(teacher))
    assert r.status_code == 200


def test_teacher_fulfills_reservation(client, teacher, student, lent_book):
    reservation = _reserve(client, student, lent_book.id).json()["data"]
    headers = auth_headers(teacher)

    r = client.get(f"{API}/pending", headers=headers)
    assert r.json()["pagination"]["total"] == 1

    _return_teacher_copy(client, teacher)
    r = client.post(f"{API}/{reservation['id']}/fulfill", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["loan"]["user_id"] == student.id

    r = client.put(f"{API}/{reservation['id']}", json={"notes": "picked up"}, headers=headers)
    assert r.json()["data"]["notes"] == "picked up"


def test_students_cannot_fulfill_reservations(client, student, teacher, lent_book):
    reservation = _reserve(client, student, lent_book.id).json()["data"]
    _return_teacher_copy(client, teacher)
    assert client.post(f"{API}/{reservation['id']}/fulfill", headers=auth_headers(student)).status_code == 403
    assert client.get(f"{API}/pending", headers=auth_headers(student)).status_code == 403


def test_cancelled_reservation_cannot_be_fulfilled(client, admin, teacher, student, lent_book):
    reservation = _reserve(client, student, lent_book.id).json()["data"]
    client.post(f"{API}/{reservation['id']}/cancel", headers=auth_headers(student))
    _return_teacher_copy(client, teacher)

    r = client.post(f"{API}/{reservation['id']}/fulfill", headers=auth_headers(admin))
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Only pending reservations can be fulfilled"


def test_fulfilled_reservation_cannot_be_fulfilled_again(client, admin, teacher, student, lent_book):
    reservation = _reserve(client, student, lent_book.id).json()["data"]
    _return_teacher_copy(client, teacher)
    headers = auth_headers(admin)

    assert client.post(f"{API}/{reservation['id']}/fulfill", headers=headers).status_code == 200
    r = client.post(f"{API}/{reservation['id']}/fulfill", headers=headers)
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Only pending reservations can be fulfilled"


def test_expired_reservation_cannot_be_fulfilled(client, db, admin, teacher, student, lent_book):
    reservation = _reserve(client, student, lent_book.id).json()["data"]
    stored = db.get(BookReservation, reservation["id"])
    stored.expires_at = utcnow() - timedelta(hours=1)
    db.commit()
    _return_teacher_copy(client, teacher)

    r = client.post(f"{API}/{reservation['id']}/fulfill", headers=auth_headers(admin))
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Cannot fulfill expired reservation"
