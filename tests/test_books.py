from conftest import auth_headers, make_book

from edupulse.models import BookLoan, BookStatus, BorrowerType, LoanStatus, utcnow

API = "/api/v1/books"

NEW_BOOK = {
    "isbn": "978-0-13-235088-4",
    "title": "Clean Code",
    "author": "Robert C. Martin",
    "category": "Programming",
    "total_copies": 3,
}


def test_staff_adds_book_with_clean_isbn(client, teacher):
    r = client.post(API, json=NEW_BOOK, headers=auth_headers(teacher))
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["isbn"] == "9780132350884"
    assert data["available_copies"] == 3
    assert data["status"] == "AVAILABLE"

    r = client.post(API, json=NEW_BOOK, headers=auth_headers(teacher))
    assert r.status_code == 409


def test_invalid_isbn_rejected(client, admin):
    r = client.post(API, json={**NEW_BOOK, "isbn": "12345-ABCDE"}, headers=auth_headers(admin))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


def test_students_cannot_add_books(client, student):
    assert client.post(API, json=NEW_BOOK, headers=auth_headers(student)).status_code == 403


def test_search_and_lookups(client, db, student):
    make_book(db)
    make_book(db, isbn="9780143127741", title="The Martian", author="Andy Weir", category="Fiction")
    headers = auth_headers(student)

    r = client.get(f"{API}/search", params={"q": "martian"}, headers=headers)
    assert [book["title"] for book in r.json()["data"]] == ["The Martian"]

    r = client.get(f"{API}/categories", headers=headers)
    assert r.json()["data"] == ["Fiction", "Programming"]

    r = client.get(f"{API}/author/weir", headers=headers)
    assert r.json()["pagination"]["total"] == 1

    r = client.get(f"{API}/isbn/978-0143127741", headers=headers)
    assert r.json()["data"]["title"] == "The Martian"


def test_shrinking_copies_below_loans_rejected(client, db, admin, student):
    book = make_book(db, copies=2)
    db.add(
        BookLoan(
            book_id=book.id,
            user_id=student.id,
            borrower_type=BorrowerType.STUDENT,
            borrowed_at=utcnow(),
            due_date=utcnow(),
            status=LoanStatus.ACTIVE,
        )
    )
    book.available_copies = 1
    db.commit()

    headers = auth_headers(admin)
    r = client.put(f"{API}/{book.id}", json={"total_copies": 4}, headers=headers)
    assert r.json()["data"]["available_copies"] == 3

    r = client.put(f"{API}/{book.id}", json={"total_copies": 0}, headers=headers)
    assert r.status_code == 400

    r = client.delete(f"{API}/{book.id}", headers=headers)
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Cannot delete book with active loans"


def test_maintenance_status_sticks(client, db, admin):
    book = make_book(db)
    headers = auth_headers(admin)
    r = client.put(f"{API}/{book.id}", json={"status": "MAINTENANCE"}, headers=headers)
    assert r.json()["data"]["status"] == "MAINTENANCE"

    r = client.put(f"{API}/{book.id}", json={"location": "Shelf B"}, headers=headers)
    assert r.json()["data"]["status"] == "MAINTENANCE"

    r = client.put(f"{API}/{book.id}", json={"status": "AVAILABLE"}, headers=headers)
    assert r.json()["data"]["status"] == "AVAILABLE"


def test_book_detail_and_availability(client, db, student):
    book = make_book(db, copies=2)
    headers = auth_headers(student)
    r = client.get(f"{API}/{book.id}", headers=headers)
    assert r.json()["data"]["book"]["id"] == book.id
    assert r.json()["data"]["active_loans"] == []

    r = client.get(f"{API}/{book.id}/availability", headers=headers)
    assert r.json()["data"] == {
        "book_id": book.id,
        "title": "Clean Code",
        "total_copies": 2,
        "available_copies": 2,
        "is_available": True,
        "waiting_list": 0,
    }
    assert client.get(f"{API}/999", headers=headers).status_code == 404


def test_books_statistics(client, db, teacher, student):
    make_book(db, copies=2)
    empty = make_book(db, isbn="9780143127741", copies=1)
    empty.available_copies = 0
    empty.status = BookStatus.BORROWED
    db.add(
        BookLoan(
            book_id=empty.id,
            user_id=student.id,
            borrower_type=BorrowerType.STUDENT,
            borrowed_at=utcnow(),
            due_date=utcnow(),
            status=LoanStatus.ACTIVE,
        )
    )
    db.commit()

    stats = client.get(f"{API}/stats", headers=auth_headers(teacher)).json()["data"]
    assert stats["total_books"] == 2
    assert stats["available_books"] == 1
    assert stats["borrowed_books"] == 1
    assert stats["total_copies"] == 3
    assert stats["available_copies"] == 2
    assert stats["total_active_loans"] == 1
    assert stats["total_pending_reservations"] == 0
