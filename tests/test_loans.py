from datetime import timedelta

from conftest import auth_headers, make_book

from edupulse.models import Book, BookLoan, BookStatus, LoanStatus, Notification, utcnow
from edupulse.services.loans import MAX_LOANS_PER_USER

API = "/api/v1/loans"


def _borrow(client, user, book_id, **fields):
    return client.post(f"{API}/borrow", json={"book_id": book_id, **fields}, headers=auth_headers(user))


def test_borrow_takes_a_copy(client, db, student):
    book = make_book(db, copies=2)
    r = _borrow(client, student, book.id)
    assert r.status_code == 201
    loan = r.json()["data"]
    assert loan["borrower_type"] == "student"
    assert loan["status"] == "ACTIVE"
    assert loan["book"]["available_copies"] == 1

    db.refresh(book)
    assert book.available_copies == 1
    assert book.status == BookStatus.AVAILABLE


def test_last_copy_marks_book_borrowed(client, db, student, other_student):
    book = make_book(db, copies=1)
    assert _borrow(client, student, book.id).status_code == 201
    db.refresh(book)
    assert book.status == BookStatus.BORROWED

    r = _borrow(client, other_student, book.id)
    assert r.status_code == 409
    assert r.json()["error"]["message"] == "No copies of this book are currently available"


def test_cannot_borrow_same_book_twice(client, db, student):
    book = make_book(db, copies=3)
    _borrow(client, student, book.id)
    r = _borrow(client, student, book.id)
    assert r.status_code == 409
    assert r.json()["error"]["message"] == "You already have this book on loan"


def test_loan_limit(client, db, teacher):
    for index in range(MAX_LOANS_PER_USER):
        book = make_book(db, isbn=f"978000000000{index}")
        assert _borrow(client, teacher, book.id).status_code == 201
    extra = make_book(db, isbn="9780000000099")
    r = _borrow(client, teacher, extra.id)
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "You have reached the maximum loan limit of 5 books"


def test_parents_cannot_borrow(client, db, parent):
    book = make_book(db)
    r = _borrow(client, parent, book.id)
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Only students and teachers can use the library"


def test_maintenance_book_cannot_be_borrowed(client, db, student):
    book = make_book(db)
    book.status = BookStatus.MAINTENANCE
    db.commit()
    assert _borrow(client, student, book.id).status_code == 400


def test_admin_borrows_on_behalf_of_member(client, db, admin, student, other_student):
    book = make_book(db, copies=2)
    r = _borrow(client, admin, book.id, user_id=student.id)
    assert r.status_code == 201
    assert r.json()["data"]["user_id"] == student.id

    r = _borrow(client, other_student, book.id, user_id=student.id)
    assert r.status_code == 403


def test_past_due_date_rejected(client, db, student):
    book = make_book(db)
    past = (utcnow() - timedelta(days=1)).isoformat()
    r = _borrow(client, student, book.id, due_date=past)
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Due date must be in the future"


def test_return_restores_copy_and_records_fine(client, db, student, other_student):
    book = make_book(db, copies=1)
    loan = _borrow(client, student, book.id).json()["data"]

    assert client.post(f"{API}/{loan['id']}/return", headers=auth_headers(other_student)).status_code == 403

    r = client.post(
        f"{API}/{loan['id']}/return",
        json={"fine_amount": 2.5, "condition_notes": "cover torn"},
        headers=auth_headers(student),
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["status"] == "RETURNED"
    assert data["fine_amount"] == 2.5
    assert data["fine_paid"] is False
    assert "cover torn" in data["notes"]

    db.refresh(book)
    assert (book.available_copies, book.status) == (1, BookStatus.AVAILABLE)

    r = client.post(f"{API}/{loan['id']}/return", headers=auth_headers(student))
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Book has already been returned"


def test_return_without_fine_is_settled(client, db, student):
    book = make_book(db)
    loan = _borrow(client, student, book.id).json()["data"]
    r = client.post(f"{API}/{loan['id']}/return", headers=auth_headers(student))
    assert r.json()["data"]["fine_paid"] is True


def test_extend_loan(client, db, student):
    book = make_book(db)
    loan = _borrow(client, student, book.id).json()["data"]
    headers = auth_headers(student)

    r = client.post(
        f"{API}/{loan['id']}/extend",
        json={"new_due_date": (utcnow() + timedelta(days=3)).isoformat()},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "New due date must be later than current due date"

    r = client.post(
        f"{API}/{loan['id']}/extend",
        json={"new_due_date": (utcnow() + timedelta(days=30)).isoformat(), "extension_reason": "exams"},
        headers=headers,
    )
    assert r.status_code == 200
    assert "Extended: exams" in r.json()["data"]["notes"]


def test_mark_overdue_notifies_borrower(client, db, admin, student):
    book = make_book(db)
    loan = _borrow(client, student, book.id).json()["data"]
    stored = db.get(BookLoan, loan["id"])
    stored.due_date = utcnow() - timedelta(days=3)
    db.commit()

    r = client.post(f"{API}/mark-overdue", headers=auth_headers(admin))
    assert r.json()["data"] == {"updated": 1}
    db.refresh(stored)
    assert stored.status == LoanStatus.OVERDUE

    notification = db.query(Notification).filter(Notification.user_id == student.id).one()
    assert notification.type == "LOAN_OVERDUE"

    r = client.get(f"{API}/overdue", headers=auth_headers(admin))
    assert r.json()["pagination"]["total"] == 1

    r = client.post(f"{API}/{loan['id']}/extend", json={"new_due_date": (utcnow() + timedelta(days=30)).isoformat()},
                    headers=auth_headers(student))
    assert r.status_code == 400


def test_members_only_see_their_own_loans(client, db, admin, student, other_student):
    book = make_book(db, copies=2)
    _borrow(client, student, book.id)
    _borrow(client, other_student, book.id)

    assert client.get(API, headers=auth_headers(student)).json()["pagination"]["total"] == 1
    assert client.get(API, headers=auth_headers(admin)).json()["pagination"]["total"] == 2
    r = client.get(API, params={"user_id": other_student.id}, headers=auth_headers(admin))
    assert r.json()["data"][0]["user_id"] == other_student.id


def test_user_loans_summary(client, db, student, other_student):
    first = make_book(db)
    second = make_book(db, isbn="9780143127741")
    returned = _borrow(client, student, first.id).json()["data"]
    _borrow(client, student, second.id)
    client.post(f"{API}/{returned['id']}/return", json={"fine_amount": 1}, headers=auth_headers(student))

    r = client.get(f"{API}/user/{student.id}", headers=auth_headers(student))
    summary = r.json()["data"]
    assert summary["total_active"] == 1
    assert [loan["id"] for loan in summary["history"]] == [returned["id"]]
    assert summary["unpaid_fines"] == 1.0
    assert summary["can_borrow"] is True

    assert client.get(f"{API}/user/{student.id}", headers=auth_headers(other_student)).status_code == 403


def test_bulk_return(client, db, admin, student):
    books = [make_book(db), make_book(db, isbn="9780143127741")]
    loans = [_borrow(client, student, book.id).json()["data"]["id"] for book in books]

    r = client.post(f"{API}/bulk-return", json={"loan_ids": loans}, headers=auth_headers(admin))
    assert r.status_code == 200
    assert {loan["status"] for loan in r.json()["data"]} == {"RETURNED"}
    assert all(book.available_copies == 1 for book in db.query(Book).all())

    r = client.post(f"{API}/bulk-return", json={"loan_ids": loans}, headers=auth_headers(admin))
    assert r.status_code == 400


def test_update_cannot_return_loan(client, db, admin, student):
    book = make_book(db)
    loan = _borrow(client, student, book.id).json()["data"]
    r = client.put(f"{API}/{loan['id']}", json={"status": "RETURNED"}, headers=auth_headers(admin))
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Use the return endpoint to close a loan"


def test_delete_open_loan_releases_copy(client, db, admin, student):
    book = make_book(db)
    loan = _borrow(client, student, book.id).json()["data"]
    assert client.delete(f"{API}/{loan['id']}", headers=auth_headers(admin)).status_code == 200
    db.refresh(book)
    assert (book.available_copies, book.status) == (1, BookStatus.AVAILABLE)


def test_loan_statistics(client, db, admin, student):
    book = make_book(db)
    loan = _borrow(client, student, book.id).json()["data"]
    client.post(f"{API}/{loan['id']}/return", json={"fine_amount": 3}, headers=auth_headers(student))

    stats = client.get(f"{API}/stats", headers=auth_headers(admin)).json()["data"]
    assert stats["total_loans"] == 1
    assert stats["returned_loans"] == 1
    assert stats["total_fines"] == 3.0
    assert stats["popular_books"] == [{"book_id": book.id, "title": "Clean Code", "loan_count": 1}]


def test_teachers_manage_loans(client, db, teacher, student):
    book = make_book(db)
    loan = _borrow(client, student, book.id).json()["data"]
    headers = auth_headers(teacher)

    r = client.put(f"{API}/{loan['id']}", json={"notes": "x"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["notes"] == "x"
    assert client.get(f"{API}/overdue", headers=headers).status_code == 200
    assert client.get(f"{API}/stats", headers=headers).json()["data"]["total_loans"] == 1

    assert client.delete(f"{API}/{loan['id']}", headers=headers).status_code == 403
    assert client.put(f"{API}/{loan['id']}", json={"notes": "y"}, headers=auth_headers(student)).status_code == 403
