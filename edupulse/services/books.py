from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ..app_logger import get_logger
from ..errors import BadRequestError, ConflictError, NotFoundError
from ..models import Book, BookLoan, BookReservation, BookStatus, LoanStatus, ReservationStatus, utcnow
from ..pagination import Page, apply_sort, count_where, paginate, search_clause
from ..schemas.library import BookCreate, BookUpdate
from .common import apply_changes, get_or_404, save

logger = get_logger("books")

SORTABLE = {"title", "author", "category", "publish_year", "created_at", "available_copies"}
OPEN_LOAN_STATUSES = (LoanStatus.ACTIVE, LoanStatus.OVERDUE)


def take_copy(db: Session, book_id: int) -> bool:
    """Atomically decrement available copies; False when none are left."""
    result = db.execute(
        update(Book)
        .where(Book.id == book_id, Book.available_copies > 0)
        .values(available_copies=Book.available_copies - 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def give_back_copy(db: Session, book_id: int) -> bool:
    result = db.execute(
        update(Book)
        .where(Book.id == book_id, Book.available_copies < Book.total_copies)
        .values(available_copies=Book.available_copies + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def live_reservations(db: Session, book_id: int) -> int:
    return (
        db.query(func.count(BookReservation.id))
        .filter(
            BookReservation.book_id == book_id,
            BookReservation.status == ReservationStatus.PENDING,
            BookReservation.expires_at > utcnow(),
        )
        .scalar()
        or 0
    )


def refresh_book_status(db: Session, book: Book) -> Book:
    db.flush()
    db.refresh(book)
    if book.status == BookStatus.MAINTENANCE:
        return book
    if book.available_copies > 0:
        book.status = BookStatus.AVAILABLE
    elif live_reservations(db, book.id) > 0:
        book.status = BookStatus.RESERVED
    else:
        book.status = BookStatus.BORROWED
    return book


def open_loans_count(db: Session, book_id: int) -> int:
    return (
        db.query(func.count(BookLoan.id))
        .filter(BookLoan.book_id == book_id, BookLoan.status.in_(OPEN_LOAN_STATUSES))
        .scalar()
        or 0
    )


def create_book(db: Session, *, data: BookCreate) -> Book:
    if db.query(Book).filter(Book.isbn == data.isbn).first():
        raise ConflictError("Book with this ISBN already exists")
    book = Book(**data.model_dump(), available_copies=data.total_copies, status=BookStatus.AVAILABLE)
    db.add(book)
    save(db, book)
    logger.info("Added book %s (%s)", book.id, book.isbn)
    return book


def list_books(
    db: Session,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    isbn: str | None = None,
    author: str | None = None,
    category: str | None = None,
    status: BookStatus | None = None,
    available: bool | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> Page:
    query = db.query(Book)
    clause = search_clause(search, Book.title, Book.author, Book.isbn, Book.description)
    if clause is not None:
        query = query.filter(clause)
    if isbn:
        query = query.filter(Book.isbn == isbn)
    if author:
        query = query.filter(func.lower(Book.author).like(f"%{author.strip().lower()}%"))
    if category:
        query = query.filter(func.lower(Book.category) == category.strip().lower())
    if status is not None:
        query = query.filter(Book.status == status)
    if available is True:
        query = query.filter(Book.available_copies > 0)
    elif available is False:
        query = query.filter(Book.available_copies == 0)
    query = apply_sort(query, Book, sort_by, sort_order, SORTABLE, "title")
    return paginate(query, page, limit)


def get_book(db: Session, book_id: int) -> Book:
    return get_or_404(db, Book, book_id, "Book")


def book_detail(db: Session, book_id: int) -> dict:
    book = get_book(db, book_id)
    active_loans = (
        db.query(BookLoan)
        .filter(BookLoan.book_id == book.id, BookLoan.status.in_(OPEN_LOAN_STATUSES))
        .order_by(BookLoan.due_date)
        .all()
    )
    pending = (
        db.query(BookReservation)
        .filter(BookReservation.book_id == book.id, BookReservation.status == ReservationStatus.PENDING)
        .order_by(BookReservation.reserved_at, BookReservation.id)
        .all()
    )
    return {"book": book, "active_loans": active_loans, "pending_reservations": pending}


def get_book_by_isbn(db: Session, isbn: str) -> Book:
    cleaned = isbn.replace("-", "").replace(" ", "").upper()
    book = db.query(Book).filter(Book.isbn == cleaned).first()
    if not book:
        raise NotFoundError("Book")
    return book


def update_book(db: Session, *, book_id: int, data: BookUpdate) -> Book:
    book = get_book(db, book_id)
    changes = data.model_dump(exclude_unset=True)
    for key in ("title", "author", "category", "total_copies", "status"):
        if key in changes and changes[key] is None:
            del changes[key]

    new_total = changes.pop("total_copies", None)
    if new_total is not None and new_total != book.total_copies:
        on_loan = book.total_copies - book.available_copies
        if new_total < on_loan:
            raise BadRequestError(f"Total copies cannot be less than the {on_loan} copies currently on loan")
        book.available_copies = new_total - on_loan
        book.total_copies = new_total

    requested_status = changes.pop("status", None)
    apply_changes(book, changes)
    if requested_status == BookStatus.MAINTENANCE:
        book.status = BookStatus.MAINTENANCE
    elif requested_status is not None or book.status != BookStatus.MAINTENANCE:
        # status is derived from copies and the queue unless the book is in maintenance
        book.status = BookStatus.AVAILABLE
        refresh_book_status(db, book)
    save(db, book)
    return book


def delete_book(db: Session, *, book_id: int) -> None:
    book = get_book(db, book_id)
    if open_loans_count(db, book.id) > 0:
        raise BadRequestError("Cannot delete book with active loans")
    db.delete(book)
    db.commit()
    logger.info("Deleted book %s", book_id)


def check_availability(db: Session, book_id: int) -> dict:
    book = get_book(db, book_id)
    waiting = (
        db.query(func.count(BookReservation.id))
        .filter(BookReservation.book_id == book.id, BookReservation.status == ReservationStatus.PENDING)
        .scalar()
        or 0
    )
    return {
        "book_id": book.id,
        "title": book.title,
        "total_copies": book.total_copies,
        "available_copies": book.available_copies,
        "is_available": book.available_copies > 0,
        "waiting_list": waiting,
    }


def popular_books(db: Session, limit: int = 10) -> list[dict]:
    rows = (
        db.query(Book, func.count(BookLoan.id).label("loan_count"))
        .outerjoin(BookLoan, BookLoan.book_id == Book.id)
        .group_by(Book.id)
        .order_by(func.count(BookLoan.id).desc(), Book.title)
        .limit(limit)
        .all()
    )
    return [{"book": book, "loan_count": loan_count} for book, loan_count in rows]


def recent_books(db: Session, limit: int = 10) -> list[Book]:
    return db.query(Book).order_by(Book.created_at.desc(), Book.id.desc()).limit(limit).all()


def list_categories(db: Session) -> list[str]:
    return [category for (category,) in db.query(Book.category).distinct().order_by(Book.category).all()]


def books_statistics(db: Session) -> dict:
    total_books = count_where(db, Book)
    available_books = count_where(db, Book, Book.available_copies > 0)
    borrowed_books = count_where(db, Book, Book.available_copies == 0)
    categories = db.query(Book.category, func.count(Book.id)).group_by(Book.category).all()
    total_copies = db.query(func.coalesce(func.sum(Book.total_copies), 0)).scalar()
    available_copies = db.query(func.coalesce(func.sum(Book.available_copies), 0)).scalar()
    active_loans = count_where(db, BookLoan, BookLoan.status.in_(OPEN_LOAN_STATUSES))
    pending_reservations = count_where(db, BookReservation, BookReservation.status == ReservationStatus.PENDING)
    return {
        "total_books": total_books,
        "available_books": available_books,
        "borrowed_books": borrowed_books,
        "total_copies": int(total_copies),
        "available_copies": int(available_copies),
        "category_distribution": [
            {"category": category, "count": count} for category, count in sorted(categories)
        ],
        "total_active_loans": active_loans,
        "total_pending_reservations": pending_reservations,
    }
