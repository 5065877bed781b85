from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..app_logger import get_logger
from ..errors import AuthorizationError, BadRequestError, ConflictError
from ..models import (
    Book,
    BookLoan,
    BookReservation,
    BorrowerType,
    LoanStatus,
    ReservationStatus,
    User,
    as_naive_utc,
    utcnow,
)
from ..pagination import Page, apply_sort, paginate, search_clause
from ..schemas.library import ReservationCreate, ReservationFulfill, ReservationUpdate
from .books import get_book, refresh_book_status, take_copy
from .common import get_or_404, is_admin
from .loans import resolve_borrower
from .notifications import notify

logger = get_logger("reservations")

RESERVATION_DURATION_DAYS = 7
MAX_RESERVATIONS_PER_USER = 3
NOTIFICATION_DAYS = 1

SORTABLE = {"reserved_at", "expires_at", "status", "created_at"}


def pending_count_for(db: Session, user_id: int) -> int:
    return (
        db.query(func.count(BookReservation.id))
        .filter(BookReservation.user_id == user_id, BookReservation.status == ReservationStatus.PENDING)
        .scalar()
        or 0
    )


def pending_reservation(db: Session, *, user_id: int, book_id: int) -> BookReservation | None:
    return (
        db.query(BookReservation)
        .filter(
            BookReservation.user_id == user_id,
            BookReservation.book_id == book_id,
            BookReservation.status == ReservationStatus.PENDING,
        )
        .first()
    )


def queue_position(db: Session, *, book_id: int, user_id: int) -> int:
    """1-based place of the user among pending reservations for a book, 0 if absent."""
    queue = (
        db.query(BookReservation.user_id)
        .filter(BookReservation.book_id == book_id, BookReservation.status == ReservationStatus.PENDING)
        .order_by(BookReservation.reserved_at, BookReservation.id)
        .all()
    )
    for index, (queued_user_id,) in enumerate(queue, start=1):
        if queued_user_id == user_id:
            return index
    return 0


def check_availability(db: Session, *, book_id: int, user_id: int) -> dict:
    book = get_book(db, book_id)

    existing = pending_reservation(db, user_id=user_id, book_id=book.id)
    if existing is not None:
        position = queue_position(db, book_id=book.id, user_id=user_id)
        waiting = (
            db.query(func.count(BookReservation.id))
            .filter(BookReservation.book_id == book.id, BookReservation.status == ReservationStatus.PENDING)
            .scalar()
        )
        return {
            "can_reserve": False,
            "current_position": position,
            "estimated_wait_time": None,
            "active_reservations": waiting,
            "queue_position": position,
            "existing_reservation": {"id": existing.id, "status": existing.status, "position": position},
        }

    if pending_count_for(db, user_id) >= MAX_RESERVATIONS_PER_USER:
        return {
            "can_reserve": False,
            "current_position": None,
            "estimated_wait_time": None,
            "active_reservations": 0,
            "queue_position": 0,
            "existing_reservation": None,
        }

    active = (
        db.query(func.count(BookReservation.id))
        .filter(
            BookReservation.book_id == book.id,
            BookReservation.status == ReservationStatus.PENDING,
            BookReservation.expires_at > utcnow(),
        )
        .scalar()
        or 0
    )
    position = active + 1
    if book.available_copies > 0:
        wait = "Available now"
    else:
        wait = f"{position - book.available_copies} people ahead"
    return {
        "can_reserve": True,
        "current_position": position,
        "estimated_wait_time": wait,
        "active_reservations": active,
        "queue_position": position,
        "existing_reservation": None,
    }


def create_reservation(db: Session, *, data: ReservationCreate, actor: User) -> BookReservation:
    book = get_book(db, data.book_id)
    borrower, borrower_type = resolve_borrower(db, actor=actor, user_id=data.user_id)

    if pending_reservation(db, user_id=borrower.id, book_id=book.id) is not None:
        raise ConflictError("You already have a reservation for this book")
    if pending_count_for(db, borrower.id) >= MAX_RESERVATIONS_PER_USER:
        raise BadRequestError(
            f"You have reached the maximum reservation limit of {MAX_RESERVATIONS_PER_USER} books"
        )
    if book.available_copies > 0:
        raise BadRequestError("Book is currently available - no need to reserve")

    now = utcnow()
    reservation = BookReservation(
        book_id=book.id,
        user_id=borrower.id,
        user_type=borrower_type,
        reserved_at=now,
        expires_at=now + timedelta(days=RESERVATION_DURATION_DAYS),
        status=ReservationStatus.PENDING,
        notes=data.notes,
    )
    try:
        db.add(reservation)
        refresh_book_status(db, book)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(reservation)
    logger.info("Reservation %s: book %s for user %s", reservation.id, book.id, borrower.id)
    return reservation


def get_reservation(db: Session, reservation_id: int, actor: User | None = None) -> BookReservation:
    reservation = get_or_404(db, BookReservation, reservation_id, "Reservation")
    if actor is not None and not is_admin(actor) and reservation.user_id != actor.id:
        raise AuthorizationError("You can only access your own reservations")
    return reservation


def list_reservations(
    db: Session,
    *,
    actor: User,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    user_id: int | None = None,
    user_type: BorrowerType | None = None,
    book_id: int | None = None,
    status: ReservationStatus | None = None,
    expired: bool | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> Page:
    query = (
        db.query(BookReservation)
        .join(BookReservation.book)
        .options(joinedload(BookReservation.book), joinedload(BookReservation.user))
    )
    if not is_admin(actor):
        query = query.filter(BookReservation.user_id == actor.id)
    elif user_id is not None:
        query = query.filter(BookReservation.user_id == user_id)

    clause = search_clause(search, Book.title, Book.author, Book.isbn)
    if clause is not None:
        query = query.filter(clause)
    if user_type is not None:
        query = query.filter(BookReservation.user_type == user_type)
    if book_id is not None:
        query = query.filter(BookReservation.book_id == book_id)
    if status is not None:
        query = query.filter(BookReservation.status == status)
    if expired is True:
        query = query.filter(BookReservation.expires_at < utcnow())
    elif expired is False:
        query = query.filter(BookReservation.expires_at >= utcnow())
    query = apply_sort(query, BookReservation, sort_by, sort_order or "desc", SORTABLE, "reserved_at")
    return paginate(query, page, limit)


def pending_reservations(db: Session, *, page: int = 1, limit: int = 10) -> Page:
    query = (
        db.query(BookReservation)
        .options(joinedload(BookReservation.book), joinedload(BookReservation.user))
        .filter(BookReservation.status == ReservationStatus.PENDING, BookReservation.expires_at >= utcnow())
        .order_by(BookReservation.reserved_at, BookReservation.id)
    )
    return paginate(query, page, limit)


def expired_reservations(db: Session, *, page: int = 1, limit: int = 10) -> Page:
    query = (
        db.query(BookReservation)
        .options(joinedload(BookReservation.book), joinedload(BookReservation.user))
        .filter(BookReservation.status == ReservationStatus.PENDING, BookReservation.expires_at < utcnow())
        .order_by(BookReservation.expires_at.desc(), BookReservation.id)
    )
    return paginate(query, page, limit)


def cancel_reservation(db: Session, *, reservation_id: int, actor: User, reason: str | None = None) -> BookReservation:
    reservation = get_reservation(db, reservation_id, actor)
    if reservation.status != ReservationStatus.PENDING:
        raise BadRequestError("Only pending reservations can be cancelled")

    reservation.status = ReservationStatus.CANCELLED
    if reason:
        reservation.notes = f"{reservation.notes or ''}\nCancelled: {reason}".strip()
    try:
        refresh_book_status(db, reservation.book)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(reservation)
    return reservation


def fulfill_reservation(db: Session, *, reservation_id: int, data: ReservationFulfill) -> tuple[BookReservation, BookLoan]:
    reservation = get_reservation(db, reservation_id)
    if reservation.status != ReservationStatus.PENDING:
        raise BadRequestError("Only pending reservations can be fulfilled")
    now = utcnow()
    if reservation.expires_at < now:
        raise BadRequestError("Cannot fulfill expired reservation")
    book = reservation.book
    if book.available_copies <= 0:
        raise BadRequestError("Book is not available for fulfillment")

    try:
        if not take_copy(db, book.id):
            raise BadRequestError("Book is not available for fulfillment")
        loan = BookLoan(
            book_id=book.id,
            user_id=reservation.user_id,
            borrower_type=reservation.user_type,
            borrowed_at=now,
            due_date=now + timedelta(days=data.loan_duration_days),
            status=LoanStatus.ACTIVE,
            notes=data.notes or f"Fulfilled from reservation {reservation.id}",
        )
        db.add(loan)
        reservation.status = ReservationStatus.FULFILLED
        refresh_book_status(db, book)
        notify(
            db,
            user_id=reservation.user_id,
            type="RESERVATION_FULFILLED",
            title="Reserved book ready",
            message=f'"{book.title}" has been checked out to you.',
            link="/library/loans",
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(reservation)
    db.refresh(loan)
    logger.info("Reservation %s fulfilled as loan %s", reservation.id, loan.id)
    return reservation, loan


def update_reservation(db: Session, *, reservation_id: int, data: ReservationUpdate) -> BookReservation:
    reservation = get_reservation(db, reservation_id)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("expires_at") is not None:
        expires_at = as_naive_utc(changes["expires_at"])
        if expires_at <= reservation.reserved_at:
            raise BadRequestError("Expiry must be after the reservation date")
        reservation.expires_at = expires_at
    if "notes" in changes:
        reservation.notes = changes["notes"]
    try:
        refresh_book_status(db, reservation.book)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(reservation)
    return reservation


def delete_reservation(db: Session, *, reservation_id: int) -> None:
    reservation = get_reservation(db, reservation_id)
    book = reservation.book
    try:
        db.delete(reservation)
        refresh_book_status(db, book)
        db.commit()
    except Exception:
        db.rollback()
        raise


def _refresh_books(db: Session, book_ids: set[int]) -> None:
    for book_id in book_ids:
        book = db.get(Book, book_id)
        if book is not None:
            refresh_book_status(db, book)


def process_expired_reservations(db: Session) -> int:
    stale = (
        db.query(BookReservation)
        .filter(BookReservation.status == ReservationStatus.PENDING, BookReservation.expires_at < utcnow())
        .all()
    )
    for reservation in stale:
        reservation.status = ReservationStatus.EXPIRED
    try:
        _refresh_books(db, {reservation.book_id for reservation in stale})
        db.commit()
    except Exception:
        db.rollback()
        raise
    if stale:
        logger.info("Expired %s reservations", len(stale))
    return len(stale)


def bulk_cancel(db: Session, *, reservation_ids: list[int], reason: str | None = None) -> int:
    unique_ids = list(dict.fromkeys(reservation_ids))
    reservations = (
        db.query(BookReservation)
        .filter(BookReservation.id.in_(unique_ids), BookReservation.status == ReservationStatus.PENDING)
        .all()
    )
    if len(reservations) != len(unique_ids):
        raise BadRequestError("Some reservations not found or not in PENDING status")

    for reservation in reservations:
        reservation.status = ReservationStatus.CANCELLED
        if reason:
            reservation.notes = f"{reservation.notes or ''}\nCancelled: {reason}".strip()
    try:
        _refresh_books(db, {reservation.book_id for reservation in reservations})
        db.commit()
    except Exception:
        db.rollback()
        raise
    return len(reservations)


def send_reservation_notifications(db: Session) -> dict:
    now = utcnow()
    expiring = (
        db.query(BookReservation)
        .options(joinedload(BookReservation.book))
        .filter(
            BookReservation.status == ReservationStatus.PENDING,
            BookReservation.expires_at >= now,
            BookReservation.expires_at <= now + timedelta(days=NOTIFICATION_DAYS),
        )
        .all()
    )
    sent = []
    for reservation in expiring:
        notify(
            db,
            user_id=reservation.user_id,
            type="EXPIRING_SOON",
            title="Reservation expiring soon",
            message=f'Your reservation for "{reservation.book.title}" expires on '
            f"{reservation.expires_at:%Y-%m-%d %H:%M} UTC.",
            link=f"/library/reservations/{reservation.id}",
        )
        sent.append(
            {
                "reservation_id": reservation.id,
                "user_id": reservation.user_id,
                "book_title": reservation.book.title,
                "expires_at": reservation.expires_at,
                "notification_type": "EXPIRING_SOON",
            }
        )
    db.commit()
    return {"notifications_sent": len(sent), "reservations": sent}


def reservations_statistics(db: Session) -> dict:
    by_status = dict(
        db.query(BookReservation.status, func.count(BookReservation.id)).group_by(BookReservation.status).all()
    )
    overdue_pending = (
        db.query(func.count(BookReservation.id))
        .filter(BookReservation.status == ReservationStatus.PENDING, BookReservation.expires_at < utcnow())
        .scalar()
        or 0
    )
    most_requested = (
        db.query(Book.id, Book.title, func.count(BookReservation.id))
        .join(BookReservation, BookReservation.book_id == Book.id)
        .group_by(Book.id, Book.title)
        .order_by(func.count(BookReservation.id).desc(), Book.title)
        .limit(10)
        .all()
    )
    return {
        "total_reservations": sum(by_status.values()),
        "pending_reservations": by_status.get(ReservationStatus.PENDING, 0),
        "fulfilled_reservations": by_status.get(ReservationStatus.FULFILLED, 0),
        "cancelled_reservations": by_status.get(ReservationStatus.CANCELLED, 0),
        "expired_reservations": by_status.get(ReservationStatus.EXPIRED, 0) + overdue_pending,
        "by_status": [
            {"status": status.value, "count": by_status.get(status, 0)} for status in ReservationStatus
        ],
        "most_requested_books": [
            {"book_id": book_id, "title": title, "reservation_count": count}
            for book_id, title, count in most_requested
        ],
    }


def user_reservations_summary(db: Session, *, user_id: int, actor: User) -> dict:
    if not is_admin(actor) and actor.id != user_id:
        raise AuthorizationError("You can only access your own reservations")
    get_or_404(db, User, user_id, "User")
    now = utcnow()
    reservations = (
        db.query(BookReservation)
        .options(joinedload(BookReservation.book))
        .filter(BookReservation.user_id == user_id)
        .order_by(BookReservation.reserved_at.desc(), BookReservation.id.desc())
        .all()
    )
    pending = [r for r in reservations if r.status == ReservationStatus.PENDING]
    active = sorted((r for r in pending if r.expires_at >= now), key=lambda r: r.expires_at)
    return {
        "active": active,
        "expired": [r for r in pending if r.expires_at < now]
        + [r for r in reservations if r.status == ReservationStatus.EXPIRED],
        "fulfilled": [r for r in reservations if r.status == ReservationStatus.FULFILLED],
        "total_active": len(active),
        "can_reserve": len(pending) < MAX_RESERVATIONS_PER_USER,
    }


