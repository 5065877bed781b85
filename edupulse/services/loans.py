from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..app_logger import get_logger
from ..errors import AuthorizationError, BadRequestError, ConflictError, NotFoundError, ValidationError
from ..models import (
    Book,
    BookLoan,
    BookStatus,
    BorrowerType,
    LoanStatus,
    User,
    UserRole,
    as_naive_utc,
    utcnow,
)
from ..pagination import Page, apply_sort, paginate, search_clause
from ..schemas.library import LoanCreate, LoanExtend, LoanReturn, LoanUpdate
from .books import OPEN_LOAN_STATUSES, get_book, give_back_copy, refresh_book_status, take_copy
from .common import get_or_404, is_admin, save
from .notifications import notify

logger = get_logger("loans")

LOAN_DURATION_DAYS = 14
MAX_LOANS_PER_USER = 5

SORTABLE = {"due_date", "borrowed_at", "returned_at", "status", "created_at"}

ROLE_BORROWER_TYPES = {UserRole.STUDENT: BorrowerType.STUDENT, UserRole.TEACHER: BorrowerType.TEACHER}


def resolve_borrower(db: Session, *, actor: User, user_id: int | None) -> tuple[User, BorrowerType]:
    """Pick the library member a request acts for and check they can borrow."""
    if user_id is None or user_id == actor.id:
        borrower = actor
    elif is_admin(actor):
        borrower = db.get(User, user_id)
        if borrower is None:
            raise NotFoundError("Borrower")
    else:
        raise AuthorizationError("You can only act on your own library account")

    borrower_type = ROLE_BORROWER_TYPES.get(borrower.role)
    if borrower_type is None:
        raise BadRequestError("Only students and teachers can use the library")
    profile = borrower.student if borrower_type == BorrowerType.STUDENT else borrower.teacher
    if profile is None:
        raise NotFoundError(f"{borrower_type.value.capitalize()} profile")
    return borrower, borrower_type


def open_loans_for(db: Session, user_id: int) -> int:
    return (
        db.query(func.count(BookLoan.id))
        .filter(BookLoan.user_id == user_id, BookLoan.status.in_(OPEN_LOAN_STATUSES))
        .scalar()
        or 0
    )


def open_loan_exists(db: Session, *, user_id: int, book_id: int) -> bool:
    return (
        db.query(BookLoan.id)
        .filter(
            BookLoan.user_id == user_id,
            BookLoan.book_id == book_id,
            BookLoan.status.in_(OPEN_LOAN_STATUSES),
        )
        .first()
        is not None
    )


def _future_due_date(due_date: datetime | None) -> datetime:
    if due_date is None:
        return utcnow() + timedelta(days=LOAN_DURATION_DAYS)
    due_date = as_naive_utc(due_date)
    if due_date <= utcnow():
        raise ValidationError("Due date must be in the future")
    return due_date


def create_loan(db: Session, *, data: LoanCreate, actor: User) -> BookLoan:
    book = get_book(db, data.book_id)
    if book.status == BookStatus.MAINTENANCE:
        raise BadRequestError("Book is not available for loan")
    if book.available_copies <= 0:
        raise ConflictError("No copies of this book are currently available")

    borrower, borrower_type = resolve_borrower(db, actor=actor, user_id=data.user_id)
    if open_loans_for(db, borrower.id) >= MAX_LOANS_PER_USER:
        raise BadRequestError(f"You have reached the maximum loan limit of {MAX_LOANS_PER_USER} books")
    if open_loan_exists(db, user_id=borrower.id, book_id=book.id):
        raise ConflictError("You already have this book on loan")
    due_date = _future_due_date(data.due_date)

    try:
        if not take_copy(db, book.id):
            raise ConflictError("No copies of this book are currently available")
        loan = BookLoan(
            book_id=book.id,
            user_id=borrower.id,
            borrower_type=borrower_type,
            borrowed_at=utcnow(),
            due_date=due_date,
            status=LoanStatus.ACTIVE,
            notes=data.notes,
        )
        db.add(loan)
        refresh_book_status(db, book)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(loan)
    logger.info("Loan %s: book %s to user %s due %s", loan.id, book.id, borrower.id, due_date.isoformat())
    return loan


def _ensure_can_view(loan: BookLoan, actor: User) -> None:
    if not is_admin(actor) and loan.user_id != actor.id:
        raise AuthorizationError("You can only view your own loans")


def get_loan(db: Session, loan_id: int, actor: User | None = None) -> BookLoan:
    loan = get_or_404(db, BookLoan, loan_id, "Loan")
    if actor is not None:
        _ensure_can_view(loan, actor)
    return loan


def list_loans(
    db: Session,
    *,
    actor: User,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    user_id: int | None = None,
    borrower_type: BorrowerType | None = None,
    book_id: int | None = None,
    status: LoanStatus | None = None,
    overdue: bool | None = None,
    due_from: datetime | None = None,
    due_to: datetime | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> Page:
    query = db.query(BookLoan).join(BookLoan.book).options(joinedload(BookLoan.book), joinedload(BookLoan.user))
    if not is_admin(actor):
        query = query.filter(BookLoan.user_id == actor.id)
    elif user_id is not None:
        query = query.filter(BookLoan.user_id == user_id)

    clause = search_clause(search, Book.title, Book.author, Book.isbn)
    if clause is not None:
        query = query.filter(clause)
    if borrower_type is not None:
        query = query.filter(BookLoan.borrower_type == borrower_type)
    if book_id is not None:
        query = query.filter(BookLoan.book_id == book_id)
    if status is not None:
        query = query.filter(BookLoan.status == status)
    if overdue:
        query = query.filter(BookLoan.status.in_(OPEN_LOAN_STATUSES), BookLoan.due_date < utcnow())
    if due_from is not None:
        query = query.filter(BookLoan.due_date >= as_naive_utc(due_from))
    if due_to is not None:
        query = query.filter(BookLoan.due_date <= as_naive_utc(due_to))
    query = apply_sort(query, BookLoan, sort_by, sort_order, SORTABLE, "due_date")
    return paginate(query, page, limit)


def _close_loan(db: Session, loan: BookLoan, *, returned_at: datetime, fine_amount: float, notes: str | None) -> None:
    loan.status = LoanStatus.RETURNED
    loan.returned_at = returned_at
    loan.fine_amount = fine_amount
    loan.fine_paid = fine_amount == 0
    if notes:
        loan.notes = f"{loan.notes or ''}\nReturn notes: {notes}".strip()
    give_back_copy(db, loan.book_id)


def return_loan(db: Session, *, loan_id: int, data: LoanReturn, actor: User) -> BookLoan:
    loan = get_loan(db, loan_id, actor)
    if loan.status == LoanStatus.RETURNED:
        raise BadRequestError("Book has already been returned")

    try:
        _close_loan(
            db,
            loan,
            returned_at=as_naive_utc(data.return_date) or utcnow(),
            fine_amount=data.fine_amount,
            notes=data.condition_notes,
        )
        refresh_book_status(db, loan.book)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(loan)
    logger.info("Loan %s returned (fine %.2f)", loan.id, loan.fine_amount)
    return loan


def bulk_return(db: Session, *, loan_ids: list[int], condition_notes: str | None = None) -> list[BookLoan]:
    unique_ids = list(dict.fromkeys(loan_ids))
    loans = db.query(BookLoan).filter(BookLoan.id.in_(unique_ids)).all()
    if len(loans) != len(unique_ids) or any(loan.status == LoanStatus.RETURNED for loan in loans):
        raise BadRequestError("Some loans were not found or are already returned")

    now = utcnow()
    try:
        for loan in loans:
            _close_loan(db, loan, returned_at=now, fine_amount=0, notes=condition_notes)
        for book_id in {loan.book_id for loan in loans}:
            refresh_book_status(db, db.get(Book, book_id))
        db.commit()
    except Exception:
        db.rollback()
        raise
    for loan in loans:
        db.refresh(loan)
    logger.info("Bulk returned %s loans", len(loans))
    return loans


def extend_loan(db: Session, *, loan_id: int, data: LoanExtend, actor: User) -> BookLoan:
    loan = get_loan(db, loan_id, actor)
    if loan.status != LoanStatus.ACTIVE:
        raise BadRequestError("Only active loans can be extended")

    now = utcnow()
    new_due_date = as_naive_utc(data.new_due_date)
    if new_due_date <= now:
        raise ValidationError("New due date must be in the future")
    if new_due_date <= loan.due_date:
        raise ValidationError("New due date must be later than current due date")
    if loan.due_date < now:
        raise BadRequestError("Cannot extend overdue loans")

    loan.due_date = new_due_date
    if data.extension_reason:
        loan.notes = f"{loan.notes or ''}\nExtended: {data.extension_reason}".strip()
    save(db, loan)
    return loan


def update_loan(db: Session, *, loan_id: int, data: LoanUpdate) -> BookLoan:
    loan = get_loan(db, loan_id)
    changes = data.model_dump(exclude_unset=True)

    status = changes.pop("status", None)
    if status is not None and status != loan.status:
        if LoanStatus.RETURNED in (status, loan.status):
            raise BadRequestError("Use the return endpoint to close a loan")
        loan.status = status
    if changes.get("due_date") is not None:
        loan.due_date = _future_due_date(changes["due_date"])
    if changes.get("fine_amount") is not None:
        loan.fine_amount = changes["fine_amount"]
    if changes.get("fine_paid") is not None:
        loan.fine_paid = changes["fine_paid"]
    if "notes" in changes:
        loan.notes = changes["notes"]
    save(db, loan)
    return loan


def delete_loan(db: Session, *, loan_id: int) -> None:
    loan = get_loan(db, loan_id)
    book = loan.book
    try:
        if loan.status != LoanStatus.RETURNED:
            give_back_copy(db, loan.book_id)
        db.delete(loan)
        refresh_book_status(db, book)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Deleted loan %s", loan_id)


def overdue_loans(db: Session, *, page: int = 1, limit: int = 10) -> Page:
    query = (
        db.query(BookLoan)
        .options(joinedload(BookLoan.book), joinedload(BookLoan.user))
        .filter(BookLoan.status.in_(OPEN_LOAN_STATUSES), BookLoan.due_date < utcnow())
        .order_by(BookLoan.due_date, BookLoan.id)
    )
    return paginate(query, page, limit)


def mark_overdue_loans(db: Session) -> int:
    now = utcnow()
    loans = (
        db.query(BookLoan)
        .filter(BookLoan.status == LoanStatus.ACTIVE, BookLoan.due_date < now)
        .all()
    )
    for loan in loans:
        loan.status = LoanStatus.OVERDUE
        days_late = max((now - loan.due_date).days, 1)
        notify(
            db,
            user_id=loan.user_id,
            type="LOAN_OVERDUE",
            title="Library book overdue",
            message=f'"{loan.book.title}" was due {days_late} day(s) ago. Please return it.',
            link=f"/library/loans/{loan.id}",
        )
    db.commit()
    if loans:
        logger.info("Marked %s loans overdue", len(loans))
    return len(loans)


def loans_statistics(db: Session) -> dict:
    now = utcnow()
    by_status = dict(db.query(BookLoan.status, func.count(BookLoan.id)).group_by(BookLoan.status).all())
    overdue = (
        db.query(func.count(BookLoan.id))
        .filter(BookLoan.status.in_(OPEN_LOAN_STATUSES), BookLoan.due_date < now)
        .scalar()
        or 0
    )
    total_fines = db.query(func.coalesce(func.sum(BookLoan.fine_amount), 0.0)).scalar()
    unpaid_fines = (
        db.query(func.coalesce(func.sum(BookLoan.fine_amount), 0.0))
        .filter(BookLoan.fine_paid.is_(False))
        .scalar()
    )
    popular = (
        db.query(Book.id, Book.title, func.count(BookLoan.id).label("loan_count"))
        .join(BookLoan, BookLoan.book_id == Book.id)
        .group_by(Book.id, Book.title)
        .order_by(func.count(BookLoan.id).desc(), Book.title)
        .limit(5)
        .all()
    )
    return {
        "total_loans": sum(by_status.values()),
        "active_loans": by_status.get(LoanStatus.ACTIVE, 0),
        "returned_loans": by_status.get(LoanStatus.RETURNED, 0),
        "overdue_loans": overdue,
        "total_fines": float(total_fines),
        "unpaid_fines": float(unpaid_fines),
        "by_status": [{"status": status.value, "count": by_status.get(status, 0)} for status in LoanStatus],
        "popular_books": [
            {"book_id": book_id, "title": title, "loan_count": count} for book_id, title, count in popular
        ],
    }


def user_loans_summary(db: Session, *, user_id: int, actor: User) -> dict:
    if not is_admin(actor) and actor.id != user_id:
        raise AuthorizationError("You can only view your own loans")
    get_or_404(db, User, user_id, "User")
    now = utcnow()
    loans = (
        db.query(BookLoan)
        .options(joinedload(BookLoan.book))
        .filter(BookLoan.user_id == user_id)
        .order_by(BookLoan.borrowed_at.desc(), BookLoan.id.desc())
        .all()
    )
    open_loans = [loan for loan in loans if loan.status in OPEN_LOAN_STATUSES]
    overdue = [loan for loan in open_loans if loan.due_date < now]
    active = [loan for loan in open_loans if loan.due_date >= now]
    history = [loan for loan in loans if loan.status == LoanStatus.RETURNED][:10]
    return {
        "active": active,
        "overdue": overdue,
        "history": history,
        "total_active": len(active),
        "total_overdue": len(overdue),
        "total_fines": float(sum(loan.fine_amount for loan in loans)),
        "unpaid_fines": float(sum(loan.fine_amount for loan in loans if not loan.fine_paid)),
        "can_borrow": len(open_loans) < MAX_LOANS_PER_USER,
    }
