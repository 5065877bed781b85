from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import get_current_user, require_admin, require_staff
from ..models import BorrowerType, LoanStatus, User
from ..responses import ApiResponse, ok, paged
from ..schemas.library import (
    BulkReturnRequest,
    LoanCreate,
    LoanExtend,
    LoanOut,
    LoanReturn,
    LoanUpdate,
    UserLoansSummary,
)
from ..services import loans as loan_service

router = APIRouter(prefix="/loans", tags=["Library"])


@router.post("/borrow", response_model=ApiResponse[LoanOut], status_code=status.HTTP_201_CREATED)
def borrow_book(
    payload: LoanCreate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    loan = loan_service.create_loan(db, data=payload, actor=current_user)
    return ok(LoanOut.model_validate(loan), "Book borrowed successfully")


@router.get("", response_model=ApiResponse[list[LoanOut]])
def list_loans(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
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
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    result = loan_service.list_loans(
        db,
        actor=current_user,
        page=page,
        limit=limit,
        search=search,
        user_id=user_id,
        borrower_type=borrower_type,
        book_id=book_id,
        status=status,
        overdue=overdue,
        due_from=due_from,
        due_to=due_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return paged(result, LoanOut)


@router.get("/overdue", response_model=ApiResponse[list[LoanOut]])
def overdue_loans(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    _: User = Depends(require_staff),
):
    return paged(loan_service.overdue_loans(db, page=page, limit=limit), LoanOut)


@router.post("/mark-overdue", response_model=ApiResponse[dict])
def mark_overdue_loans(db: Session = Depends(get_db_session), _: User = Depends(require_admin)):
    count = loan_service.mark_overdue_loans(db)
    return ok({"updated": count}, f"{count} loans marked as overdue")


@router.get("/stats", response_model=ApiResponse[dict])
def loans_statistics(db: Session = Depends(get_db_session), _: User = Depends(require_staff)):
    return ok(loan_service.loans_statistics(db))


@router.get("/user/{user_id}", response_model=ApiResponse[UserLoansSummary])
def user_loans(
    user_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    summary = loan_service.user_loans_summary(db, user_id=user_id, actor=current_user)
    return ok(UserLoansSummary.model_validate(summary))


@router.post("/bulk-return", response_model=ApiResponse[list[LoanOut]])
def bulk_return(
    payload: BulkReturnRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_admin),
):
    loans = loan_service.bulk_return(db, loan_ids=payload.loan_ids, condition_notes=payload.condition_notes)
    return ok([LoanOut.model_validate(loan) for loan in loans], f"{len(loans)} books returned successfully")


@router.get("/{loan_id}", response_model=ApiResponse[LoanOut])
def get_loan(loan_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    return ok(LoanOut.model_validate(loan_service.get_loan(db, loan_id, current_user)))


@router.post("/{loan_id}/return", response_model=ApiResponse[LoanOut])
def return_book(
    loan_id: int,
    payload: LoanReturn | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    loan = loan_service.return_loan(db, loan_id=loan_id, data=payload or LoanReturn(), actor=current_user)
    return ok(LoanOut.model_validate(loan), "Book returned successfully")


@router.post("/{loan_id}/extend", response_model=ApiResponse[LoanOut])
def extend_loan(
    loan_id: int,
    payload: LoanExtend,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    loan = loan_service.extend_loan(db, loan_id=loan_id, data=payload, actor=current_user)
    return ok(LoanOut.model_validate(loan), "Loan extended successfully")


@router.put("/{loan_id}", response_model=ApiResponse[LoanOut])
def update_loan(
    loan_id: int,
    payload: LoanUpdate,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_staff),
):
    loan = loan_service.update_loan(db, loan_id=loan_id, data=payload)
    return ok(LoanOut.model_validate(loan), "Loan updated successfully")


@router.delete("/{loan_id}", response_model=ApiResponse[None])
def delete_loan(loan_id: int, db: Session = Depends(get_db_session), _: User = Depends(require_admin)):
    loan_service.delete_loan(db, loan_id=loan_id)
    return ok(message="Loan deleted successfully")
