import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models import BookStatus, BorrowerType, LoanStatus, ReservationStatus
from .users import UserBrief

ISBN_PATTERN = re.compile(r"^(97[89])?\d{9}[\dX]$")


class BookCreate(BaseModel):
    isbn: str = Field(min_length=10, max_length=20)
    title: str = Field(min_length=1, max_length=255)
    author: str = Field(min_length=1, max_length=255)
    publisher: str | None = Field(default=None, max_length=255)
    publish_year: int | None = Field(default=None, ge=1000, le=2100)
    edition: str | None = Field(default=None, max_length=50)
    category: str = Field(min_length=1, max_length=100)
    description: str | None = None
    cover_image: str | None = Field(default=None, max_length=500)
    total_copies: int = Field(default=1, gt=0)
    location: str | None = Field(default=None, max_length=100)

    @field_validator("isbn")
    @classmethod
    def check_isbn(cls, value: str) -> str:
        cleaned = value.replace("-", "").replace(" ", "").upper()
        if not ISBN_PATTERN.match(cleaned):
            raise ValueError("Invalid ISBN format")
        return cleaned


class BookUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    author: str | None = Field(default=None, min_length=1, max_length=255)
    publisher: str | None = Field(default=None, max_length=255)
    publish_year: int | None = Field(default=None, ge=1000, le=2100)
    edition: str | None = Field(default=None, max_length=50)
    category: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    cover_image: str | None = Field(default=None, max_length=500)
    total_copies: int | None = Field(default=None, gt=0)
    status: BookStatus | None = None
    location: str | None = Field(default=None, max_length=100)


class BookOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    isbn: str
    title: str
    author: str
    publisher: str | None = None
    publish_year: int | None = None
    edition: str | None = None
    category: str
    description: str | None = None
    cover_image: str | None = None
    total_copies: int
    available_copies: int
    status: BookStatus
    location: str | None = None
    created_at: datetime
    updated_at: datetime


class BookBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    isbn: str
    title: str
    author: str
    cover_image: str | None = None
    available_copies: int


class BookAvailability(BaseModel):
    book_id: int
    title: str
    total_copies: int
    available_copies: int
    is_available: bool
    waiting_list: int


class LoanCreate(BaseModel):
    book_id: int
    user_id: int | None = None
    due_date: datetime | None = None
    notes: str | None = Field(default=None, max_length=500)


class LoanReturn(BaseModel):
    return_date: datetime | None = None
    condition_notes: str | None = Field(default=None, max_length=500)
    fine_amount: float = Field(default=0, ge=0)


class LoanExtend(BaseModel):
    new_due_date: datetime
    extension_reason: str | None = Field(default=None, max_length=200)


class LoanUpdate(BaseModel):
    due_date: datetime | None = None
    status: LoanStatus | None = None
    fine_amount: float | None = Field(default=None, ge=0)
    fine_paid: bool | None = None
    notes: str | None = Field(default=None, max_length=500)


class BulkReturnRequest(BaseModel):
    loan_ids: list[int] = Field(min_length=1)
    condition_notes: str | None = Field(default=None, max_length=500)


class LoanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: int
    user_id: int
    borrower_type: BorrowerType
    borrowed_at: datetime
    due_date: datetime
    returned_at: datetime | None = None
    status: LoanStatus
    fine_amount: float
    fine_paid: bool
    notes: str | None = None
    book: BookBrief | None = None
    user: UserBrief | None = None


class ReservationCreate(BaseModel):
    book_id: int
    user_id: int | None = None
    notes: str | None = Field(default=None, max_length=500)


class ReservationCancel(BaseModel):
    reason: str | None = Field(default=None, max_length=200)


class ReservationFulfill(BaseModel):
    loan_duration_days: int = Field(default=14, ge=1, le=60)
    notes: str | None = Field(default=None, max_length=500)


class ReservationUpdate(BaseModel):
    expires_at: datetime | None = None
    notes: str | None = Field(default=None, max_length=500)


class BulkCancelRequest(BaseModel):
    reservation_ids: list[int] = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=200)


class ReservationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: int
    user_id: int
    user_type: BorrowerType
    reserved_at: datetime
    expires_at: datetime
    status: ReservationStatus
    notes: str | None = None
    book: BookBrief | None = None
    user: UserBrief | None = None


class ExistingReservation(BaseModel):
    id: int
    status: ReservationStatus
    position: int


class ReservationAvailability(BaseModel):
    can_reserve: bool
    current_position: int | None = None
    estimated_wait_time: str | None = None
    active_reservations: int
    queue_position: int
    existing_reservation: ExistingReservation | None = None


class FulfillResult(BaseModel):
    reservation: ReservationOut
    loan: LoanOut


class BookDetail(BaseModel):
    book: BookOut
    active_loans: list[LoanOut]
    pending_reservations: list[ReservationOut]


class PopularBook(BaseModel):
    book: BookOut
    loan_count: int


class UserLoansSummary(BaseModel):
    active: list[LoanOut]
    overdue: list[LoanOut]
    history: list[LoanOut]
    total_active: int
    total_overdue: int
    total_fines: float
    unpaid_fines: float
    can_borrow: bool


class UserReservationsSummary(BaseModel):
    active: list[ReservationOut]
    expired: list[ReservationOut]
    fulfilled: list[ReservationOut]
    total_active: int
    can_reserve: bool
