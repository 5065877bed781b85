from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..errors import AuthorizationError
from ..middleware import get_current_user, require_admin, require_staff
from ..models import BorrowerType, ReservationStatus, User
from ..responses import ApiResponse, ok, paged
from ..schemas.library import (
    BulkCancelRequest,
    FulfillResult,
    LoanOut,
    ReservationAvailability,
    ReservationCancel,
    ReservationCreate,
    ReservationFulfill,
    ReservationOut,
    ReservationUpdate,
    UserReservationsSummary,
)
from ..services import reservations as reservation_service
from ..services.common import is_admin

router = APIRouter(prefix="/reservations", tags=["Library"])


@router.get("/availability", response_model=ApiResponse[ReservationAvailability])
def check_availability(
    book_id: int,
    user_id: int | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    target = user_id if user_id is not None else current_user.id
    if target != current_user.id and not is_admin(current_user):
        raise AuthorizationError("You can only check availability for yourself")
    return ok(reservation_service.check_availability(db, book_id=book_id, user_id=target))


@router.post("", response_model=ApiResponse[ReservationOut], status_code=status.HTTP_201_CREATED)
def create_reservation(
    payload: ReservationCreate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    reservation = reservation_service.create_reservation(db, data=payload, actor=current_user)
    return ok(ReservationOut.model_validate(reservation), "Book reserved successfully")


@router.get("", response_model=ApiResponse[list[ReservationOut]])
def list_reservations(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str | None = None,
    user_id: int | None = None,
    user_type: BorrowerType | None = None,
    book_id: int | None = None,
    status: ReservationStatus | None = None,
    expired: bool | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    result = reservation_service.list_reservations(
        db,
        actor=current_user,
        page=page,
        limit=limit,
        search=search,
        user_id=user_id,
        user_type=user_type,
        book_id=book_id,
        status=status,
        expired=expired,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return paged(result, ReservationOut)


@router.get("/pending", response_model=ApiResponse[list[ReservationOut]])
def pending_reservations(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    _: User = Depends(require_staff),
):
    return paged(reservation_service.pending_reservations(db, page=page, limit=limit), ReservationOut)


@router.get("/expired", response_model=ApiResponse[list[ReservationOut]])
def expired_reservations(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    _: User = Depends(require_staff),
):
    return paged(reservation_service.expired_reservations(db, page=page, limit=limit), ReservationOut)


@router.post("/process-expired", response_model=ApiResponse[dict])
def process_expired(db: Session = Depends(get_db_session), _: User = Depends(require_admin)):
    count = reservation_service.process_expired_reservations(db)
    return ok({"processed": count}, f"{count} reservations marked as expired")


@router.post("/bulk-cancel", response_model=ApiResponse[dict])
def bulk_cancel(
    payload: BulkCancelRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_admin),
):
    count = reservation_service.bulk_cancel(db, reservation_ids=payload.reservation_ids, reason=payload.reason)
    return ok({"cancelled": count}, f"{count} reservations cancelled")


@router.post("/notify", response_model=ApiResponse[dict])
def send_notifications(db: Session = Depends(get_db_session), _: User = Depends(require_admin)):
    result = reservation_service.send_reservation_notifications(db)
    return ok(result, f"{result['notifications_sent']} notifications sent")


@router.get("/stats", response_model=ApiResponse[dict])
def reservations_statistics(db: Session = Depends(get_db_session), _: User = Depends(require_admin)):
    return ok(reservation_service.reservations_statistics(db))


@router.get("/user/{user_id}", response_model=ApiResponse[UserReservationsSummary])
def user_reservations(
    user_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    summary = reservation_service.user_reservations_summary(db, user_id=user_id, actor=current_user)
    return ok(UserReservationsSummary.model_validate(summary))


@router.get("/{reservation_id}", response_model=ApiResponse[ReservationOut])
def get_reservation(
    reservation_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return ok(ReservationOut.model_validate(reservation_service.get_reservation(db, reservation_id, current_user)))


@router.post("/{reservation_id}/cancel", response_model=ApiResponse[ReservationOut])
def cancel_reservation(
    reservation_id: int,
    payload: ReservationCancel | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    reservation = reservation_service.cancel_reservation(
        db, reservation_id=reservation_id, actor=current_user, reason=payload.reason if payload else None
    )
    return ok(ReservationOut.model_validate(reservation), "Reservation cancelled successfully")


@router.post("/{reservation_id}/fulfill", response_model=ApiResponse[FulfillResult])
def fulfill_reservation(
    reservation_id: int,
    payload: ReservationFulfill | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_staff),
):
    reservation, loan = reservation_service.fulfill_reservation(
        db, reservation_id=reservation_id, data=payload or ReservationFulfill()
    )
    result = FulfillResult(reservation=ReservationOut.model_validate(reservation), loan=LoanOut.model_validate(loan))
    return ok(result, "Reservation fulfilled successfully")


@router.put("/{reservation_id}", response_model=ApiResponse[ReservationOut])
def update_reservation(
    reservation_id: int,
    payload: ReservationUpdate,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_staff),
):
    reservation = reservation_service.update_reservation(db, reservation_id=reservation_id, data=payload)
    return ok(ReservationOut.model_validate(reservation), "Reservation updated successfully")


@router.delete("/{reservation_id}", response_model=ApiResponse[None])
def delete_reservation(
    reservation_id: int,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_admin),
):
    reservation_service.delete_reservation(db, reservation_id=reservation_id)
    return ok(message="Reservation deleted successfully")
