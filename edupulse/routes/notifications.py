from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import get_current_user
from ..models import User
from ..responses import ApiResponse, ok, paged
from ..schemas.messaging import NotificationOut, UnreadCount
from ..services import notifications as notification_service

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=ApiResponse[list[NotificationOut]])
def list_notifications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    unread_only: bool = False,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    result = notification_service.list_notifications(
        db, user=current_user, page=page, limit=limit, unread_only=unread_only
    )
    return paged(result, NotificationOut)


@router.get("/unread-count", response_model=ApiResponse[UnreadCount])
def unread_count(db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    return ok(UnreadCount(unread=notification_service.unread_count(db, user=current_user)))


@router.patch("/read-all", response_model=ApiResponse[dict])
def mark_all_read(db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    count = notification_service.mark_all_read(db, user=current_user)
    return ok({"updated": count}, "All notifications marked as read")


@router.patch("/{notification_id}/read", response_model=ApiResponse[NotificationOut])
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    notification = notification_service.mark_read(db, notification_id=notification_id, user=current_user)
    return ok(NotificationOut.model_validate(notification), "Notification marked as read")


@router.delete("/{notification_id}", response_model=ApiResponse[None])
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    notification_service.delete_notification(db, notification_id=notification_id, user=current_user)
    return ok(message="Notification deleted")
