from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ..errors import AuthorizationError
from ..models import Notification, User
from ..pagination import Page, paginate
from .common import get_or_404, save


def notify(db: Session, *, user_id: int, type: str, title: str, message: str, link: str | None = None) -> Notification:
    """Queue a notification on the session; the caller commits."""
    notification = Notification(user_id=user_id, type=type, title=title, message=message, link=link)
    db.add(notification)
    return notification


def list_notifications(
    db: Session, *, user: User, page: int = 1, limit: int = 10, unread_only: bool = False
) -> Page:
    query = db.query(Notification).filter(Notification.user_id == user.id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc())
    return paginate(query, page, limit)


def unread_count(db: Session, *, user: User) -> int:
    return (
        db.query(func.count(Notification.id))
        .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
        .scalar()
        or 0
    )


def _owned(db: Session, notification_id: int, user: User) -> Notification:
    notification = get_or_404(db, Notification, notification_id, "Notification")
    if notification.user_id != user.id:
        raise AuthorizationError("You can only manage your own notifications")
    return notification


def mark_read(db: Session, *, notification_id: int, user: User) -> Notification:
    notification = _owned(db, notification_id, user)
    notification.is_read = True
    save(db, notification)
    return notification


def mark_all_read(db: Session, *, user: User) -> int:
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user.id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    db.commit()
    return result.rowcount


def delete_notification(db: Session, *, notification_id: int, user: User) -> None:
    notification = _owned(db, notification_id, user)
    db.delete(notification)
    db.commit()
