from datetime import datetime

from sqlalchemy.orm import Session

from ..app_logger import get_logger
from ..errors import AuthorizationError, BadRequestError, NotFoundError
from ..models import Event, EventType, User, UserRole, as_naive_utc, utcnow
from ..pagination import Page, paginate_list
from ..schemas.events import EventCreate, EventUpdate
from .common import apply_changes, get_or_404, is_admin, save

logger = get_logger("events")


def visible_to(event: Event, user: User) -> bool:
    if is_admin(user) or event.created_by == user.id:
        return True
    if not event.is_public:
        return False
    return not event.target_roles or user.role.value in event.target_roles


def _ensure_can_manage(event: Event, user: User) -> None:
    if not is_admin(user) and event.created_by != user.id:
        raise AuthorizationError("You can only manage events you created")


def create_event(db: Session, *, data: EventCreate, actor: User) -> Event:
    payload = data.model_dump()
    payload["start_date"] = as_naive_utc(payload["start_date"])
    payload["end_date"] = as_naive_utc(payload["end_date"])
    payload["target_roles"] = [role.value for role in data.target_roles]
    event = Event(**payload, created_by=actor.id)
    db.add(event)
    save(db, event)
    logger.info("User %s created event %s", actor.id, event.id)
    return event


def list_events(
    db: Session,
    *,
    actor: User,
    page: int = 1,
    limit: int = 10,
    event_type: EventType | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> Page:
    query = db.query(Event)
    if event_type is not None:
        query = query.filter(Event.type == event_type)
    if date_from is not None:
        query = query.filter(Event.end_date >= as_naive_utc(date_from))
    if date_to is not None:
        query = query.filter(Event.start_date <= as_naive_utc(date_to))
    events = query.order_by(Event.start_date, Event.id).all()
    return paginate_list([event for event in events if visible_to(event, actor)], page, limit)


def get_event(db: Session, event_id: int, actor: User) -> Event:
    event = get_or_404(db, Event, event_id, "Event")
    if not visible_to(event, actor):
        raise NotFoundError("Event")
    return event


def update_event(db: Session, *, event_id: int, data: EventUpdate, actor: User) -> Event:
    event = get_or_404(db, Event, event_id, "Event")
    _ensure_can_manage(event, actor)
    changes = {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key in {"description", "color"}
    }
    for key in ("start_date", "end_date"):
        if key in changes:
            changes[key] = as_naive_utc(changes[key])
    if "target_roles" in changes:
        changes["target_roles"] = [UserRole(role).value for role in changes["target_roles"]]

    start = changes.get("start_date", event.start_date)
    end = changes.get("end_date", event.end_date)
    if end < start:
        raise BadRequestError("end_date must be on or after start_date")
    apply_changes(event, changes)
    save(db, event)
    return event


def delete_event(db: Session, *, event_id: int, actor: User) -> None:
    event = get_or_404(db, Event, event_id, "Event")
    _ensure_can_manage(event, actor)
    db.delete(event)
    db.commit()
    logger.info("Deleted event %s", event_id)


def upcoming_events(db: Session, *, actor: User, limit: int = 5) -> list[Event]:
    events = (
        db.query(Event)
        .filter(Event.end_date >= utcnow())
        .order_by(Event.start_date, Event.id)
        .all()
    )
    return [event for event in events if visible_to(event, actor)][: max(1, min(limit, 50))]
