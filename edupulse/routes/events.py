from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import get_current_user, require_staff
from ..models import EventType, User
from ..responses import ApiResponse, ok, paged
from ..schemas.events import EventCreate, EventOut, EventUpdate
from ..services import events as event_service

router = APIRouter(prefix="/events", tags=["Events"])


@router.post("", response_model=ApiResponse[EventOut], status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventCreate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    event = event_service.create_event(db, data=payload, actor=current_user)
    return ok(EventOut.model_validate(event), "Event created successfully")


@router.get("", response_model=ApiResponse[list[EventOut]])
def list_events(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    type: EventType | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    result = event_service.list_events(
        db,
        actor=current_user,
        page=page,
        limit=limit,
        event_type=type,
        date_from=date_from,
        date_to=date_to,
    )
    return paged(result, EventOut)


@router.get("/upcoming", response_model=ApiResponse[list[EventOut]])
def upcoming_events(
    limit: int = Query(default=5, ge=1, le=50),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    events = event_service.upcoming_events(db, actor=current_user, limit=limit)
    return ok([EventOut.model_validate(event) for event in events])


@router.get("/{event_id}", response_model=ApiResponse[EventOut])
def get_event(event_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    return ok(EventOut.model_validate(event_service.get_event(db, event_id, current_user)))


@router.put("/{event_id}", response_model=ApiResponse[EventOut])
def update_event(
    event_id: int,
    payload: EventUpdate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    event = event_service.update_event(db, event_id=event_id, data=payload, actor=current_user)
    return ok(EventOut.model_validate(event), "Event updated successfully")


@router.delete("/{event_id}", response_model=ApiResponse[None])
def delete_event(event_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(require_staff)):
    event_service.delete_event(db, event_id=event_id, actor=current_user)
    return ok(message="Event deleted successfully")
