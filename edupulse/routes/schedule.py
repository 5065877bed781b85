from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..errors import ValidationError
from ..middleware import get_current_user, require_staff
from ..models import User
from ..responses import ApiResponse, ok, paged
from ..schemas.schedule import RoomAvailability, ScheduleCreate, ScheduleOut, ScheduleUpdate, normalize_time
from ..services import schedule as schedule_service

router = APIRouter(prefix="/schedules", tags=["Schedule"])


def time_slot(
    day_of_week: int = Query(ge=0, le=6),
    start_time: str = Query(),
    end_time: str = Query(),
) -> dict:
    try:
        start, end = normalize_time(start_time), normalize_time(end_time)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if start >= end:
        raise ValidationError("start_time must be before end_time")
    return {"day_of_week": day_of_week, "start_time": start, "end_time": end}


def _listing(db: Session, page: int, limit: int, **filters):
    return paged(schedule_service.list_schedules(db, page=page, limit=limit, **filters), ScheduleOut)


@router.post("", response_model=ApiResponse[ScheduleOut], status_code=status.HTTP_201_CREATED)
def create_schedule(
    payload: ScheduleCreate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    schedule = schedule_service.create_schedule(db, data=payload, actor=current_user)
    return ok(ScheduleOut.model_validate(schedule), "Schedule created successfully")


@router.get("", response_model=ApiResponse[list[ScheduleOut]])
def list_schedules(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str | None = None,
    course_id: int | None = None,
    day_of_week: int | None = Query(default=None, ge=0, le=6),
    room: str | None = None,
    is_active: bool | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return _listing(
        db,
        page,
        limit,
        search=search,
        course_id=course_id,
        day_of_week=day_of_week,
        room=room,
        is_active=is_active,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/weekly", response_model=ApiResponse[dict[str, list[ScheduleOut]]])
def weekly_schedule(
    course_id: int | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    week = schedule_service.weekly_schedule(db, course_id)
    return ok({str(day): [ScheduleOut.model_validate(slot) for slot in slots] for day, slots in week.items()})


@router.get("/stats", response_model=ApiResponse[dict])
def schedules_statistics(db: Session = Depends(get_db_session), _: User = Depends(require_staff)):
    return ok(schedule_service.schedules_statistics(db))


@router.get("/rooms/available", response_model=ApiResponse[list[str]])
def available_rooms(
    slot: dict = Depends(time_slot),
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return ok(schedule_service.available_rooms(db, **slot))


@router.get("/rooms/{room}/availability", response_model=ApiResponse[RoomAvailability])
def check_room_availability(
    room: str,
    slot: dict = Depends(time_slot),
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    available = schedule_service.check_room_availability(db, room=room, **slot)
    return ok(RoomAvailability(room=room, available=available, **slot))


@router.get("/course/{course_id}", response_model=ApiResponse[list[ScheduleOut]])
def schedules_by_course(
    course_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return _listing(db, page, limit, course_id=course_id)


@router.get("/day/{day_of_week}", response_model=ApiResponse[list[ScheduleOut]])
def schedules_by_day(
    day_of_week: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    if not 0 <= day_of_week <= 6:
        raise ValidationError("day_of_week must be between 0 and 6")
    return _listing(db, page, limit, day_of_week=day_of_week)


@router.get("/room/{room}", response_model=ApiResponse[list[ScheduleOut]])
def schedules_by_room(
    room: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    return _listing(db, page, limit, room=room)


@router.get("/{schedule_id}", response_model=ApiResponse[ScheduleOut])
def get_schedule(schedule_id: int, db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return ok(ScheduleOut.model_validate(schedule_service.get_schedule(db, schedule_id)))


@router.put("/{schedule_id}", response_model=ApiResponse[ScheduleOut])
def update_schedule(
    schedule_id: int,
    payload: ScheduleUpdate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    schedule = schedule_service.update_schedule(db, schedule_id=schedule_id, data=payload, actor=current_user)
    return ok(ScheduleOut.model_validate(schedule), "Schedule updated successfully")


@router.delete("/{schedule_id}", response_model=ApiResponse[None])
def delete_schedule(
    schedule_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    schedule_service.delete_schedule(db, schedule_id=schedule_id, actor=current_user)
    return ok(message="Schedule deleted successfully")
