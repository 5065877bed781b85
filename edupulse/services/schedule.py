from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..errors import BadRequestError, ConflictError
from ..models import Course, Schedule, User
from ..pagination import Page, apply_sort, paginate, search_clause
from ..schemas.schedule import ScheduleCreate, ScheduleUpdate
from .common import apply_changes, ensure_course_access, get_or_404, save

SORTABLE = {"day_of_week", "start_time", "end_time", "room", "created_at"}


def times_overlap(start1: str, end1: str, start2: str, end2: str) -> bool:
    return start1 < end2 and start2 < end1


def _clashes(query, start_time: str, end_time: str, exclude_id: int | None) -> bool:
    if exclude_id is not None:
        query = query.filter(Schedule.id != exclude_id)
    return any(times_overlap(slot.start_time, slot.end_time, start_time, end_time) for slot in query.all())


def has_course_conflict(
    db: Session, *, course_id: int, day_of_week: int, start_time: str, end_time: str, exclude_id: int | None = None
) -> bool:
    query = db.query(Schedule).filter(
        Schedule.course_id == course_id, Schedule.day_of_week == day_of_week, Schedule.is_active.is_(True)
    )
    return _clashes(query, start_time, end_time, exclude_id)


def check_room_availability(
    db: Session, *, room: str, day_of_week: int, start_time: str, end_time: str, exclude_id: int | None = None
) -> bool:
    query = db.query(Schedule).filter(
        Schedule.room == room, Schedule.day_of_week == day_of_week, Schedule.is_active.is_(True)
    )
    return not _clashes(query, start_time, end_time, exclude_id)


def _check_slot(
    db: Session, *, course_id: int, day_of_week: int, start_time: str, end_time: str,
    room: str | None, exclude_id: int | None = None,
) -> None:
    if start_time >= end_time:
        raise BadRequestError("start_time must be before end_time")
    if has_course_conflict(
        db, course_id=course_id, day_of_week=day_of_week, start_time=start_time, end_time=end_time,
        exclude_id=exclude_id,
    ):
        raise ConflictError("Schedule conflicts with existing schedule")
    if room and not check_room_availability(
        db, room=room, day_of_week=day_of_week, start_time=start_time, end_time=end_time, exclude_id=exclude_id
    ):
        raise ConflictError(f"Room {room} is already booked for this time slot")


def create_schedule(db: Session, *, data: ScheduleCreate, actor: User) -> Schedule:
    course = get_or_404(db, Course, data.course_id, "Course")
    ensure_course_access(actor, course)
    if data.is_active:
        _check_slot(
            db, course_id=course.id, day_of_week=data.day_of_week, start_time=data.start_time,
            end_time=data.end_time, room=data.room,
        )
    schedule = Schedule(**data.model_dump())
    db.add(schedule)
    save(db, schedule)
    return schedule


def list_schedules(
    db: Session,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    course_id: int | None = None,
    day_of_week: int | None = None,
    room: str | None = None,
    is_active: bool | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> Page:
    query = db.query(Schedule).join(Schedule.course).options(joinedload(Schedule.course))
    clause = search_clause(search, Schedule.room, Course.name, Course.code)
    if clause is not None:
        query = query.filter(clause)
    if course_id is not None:
        query = query.filter(Schedule.course_id == course_id)
    if day_of_week is not None:
        query = query.filter(Schedule.day_of_week == day_of_week)
    if room:
        query = query.filter(Schedule.room == room)
    if is_active is not None:
        query = query.filter(Schedule.is_active == is_active)
    query = apply_sort(query, Schedule, sort_by, sort_order, SORTABLE, "day_of_week")
    if sort_by in (None, "day_of_week"):
        query = query.order_by(None).order_by(Schedule.day_of_week, Schedule.start_time, Schedule.id)
    return paginate(query, page, limit)


def get_schedule(db: Session, schedule_id: int) -> Schedule:
    return get_or_404(db, Schedule, schedule_id, "Schedule")


def update_schedule(db: Session, *, schedule_id: int, data: ScheduleUpdate, actor: User) -> Schedule:
    schedule = get_schedule(db, schedule_id)
    ensure_course_access(actor, schedule.course)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("is_active") is None:
        changes.pop("is_active", None)
    if changes.get("day_of_week") is None:
        changes.pop("day_of_week", None)

    merged = {
        "day_of_week": changes.get("day_of_week", schedule.day_of_week),
        "start_time": changes.get("start_time") or schedule.start_time,
        "end_time": changes.get("end_time") or schedule.end_time,
        "room": changes.get("room", schedule.room),
        "is_active": changes.get("is_active", schedule.is_active),
    }
    if merged["is_active"]:
        _check_slot(
            db, course_id=schedule.course_id, day_of_week=merged["day_of_week"],
            start_time=merged["start_time"], end_time=merged["end_time"], room=merged["room"],
            exclude_id=schedule.id,
        )
    apply_changes(schedule, merged)
    save(db, schedule)
    return schedule


def delete_schedule(db: Session, *, schedule_id: int, actor: User) -> None:
    schedule = get_schedule(db, schedule_id)
    ensure_course_access(actor, schedule.course)
    db.delete(schedule)
    db.commit()


def weekly_schedule(db: Session, course_id: int | None = None) -> dict[int, list[Schedule]]:
    query = db.query(Schedule).options(joinedload(Schedule.course)).filter(Schedule.is_active.is_(True))
    if course_id is not None:
        get_or_404(db, Course, course_id, "Course")
        query = query.filter(Schedule.course_id == course_id)
    week: dict[int, list[Schedule]] = {day: [] for day in range(7)}
    for slot in query.order_by(Schedule.day_of_week, Schedule.start_time).all():
        week[slot.day_of_week].append(slot)
    return week


def available_rooms(db: Session, *, day_of_week: int, start_time: str, end_time: str) -> list[str]:
    booked = (
        db.query(Schedule)
        .filter(Schedule.is_active.is_(True), Schedule.room.is_not(None))
        .all()
    )
    rooms = sorted({slot.room for slot in booked})
    busy = {
        slot.room
        for slot in booked
        if slot.day_of_week == day_of_week and times_overlap(slot.start_time, slot.end_time, start_time, end_time)
    }
    return [room for room in rooms if room not in busy]


def schedules_statistics(db: Session) -> dict:
    total = db.query(func.count(Schedule.id)).scalar() or 0
    active = db.query(func.count(Schedule.id)).filter(Schedule.is_active.is_(True)).scalar() or 0
    by_day = db.query(Schedule.day_of_week, func.count(Schedule.id)).group_by(Schedule.day_of_week).all()
    by_room = (
        db.query(Schedule.room, func.count(Schedule.id))
        .filter(Schedule.room.is_not(None))
        .group_by(Schedule.room)
        .all()
    )
    return {
        "total": total,
        "active": active,
        "day_distribution": [{"day_of_week": day, "count": count} for day, count in sorted(by_day)],
        "room_utilization": [{"room": room, "count": count} for room, count in sorted(by_room)],
    }
