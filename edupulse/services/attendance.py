from datetime import date

from sqlalchemy.orm import Session, joinedload

from ..app_logger import get_logger
from ..errors import BadRequestError
from ..models import Attendance, AttendanceStatus, Course, Student, User, UserRole
from ..pagination import Page, apply_sort, paginate
from ..schemas.records import AttendanceEntry, AttendanceUpdate
from .common import apply_changes, ensure_course_access, ensure_student_access, get_or_404, save
from .courses import is_enrolled

logger = get_logger("attendance")

SORTABLE = {"date", "status", "created_at"}


def _scope(query, actor: User):
    if actor.role == UserRole.STUDENT:
        student_id = actor.student.id if actor.student else -1
        return query.filter(Attendance.student_id == student_id)
    if actor.role == UserRole.TEACHER:
        teacher_id = actor.teacher.id if actor.teacher else -1
        return query.join(Attendance.course).filter(Course.teacher_id == teacher_id)
    if actor.role == UserRole.PARENT:
        child_ids = [link.student_id for link in actor.parent.children] if actor.parent else []
        return query.filter(Attendance.student_id.in_(child_ids))
    return query


def list_attendance(
    db: Session,
    *,
    actor: User,
    page: int = 1,
    limit: int = 10,
    student_id: int | None = None,
    course_id: int | None = None,
    status: AttendanceStatus | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> Page:
    query = _scope(db.query(Attendance).options(joinedload(Attendance.course)), actor)
    if student_id is not None:
        query = query.filter(Attendance.student_id == student_id)
    if course_id is not None:
        query = query.filter(Attendance.course_id == course_id)
    if status is not None:
        query = query.filter(Attendance.status == status)
    if date_from is not None:
        query = query.filter(Attendance.date >= date_from)
    if date_to is not None:
        query = query.filter(Attendance.date <= date_to)
    query = apply_sort(query, Attendance, sort_by, sort_order or "desc", SORTABLE, "date")
    return paginate(query, page, limit)


def get_attendance(db: Session, attendance_id: int, actor: User) -> Attendance:
    record = get_or_404(db, Attendance, attendance_id, "Attendance record")
    if actor.role == UserRole.TEACHER:
        ensure_course_access(actor, record.course)
    else:
        ensure_student_access(db, actor, record.student)
    return record


def _upsert(db: Session, *, course: Course, record_date: date, entry: AttendanceEntry) -> Attendance:
    get_or_404(db, Student, entry.student_id, "Student")
    if not is_enrolled(db, student_id=entry.student_id, course_id=course.id):
        raise BadRequestError(f"Student {entry.student_id} is not enrolled in this course")

    record = (
        db.query(Attendance)
        .filter(
            Attendance.student_id == entry.student_id,
            Attendance.course_id == course.id,
            Attendance.date == record_date,
        )
        .first()
    )
    if record is None:
        record = Attendance(student_id=entry.student_id, course_id=course.id, date=record_date)
        db.add(record)
    record.status = entry.status
    record.remarks = entry.remarks
    return record


def mark_attendance(
    db: Session, *, course_id: int, record_date: date, entry: AttendanceEntry, actor: User
) -> Attendance:
    course = get_or_404(db, Course, course_id, "Course")
    ensure_course_access(actor, course)
    record = _upsert(db, course=course, record_date=record_date, entry=entry)
    save(db, record)
    return record


def bulk_mark_attendance(
    db: Session, *, course_id: int, record_date: date, entries: list[AttendanceEntry], actor: User
) -> list[Attendance]:
    course = get_or_404(db, Course, course_id, "Course")
    ensure_course_access(actor, course)
    if len({entry.student_id for entry in entries}) != len(entries):
        raise BadRequestError("Each student may appear only once per bulk request")

    try:
        records = [_upsert(db, course=course, record_date=record_date, entry=entry) for entry in entries]
        db.commit()
    except Exception:
        db.rollback()
        raise
    for record in records:
        db.refresh(record)
    logger.info("Marked attendance for %s students in course %s on %s", len(records), course.id, record_date)
    return records


def update_attendance(db: Session, *, attendance_id: int, data: AttendanceUpdate, actor: User) -> Attendance:
    record = get_or_404(db, Attendance, attendance_id, "Attendance record")
    ensure_course_access(actor, record.course)
    apply_changes(record, data.model_dump(exclude_unset=True, exclude_none=True))
    save(db, record)
    return record


def delete_attendance(db: Session, *, attendance_id: int, actor: User) -> None:
    record = get_or_404(db, Attendance, attendance_id, "Attendance record")
    ensure_course_access(actor, record.course)
    db.delete(record)
    db.commit()


def attendance_stats(records: list[Attendance]) -> dict:
    total = len(records)
    counts = {status: 0 for status in AttendanceStatus}
    for record in records:
        counts[record.status] += 1
    attended = counts[AttendanceStatus.PRESENT] + counts[AttendanceStatus.LATE]
    return {
        "total": total,
        "present": counts[AttendanceStatus.PRESENT],
        "absent": counts[AttendanceStatus.ABSENT],
        "late": counts[AttendanceStatus.LATE],
        "excused": counts[AttendanceStatus.EXCUSED],
        "attendance_rate": round(attended / total * 100, 2) if total else 0.0,
    }


def student_attendance(
    db: Session,
    *,
    student_id: int,
    actor: User,
    course_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> dict:
    student = get_or_404(db, Student, student_id, "Student")
    ensure_student_access(db, actor, student)
    query = (
        db.query(Attendance)
        .options(joinedload(Attendance.course))
        .filter(Attendance.student_id == student.id)
    )
    if actor.role == UserRole.TEACHER and actor.teacher:
        query = query.join(Attendance.course).filter(Course.teacher_id == actor.teacher.id)
    if course_id is not None:
        query = query.filter(Attendance.course_id == course_id)
    if date_from is not None:
        query = query.filter(Attendance.date >= date_from)
    if date_to is not None:
        query = query.filter(Attendance.date <= date_to)
    records = query.order_by(Attendance.date.desc()).all()
    return {"records": records, "stats": attendance_stats(records)}


def course_attendance(
    db: Session, *, course_id: int, actor: User, record_date: date | None = None
) -> list[Attendance]:
    course = get_or_404(db, Course, course_id, "Course")
    ensure_course_access(actor, course)
    query = db.query(Attendance).filter(Attendance.course_id == course.id)
    if record_date is not None:
        query = query.filter(Attendance.date == record_date)
    return query.order_by(Attendance.date.desc(), Attendance.student_id).all()
