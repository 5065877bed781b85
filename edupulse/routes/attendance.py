from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import get_current_user, require_staff
from ..models import AttendanceStatus, User
from ..responses import ApiResponse, ok, paged
from ..schemas.records import (
    AttendanceEntry,
    AttendanceMark,
    AttendanceOut,
    AttendanceUpdate,
    BulkAttendanceRequest,
    StudentAttendanceReport,
)
from ..services import attendance as attendance_service

router = APIRouter(prefix="/attendance", tags=["Attendance"])


@router.post("", response_model=ApiResponse[AttendanceOut], status_code=status.HTTP_201_CREATED)
def mark_attendance(
    payload: AttendanceMark,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    record = attendance_service.mark_attendance(
        db,
        course_id=payload.course_id,
        record_date=payload.date,
        entry=AttendanceEntry(student_id=payload.student_id, status=payload.status, remarks=payload.remarks),
        actor=current_user,
    )
    return ok(AttendanceOut.model_validate(record), "Attendance marked successfully")


@router.post("/bulk", response_model=ApiResponse[list[AttendanceOut]], status_code=status.HTTP_201_CREATED)
def bulk_mark_attendance(
    payload: BulkAttendanceRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    records = attendance_service.bulk_mark_attendance(
        db, course_id=payload.course_id, record_date=payload.date, entries=payload.records, actor=current_user
    )
    return ok(
        [AttendanceOut.model_validate(record) for record in records],
        f"Attendance marked for {len(records)} students",
    )


@router.get("", response_model=ApiResponse[list[AttendanceOut]])
def list_attendance(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    student_id: int | None = None,
    course_id: int | None = None,
    status: AttendanceStatus | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    result = attendance_service.list_attendance(
        db,
        actor=current_user,
        page=page,
        limit=limit,
        student_id=student_id,
        course_id=course_id,
        status=status,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return paged(result, AttendanceOut)


@router.get("/student/{student_id}", response_model=ApiResponse[StudentAttendanceReport])
def student_attendance(
    student_id: int,
    course_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    report = attendance_service.student_attendance(
        db,
        student_id=student_id,
        actor=current_user,
        course_id=course_id,
        date_from=date_from,
        date_to=date_to,
    )
    return ok(StudentAttendanceReport.model_validate(report))


@router.get("/course/{course_id}", response_model=ApiResponse[list[AttendanceOut]])
def course_attendance(
    course_id: int,
    record_date: date | None = Query(default=None, alias="date"),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    records = attendance_service.course_attendance(
        db, course_id=course_id, actor=current_user, record_date=record_date
    )
    return ok([AttendanceOut.model_validate(record) for record in records])


@router.get("/{attendance_id}", response_model=ApiResponse[AttendanceOut])
def get_attendance(
    attendance_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return ok(AttendanceOut.model_validate(attendance_service.get_attendance(db, attendance_id, current_user)))


@router.put("/{attendance_id}", response_model=ApiResponse[AttendanceOut])
def update_attendance(
    attendance_id: int,
    payload: AttendanceUpdate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    record = attendance_service.update_attendance(
        db, attendance_id=attendance_id, data=payload, actor=current_user
    )
    return ok(AttendanceOut.model_validate(record), "Attendance updated successfully")


@router.delete("/{attendance_id}", response_model=ApiResponse[None])
def delete_attendance(
    attendance_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    attendance_service.delete_attendance(db, attendance_id=attendance_id, actor=current_user)
    return ok(message="Attendance record deleted successfully")
