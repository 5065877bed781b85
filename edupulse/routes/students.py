from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..errors import AuthorizationError
from ..middleware import get_current_user, require_admin, require_staff
from ..models import User, UserRole
from ..responses import ApiResponse, ok, paged
from ..schemas.academics import (
    EnrollmentOut,
    StudentCreate,
    StudentEnrollRequest,
    StudentOut,
    StudentStats,
    StudentUpdate,
)
from ..schemas.quiz import GamificationOut
from ..schemas.records import StudentAttendanceReport, StudentGradeReport
from ..services import attendance as attendance_service
from ..services import grades as grade_service
from ..services import students as student_service

router = APIRouter(prefix="/students", tags=["Students"])


def _ensure_self_or_admin(user: User, student_id: int) -> None:
    if user.role == UserRole.ADMIN:
        return
    if user.role == UserRole.STUDENT and user.student and user.student.id == student_id:
        return
    raise AuthorizationError("You can only manage your own enrollments")


@router.post("", response_model=ApiResponse[StudentOut], status_code=status.HTTP_201_CREATED)
def create_student(
    payload: StudentCreate,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_admin),
):
    student = student_service.create_student(db, data=payload)
    return ok(StudentOut.model_validate(student), "Student created successfully")


@router.get("", response_model=ApiResponse[list[StudentOut]])
def list_students(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str | None = None,
    grade_level: int | None = Query(default=None, ge=1, le=12),
    section: str | None = None,
    stream: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_staff),
):
    result = student_service.list_students(
        db,
        page=page,
        limit=limit,
        search=search,
        grade_level=grade_level,
        section=section,
        stream=stream,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return paged(result, StudentOut)


@router.get("/stats", response_model=ApiResponse[StudentStats])
def students_statistics(db: Session = Depends(get_db_session), _: User = Depends(require_admin)):
    return ok(student_service.students_statistics(db))


@router.get("/roll/{roll_number}", response_model=ApiResponse[StudentOut])
def get_student_by_roll_number(
    roll_number: str,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_staff),
):
    return ok(StudentOut.model_validate(student_service.get_student_by_roll_number(db, roll_number)))


@router.get("/{student_id}", response_model=ApiResponse[StudentOut])
def get_student(
    student_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return ok(StudentOut.model_validate(student_service.get_student(db, student_id, current_user)))


@router.put("/{student_id}", response_model=ApiResponse[StudentOut])
def update_student(
    student_id: int,
    payload: StudentUpdate,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_admin),
):
    student = student_service.update_student(db, student_id=student_id, data=payload)
    return ok(StudentOut.model_validate(student), "Student updated successfully")


@router.delete("/{student_id}", response_model=ApiResponse[None])
def delete_student(student_id: int, db: Session = Depends(get_db_session), _: User = Depends(require_admin)):
    student_service.delete_student(db, student_id=student_id)
    return ok(message="Student deleted successfully")


@router.get("/{student_id}/courses", response_model=ApiResponse[list[EnrollmentOut]])
def student_enrollments(
    student_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    student = student_service.get_student(db, student_id, current_user)
    enrollments = student_service.student_enrollments(db, student.id)
    return ok([EnrollmentOut.model_validate(item) for item in enrollments])


@router.post(
    "/{student_id}/enroll",
    response_model=ApiResponse[EnrollmentOut],
    status_code=status.HTTP_201_CREATED,
)
def enroll_in_course(
    student_id: int,
    payload: StudentEnrollRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    _ensure_self_or_admin(current_user, student_id)
    enrollment = student_service.enroll_in_course(db, student_id=student_id, course_id=payload.course_id)
    return ok(EnrollmentOut.model_validate(enrollment), "Enrolled successfully")


@router.delete("/{student_id}/courses/{course_id}", response_model=ApiResponse[None])
def unenroll_from_course(
    student_id: int,
    course_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    _ensure_self_or_admin(current_user, student_id)
    student_service.unenroll_from_course(db, student_id=student_id, course_id=course_id)
    return ok(message="Unenrolled successfully")


@router.get("/{student_id}/grades", response_model=ApiResponse[StudentGradeReport])
def student_grades(
    student_id: int,
    course_id: int | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    report = grade_service.student_grades(db, student_id=student_id, actor=current_user, course_id=course_id)
    return ok(StudentGradeReport.model_validate(report))


@router.get("/{student_id}/attendance", response_model=ApiResponse[StudentAttendanceReport])
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


@router.get("/{student_id}/gamification", response_model=ApiResponse[GamificationOut])
def student_gamification(
    student_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    student = student_service.get_student(db, student_id, current_user)
    profile = student_service.student_gamification(db, student)
    return ok(GamificationOut.model_validate(profile))
