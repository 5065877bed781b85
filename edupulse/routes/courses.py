from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import get_current_user, require_staff
from ..models import User
from ..responses import ApiResponse, ok, paged
from ..schemas.academics import CourseCreate, CourseOut, CourseUpdate, EnrollmentOut, EnrollRequest, StudentOut
from ..services import courses as course_service

router = APIRouter(prefix="/courses", tags=["Courses"])


@router.get("", response_model=ApiResponse[list[CourseOut]])
def list_courses(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str | None = None,
    subject: str | None = None,
    grade_level: int | None = Query(default=None, ge=1, le=12),
    teacher_id: int | None = None,
    is_active: bool | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    result = course_service.list_courses(
        db,
        page=page,
        limit=limit,
        search=search,
        subject=subject,
        grade_level=grade_level,
        teacher_id=teacher_id,
        is_active=is_active,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return paged(result, CourseOut)


@router.post("", response_model=ApiResponse[CourseOut], status_code=status.HTTP_201_CREATED)
def create_course(
    payload: CourseCreate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    course = course_service.create_course(db, data=payload, actor=current_user)
    return ok(CourseOut.model_validate(course), "Course created successfully")


@router.get("/{course_id}", response_model=ApiResponse[CourseOut])
def get_course(course_id: int, db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return ok(CourseOut.model_validate(course_service.get_course(db, course_id)))


@router.put("/{course_id}", response_model=ApiResponse[CourseOut])
def update_course(
    course_id: int,
    payload: CourseUpdate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    course = course_service.update_course(db, course_id=course_id, data=payload, actor=current_user)
    return ok(CourseOut.model_validate(course), "Course updated successfully")


@router.delete("/{course_id}", response_model=ApiResponse[None])
def delete_course(
    course_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    course_service.delete_course(db, course_id=course_id, actor=current_user)
    return ok(message="Course deleted successfully")


@router.get("/{course_id}/students", response_model=ApiResponse[list[StudentOut]])
def course_students(course_id: int, db: Session = Depends(get_db_session), _: User = Depends(require_staff)):
    students = course_service.course_students(db, course_id)
    return ok([StudentOut.model_validate(student) for student in students])


@router.post(
    "/{course_id}/enroll",
    response_model=ApiResponse[EnrollmentOut],
    status_code=status.HTTP_201_CREATED,
)
def enroll_student(
    course_id: int,
    payload: EnrollRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    enrollment = course_service.enroll_student(
        db, course_id=course_id, student_id=payload.student_id, actor=current_user
    )
    return ok(EnrollmentOut.model_validate(enrollment), "Student enrolled successfully")


@router.delete("/{course_id}/students/{student_id}", response_model=ApiResponse[None])
def unenroll_student(
    course_id: int,
    student_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    course_service.unenroll_student(db, course_id=course_id, student_id=student_id, actor=current_user)
    return ok(message="Student unenrolled successfully")
