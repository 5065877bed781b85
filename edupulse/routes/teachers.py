from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import get_current_user, require_admin, require_staff
from ..models import User
from ..responses import ApiResponse, ok, paged
from ..schemas.academics import CourseOut, StudentOut, TeacherCreate, TeacherOut, TeacherStats, TeacherUpdate
from ..schemas.schedule import ScheduleOut
from ..services import teachers as teacher_service

router = APIRouter(prefix="/teachers", tags=["Teachers"])


@router.post("", response_model=ApiResponse[TeacherOut], status_code=status.HTTP_201_CREATED)
def create_teacher(
    payload: TeacherCreate,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_admin),
):
    teacher = teacher_service.create_teacher(db, data=payload)
    return ok(TeacherOut.model_validate(teacher), "Teacher created successfully")


@router.get("", response_model=ApiResponse[list[TeacherOut]])
def list_teachers(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str | None = None,
    department: str | None = None,
    subject: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(get_current_user),
):
    result = teacher_service.list_teachers(
        db,
        page=page,
        limit=limit,
        search=search,
        department=department,
        subject=subject,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return paged(result, TeacherOut)


@router.get("/stats", response_model=ApiResponse[TeacherStats])
def teachers_statistics(db: Session = Depends(get_db_session), _: User = Depends(require_admin)):
    return ok(teacher_service.teachers_statistics(db))


@router.get("/employee/{employee_id}", response_model=ApiResponse[TeacherOut])
def get_teacher_by_employee_id(
    employee_id: str,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_staff),
):
    return ok(TeacherOut.model_validate(teacher_service.get_teacher_by_employee_id(db, employee_id)))


@router.get("/{teacher_id}", response_model=ApiResponse[TeacherOut])
def get_teacher(teacher_id: int, db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    return ok(TeacherOut.model_validate(teacher_service.get_teacher(db, teacher_id)))


@router.put("/{teacher_id}", response_model=ApiResponse[TeacherOut])
def update_teacher(
    teacher_id: int,
    payload: TeacherUpdate,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_admin),
):
    teacher = teacher_service.update_teacher(db, teacher_id=teacher_id, data=payload)
    return ok(TeacherOut.model_validate(teacher), "Teacher updated successfully")


@router.delete("/{teacher_id}", response_model=ApiResponse[None])
def delete_teacher(teacher_id: int, db: Session = Depends(get_db_session), _: User = Depends(require_admin)):
    teacher_service.delete_teacher(db, teacher_id=teacher_id)
    return ok(message="Teacher deleted successfully")


@router.get("/{teacher_id}/courses", response_model=ApiResponse[list[CourseOut]])
def teacher_courses(teacher_id: int, db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    courses = teacher_service.teacher_courses(db, teacher_id)
    return ok([CourseOut.model_validate(course) for course in courses])


@router.get("/{teacher_id}/students", response_model=ApiResponse[list[StudentOut]])
def teacher_students(
    teacher_id: int,
    course_id: int | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_staff),
):
    students = teacher_service.teacher_students(db, teacher_id, course_id)
    return ok([StudentOut.model_validate(student) for student in students])


@router.get("/{teacher_id}/schedule", response_model=ApiResponse[list[ScheduleOut]])
def teacher_schedule(teacher_id: int, db: Session = Depends(get_db_session), _: User = Depends(get_current_user)):
    schedules = teacher_service.teacher_schedule(db, teacher_id)
    return ok([ScheduleOut.model_validate(item) for item in schedules])
