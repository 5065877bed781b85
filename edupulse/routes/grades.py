from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import get_current_user, require_staff
from ..models import GradeType, User
from ..responses import ApiResponse, ok, paged
from ..schemas.records import GradeCreate, GradeOut, GradeUpdate, StudentGradeReport
from ..services import grades as grade_service

router = APIRouter(prefix="/grades", tags=["Grades"])


@router.post("", response_model=ApiResponse[GradeOut], status_code=status.HTTP_201_CREATED)
def create_grade(
    payload: GradeCreate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    grade = grade_service.create_grade(db, data=payload, actor=current_user)
    return ok(GradeOut.model_validate(grade), "Grade recorded successfully")


@router.get("", response_model=ApiResponse[list[GradeOut]])
def list_grades(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str | None = None,
    student_id: int | None = None,
    course_id: int | None = None,
    type: GradeType | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    result = grade_service.list_grades(
        db,
        actor=current_user,
        page=page,
        limit=limit,
        search=search,
        student_id=student_id,
        course_id=course_id,
        grade_type=type,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return paged(result, GradeOut)


@router.get("/student/{student_id}", response_model=ApiResponse[StudentGradeReport])
def student_grades(
    student_id: int,
    course_id: int | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    report = grade_service.student_grades(db, student_id=student_id, actor=current_user, course_id=course_id)
    return ok(StudentGradeReport.model_validate(report))


@router.get("/course/{course_id}/report", response_model=ApiResponse[dict])
def course_grade_report(
    course_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    return ok(grade_service.course_grade_report(db, course_id=course_id, actor=current_user))


@router.get("/{grade_id}", response_model=ApiResponse[GradeOut])
def get_grade(grade_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    return ok(GradeOut.model_validate(grade_service.get_grade(db, grade_id, current_user)))


@router.put("/{grade_id}", response_model=ApiResponse[GradeOut])
def update_grade(
    grade_id: int,
    payload: GradeUpdate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    grade = grade_service.update_grade(db, grade_id=grade_id, data=payload, actor=current_user)
    return ok(GradeOut.model_validate(grade), "Grade updated successfully")


@router.delete("/{grade_id}", response_model=ApiResponse[None])
def delete_grade(
    grade_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    grade_service.delete_grade(db, grade_id=grade_id, actor=current_user)
    return ok(message="Grade deleted successfully")
