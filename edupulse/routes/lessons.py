from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import get_current_user, require_staff
from ..models import User
from ..responses import ApiResponse, ok, paged
from ..schemas.lessons import LessonCreate, LessonOut, LessonUpdate, ReorderLessonsRequest
from ..services import lessons as lesson_service

router = APIRouter(prefix="/lessons", tags=["Lessons"])


@router.post("", response_model=ApiResponse[LessonOut], status_code=status.HTTP_201_CREATED)
def create_lesson(
    payload: LessonCreate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    lesson = lesson_service.create_lesson(db, data=payload, actor=current_user)
    return ok(LessonOut.model_validate(lesson), "Lesson created successfully")


@router.get("", response_model=ApiResponse[list[LessonOut]])
def list_lessons(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str | None = None,
    course_id: int | None = None,
    teacher_id: int | None = None,
    is_published: bool | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    result = lesson_service.list_lessons(
        db,
        actor=current_user,
        page=page,
        limit=limit,
        search=search,
        course_id=course_id,
        teacher_id=teacher_id,
        is_published=is_published,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return paged(result, LessonOut)


@router.get("/stats", response_model=ApiResponse[dict])
def lessons_statistics(
    course_id: int | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_staff),
):
    return ok(lesson_service.lessons_statistics(db, course_id))


@router.get("/course/{course_id}", response_model=ApiResponse[list[LessonOut]])
def lessons_by_course(
    course_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    result = lesson_service.list_lessons(db, actor=current_user, page=page, limit=limit, course_id=course_id)
    return paged(result, LessonOut)


@router.get("/course/{course_id}/next-order", response_model=ApiResponse[int])
def next_order(course_id: int, db: Session = Depends(get_db_session), _: User = Depends(require_staff)):
    return ok(lesson_service.next_order(db, course_id))


@router.put("/course/{course_id}/reorder", response_model=ApiResponse[list[LessonOut]])
def reorder_lessons(
    course_id: int,
    payload: ReorderLessonsRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    lessons = lesson_service.reorder_lessons(
        db, course_id=course_id, orders=payload.lesson_orders, actor=current_user
    )
    return ok([LessonOut.model_validate(lesson) for lesson in lessons], "Lessons reordered successfully")


@router.get("/teacher/{teacher_id}", response_model=ApiResponse[list[LessonOut]])
def lessons_by_teacher(
    teacher_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    result = lesson_service.list_lessons(db, actor=current_user, page=page, limit=limit, teacher_id=teacher_id)
    return paged(result, LessonOut)


@router.get("/{lesson_id}", response_model=ApiResponse[LessonOut])
def get_lesson(
    lesson_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return ok(LessonOut.model_validate(lesson_service.get_lesson(db, lesson_id, current_user)))


@router.put("/{lesson_id}", response_model=ApiResponse[LessonOut])
def update_lesson(
    lesson_id: int,
    payload: LessonUpdate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    lesson = lesson_service.update_lesson(db, lesson_id=lesson_id, data=payload, actor=current_user)
    return ok(LessonOut.model_validate(lesson), "Lesson updated successfully")


@router.patch("/{lesson_id}/publish", response_model=ApiResponse[LessonOut])
def toggle_publish(
    lesson_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    lesson = lesson_service.toggle_publish(db, lesson_id=lesson_id, actor=current_user)
    state = "published" if lesson.is_published else "unpublished"
    return ok(LessonOut.model_validate(lesson), f"Lesson {state} successfully")


@router.delete("/{lesson_id}", response_model=ApiResponse[None])
def delete_lesson(
    lesson_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_staff),
):
    lesson_service.delete_lesson(db, lesson_id=lesson_id, actor=current_user)
    return ok(message="Lesson deleted successfully")
