from sqlalchemy import func
from sqlalchemy.orm import Session

from ..app_logger import get_logger
from ..errors import BadRequestError, ConflictError, NotFoundError
from ..models import Course, Lesson, User, UserRole
from ..pagination import Page, apply_sort, paginate, search_clause
from ..schemas.lessons import LessonCreate, LessonOrder, LessonUpdate
from .common import apply_changes, ensure_course_access, get_or_404, save

logger = get_logger("lessons")

SORTABLE = {"order", "title", "created_at", "updated_at"}


def next_order(db: Session, course_id: int) -> int:
    current = db.query(func.max(Lesson.order)).filter(Lesson.course_id == course_id).scalar()
    return (current or 0) + 1


def _order_taken(db: Session, course_id: int, order: int, exclude_id: int | None = None) -> bool:
    query = db.query(Lesson.id).filter(Lesson.course_id == course_id, Lesson.order == order)
    if exclude_id is not None:
        query = query.filter(Lesson.id != exclude_id)
    return query.first() is not None


def create_lesson(db: Session, *, data: LessonCreate, actor: User) -> Lesson:
    course = get_or_404(db, Course, data.course_id, "Course")
    ensure_course_access(actor, course)
    order = data.order or next_order(db, course.id)
    if _order_taken(db, course.id, order):
        raise ConflictError("A lesson with this order already exists in the course")

    lesson = Lesson(**data.model_dump(exclude={"order"}), order=order)
    db.add(lesson)
    save(db, lesson)
    logger.info("Created lesson %s in course %s", lesson.id, course.id)
    return lesson


def _visible_to(query, actor: User | None):
    if actor is not None and actor.role in {UserRole.STUDENT, UserRole.PARENT}:
        query = query.filter(Lesson.is_published.is_(True))
    return query


def list_lessons(
    db: Session,
    *,
    actor: User | None = None,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    course_id: int | None = None,
    teacher_id: int | None = None,
    is_published: bool | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> Page:
    query = _visible_to(db.query(Lesson), actor)
    clause = search_clause(search, Lesson.title, Lesson.description)
    if clause is not None:
        query = query.filter(clause)
    if course_id is not None:
        query = query.filter(Lesson.course_id == course_id)
    if teacher_id is not None:
        query = query.join(Lesson.course).filter(Course.teacher_id == teacher_id)
    if is_published is not None:
        query = query.filter(Lesson.is_published == is_published)
    query = apply_sort(query, Lesson, sort_by, sort_order, SORTABLE, "order")
    return paginate(query, page, limit)


def get_lesson(db: Session, lesson_id: int, actor: User | None = None) -> Lesson:
    lesson = get_or_404(db, Lesson, lesson_id, "Lesson")
    if not _visible_to(db.query(Lesson).filter(Lesson.id == lesson.id), actor).first():
        raise NotFoundError("Lesson")
    return lesson


def update_lesson(db: Session, *, lesson_id: int, data: LessonUpdate, actor: User) -> Lesson:
    lesson = get_or_404(db, Lesson, lesson_id, "Lesson")
    ensure_course_access(actor, lesson.course)
    changes = data.model_dump(exclude_unset=True)
    for key in ("title", "order", "attachments", "is_published"):
        if key in changes and changes[key] is None:
            del changes[key]
    if "order" in changes and changes["order"] != lesson.order:
        if _order_taken(db, lesson.course_id, changes["order"], exclude_id=lesson.id):
            raise ConflictError("A lesson with this order already exists in the course")
    apply_changes(lesson, changes)
    save(db, lesson)
    return lesson


def delete_lesson(db: Session, *, lesson_id: int, actor: User) -> None:
    lesson = get_or_404(db, Lesson, lesson_id, "Lesson")
    ensure_course_access(actor, lesson.course)
    db.delete(lesson)
    db.commit()


def toggle_publish(db: Session, *, lesson_id: int, actor: User) -> Lesson:
    lesson = get_or_404(db, Lesson, lesson_id, "Lesson")
    ensure_course_access(actor, lesson.course)
    lesson.is_published = not lesson.is_published
    save(db, lesson)
    return lesson


def reorder_lessons(db: Session, *, course_id: int, orders: list[LessonOrder], actor: User) -> list[Lesson]:
    course = get_or_404(db, Course, course_id, "Course")
    ensure_course_access(actor, course)

    ids = [item.id for item in orders]
    if len(set(ids)) != len(ids):
        raise BadRequestError("Lesson ids must be unique")
    new_orders = [item.order for item in orders]
    if len(set(new_orders)) != len(new_orders):
        raise BadRequestError("Lesson orders must be unique")

    lessons = db.query(Lesson).filter(Lesson.id.in_(ids), Lesson.course_id == course.id).all()
    if len(lessons) != len(ids):
        raise BadRequestError("Some lessons do not belong to this course")

    untouched = (
        db.query(Lesson.order)
        .filter(Lesson.course_id == course.id, Lesson.id.not_in(ids))
        .all()
    )
    if {order for (order,) in untouched} & set(new_orders):
        raise ConflictError("A lesson with this order already exists in the course")

    by_id = {lesson.id: lesson for lesson in lessons}
    try:
        # park on negative orders, then assign the final ones
        for index, lesson in enumerate(lessons, start=1):
            lesson.order = -index
        db.flush()
        for item in orders:
            by_id[item.id].order = item.order
        db.commit()
    except Exception:
        db.rollback()
        raise
    return db.query(Lesson).filter(Lesson.course_id == course.id).order_by(Lesson.order).all()


def lessons_statistics(db: Session, course_id: int | None = None) -> dict:
    query = db.query(Lesson.is_published, func.count(Lesson.id))
    if course_id is not None:
        query = query.filter(Lesson.course_id == course_id)
    counts = dict(query.group_by(Lesson.is_published).all())
    published = counts.get(True, 0)
    draft = counts.get(False, 0)
    return {"total": published + draft, "published": published, "draft": draft}
