from sqlalchemy.orm import Session, joinedload

from ..app_logger import get_logger
from ..errors import BadRequestError, ConflictError
from ..models import Course, Enrollment, Student, Teacher, User, UserRole
from ..pagination import Page, apply_sort, paginate, search_clause
from ..schemas.academics import CourseCreate, CourseUpdate
from .common import apply_changes, ensure_course_access, get_or_404, save, teacher_profile
from .students import enroll_in_course, unenroll_from_course

logger = get_logger("courses")

SORTABLE = {"created_at", "code", "name", "subject", "grade_level", "credits"}


def list_courses(
    db: Session,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    subject: str | None = None,
    grade_level: int | None = None,
    teacher_id: int | None = None,
    is_active: bool | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> Page:
    query = db.query(Course).options(joinedload(Course.teacher).joinedload(Teacher.user))
    clause = search_clause(search, Course.name, Course.code, Course.description)
    if clause is not None:
        query = query.filter(clause)
    if subject:
        query = query.filter(Course.subject == subject)
    if grade_level is not None:
        query = query.filter(Course.grade_level == grade_level)
    if teacher_id is not None:
        query = query.filter(Course.teacher_id == teacher_id)
    if is_active is not None:
        query = query.filter(Course.is_active == is_active)
    query = apply_sort(query, Course, sort_by, sort_order, SORTABLE, "code")
    return paginate(query, page, limit)


def get_course(db: Session, course_id: int) -> Course:
    return get_or_404(db, Course, course_id, "Course")


def _resolve_teacher_id(db: Session, actor: User, requested: int | None) -> int:
    if actor.role == UserRole.TEACHER:
        own = teacher_profile(actor)
        if requested is not None and requested != own.id:
            raise BadRequestError("Teachers can only create courses for themselves")
        return own.id
    if requested is None:
        raise BadRequestError("teacher_id is required")
    get_or_404(db, Teacher, requested, "Teacher")
    return requested


def create_course(db: Session, *, data: CourseCreate, actor: User) -> Course:
    teacher_id = _resolve_teacher_id(db, actor, data.teacher_id)
    if db.query(Course).filter(Course.code == data.code).first():
        raise ConflictError("Course code already exists")

    course = Course(**data.model_dump(exclude={"teacher_id"}), teacher_id=teacher_id)
    db.add(course)
    save(db, course)
    logger.info("Created course %s (%s)", course.id, course.code)
    return course


def update_course(db: Session, *, course_id: int, data: CourseUpdate, actor: User) -> Course:
    course = get_course(db, course_id)
    ensure_course_access(actor, course)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)

    if "code" in changes and changes["code"] != course.code:
        if db.query(Course).filter(Course.code == changes["code"], Course.id != course_id).first():
            raise ConflictError("Course code already exists")
    if "teacher_id" in changes and changes["teacher_id"] != course.teacher_id:
        if actor.role != UserRole.ADMIN:
            raise BadRequestError("Only administrators can reassign a course")
        get_or_404(db, Teacher, changes["teacher_id"], "Teacher")

    start_date = changes.get("start_date", course.start_date)
    end_date = changes.get("end_date", course.end_date)
    if start_date and end_date and end_date < start_date:
        raise BadRequestError("end_date must be on or after start_date")

    apply_changes(course, changes)
    save(db, course)
    return course


def delete_course(db: Session, *, course_id: int, actor: User) -> None:
    course = get_course(db, course_id)
    ensure_course_access(actor, course)
    db.delete(course)
    db.commit()
    logger.info("Deleted course %s", course_id)


def enroll_student(db: Session, *, course_id: int, student_id: int, actor: User) -> Enrollment:
    course = get_course(db, course_id)
    ensure_course_access(actor, course)
    return enroll_in_course(db, student_id=student_id, course_id=course.id)


def unenroll_student(db: Session, *, course_id: int, student_id: int, actor: User) -> None:
    course = get_course(db, course_id)
    ensure_course_access(actor, course)
    unenroll_from_course(db, student_id=student_id, course_id=course.id)


def course_students(db: Session, course_id: int) -> list[Student]:
    get_course(db, course_id)
    return (
        db.query(Student)
        .join(Enrollment, Enrollment.student_id == Student.id)
        .options(joinedload(Student.user))
        .filter(Enrollment.course_id == course_id)
        .order_by(Student.roll_number)
        .all()
    )


def is_enrolled(db: Session, *, student_id: int, course_id: int) -> bool:
    return (
        db.query(Enrollment.id)
        .filter(Enrollment.student_id == student_id, Enrollment.course_id == course_id)
        .first()
        is not None
    )
