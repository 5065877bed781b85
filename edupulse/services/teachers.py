from datetime import date

from sqlalchemy import String, cast, func
from sqlalchemy.orm import Session, joinedload

from ..app_logger import get_logger
from ..errors import BadRequestError, ConflictError, NotFoundError
from ..models import Course, Enrollment, Schedule, Student, Teacher, User, UserRole, UserStatus
from ..pagination import Page, apply_sort, paginate, search_clause
from ..schemas.academics import TeacherCreate, TeacherUpdate
from .common import apply_changes, get_or_404, save

logger = get_logger("teachers")

SORTABLE = {"created_at", "employee_id", "department", "join_date"}


def create_teacher(db: Session, *, data: TeacherCreate) -> Teacher:
    user = get_or_404(db, User, data.user_id, "User")
    if user.role != UserRole.TEACHER:
        raise BadRequestError("User must have the TEACHER role")
    if user.teacher is not None:
        raise ConflictError("Teacher profile already exists for this user")
    if db.query(Teacher).filter(Teacher.employee_id == data.employee_id).first():
        raise ConflictError("Employee ID already exists")

    teacher = Teacher(
        user_id=user.id,
        employee_id=data.employee_id,
        department=data.department,
        subjects=list(data.subjects),
        qualification=data.qualification,
        join_date=data.join_date or date.today(),
    )
    db.add(teacher)
    save(db, teacher)
    logger.info("Created teacher %s for user %s", teacher.id, user.id)
    return teacher


def list_teachers(
    db: Session,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    department: str | None = None,
    subject: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> Page:
    query = db.query(Teacher).join(Teacher.user).options(joinedload(Teacher.user))
    clause = search_clause(search, User.first_name, User.last_name, User.email, Teacher.employee_id)
    if clause is not None:
        query = query.filter(clause)
    if department:
        query = query.filter(Teacher.department == department)
    if subject:
        query = query.filter(func.lower(cast(Teacher.subjects, String)).like(f'%"{subject.strip().lower()}"%'))
    query = apply_sort(query, Teacher, sort_by, sort_order, SORTABLE, "employee_id")
    return paginate(query, page, limit)


def get_teacher(db: Session, teacher_id: int) -> Teacher:
    return get_or_404(db, Teacher, teacher_id, "Teacher")


def get_teacher_by_employee_id(db: Session, employee_id: str) -> Teacher:
    teacher = db.query(Teacher).filter(Teacher.employee_id == employee_id).first()
    if not teacher:
        raise NotFoundError("Teacher")
    return teacher


def update_teacher(db: Session, *, teacher_id: int, data: TeacherUpdate) -> Teacher:
    teacher = get_teacher(db, teacher_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    employee_id = changes.get("employee_id")
    if employee_id and employee_id != teacher.employee_id:
        taken = db.query(Teacher).filter(Teacher.employee_id == employee_id, Teacher.id != teacher_id).first()
        if taken:
            raise ConflictError("Employee ID already exists")
    apply_changes(teacher, changes)
    save(db, teacher)
    return teacher


def delete_teacher(db: Session, *, teacher_id: int) -> None:
    teacher = get_teacher(db, teacher_id)
    if db.query(Course.id).filter(Course.teacher_id == teacher.id).first():
        raise BadRequestError("Teacher still has assigned courses; reassign them first")
    db.delete(teacher)
    db.commit()
    logger.info("Deleted teacher %s", teacher_id)


def teacher_courses(db: Session, teacher_id: int) -> list[Course]:
    get_teacher(db, teacher_id)
    return db.query(Course).filter(Course.teacher_id == teacher_id).order_by(Course.code).all()


def teacher_students(db: Session, teacher_id: int, course_id: int | None = None) -> list[Student]:
    get_teacher(db, teacher_id)
    query = (
        db.query(Student)
        .join(Enrollment, Enrollment.student_id == Student.id)
        .join(Course, Course.id == Enrollment.course_id)
        .options(joinedload(Student.user))
        .filter(Course.teacher_id == teacher_id)
    )
    if course_id is not None:
        query = query.filter(Course.id == course_id)
    return query.distinct().order_by(Student.roll_number).all()


def teacher_schedule(db: Session, teacher_id: int) -> list[Schedule]:
    get_teacher(db, teacher_id)
    return (
        db.query(Schedule)
        .join(Schedule.course)
        .options(joinedload(Schedule.course))
        .filter(Course.teacher_id == teacher_id, Schedule.is_active.is_(True))
        .order_by(Schedule.day_of_week, Schedule.start_time)
        .all()
    )


def teachers_statistics(db: Session) -> dict:
    total = db.query(func.count(Teacher.id)).scalar() or 0
    active = (
        db.query(func.count(Teacher.id))
        .join(Teacher.user)
        .filter(User.status == UserStatus.ACTIVE)
        .scalar()
        or 0
    )
    departments = db.query(Teacher.department, func.count(Teacher.id)).group_by(Teacher.department).all()
    total_courses = db.query(func.count(Course.id)).scalar() or 0
    return {
        "total": total,
        "active": active,
        "department_distribution": {department: count for department, count in departments},
        "total_courses": total_courses,
    }
