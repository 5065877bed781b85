from datetime import date

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..app_logger import get_logger
from ..errors import BadRequestError, ConflictError, NotFoundError
from ..models import Course, Enrollment, Gamification, Student, User, UserRole, UserStatus
from ..pagination import Page, apply_sort, paginate, search_clause
from ..schemas.academics import StudentCreate, StudentUpdate
from .common import apply_changes, ensure_student_access, get_or_404, save

logger = get_logger("students")

SORTABLE = {"created_at", "roll_number", "grade_level", "section", "admission_date"}


def create_student(db: Session, *, data: StudentCreate) -> Student:
    user = get_or_404(db, User, data.user_id, "User")
    if user.role != UserRole.STUDENT:
        raise BadRequestError("User must have the STUDENT role")
    if user.student is not None:
        raise ConflictError("Student profile already exists for this user")
    if db.query(Student).filter(Student.roll_number == data.roll_number).first():
        raise ConflictError("Roll number already exists")

    student = Student(
        user_id=user.id,
        roll_number=data.roll_number,
        grade_level=data.grade_level,
        section=data.section,
        stream=data.stream,
        admission_date=data.admission_date or date.today(),
    )
    db.add(student)
    if user.gamification is None:
        db.add(Gamification(user_id=user.id))
    save(db, student)
    logger.info("Created student %s for user %s", student.id, user.id)
    return student


def list_students(
    db: Session,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    grade_level: int | None = None,
    section: str | None = None,
    stream: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> Page:
    query = db.query(Student).join(Student.user).options(joinedload(Student.user))
    clause = search_clause(search, User.first_name, User.last_name, User.email, Student.roll_number)
    if clause is not None:
        query = query.filter(clause)
    if grade_level is not None:
        query = query.filter(Student.grade_level == grade_level)
    if section:
        query = query.filter(Student.section == section)
    if stream:
        query = query.filter(Student.stream == stream)
    query = apply_sort(query, Student, sort_by, sort_order, SORTABLE, "roll_number")
    return paginate(query, page, limit)


def get_student(db: Session, student_id: int, actor: User | None = None) -> Student:
    student = get_or_404(db, Student, student_id, "Student")
    if actor is not None:
        ensure_student_access(db, actor, student)
    return student


def get_student_by_roll_number(db: Session, roll_number: str) -> Student:
    student = db.query(Student).filter(Student.roll_number == roll_number).first()
    if not student:
        raise NotFoundError("Student")
    return student


def update_student(db: Session, *, student_id: int, data: StudentUpdate) -> Student:
    student = get_student(db, student_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    roll_number = changes.get("roll_number")
    if roll_number and roll_number != student.roll_number:
        taken = db.query(Student).filter(Student.roll_number == roll_number, Student.id != student_id).first()
        if taken:
            raise ConflictError("Roll number already exists")
    apply_changes(student, changes)
    save(db, student)
    return student


def delete_student(db: Session, *, student_id: int) -> None:
    student = get_student(db, student_id)
    db.delete(student)
    db.commit()
    logger.info("Deleted student %s", student_id)


def enroll_in_course(db: Session, *, student_id: int, course_id: int) -> Enrollment:
    student = get_student(db, student_id)
    course = get_or_404(db, Course, course_id, "Course")
    if not course.is_active:
        raise BadRequestError("Course is not active")
    exists = (
        db.query(Enrollment)
        .filter(Enrollment.student_id == student.id, Enrollment.course_id == course.id)
        .first()
    )
    if exists:
        raise ConflictError("Student is already enrolled in this course")

    enrollment = Enrollment(student_id=student.id, course_id=course.id)
    db.add(enrollment)
    save(db, enrollment)
    logger.info("Enrolled student %s in course %s", student.id, course.id)
    return enrollment


def unenroll_from_course(db: Session, *, student_id: int, course_id: int) -> None:
    enrollment = (
        db.query(Enrollment)
        .filter(Enrollment.student_id == student_id, Enrollment.course_id == course_id)
        .first()
    )
    if not enrollment:
        raise NotFoundError("Enrollment")
    db.delete(enrollment)
    db.commit()


def student_enrollments(db: Session, student_id: int) -> list[Enrollment]:
    return (
        db.query(Enrollment)
        .options(joinedload(Enrollment.course))
        .filter(Enrollment.student_id == student_id)
        .order_by(Enrollment.enrolled_at.desc())
        .all()
    )


def student_gamification(db: Session, student: Student) -> Gamification:
    profile = student.user.gamification
    if profile is None:
        profile = Gamification(user_id=student.user_id)
        db.add(profile)
        save(db, profile)
    return profile


def students_statistics(db: Session) -> dict:
    total = db.query(func.count(Student.id)).scalar() or 0
    active = (
        db.query(func.count(Student.id))
        .join(Student.user)
        .filter(User.status == UserStatus.ACTIVE)
        .scalar()
        or 0
    )
    grades = db.query(Student.grade_level, func.count(Student.id)).group_by(Student.grade_level).all()
    sections = db.query(Student.section, func.count(Student.id)).group_by(Student.section).all()
    return {
        "total": total,
        "active": active,
        "grade_distribution": {str(level): count for level, count in grades},
        "section_distribution": {section: count for section, count in sections},
    }
