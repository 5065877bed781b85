from collections import defaultdict

from sqlalchemy.orm import Session, joinedload

from ..app_logger import get_logger
from ..errors import BadRequestError
from ..models import Course, Grade, GradeType, Student, User, UserRole, utcnow
from ..pagination import Page, apply_sort, paginate, search_clause
from ..schemas.records import GradeCreate, GradeUpdate
from .common import apply_changes, ensure_course_access, ensure_student_access, get_or_404, save
from .courses import is_enrolled

logger = get_logger("grades")

SORTABLE = {"graded_at", "score", "percentage", "title", "type"}


def compute_percentage(score: float, max_score: float) -> float:
    return round(score / max_score * 100, 2)


def list_grades(
    db: Session,
    *,
    actor: User,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    student_id: int | None = None,
    course_id: int | None = None,
    grade_type: GradeType | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> Page:
    query = db.query(Grade).options(joinedload(Grade.course))
    if actor.role == UserRole.STUDENT:
        query = query.filter(Grade.student_id == (actor.student.id if actor.student else -1))
    elif actor.role == UserRole.TEACHER:
        query = query.join(Grade.course).filter(Course.teacher_id == (actor.teacher.id if actor.teacher else -1))
    elif actor.role == UserRole.PARENT:
        child_ids = [link.student_id for link in actor.parent.children] if actor.parent else []
        query = query.filter(Grade.student_id.in_(child_ids))

    clause = search_clause(search, Grade.title, Grade.feedback)
    if clause is not None:
        query = query.filter(clause)
    if student_id is not None:
        query = query.filter(Grade.student_id == student_id)
    if course_id is not None:
        query = query.filter(Grade.course_id == course_id)
    if grade_type is not None:
        query = query.filter(Grade.type == grade_type)
    query = apply_sort(query, Grade, sort_by, sort_order or "desc", SORTABLE, "graded_at")
    return paginate(query, page, limit)


def get_grade(db: Session, grade_id: int, actor: User) -> Grade:
    grade = get_or_404(db, Grade, grade_id, "Grade")
    if actor.role == UserRole.TEACHER:
        ensure_course_access(actor, grade.course)
    else:
        ensure_student_access(db, actor, grade.student)
    return grade


def create_grade(db: Session, *, data: GradeCreate, actor: User) -> Grade:
    course = get_or_404(db, Course, data.course_id, "Course")
    ensure_course_access(actor, course)
    student = get_or_404(db, Student, data.student_id, "Student")
    if not is_enrolled(db, student_id=student.id, course_id=course.id):
        raise BadRequestError("Student is not enrolled in this course")

    grade = Grade(
        **data.model_dump(),
        percentage=compute_percentage(data.score, data.max_score),
        graded_at=utcnow(),
    )
    db.add(grade)
    save(db, grade)
    logger.info("Recorded grade %s for student %s in course %s", grade.id, student.id, course.id)
    return grade


def update_grade(db: Session, *, grade_id: int, data: GradeUpdate, actor: User) -> Grade:
    grade = get_or_404(db, Grade, grade_id, "Grade")
    ensure_course_access(actor, grade.course)
    changes = data.model_dump(exclude_unset=True)
    changes = {key: value for key, value in changes.items() if value is not None or key == "feedback"}

    score = changes.get("score", grade.score)
    max_score = changes.get("max_score", grade.max_score)
    if score > max_score:
        raise BadRequestError("score cannot exceed max_score")

    apply_changes(grade, changes)
    grade.percentage = compute_percentage(score, max_score)
    save(db, grade)
    return grade


def delete_grade(db: Session, *, grade_id: int, actor: User) -> None:
    grade = get_or_404(db, Grade, grade_id, "Grade")
    ensure_course_access(actor, grade.course)
    db.delete(grade)
    db.commit()


def grade_stats(grades: list[Grade]) -> dict:
    if not grades:
        return {"total_grades": 0, "average_score": 0.0, "highest_score": 0.0, "lowest_score": 0.0}
    percentages = [grade.percentage for grade in grades]
    return {
        "total_grades": len(grades),
        "average_score": round(sum(percentages) / len(percentages), 2),
        "highest_score": max(percentages),
        "lowest_score": min(percentages),
    }


def student_grades(db: Session, *, student_id: int, actor: User, course_id: int | None = None) -> dict:
    student = get_or_404(db, Student, student_id, "Student")
    ensure_student_access(db, actor, student)
    query = db.query(Grade).options(joinedload(Grade.course)).filter(Grade.student_id == student.id)
    if actor.role == UserRole.TEACHER and actor.teacher:
        query = query.join(Grade.course).filter(Course.teacher_id == actor.teacher.id)
    if course_id is not None:
        query = query.filter(Grade.course_id == course_id)
    grades = query.order_by(Grade.graded_at.desc()).all()
    return {"grades": grades, "stats": grade_stats(grades)}


def course_grade_report(db: Session, *, course_id: int, actor: User) -> dict:
    course = get_or_404(db, Course, course_id, "Course")
    ensure_course_access(actor, course)
    grades = db.query(Grade).filter(Grade.course_id == course.id).all()

    by_student: dict[int, list[Grade]] = defaultdict(list)
    for grade in grades:
        by_student[grade.student_id].append(grade)

    students = []
    for student_id, items in sorted(by_student.items()):
        total_weight = sum(item.weight for item in items)
        weighted = (
            sum(item.percentage * item.weight for item in items) / total_weight if total_weight else 0.0
        )
        students.append(
            {
                "student_id": student_id,
                "grades_count": len(items),
                "weighted_average": round(weighted, 2),
            }
        )
    return {
        "course_id": course.id,
        "course_code": course.code,
        "students": students,
        "stats": grade_stats(grades),
    }
