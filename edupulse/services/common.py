import re
from typing import Any, TypeVar

from sqlalchemy.orm import Session

from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..models import Course, ParentStudent, Student, Teacher, User, UserRole

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")

M = TypeVar("M")


def normalize_email(value: str) -> str:
    normalized = value.lower().strip()
    if not EMAIL_PATTERN.match(normalized):
        raise ValidationError("Invalid email format")
    return normalized


def get_or_404(db: Session, model: type[M], obj_id: int, label: str) -> M:
    obj = db.get(model, obj_id)
    if obj is None:
        raise NotFoundError(label)
    return obj


def apply_changes(obj: Any, changes: dict[str, Any]) -> None:
    for key, value in changes.items():
        setattr(obj, key, value)


def save(db: Session, *instances: Any) -> None:
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    for instance in instances:
        db.refresh(instance)


def is_admin(user: User) -> bool:
    return user.role == UserRole.ADMIN


def teacher_profile(user: User) -> Teacher:
    if user.teacher is None:
        raise AuthorizationError("Teacher profile not found for this account")
    return user.teacher


def student_profile(user: User) -> Student:
    if user.student is None:
        raise AuthorizationError("Student profile not found for this account")
    return user.student


def ensure_course_access(user: User, course: Course) -> None:
    if is_admin(user):
        return
    if user.role == UserRole.TEACHER and user.teacher and user.teacher.id == course.teacher_id:
        return
    raise AuthorizationError("You can only manage your own courses")


def ensure_student_access(db: Session, user: User, student: Student) -> None:
    if user.role in {UserRole.ADMIN, UserRole.TEACHER}:
        return
    if user.role == UserRole.STUDENT and user.student and user.student.id == student.id:
        return
    if user.role == UserRole.PARENT and user.parent:
        link = (
            db.query(ParentStudent)
            .filter(ParentStudent.parent_id == user.parent.id, ParentStudent.student_id == student.id)
            .first()
        )
        if link:
            return
    raise AuthorizationError("You do not have access to this student")
