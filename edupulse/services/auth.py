from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..app_logger import get_logger
from ..config import settings
from ..email_service import EmailDispatchError, send_password_reset_email, send_verification_email
from ..errors import AuthenticationError, BadRequestError, ConflictError, InternalServerError, NotFoundError
from ..models import (
    Admin,
    Gamification,
    Parent,
    ParentStudent,
    RefreshToken,
    Student,
    Teacher,
    User,
    UserRole,
    UserStatus,
    utcnow,
)
from ..schemas.auth import RegisterRequest
from ..security import create_access_token, generate_token, hash_password, verify_password
from .common import normalize_email

logger = get_logger("auth")

INVALID_CREDENTIALS = "Invalid email or password"


def issue_tokens(db: Session, user: User) -> dict:
    access_token = create_access_token(user.id, user.email, user.role.value)
    refresh_token = generate_token(40)
    db.add(
        RefreshToken(
            token=refresh_token,
            user_id=user.id,
            expires_at=utcnow() + timedelta(days=settings.refresh_token_exp_days),
        )
    )
    db.commit()
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": settings.jwt_access_exp_minutes * 60,
    }


def _check_profile_fields(data: RegisterRequest) -> None:
    if data.role == UserRole.STUDENT and not (data.roll_number and data.grade_level and data.section):
        raise BadRequestError("Student registration requires roll_number, grade_level, and section")
    if data.role == UserRole.TEACHER and not (data.employee_id and data.department):
        raise BadRequestError("Teacher registration requires employee_id and department")
    if data.role == UserRole.ADMIN and not data.admin_code:
        raise BadRequestError("Admin registration requires admin_code")


def _provision_profile(db: Session, user: User, data: RegisterRequest) -> None:
    if data.role == UserRole.STUDENT:
        if db.query(Student).filter(Student.roll_number == data.roll_number).first():
            raise ConflictError("Roll number already exists")
        db.add(
            Student(
                user_id=user.id,
                roll_number=data.roll_number,
                grade_level=data.grade_level,
                section=data.section,
                stream=data.stream,
            )
        )
        db.add(Gamification(user_id=user.id))
    elif data.role == UserRole.TEACHER:
        if db.query(Teacher).filter(Teacher.employee_id == data.employee_id).first():
            raise ConflictError("Employee ID already exists")
        db.add(
            Teacher(
                user_id=user.id,
                employee_id=data.employee_id,
                department=data.department,
                subjects=list(data.subjects),
                qualification=data.qualification,
            )
        )
    elif data.role == UserRole.ADMIN:
        db.add(Admin(user_id=user.id, admin_code=data.admin_code, department=data.department or "Administration"))
    elif data.role == UserRole.PARENT:
        parent = Parent(user_id=user.id, occupation=data.occupation, relationship_type=data.relationship)
        db.add(parent)
        if data.child_student_id is not None:
            if db.get(Student, data.child_student_id) is None:
                raise NotFoundError("Student")
            db.flush()
            db.add(ParentStudent(parent_id=parent.id, student_id=data.child_student_id))


def register_user(db: Session, *, data: RegisterRequest) -> tuple[User, dict]:
    email = normalize_email(data.email)
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("User with this email already exists")
    _check_profile_fields(data)

    verify_token = generate_token()
    user = User(
        email=email,
        password_hash=hash_password(data.password),
        first_name=data.first_name.strip(),
        last_name=data.last_name.strip(),
        role=data.role,
        status=UserStatus.PENDING_VERIFICATION,
        phone=data.phone,
        date_of_birth=data.date_of_birth,
        gender=data.gender,
        address=data.address,
        email_verify_token=verify_token,
        email_verify_expiry=utcnow() + timedelta(hours=settings.email_verify_exp_hours),
    )
    try:
        db.add(user)
        db.flush()
        _provision_profile(db, user, data)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("User profile conflicts with an existing record") from exc
    except Exception:
        db.rollback()
        raise
    db.refresh(user)
    logger.info("Registered user %s with role %s", user.id, user.role.value)

    try:
        send_verification_email(to_email=user.email, first_name=user.first_name, token=verify_token)
    except EmailDispatchError as exc:
        logger.error("Verification email failed for user %s: %s", user.id, exc)

    return user, issue_tokens(db, user)


def login_user(db: Session, *, email: str, password: str) -> tuple[User, dict]:
    user = db.query(User).filter(User.email == email.lower().strip()).first()
    if not user or not verify_password(password, user.password_hash):
        logger.warning("Login failed for %s", email)
        raise AuthenticationError(INVALID_CREDENTIALS)
    if user.status == UserStatus.SUSPENDED:
        raise AuthenticationError("Account is suspended")
    if user.status == UserStatus.INACTIVE:
        raise AuthenticationError("Account is inactive")
    if user.status == UserStatus.PENDING_VERIFICATION:
        raise AuthenticationError("Please verify your email before logging in")

    user.last_login_at = utcnow()
    db.commit()
    db.refresh(user)
    logger.info("User %s logged in", user.id)
    return user, issue_tokens(db, user)


def refresh_session(db: Session, *, refresh_token: str | None) -> tuple[User, dict]:
    if not refresh_token:
        raise AuthenticationError("Refresh token is required")
    stored = db.query(RefreshToken).filter(RefreshToken.token == refresh_token).first()
    if not stored:
        raise AuthenticationError("Invalid refresh token")
    if stored.expires_at < utcnow():
        db.delete(stored)
        db.commit()
        raise AuthenticationError("Refresh token expired")

    user = stored.user
    if user.status in {UserStatus.SUSPENDED, UserStatus.INACTIVE}:
        raise AuthenticationError("Account is not active")

    db.delete(stored)
    db.flush()
    return user, issue_tokens(db, user)


def logout_user(db: Session, *, user: User, refresh_token: str | None) -> None:
    if refresh_token:
        db.query(RefreshToken).filter(
            RefreshToken.token == refresh_token, RefreshToken.user_id == user.id
        ).delete(synchronize_session=False)
    db.commit()
    logger.info("User %s logged out", user.id)


def forgot_password(db: Session, *, email: str) -> None:
    user = db.query(User).filter(User.email == email.lower().strip()).first()
    if not user:
        logger.info("Password reset requested for unknown email")
        return

    token = generate_token()
    user.reset_token = token
    user.reset_token_expiry = utcnow() + timedelta(minutes=settings.password_reset_exp_minutes)
    db.commit()

    try:
        send_password_reset_email(to_email=user.email, first_name=user.first_name, token=token)
    except EmailDispatchError as exc:
        logger.error("Password reset email failed for user %s: %s", user.id, exc)
        raise InternalServerError("Failed to send password reset email. Please try again later.") from exc


def reset_password(db: Session, *, token: str, new_password: str) -> None:
    user = (
        db.query(User)
        .filter(User.reset_token == token, User.reset_token_expiry > utcnow())
        .first()
    )
    if not user:
        raise BadRequestError("Invalid or expired reset token")

    user.password_hash = hash_password(new_password)
    user.reset_token = None
    user.reset_token_expiry = None
    db.query(RefreshToken).filter(RefreshToken.user_id == user.id).delete(synchronize_session=False)
    db.commit()
    logger.info("Password reset for user %s", user.id)


def verify_email(db: Session, *, token: str) -> User:
    user = (
        db.query(User)
        .filter(User.email_verify_token == token, User.email_verify_expiry > utcnow())
        .first()
    )
    if not user:
        raise BadRequestError("Invalid or expired verification token")

    user.email_verified = True
    user.status = UserStatus.ACTIVE
    user.email_verify_token = None
    user.email_verify_expiry = None
    db.commit()
    db.refresh(user)
    logger.info("Email verified for user %s", user.id)
    return user


def change_password(db: Session, *, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise BadRequestError("Current password is incorrect")
    if verify_password(new_password, user.password_hash):
        raise BadRequestError("New password must be different from the current password")
    user.password_hash = hash_password(new_password)
    db.commit()
