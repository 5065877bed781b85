from sqlalchemy import func
from sqlalchemy.orm import Session

from ..app_logger import get_logger
from ..errors import AuthorizationError, BadRequestError, ConflictError, NotFoundError
from ..models import User, UserRole, UserStatus
from ..pagination import Page, apply_sort, paginate, search_clause
from ..schemas.users import UserCreate, UserUpdate
from ..security import hash_password
from .common import apply_changes, get_or_404, is_admin, normalize_email, save

logger = get_logger("users")

SORTABLE = {"created_at", "email", "first_name", "last_name", "role", "status", "last_login_at"}


def create_user(db: Session, *, data: UserCreate) -> User:
    email = normalize_email(data.email)
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("User with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(data.password),
        first_name=data.first_name.strip(),
        last_name=data.last_name.strip(),
        role=data.role,
        status=data.status or UserStatus.PENDING_VERIFICATION,
        phone=data.phone,
        date_of_birth=data.date_of_birth,
        gender=data.gender,
        address=data.address,
        avatar=data.avatar,
        email_verified=data.status == UserStatus.ACTIVE,
    )
    db.add(user)
    save(db, user)
    logger.info("Created user %s (%s)", user.id, user.role.value)
    return user


def list_users(
    db: Session,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    role: UserRole | None = None,
    status: UserStatus | None = None,
    email_verified: bool | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> Page:
    query = db.query(User)
    clause = search_clause(search, User.first_name, User.last_name, User.email)
    if clause is not None:
        query = query.filter(clause)
    if role is not None:
        query = query.filter(User.role == role)
    if status is not None:
        query = query.filter(User.status == status)
    if email_verified is not None:
        query = query.filter(User.email_verified == email_verified)
    query = apply_sort(query, User, sort_by, sort_order or "desc", SORTABLE, "created_at")
    return paginate(query, page, limit)


def get_user(db: Session, user_id: int) -> User:
    return get_or_404(db, User, user_id, "User")


def get_user_by_email(db: Session, email: str) -> User:
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if not user:
        raise NotFoundError("User")
    return user


def update_user(db: Session, *, user_id: int, data: UserUpdate, actor: User) -> User:
    if not is_admin(actor) and actor.id != user_id:
        raise AuthorizationError("You can only update your own profile")
    user = get_user(db, user_id)
    changes = data.model_dump(exclude_unset=True)

    if not is_admin(actor) and ({"status", "email_verified"} & changes.keys()):
        raise AuthorizationError("Only administrators can change account status")

    if changes.get("email"):
        email = normalize_email(changes["email"])
        if db.query(User).filter(User.email == email, User.id != user_id).first():
            raise ConflictError("Email already in use")
        changes["email"] = email
    elif "email" in changes:
        del changes["email"]

    apply_changes(user, changes)
    save(db, user)
    return user


def delete_user(db: Session, *, user_id: int, actor: User) -> None:
    if actor.id == user_id:
        raise BadRequestError("You cannot delete your own account")
    user = get_user(db, user_id)
    db.delete(user)
    db.commit()
    logger.info("Deleted user %s", user_id)


def users_statistics(db: Session) -> dict:
    by_status = dict(db.query(User.status, func.count(User.id)).group_by(User.status).all())
    by_role = dict(db.query(User.role, func.count(User.id)).group_by(User.role).all())
    verified = db.query(func.count(User.id)).filter(User.email_verified.is_(True)).scalar()
    return {
        "total": sum(by_status.values()),
        "active": by_status.get(UserStatus.ACTIVE, 0),
        "inactive": by_status.get(UserStatus.INACTIVE, 0),
        "suspended": by_status.get(UserStatus.SUSPENDED, 0),
        "pending": by_status.get(UserStatus.PENDING_VERIFICATION, 0),
        "verified": verified or 0,
        "by_role": {role.value: by_role.get(role, 0) for role in UserRole},
    }
