from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..errors import AuthorizationError
from ..middleware import get_current_user, require_admin
from ..models import User, UserRole, UserStatus
from ..responses import ApiResponse, ok, paged
from ..schemas.users import UserCreate, UserOut, UserProfileOut, UserStats, UserUpdate
from ..services import users as user_service
from ..services.common import is_admin

router = APIRouter(prefix="/users", tags=["Users"])


@router.post("", response_model=ApiResponse[UserOut], status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_admin),
):
    user = user_service.create_user(db, data=payload)
    return ok(UserOut.model_validate(user), "User created successfully")


@router.get("", response_model=ApiResponse[list[UserOut]])
def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str | None = None,
    role: UserRole | None = None,
    status: UserStatus | None = None,
    email_verified: bool | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_admin),
):
    result = user_service.list_users(
        db,
        page=page,
        limit=limit,
        search=search,
        role=role,
        status=status,
        email_verified=email_verified,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return paged(result, UserOut)


@router.get("/stats", response_model=ApiResponse[UserStats])
def users_statistics(db: Session = Depends(get_db_session), _: User = Depends(require_admin)):
    return ok(user_service.users_statistics(db))


@router.get("/email/{email}", response_model=ApiResponse[UserOut])
def get_user_by_email(email: str, db: Session = Depends(get_db_session), _: User = Depends(require_admin)):
    return ok(UserOut.model_validate(user_service.get_user_by_email(db, email)))


@router.get("/{user_id}", response_model=ApiResponse[UserOut])
def get_user(
    user_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    if not is_admin(current_user) and current_user.id != user_id:
        raise AuthorizationError("You can only view your own account")
    return ok(UserOut.model_validate(user_service.get_user(db, user_id)))


@router.get("/{user_id}/profile", response_model=ApiResponse[UserProfileOut])
def get_user_profile(
    user_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    if not is_admin(current_user) and current_user.id != user_id:
        raise AuthorizationError("You can only view your own profile")
    return ok(UserProfileOut.model_validate(user_service.get_user(db, user_id)))


@router.put("/{user_id}", response_model=ApiResponse[UserOut])
def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    user = user_service.update_user(db, user_id=user_id, data=payload, actor=current_user)
    return ok(UserOut.model_validate(user), "User updated successfully")


@router.delete("/{user_id}", response_model=ApiResponse[None])
def delete_user(
    user_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_admin),
):
    user_service.delete_user(db, user_id=user_id, actor=current_user)
    return ok(message="User deleted successfully")
