import time
import uuid
from collections.abc import Callable

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from .app_logger import get_logger
from .database import get_db_session
from .errors import AuthenticationError, AuthorizationError
from .models import User, UserRole, UserStatus
from .security import AuthError, decode_access_token

logger = get_logger("http")

REQUEST_ID_HEADER = "X-Request-ID"


def _parse_token(auth_header: str | None) -> str:
    if not auth_header:
        raise AuthenticationError("Missing Authorization header")
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise AuthenticationError("Invalid auth scheme")
    return parts[1].strip()


def get_current_user(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> User:
    token = _parse_token(authorization)
    try:
        payload = decode_access_token(token)
    except AuthError as exc:
        raise AuthenticationError(str(exc)) from exc

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError) as exc:
        raise AuthenticationError("Invalid token payload") from exc

    user = db.get(User, user_id)
    if not user:
        raise AuthenticationError("User not found")
    if user.status in {UserStatus.SUSPENDED, UserStatus.INACTIVE}:
        raise AuthenticationError("Account is not active")
    return user


def require_roles(*allowed_roles: UserRole) -> Callable:
    allowed = set(allowed_roles) | {UserRole.ADMIN}

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise AuthorizationError("Insufficient role privileges")
        return current_user

    return dependency


require_admin = require_roles(UserRole.ADMIN)
require_staff = require_roles(UserRole.ADMIN, UserRole.TEACHER)


async def request_context_middleware(request: Request, call_next):
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    request.state.request_id = request_id
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    response.headers[REQUEST_ID_HEADER] = request_id
    logger.info(
        "%s %s -> %s (%.1f ms) [%s]",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        request_id,
    )
    return response
