from fastapi import APIRouter, Cookie, Depends, Response, status
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db_session
from ..middleware import get_current_user
from ..models import User
from ..responses import ApiResponse, ok
from ..schemas.auth import (
    AuthResult,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPair,
    VerifyEmailRequest,
)
from ..schemas.users import UserProfileOut
from ..services import auth as auth_service

router = APIRouter(prefix="/auth", tags=["Auth"])

REFRESH_COOKIE = "refresh_token"


def _set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        REFRESH_COOKIE,
        token,
        httponly=True,
        secure=settings.is_production,
        samesite="strict" if settings.is_production else "lax",
        max_age=settings.refresh_token_exp_days * 24 * 3600,
        path=f"{settings.api_prefix}/auth",
    )


def _auth_payload(user: User, tokens: dict) -> AuthResult:
    return AuthResult(user=UserProfileOut.model_validate(user), tokens=TokenPair(**tokens))


@router.post("/register", response_model=ApiResponse[AuthResult], status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, response: Response, db: Session = Depends(get_db_session)):
    user, tokens = auth_service.register_user(db, data=payload)
    _set_refresh_cookie(response, tokens["refresh_token"])
    return ok(_auth_payload(user, tokens), "Registration successful. Please verify your email.")


@router.post("/login", response_model=ApiResponse[AuthResult])
def login(payload: LoginRequest, response: Response, db: Session = Depends(get_db_session)):
    user, tokens = auth_service.login_user(db, email=payload.email, password=payload.password)
    _set_refresh_cookie(response, tokens["refresh_token"])
    return ok(_auth_payload(user, tokens), "Login successful")


@router.post("/refresh", response_model=ApiResponse[AuthResult])
def refresh(
    response: Response,
    payload: RefreshRequest | None = None,
    refresh_cookie: str | None = Cookie(default=None, alias=REFRESH_COOKIE),
    db: Session = Depends(get_db_session),
):
    token = (payload.refresh_token if payload else None) or refresh_cookie
    user, tokens = auth_service.refresh_session(db, refresh_token=token)
    _set_refresh_cookie(response, tokens["refresh_token"])
    return ok(_auth_payload(user, tokens), "Token refreshed")


@router.post("/logout", response_model=ApiResponse[None])
def logout(
    response: Response,
    payload: RefreshRequest | None = None,
    refresh_cookie: str | None = Cookie(default=None, alias=REFRESH_COOKIE),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    token = (payload.refresh_token if payload else None) or refresh_cookie
    auth_service.logout_user(db, user=current_user, refresh_token=token)
    response.delete_cookie(REFRESH_COOKIE, path=f"{settings.api_prefix}/auth")
    return ok(message="Logged out successfully")


@router.post("/forgot-password", response_model=ApiResponse[None])
def forgot_password(payload: ForgotPasswordRequest, db: Session = Depends(get_db_session)):
    auth_service.forgot_password(db, email=payload.email)
    return ok(message="If an account exists with this email, a password reset link has been sent")


@router.post("/reset-password", response_model=ApiResponse[None])
def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db_session)):
    auth_service.reset_password(db, token=payload.token, new_password=payload.password)
    return ok(message="Password reset successful")


@router.post("/verify-email", response_model=ApiResponse[UserProfileOut])
def verify_email(payload: VerifyEmailRequest, db: Session = Depends(get_db_session)):
    user = auth_service.verify_email(db, token=payload.token)
    return ok(UserProfileOut.model_validate(user), "Email verified successfully")


@router.get("/me", response_model=ApiResponse[UserProfileOut])
def me(current_user: User = Depends(get_current_user)):
    return ok(UserProfileOut.model_validate(current_user))


@router.post("/change-password", response_model=ApiResponse[None])
def change_password(
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    auth_service.change_password(
        db,
        user=current_user,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    return ok(message="Password changed successfully")
