from datetime import date

from pydantic import BaseModel, Field, field_validator

from ..models import Gender, UserRole
from .users import UserProfileOut, strong_password


class RegisterRequest(BaseModel):
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=8, max_length=72)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: UserRole = UserRole.STUDENT
    phone: str | None = Field(default=None, max_length=30)
    date_of_birth: date | None = None
    gender: Gender | None = None
    address: str | None = Field(default=None, max_length=500)

    roll_number: str | None = Field(default=None, max_length=50)
    grade_level: int | None = Field(default=None, ge=1, le=12)
    section: str | None = Field(default=None, max_length=10)
    stream: str | None = Field(default=None, max_length=50)

    employee_id: str | None = Field(default=None, max_length=50)
    department: str | None = Field(default=None, max_length=100)
    subjects: list[str] = []
    qualification: str | None = Field(default=None, max_length=255)

    admin_code: str | None = Field(default=None, max_length=50)

    occupation: str | None = Field(default=None, max_length=100)
    relationship: str | None = Field(default=None, max_length=50)
    child_student_id: int | None = None

    @field_validator("password")
    @classmethod
    def check_password_strength(cls, value: str) -> str:
        return strong_password(value)


class LoginRequest(BaseModel):
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=1, max_length=72)


class RefreshRequest(BaseModel):
    refresh_token: str | None = None


class ForgotPasswordRequest(BaseModel):
    email: str = Field(min_length=5, max_length=255)


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=8, max_length=72)

    @field_validator("password")
    @classmethod
    def check_password_strength(cls, value: str) -> str:
        return strong_password(value)


class VerifyEmailRequest(BaseModel):
    token: str = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=72)
    new_password: str = Field(min_length=8, max_length=72)

    @field_validator("new_password")
    @classmethod
    def check_password_strength(cls, value: str) -> str:
        return strong_password(value)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthResult(BaseModel):
    user: UserProfileOut
    tokens: TokenPair
