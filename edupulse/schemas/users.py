from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models import Gender, UserRole, UserStatus
from ..security import password_problems


def strong_password(value: str) -> str:
    problems = password_problems(value)
    if problems:
        raise ValueError("Password must contain " + ", ".join(problems))
    return value


class UserCreate(BaseModel):
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=8, max_length=72)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: UserRole
    status: UserStatus | None = None
    phone: str | None = Field(default=None, max_length=30)
    date_of_birth: date | None = None
    gender: Gender | None = None
    address: str | None = Field(default=None, max_length=500)
    avatar: str | None = Field(default=None, max_length=500)

    @field_validator("password")
    @classmethod
    def check_password_strength(cls, value: str) -> str:
        return strong_password(value)


class UserUpdate(BaseModel):
    email: str | None = Field(default=None, min_length=5, max_length=255)
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=30)
    date_of_birth: date | None = None
    gender: Gender | None = None
    address: str | None = Field(default=None, max_length=500)
    avatar: str | None = Field(default=None, max_length=500)
    status: UserStatus | None = None
    email_verified: bool | None = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    role: UserRole
    status: UserStatus
    phone: str | None = None
    date_of_birth: date | None = None
    gender: Gender | None = None
    address: str | None = None
    avatar: str | None = None
    email_verified: bool
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class UserBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    role: UserRole
    avatar: str | None = None


class StudentProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    roll_number: str
    grade_level: int
    section: str
    stream: str | None = None
    admission_date: date


class TeacherProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: str
    department: str
    subjects: list[str] = []
    qualification: str | None = None
    join_date: date


class AdminProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    admin_code: str
    department: str
    access_level: int


class ParentProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    occupation: str | None = None
    relationship_type: str | None = None


class GamificationBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    xp: int
    points: int
    level: int
    streak: int


class UserProfileOut(UserOut):
    student: StudentProfileOut | None = None
    teacher: TeacherProfileOut | None = None
    admin: AdminProfileOut | None = None
    parent: ParentProfileOut | None = None
    gamification: GamificationBrief | None = None


class UserStats(BaseModel):
    total: int
    active: int
    inactive: int
    suspended: int
    pending: int
    verified: int
    by_role: dict[str, int]
