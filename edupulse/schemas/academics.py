from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .users import UserBrief


class StudentCreate(BaseModel):
    user_id: int
    roll_number: str = Field(min_length=1, max_length=50)
    grade_level: int = Field(ge=1, le=12)
    section: str = Field(min_length=1, max_length=10)
    stream: str | None = Field(default=None, max_length=50)
    admission_date: date | None = None


class StudentUpdate(BaseModel):
    roll_number: str | None = Field(default=None, min_length=1, max_length=50)
    grade_level: int | None = Field(default=None, ge=1, le=12)
    section: str | None = Field(default=None, min_length=1, max_length=10)
    stream: str | None = Field(default=None, max_length=50)
    admission_date: date | None = None


class StudentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    roll_number: str
    grade_level: int
    section: str
    stream: str | None = None
    admission_date: date
    created_at: datetime
    user: UserBrief


class StudentStats(BaseModel):
    total: int
    active: int
    grade_distribution: dict[str, int]
    section_distribution: dict[str, int]


class TeacherCreate(BaseModel):
    user_id: int
    employee_id: str = Field(min_length=1, max_length=50)
    department: str = Field(min_length=1, max_length=100)
    subjects: list[str] = []
    qualification: str | None = Field(default=None, max_length=255)
    join_date: date | None = None


class TeacherUpdate(BaseModel):
    employee_id: str | None = Field(default=None, min_length=1, max_length=50)
    department: str | None = Field(default=None, min_length=1, max_length=100)
    subjects: list[str] | None = None
    qualification: str | None = Field(default=None, max_length=255)
    join_date: date | None = None


class TeacherOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    employee_id: str
    department: str
    subjects: list[str] = []
    qualification: str | None = None
    join_date: date
    created_at: datetime
    user: UserBrief


class TeacherStats(BaseModel):
    total: int
    active: int
    department_distribution: dict[str, int]
    total_courses: int


class CourseCreate(BaseModel):
    code: str = Field(min_length=2, max_length=20)
    name: str = Field(min_length=2, max_length=200)
    description: str | None = None
    subject: str = Field(min_length=1, max_length=100)
    grade_level: int = Field(ge=1, le=12)
    credits: int = Field(default=1, ge=1, le=10)
    teacher_id: int | None = None
    is_active: bool = True
    start_date: date | None = None
    end_date: date | None = None

    @field_validator("code")
    @classmethod
    def upper_code(cls, value: str) -> str:
        return value.strip().upper()

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class CourseUpdate(BaseModel):
    code: str | None = Field(default=None, min_length=2, max_length=20)
    name: str | None = Field(default=None, min_length=2, max_length=200)
    description: str | None = None
    subject: str | None = Field(default=None, min_length=1, max_length=100)
    grade_level: int | None = Field(default=None, ge=1, le=12)
    credits: int | None = Field(default=None, ge=1, le=10)
    teacher_id: int | None = None
    is_active: bool | None = None
    start_date: date | None = None
    end_date: date | None = None

    @field_validator("code")
    @classmethod
    def upper_code(cls, value: str | None) -> str | None:
        return value.strip().upper() if value else value


class TeacherBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: str
    department: str
    user: UserBrief


class CourseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    description: str | None = None
    subject: str
    grade_level: int
    credits: int
    teacher_id: int
    is_active: bool
    start_date: date | None = None
    end_date: date | None = None
    created_at: datetime
    teacher: TeacherBrief | None = None


class CourseBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    subject: str


class EnrollRequest(BaseModel):
    student_id: int


class StudentEnrollRequest(BaseModel):
    course_id: int


class EnrollmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: int
    course_id: int
    enrolled_at: datetime
    completed_at: datetime | None = None
    progress: float
    course: CourseBrief | None = None
