import datetime as dt

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models import AttendanceStatus, GradeType
from .academics import CourseBrief


class AttendanceMark(BaseModel):
    student_id: int
    course_id: int
    date: dt.date
    status: AttendanceStatus
    remarks: str | None = Field(default=None, max_length=500)


class AttendanceEntry(BaseModel):
    student_id: int
    status: AttendanceStatus
    remarks: str | None = Field(default=None, max_length=500)


class BulkAttendanceRequest(BaseModel):
    course_id: int
    date: dt.date
    records: list[AttendanceEntry] = Field(min_length=1)


class AttendanceUpdate(BaseModel):
    status: AttendanceStatus | None = None
    remarks: str | None = Field(default=None, max_length=500)


class AttendanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: int
    course_id: int
    date: dt.date
    status: AttendanceStatus
    remarks: str | None = None
    created_at: dt.datetime
    course: CourseBrief | None = None


class AttendanceStats(BaseModel):
    total: int
    present: int
    absent: int
    late: int
    excused: int
    attendance_rate: float


class StudentAttendanceReport(BaseModel):
    records: list[AttendanceOut]
    stats: AttendanceStats


class GradeCreate(BaseModel):
    student_id: int
    course_id: int
    type: GradeType
    title: str = Field(min_length=1, max_length=200)
    score: float = Field(ge=0)
    max_score: float = Field(ge=1)
    weight: float = Field(default=1.0, ge=0, le=10)
    feedback: str | None = None

    @model_validator(mode="after")
    def check_score(self):
        if self.score > self.max_score:
            raise ValueError("score cannot exceed max_score")
        return self


class GradeUpdate(BaseModel):
    type: GradeType | None = None
    title: str | None = Field(default=None, min_length=1, max_length=200)
    score: float | None = Field(default=None, ge=0)
    max_score: float | None = Field(default=None, ge=1)
    weight: float | None = Field(default=None, ge=0, le=10)
    feedback: str | None = None


class GradeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: int
    course_id: int
    type: GradeType
    title: str
    score: float
    max_score: float
    percentage: float
    weight: float
    feedback: str | None = None
    graded_at: dt.datetime
    course: CourseBrief | None = None


class GradeStats(BaseModel):
    total_grades: int
    average_score: float
    highest_score: float
    lowest_score: float


class StudentGradeReport(BaseModel):
    grades: list[GradeOut]
    stats: GradeStats
