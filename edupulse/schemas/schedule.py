import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .academics import CourseBrief

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")


def normalize_time(value: str) -> str:
    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise ValueError("Time must be in HH:MM format")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


class ScheduleCreate(BaseModel):
    course_id: int
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    room: str | None = Field(default=None, max_length=50)
    is_active: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, value: str) -> str:
        return normalize_time(value)

    @model_validator(mode="after")
    def check_order(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class ScheduleUpdate(BaseModel):
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    start_time: str | None = None
    end_time: str | None = None
    room: str | None = Field(default=None, max_length=50)
    is_active: bool | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, value: str | None) -> str | None:
        return normalize_time(value) if value is not None else value


class ScheduleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    course_id: int
    day_of_week: int
    start_time: str
    end_time: str
    room: str | None = None
    is_active: bool
    created_at: datetime
    course: CourseBrief | None = None


class RoomAvailability(BaseModel):
    room: str
    day_of_week: int
    start_time: str
    end_time: str
    available: bool
