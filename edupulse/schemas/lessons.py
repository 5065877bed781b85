from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _check_url(value: str) -> str:
    if not value.startswith(("http://", "https://")):
        raise ValueError("Must be a valid URL")
    return value


class LessonCreate(BaseModel):
    course_id: int
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    content: str | None = None
    order: int | None = Field(default=None, gt=0)
    duration: int | None = Field(default=None, gt=0)
    video_url: str | None = Field(default=None, max_length=500)
    attachments: list[str] = []
    is_published: bool = False

    @field_validator("video_url")
    @classmethod
    def check_video_url(cls, value: str | None) -> str | None:
        return _check_url(value) if value else value

    @field_validator("attachments")
    @classmethod
    def check_attachments(cls, value: list[str]) -> list[str]:
        return [_check_url(item) for item in value]


class LessonUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    content: str | None = None
    order: int | None = Field(default=None, gt=0)
    duration: int | None = Field(default=None, gt=0)
    video_url: str | None = Field(default=None, max_length=500)
    attachments: list[str] | None = None
    is_published: bool | None = None

    @field_validator("video_url")
    @classmethod
    def check_video_url(cls, value: str | None) -> str | None:
        return _check_url(value) if value else value


class LessonOrder(BaseModel):
    id: int
    order: int = Field(gt=0)


class ReorderLessonsRequest(BaseModel):
    lesson_orders: list[LessonOrder] = Field(min_length=1)


class LessonOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    course_id: int
    title: str
    description: str | None = None
    content: str | None = None
    order: int
    duration: int | None = None
    video_url: str | None = None
    attachments: list[str] = []
    is_published: bool
    created_at: datetime
    updated_at: datetime
