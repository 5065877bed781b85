from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models import EventType, UserRole


class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    type: EventType = EventType.OTHER
    start_date: datetime
    end_date: datetime
    all_day: bool = False
    is_public: bool = True
    target_roles: list[UserRole] = []
    color: str | None = Field(default=None, max_length=20)

    @model_validator(mode="after")
    def check_dates(self) -> "EventCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class EventUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    type: EventType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    all_day: bool | None = None
    is_public: bool | None = None
    target_roles: list[UserRole] | None = None
    color: str | None = Field(default=None, max_length=20)


class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str | None = None
    type: EventType
    start_date: datetime
    end_date: datetime
    all_day: bool
    is_public: bool
    target_roles: list[UserRole] = []
    color: str | None = None
    created_by: int | None = None
    created_at: datetime
    updated_at: datetime


class SettingUpsert(BaseModel):
    value: str = Field(max_length=5000)
    category: str = Field(default="general", min_length=1, max_length=50)


class SettingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    key: str
    value: str
    category: str
    updated_at: datetime
