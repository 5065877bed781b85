from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .users import UserBrief


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    title: str
    message: str
    link: str | None = None
    is_read: bool
    created_at: datetime


class UnreadCount(BaseModel):
    unread: int


class ConversationCreate(BaseModel):
    participant_ids: list[int] = Field(min_length=1)
    subject: str | None = Field(default=None, max_length=200)
    message: str | None = Field(default=None, min_length=1, max_length=5000)


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=5000)


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: int
    sender_id: int
    content: str
    created_at: datetime
    sender: UserBrief | None = None


class ConversationOut(BaseModel):
    id: int
    subject: str | None = None
    participants: list[UserBrief]
    last_message: MessageOut | None = None
    unread_count: int = 0
    created_at: datetime
    updated_at: datetime
