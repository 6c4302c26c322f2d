from uuid import UUID

from pydantic import BaseModel, Field

from app.core.datetime_utils import UTCDatetime
from app.core.schemas import PaginationMeta
from app.messaging.models.conversation import ConversationType


class ConversationCreate(BaseModel):
    recipient_id: UUID
    message: str
    conversation_type: ConversationType = ConversationType.DIRECT
    subject: str | None = Field(None, max_length=255)
    project_id: UUID | None = None
    job_id: UUID | None = None


class MuteUpdate(BaseModel):
    is_muted: bool


class ParticipantInfo(BaseModel):
    id: UUID
    name: str
    avatar_url: str | None = None
    user_type: str
    role: str | None = None

    class Config:
        from_attributes = True


class ConversationSummary(BaseModel):
    id: UUID
    conversation_type: str
    subject: str | None = None
    project_id: UUID | None = None
    job_id: UUID | None = None
    status: str
    last_message_at: UTCDatetime | None = None
    last_message_preview: str | None = None
    created_at: UTCDatetime

    class Config:
        from_attributes = True


class ConversationListItem(ConversationSummary):
    participants: list[ParticipantInfo]
    unread_count: int = 0
    is_muted: bool = False


class ConversationListResponse(BaseModel):
    conversations: list[ConversationListItem]
    pagination: PaginationMeta


class UnreadSummary(BaseModel):
    unread_conversations: int
    unread_messages: int
