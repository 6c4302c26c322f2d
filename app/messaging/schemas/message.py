from uuid import UUID

from pydantic import BaseModel

from app.core.datetime_utils import UTCDatetime
from app.core.schemas import PaginationMeta
from app.messaging.schemas.conversation import ConversationSummary, ParticipantInfo


class MessageCreate(BaseModel):
    content: str
    reply_to_id: UUID | None = None
    attachments: list[str] | None = None


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    sender: ParticipantInfo
    content: str
    reply_to_id: UUID | None = None
    attachments: list[str] | None = None
    created_at: UTCDatetime

    class Config:
        from_attributes = True


class AuditMessageResponse(MessageResponse):
    is_deleted: bool
    deleted_at: UTCDatetime | None = None


class ConversationDetail(ConversationSummary):
    participants: list[ParticipantInfo]
    messages: list[MessageResponse]
    pagination: PaginationMeta


class ConversationTranscript(ConversationSummary):
    participants: list[ParticipantInfo]
    messages: list[AuditMessageResponse]


class DirectMessageResult(BaseModel):
    conversation: ConversationSummary
    message: MessageResponse
    created: bool
