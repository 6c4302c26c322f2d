from uuid import UUID

from pydantic import BaseModel, Field

from app.auth.models.user import UserType
from app.core.datetime_utils import UTCDatetime
from app.core.schemas import PaginationMeta


class NotificationActor(BaseModel):
    id: UUID
    name: str
    avatar_url: str | None = None

    class Config:
        from_attributes = True


class NotificationResponse(BaseModel):
    id: UUID
    notification_type: str
    title: str
    content: str | None = None
    action_url: str | None = None
    action_text: str | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    from_user: NotificationActor | None = None
    is_read: bool
    read_at: UTCDatetime | None = None
    created_at: UTCDatetime

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread_count: int
    pagination: PaginationMeta


class UnreadCountResponse(BaseModel):
    unread_count: int


class BulkUpdateResponse(BaseModel):
    affected: int


class BroadcastRequest(BaseModel):
    title: str = Field(..., max_length=255)
    message: str
    user_types: list[UserType] | None = None


class BroadcastResponse(BaseModel):
    recipients: int
    failed: int = 0


class AdminNotificationResponse(NotificationResponse):
    user: NotificationActor


class AdminNotificationListResponse(BaseModel):
    notifications: list[AdminNotificationResponse]
    pagination: PaginationMeta
