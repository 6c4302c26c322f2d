import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.datetime_utils import utcnow
from app.db.session import Base


class NotificationType(str, enum.Enum):
    NEW_MESSAGE = "new_message"
    NEW_APPLICATION = "new_application"
    APPLICATION_STATUS_CHANGE = "application_status_change"
    VERIFICATION = "verification"
    SYSTEM = "system"


class ReferenceType(str, enum.Enum):
    APPLICATION = "application"
    CONVERSATION = "conversation"
    JOB = "job"
    PROJECT = "project"


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
        Index("ix_notifications_user_is_read", "user_id", "is_read"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    notification_type: Mapped[str] = mapped_column(String(50))
    title: Mapped[str] = mapped_column(String(255))
    content: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    action_url: Mapped[str | None] = mapped_column(String(500), nullable=True, default=None)
    action_text: Mapped[str | None] = mapped_column(String(100), nullable=True, default=None)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True, default=None)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True, default=None)
    from_user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, default=None
    )

    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    user = relationship("User", foreign_keys=[user_id])
    from_user = relationship("User", foreign_keys=[from_user_id], lazy="joined")
