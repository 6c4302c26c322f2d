import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.datetime_utils import utcnow
from app.db.session import Base


class ConversationType(str, enum.Enum):
    DIRECT = "direct"
    PROJECT = "project"
    JOB = "job"
    GROUP = "group"


class ConversationStatus(str, enum.Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


def direct_key_for(user_a: uuid.UUID, user_b: uuid.UUID) -> str:
    """Order-independent key of a participant pair."""
    low, high = sorted((str(user_a), str(user_b)))
    return f"{low}:{high}"


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        Index("ix_conversations_last_message_at", "last_message_at"),
        Index("ix_conversations_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4, index=True)
    conversation_type: Mapped[str] = mapped_column(
        String(20), default=ConversationType.DIRECT.value
    )
    subject: Mapped[str | None] = mapped_column(String(255), nullable=True, default=None)

    # Opaque references into the job/project catalogue
    project_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, default=None)
    job_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, default=None)

    # Set only for direct conversations; must be cleared if one is ever archived
    direct_key: Mapped[str | None] = mapped_column(
        String(80), unique=True, nullable=True, default=None
    )

    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, default=None
    )
    last_message_preview: Mapped[str | None] = mapped_column(
        String(100), nullable=True, default=None
    )
    status: Mapped[str] = mapped_column(String(20), default=ConversationStatus.ACTIVE.value)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    participants = relationship(
        "ConversationParticipant", back_populates="conversation", cascade="all, delete-orphan"
    )
    messages = relationship(
        "Message",
        back_populates="conversation",
        order_by="Message.created_at",
        cascade="all, delete-orphan",
    )

    @property
    def is_direct(self) -> bool:
        return self.conversation_type == ConversationType.DIRECT.value

    @property
    def is_active(self) -> bool:
        return self.status == ConversationStatus.ACTIVE.value
