import logging
from datetime import timedelta
from typing import cast
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session, joinedload

from app.auth.models.user import User
from app.core.config import settings
from app.core.datetime_utils import utcnow
from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.messaging.models.conversation import Conversation
from app.messaging.models.conversation_participant import ConversationParticipant
from app.messaging.models.message import Message
from app.messaging.schemas.conversation import ConversationSummary
from app.messaging.schemas.message import (
    AuditMessageResponse,
    ConversationTranscript,
    MessageResponse,
)
from app.messaging.services.guards import (
    build_participant_info,
    get_active_participant_or_403,
    invalidate_unread_cache,
    unit_of_work,
)
from app.notifications.services.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


def validate_content(content: str | None, attachments: list[str] | None = None) -> None:
    if content is None or not content.strip():
        raise ValidationError("Message content is required", field="content")
    if len(content) > settings.MESSAGE_MAX_LENGTH:
        raise ValidationError(
            f"Message exceeds {settings.MESSAGE_MAX_LENGTH} characters", field="content"
        )
    if attachments and len(attachments) > settings.MAX_ATTACHMENTS:
        raise ValidationError(
            f"At most {settings.MAX_ATTACHMENTS} attachments are allowed", field="attachments"
        )


class MessageService:
    """Append-only message log with denormalized conversation metadata."""

    def __init__(self, db: Session, dispatcher: NotificationDispatcher | None = None) -> None:
        self.db = db
        self.dispatcher = dispatcher or NotificationDispatcher(db)

    def post_message(
        self,
        conversation_id: UUID,
        sender: User,
        content: str,
        reply_to_id: UUID | None = None,
        attachments: list[str] | None = None,
    ) -> MessageResponse:
        participant = get_active_participant_or_403(self.db, conversation_id, sender.id)
        conversation = participant.conversation
        if not conversation.is_active:
            raise ForbiddenError("This conversation is closed")

        with unit_of_work(self.db, "send message"):
            message = self.stage_message(
                conversation, sender.id, content, reply_to_id, attachments
            )

        self.after_message_committed(conversation, sender, message)
        return self.build_message_response(message, sender)

    def stage_message(
        self,
        conversation: Conversation,
        sender_id: UUID,
        content: str,
        reply_to_id: UUID | None = None,
        attachments: list[str] | None = None,
    ) -> Message:
        """Stage a message and its side effects without committing.

        Inserts the message, refreshes the conversation preview and bumps the
        unread counter of every other active participant in one statement.
        """
        validate_content(content, attachments)
        if reply_to_id is not None:
            self._ensure_reply_target(conversation.id, reply_to_id)

        now = utcnow()
        # Messages of one conversation never share a timestamp, so created_at
        # alone gives insertion order
        if conversation.last_message_at is not None and now <= conversation.last_message_at:
            now = conversation.last_message_at + timedelta(microseconds=1)
        message = Message(
            conversation_id=conversation.id,
            sender_id=sender_id,
            content=content,
            reply_to_id=reply_to_id,
            attachments=attachments or None,
            created_at=now,
        )
        self.db.add(message)

        conversation.last_message_at = now
        conversation.last_message_preview = content[: settings.MESSAGE_PREVIEW_LENGTH]
        self.db.flush()

        # Single UPDATE so concurrent senders never lose an increment
        self.db.execute(
            update(ConversationParticipant)
            .where(
                ConversationParticipant.conversation_id == conversation.id,
                ConversationParticipant.user_id != sender_id,
                ConversationParticipant.is_active == True,  # noqa: E712
            )
            .values(unread_count=ConversationParticipant.unread_count + 1)
            .execution_options(synchronize_session="fetch")
        )
        return message

    def after_message_committed(
        self, conversation: Conversation, sender: User, message: Message
    ) -> None:
        """Invalidate caches and notify recipients; never raises for notification errors."""
        recipients = (
            self.db.execute(
                select(ConversationParticipant.user_id, ConversationParticipant.is_muted).where(
                    ConversationParticipant.conversation_id == conversation.id,
                    ConversationParticipant.user_id != sender.id,
                    ConversationParticipant.is_active == True,  # noqa: E712
                )
            )
            .tuples()
            .all()
        )
        invalidate_unread_cache(*(user_id for user_id, _ in recipients))

        if not settings.NOTIFY_ON_NEW_MESSAGE:
            return
        to_notify = [user_id for user_id, is_muted in recipients if not is_muted]
        if to_notify:
            self.dispatcher.notify_new_message(
                conversation_id=conversation.id,
                sender_id=sender.id,
                sender_name=sender.name,
                recipient_ids=to_notify,
                content=message.content,
            )

    def soft_delete_message(
        self, conversation_id: UUID, message_id: UUID, requester_id: UUID
    ) -> None:
        """Hide a message from default reads. Preview and counters are left as they are."""
        message = self._get_message_or_404(conversation_id, message_id)
        if message.sender_id != requester_id:
            raise ForbiddenError("You can only delete your own messages")
        if message.is_deleted:
            return

        with unit_of_work(self.db, "delete message"):
            message.is_deleted = True
            message.deleted_at = utcnow()

        logger.info("Message %s soft-deleted by %s", message_id, requester_id)

    def get_message_for_audit(
        self, conversation_id: UUID, message_id: UUID
    ) -> AuditMessageResponse:
        message = self._get_message_or_404(conversation_id, message_id)
        return self.build_audit_response(message)

    def get_transcript(self, conversation_id: UUID) -> ConversationTranscript:
        """Full history including deleted messages, for administrators."""
        conversation = (
            self.db.query(Conversation)
            .options(
                joinedload(Conversation.participants).joinedload(ConversationParticipant.user),
            )
            .filter(Conversation.id == conversation_id)
            .first()
        )
        if not conversation:
            raise NotFoundError("Conversation not found", resource="conversation")

        messages = (
            self.db.query(Message)
            .options(joinedload(Message.sender))
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .all()
        )

        summary = ConversationSummary.model_validate(conversation)
        return ConversationTranscript(
            **dict(summary),
            participants=[
                build_participant_info(p.user, p.role) for p in conversation.participants
            ],
            messages=[self.build_audit_response(m) for m in messages],
        )

    @staticmethod
    def build_message_response(message: Message, sender: User | None = None) -> MessageResponse:
        return MessageResponse(
            id=message.id,
            conversation_id=message.conversation_id,
            sender=build_participant_info(sender or message.sender),
            content=message.content,
            reply_to_id=message.reply_to_id,
            attachments=message.attachments,
            created_at=message.created_at,
        )

    @classmethod
    def build_audit_response(cls, message: Message) -> AuditMessageResponse:
        base = cls.build_message_response(message)
        return AuditMessageResponse(
            **dict(base),
            is_deleted=message.is_deleted,
            deleted_at=message.deleted_at,
        )

    def _ensure_reply_target(self, conversation_id: UUID, reply_to_id: UUID) -> None:
        exists = (
            self.db.query(Message.id)
            .filter(Message.id == reply_to_id, Message.conversation_id == conversation_id)
            .first()
        )
        if not exists:
            raise ValidationError(
                "Reply target is not a message in this conversation", field="reply_to_id"
            )

    def _get_message_or_404(self, conversation_id: UUID, message_id: UUID) -> Message:
        message = (
            self.db.query(Message)
            .filter(Message.id == message_id, Message.conversation_id == conversation_id)
            .first()
        )
        if not message:
            raise NotFoundError("Message not found", resource="message")
        return cast(Message, message)
