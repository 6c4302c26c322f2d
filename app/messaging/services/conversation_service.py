"""Conversation lifecycle: listing, reading, direct-conversation dedup, membership."""

import logging
from collections import defaultdict
from typing import cast
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.auth.models.user import User
from app.core import redis as redis_module
from app.core.config import settings
from app.core.datetime_utils import utcnow
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.schemas import PaginationMeta
from app.messaging.models.conversation import (
    Conversation,
    ConversationStatus,
    ConversationType,
    direct_key_for,
)
from app.messaging.models.conversation_participant import (
    ConversationParticipant,
    ParticipantRole,
)
from app.messaging.models.message import Message
from app.messaging.schemas.conversation import (
    ConversationCreate,
    ConversationListItem,
    ConversationListResponse,
    ConversationSummary,
    ParticipantInfo,
    UnreadSummary,
)
from app.messaging.schemas.message import ConversationDetail, DirectMessageResult
from app.messaging.services.guards import (
    build_participant_info,
    get_active_participant_or_403,
    invalidate_unread_cache,
    unit_of_work,
)
from app.messaging.services.message_service import MessageService, validate_content

logger = logging.getLogger(__name__)


class ConversationService:
    """Service for conversation listing, detail and membership operations."""

    def __init__(self, db: Session, messages: MessageService | None = None) -> None:
        self.db = db
        self.messages = messages or MessageService(db)

    def list_conversations(
        self,
        user_id: UUID,
        page: int = 1,
        limit: int = 20,
    ) -> ConversationListResponse:
        """Active conversations of the user, most recently active first."""
        query = (
            self.db.query(Conversation, ConversationParticipant)
            .join(
                ConversationParticipant,
                ConversationParticipant.conversation_id == Conversation.id,
            )
            .filter(
                ConversationParticipant.user_id == user_id,
                ConversationParticipant.is_active == True,  # noqa: E712
                Conversation.status == ConversationStatus.ACTIVE.value,
            )
        )

        total = query.count()
        rows = (
            query.order_by(
                Conversation.last_message_at.desc().nulls_last(),
                Conversation.created_at.desc(),
            )
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        others = self._other_participants([conv.id for conv, _ in rows], user_id)

        items = [
            ConversationListItem(
                **dict(ConversationSummary.model_validate(conv)),
                participants=others.get(conv.id, []),
                unread_count=membership.unread_count,
                is_muted=membership.is_muted,
            )
            for conv, membership in rows
        ]
        return ConversationListResponse(
            conversations=items,
            pagination=PaginationMeta.from_query(total, page, limit),
        )

    def get_conversation(
        self,
        conversation_id: UUID,
        user_id: UUID,
        page: int = 1,
        limit: int = 50,
    ) -> ConversationDetail:
        """Conversation with a chronological page of messages.

        Viewing is the read acknowledgement: the caller's unread counter is
        reset and the read cursor moved to now.
        """
        participant = get_active_participant_or_403(self.db, conversation_id, user_id)
        conversation = participant.conversation

        visible = self.db.query(Message).filter(
            Message.conversation_id == conversation_id,
            Message.is_deleted == False,  # noqa: E712
        )
        total_messages = visible.count()

        # Newest page first, then flipped so the response reads top to bottom
        page_desc = (
            visible.options(joinedload(Message.sender))
            .order_by(Message.created_at.desc(), Message.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        messages = list(reversed(page_desc))

        participants = (
            self.db.query(ConversationParticipant)
            .options(joinedload(ConversationParticipant.user))
            .filter(
                ConversationParticipant.conversation_id == conversation_id,
                ConversationParticipant.is_active == True,  # noqa: E712
            )
            .order_by(ConversationParticipant.joined_at.asc())
            .all()
        )

        with unit_of_work(self.db, "mark conversation as read"):
            participant.unread_count = 0
            participant.last_read_at = utcnow()
        invalidate_unread_cache(user_id)

        return ConversationDetail(
            **dict(ConversationSummary.model_validate(conversation)),
            participants=[build_participant_info(p.user, p.role) for p in participants],
            messages=[MessageService.build_message_response(m) for m in messages],
            pagination=PaginationMeta.from_query(total_messages, page, limit),
        )

    def start_or_append_direct(self, sender: User, data: ConversationCreate) -> DirectMessageResult:
        """Send a message to ``data.recipient_id``, reusing their direct thread if any.

        Repeated direct calls from either side of a pair converge on one
        conversation. Project, job and group conversations are never
        deduplicated: each call opens a new linked conversation.
        """
        if data.recipient_id == sender.id:
            raise ValidationError("Cannot start a conversation with yourself", field="recipient_id")
        validate_content(data.message)

        recipient = (
            self.db.query(User)
            .filter(User.id == data.recipient_id, User.is_active == True)  # noqa: E712
            .first()
        )
        if not recipient:
            raise NotFoundError("Recipient not found", resource="user")

        if data.conversation_type != ConversationType.DIRECT:
            return self._start_linked(sender, recipient, data)

        key = direct_key_for(sender.id, recipient.id)
        created = False

        with unit_of_work(self.db, "send message"):
            conversation = self._find_direct_conversation(sender.id, recipient.id)
            if conversation is None:
                conversation = self._find_by_direct_key(key)
                if conversation is not None:
                    # One side had left the thread; bring both back into it
                    self._ensure_participants(conversation, sender.id, recipient.id)
            if conversation is None:
                conversation, created = self._create_direct_conversation(
                    sender.id, recipient.id, key, data
                )
            message = self.messages.stage_message(conversation, sender.id, data.message)

        if created:
            logger.info("Direct conversation %s created for %s", conversation.id, key)

        self.messages.after_message_committed(conversation, sender, message)
        return DirectMessageResult(
            conversation=ConversationSummary.model_validate(conversation),
            message=MessageService.build_message_response(message, sender),
            created=created,
        )

    def _start_linked(
        self, sender: User, recipient: User, data: ConversationCreate
    ) -> DirectMessageResult:
        with unit_of_work(self.db, "send message"):
            conversation = Conversation(
                conversation_type=data.conversation_type.value,
                subject=data.subject,
                project_id=data.project_id,
                job_id=data.job_id,
                status=ConversationStatus.ACTIVE.value,
            )
            self.db.add(conversation)
            self.db.flush()
            self._add_pair(conversation, sender.id, recipient.id)
            message = self.messages.stage_message(conversation, sender.id, data.message)

        logger.info(
            "%s conversation %s created by %s",
            conversation.conversation_type,
            conversation.id,
            sender.id,
        )
        self.messages.after_message_committed(conversation, sender, message)
        return DirectMessageResult(
            conversation=ConversationSummary.model_validate(conversation),
            message=MessageService.build_message_response(message, sender),
            created=True,
        )

    def set_muted(self, conversation_id: UUID, user_id: UUID, muted: bool) -> None:
        participant = get_active_participant_or_403(self.db, conversation_id, user_id)
        with unit_of_work(self.db, "update mute setting"):
            participant.is_muted = muted

    def leave_conversation(self, conversation_id: UUID, user_id: UUID) -> None:
        """Deactivate the caller's membership; history stays in place."""
        participant = get_active_participant_or_403(self.db, conversation_id, user_id)
        with unit_of_work(self.db, "leave conversation"):
            participant.is_active = False
        invalidate_unread_cache(user_id)

    def get_unread_summary(self, user_id: UUID) -> UnreadSummary:
        row = (
            self.db.query(
                func.coalesce(
                    func.sum(case((ConversationParticipant.unread_count > 0, 1), else_=0)), 0
                ),
                func.coalesce(func.sum(ConversationParticipant.unread_count), 0),
            )
            .join(Conversation, Conversation.id == ConversationParticipant.conversation_id)
            .filter(
                ConversationParticipant.user_id == user_id,
                ConversationParticipant.is_active == True,  # noqa: E712
                Conversation.status == ConversationStatus.ACTIVE.value,
            )
            .one()
        )
        return UnreadSummary(unread_conversations=int(row[0]), unread_messages=int(row[1]))

    async def get_unread_summary_cached(self, user_id: UUID) -> UnreadSummary:
        """Get unread summary with Redis caching."""
        cache_key = redis_module.unread_cache_key(user_id)
        cached = await redis_module.get_cached_json(cache_key)
        if cached is not None:
            return UnreadSummary.model_validate(cached)

        summary = self.get_unread_summary(user_id)
        await redis_module.set_cached_json(
            cache_key, summary.model_dump(), settings.UNREAD_CACHE_TTL_SECONDS
        )
        return summary

    def _find_direct_conversation(self, user1_id: UUID, user2_id: UUID) -> Conversation | None:
        """Active direct conversation where both users are active participants."""
        user1_convs = select(ConversationParticipant.conversation_id).where(
            ConversationParticipant.user_id == user1_id,
            ConversationParticipant.is_active == True,  # noqa: E712
        )
        user2_convs = select(ConversationParticipant.conversation_id).where(
            ConversationParticipant.user_id == user2_id,
            ConversationParticipant.is_active == True,  # noqa: E712
        )

        conversation = (
            self.db.query(Conversation)
            .filter(
                Conversation.id.in_(user1_convs),
                Conversation.id.in_(user2_convs),
                Conversation.conversation_type == ConversationType.DIRECT.value,
                Conversation.status == ConversationStatus.ACTIVE.value,
            )
            .order_by(Conversation.created_at.asc())
            .first()
        )
        return cast(Conversation | None, conversation)

    def _find_by_direct_key(self, key: str) -> Conversation | None:
        conversation = (
            self.db.query(Conversation)
            .filter(
                Conversation.direct_key == key,
                Conversation.status == ConversationStatus.ACTIVE.value,
            )
            .first()
        )
        return cast(Conversation | None, conversation)

    def _create_direct_conversation(
        self,
        sender_id: UUID,
        recipient_id: UUID,
        key: str,
        data: ConversationCreate,
    ) -> tuple[Conversation, bool]:
        """Insert the conversation and both memberships.

        The unique ``direct_key`` rejects a concurrent duplicate; the loser
        rolls back to its savepoint and joins the winner's conversation.
        """
        try:
            with self.db.begin_nested():
                conversation = Conversation(
                    conversation_type=ConversationType.DIRECT.value,
                    subject=data.subject,
                    project_id=data.project_id,
                    job_id=data.job_id,
                    direct_key=key,
                    status=ConversationStatus.ACTIVE.value,
                )
                self.db.add(conversation)
                self.db.flush()
                self._add_pair(conversation, sender_id, recipient_id)
        except IntegrityError:
            logger.warning("Direct conversation %s created concurrently, reusing it", key)
            existing = self._find_by_direct_key(key)
            if existing is None:
                raise ConflictError(
                    "Conversation could not be created, please retry", resource="conversation"
                ) from None
            self._ensure_participants(existing, sender_id, recipient_id)
            return existing, False

        return conversation, True

    def _add_pair(self, conversation: Conversation, owner_id: UUID, member_id: UUID) -> None:
        self.db.add_all(
            [
                ConversationParticipant(
                    conversation_id=conversation.id,
                    user_id=owner_id,
                    role=ParticipantRole.OWNER.value,
                    unread_count=0,
                    last_read_at=utcnow(),
                ),
                ConversationParticipant(
                    conversation_id=conversation.id,
                    user_id=member_id,
                    role=ParticipantRole.MEMBER.value,
                    unread_count=0,
                ),
            ]
        )

    def _ensure_participants(self, conversation: Conversation, *user_ids: UUID) -> None:
        existing = {
            p.user_id: p
            for p in self.db.query(ConversationParticipant)
            .filter(
                ConversationParticipant.conversation_id == conversation.id,
                ConversationParticipant.user_id.in_(user_ids),
            )
            .all()
        }
        missing = [u for u in user_ids if u not in existing]
        for user_id in missing:
            self.db.add(ConversationParticipant(conversation_id=conversation.id, user_id=user_id))

        inactive = [u for u, p in existing.items() if not p.is_active]
        if inactive:
            self.db.execute(
                update(ConversationParticipant)
                .where(
                    ConversationParticipant.conversation_id == conversation.id,
                    ConversationParticipant.user_id.in_(inactive),
                )
                .values(is_active=True)
                .execution_options(synchronize_session="fetch")
            )
        if missing or inactive:
            self.db.flush()

    def _other_participants(
        self, conversation_ids: list[UUID], current_user_id: UUID
    ) -> dict[UUID, list[ParticipantInfo]]:
        if not conversation_ids:
            return {}
        rows = (
            self.db.query(ConversationParticipant)
            .options(joinedload(ConversationParticipant.user))
            .filter(
                ConversationParticipant.conversation_id.in_(conversation_ids),
                ConversationParticipant.user_id != current_user_id,
                ConversationParticipant.is_active == True,  # noqa: E712
            )
            .order_by(ConversationParticipant.joined_at.asc())
            .all()
        )
        grouped: dict[UUID, list[ParticipantInfo]] = defaultdict(list)
        for p in rows:
            grouped[p.conversation_id].append(build_participant_info(p.user, p.role))
        return grouped
