"""Authorization and transaction helpers shared by the messaging services."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import cast
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.auth.models.user import User
from app.core import redis as redis_module
from app.core.exceptions import DependencyError, ForbiddenError
from app.messaging.models.conversation_participant import ConversationParticipant
from app.messaging.schemas.conversation import ParticipantInfo

logger = logging.getLogger(__name__)


def get_active_participant_or_403(
    db: Session, conversation_id: UUID, user_id: UUID
) -> ConversationParticipant:
    """Return the caller's active membership row.

    A missing conversation and a missing membership both raise 403, so the
    response never reveals whether a conversation id exists.
    """
    participant = (
        db.query(ConversationParticipant)
        .filter(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.user_id == user_id,
            ConversationParticipant.is_active == True,  # noqa: E712
        )
        .first()
    )
    if not participant:
        raise ForbiddenError("You are not a participant in this conversation")
    return cast(ConversationParticipant, participant)


@contextmanager
def unit_of_work(db: Session, action: str) -> Iterator[None]:
    """Commit everything staged in the block, or nothing.

    Storage failures are rolled back and surfaced as ``DependencyError``;
    application errors pass through untouched.
    """
    try:
        yield
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to %s", action)
        raise DependencyError(f"Could not {action}", service="database") from exc


def build_participant_info(user: User, role: str | None = None) -> ParticipantInfo:
    return ParticipantInfo(
        id=user.id,
        name=user.name,
        avatar_url=user.avatar_url,
        user_type=user.user_type,
        role=role,
    )


def invalidate_unread_cache(*user_ids: UUID) -> None:
    redis_module.invalidate_keys(*(redis_module.unread_cache_key(u) for u in user_ids))
