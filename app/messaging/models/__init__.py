from app.messaging.models.conversation import (
    Conversation,
    ConversationStatus,
    ConversationType,
    direct_key_for,
)
from app.messaging.models.conversation_participant import ConversationParticipant, ParticipantRole
from app.messaging.models.message import Message

__all__ = [
    "Conversation",
    "ConversationParticipant",
    "ConversationStatus",
    "ConversationType",
    "Message",
    "ParticipantRole",
    "direct_key_for",
]
