"""
Database base module - imports all models for Alembic migration detection.

This module imports all SQLAlchemy models to ensure they are registered
with the metadata before migrations are generated or tables are created.
"""

from app.auth.models.user import User
from app.messaging.models.conversation import Conversation
from app.messaging.models.conversation_participant import ConversationParticipant
from app.messaging.models.message import Message
from app.notifications.models.notification import Notification

__all__ = [
    "User",
    "Conversation",
    "ConversationParticipant",
    "Message",
    "Notification",
]
