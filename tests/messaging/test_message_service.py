"""
Unit tests for MessageService.
"""

import uuid
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import DependencyError, ForbiddenError, NotFoundError, ValidationError
from app.messaging.models import Conversation, ConversationStatus, Message
from app.messaging.schemas.conversation import ConversationCreate
from app.messaging.services.conversation_service import ConversationService
from app.messaging.services.message_service import MessageService, validate_content
from app.notifications.models.notification import Notification, NotificationType


@pytest.fixture
def conversation(db_session: Session, alice, bob) -> Conversation:
    result = ConversationService(db_session).start_or_append_direct(
        alice, ConversationCreate(recipient_id=bob.id, message="opening message")
    )
    return db_session.get(Conversation, result.conversation.id)


class TestValidateContent:
    """Tests for validate_content helper."""

    @pytest.mark.parametrize("content", [None, "", "   ", "\n\t"])
    def test_rejects_empty(self, content):
        with pytest.raises(ValidationError):
            validate_content(content)

    def test_rejects_too_long(self):
        with pytest.raises(ValidationError):
            validate_content("x" * (settings.MESSAGE_MAX_LENGTH + 1))

    def test_accepts_max_length(self):
        validate_content("x" * settings.MESSAGE_MAX_LENGTH)

    def test_rejects_too_many_attachments(self):
        attachments = [f"https://files.example.com/{i}" for i in range(settings.MAX_ATTACHMENTS + 1)]

        with pytest.raises(ValidationError):
            validate_content("see attached", attachments)


class TestPostMessage:
    """Tests for post_message method."""

    def test_post_updates_conversation_metadata(
        self, db_session: Session, conversation, alice, bob
    ):
        response = MessageService(db_session).post_message(conversation.id, bob, "Got it")

        assert response.content == "Got it"
        assert response.sender.id == bob.id
        assert conversation.last_message_preview == "Got it"
        assert conversation.last_message_at == response.created_at

    def test_preview_is_truncated(self, db_session: Session, conversation, alice):
        long_text = "a" * 150 + "b" * 10

        MessageService(db_session).post_message(conversation.id, alice, long_text)

        assert conversation.last_message_preview == "a" * settings.MESSAGE_PREVIEW_LENGTH
        stored = db_session.query(Message).filter(Message.content == long_text).one()
        assert len(stored.content) == 160

    def test_multibyte_preview_truncated_by_characters(
        self, db_session: Session, conversation, alice
    ):
        text = "ż" * 120

        MessageService(db_session).post_message(conversation.id, alice, text)

        assert conversation.last_message_preview == "ż" * 100

    def test_outsider_forbidden(self, db_session: Session, conversation, carol):
        with pytest.raises(ForbiddenError):
            MessageService(db_session).post_message(conversation.id, carol, "let me in")

        assert db_session.query(Message).filter(Message.sender_id == carol.id).count() == 0

    def test_closed_conversation_forbidden(self, db_session: Session, conversation, alice):
        conversation.status = ConversationStatus.ARCHIVED.value
        db_session.flush()

        with pytest.raises(ForbiddenError):
            MessageService(db_session).post_message(conversation.id, alice, "hello?")

    def test_reply_to_message_in_same_conversation(
        self, db_session: Session, conversation, alice, bob
    ):
        service = MessageService(db_session)
        original = service.post_message(conversation.id, alice, "question")

        reply = service.post_message(conversation.id, bob, "answer", reply_to_id=original.id)

        assert reply.reply_to_id == original.id

    def test_reply_to_foreign_message_rejected(
        self, db_session: Session, conversation, alice, bob, carol
    ):
        other = ConversationService(db_session).start_or_append_direct(
            alice, ConversationCreate(recipient_id=carol.id, message="elsewhere")
        )

        with pytest.raises(ValidationError):
            MessageService(db_session).post_message(
                conversation.id, bob, "reply", reply_to_id=other.message.id
            )

    def test_attachments_stored(self, db_session: Session, conversation, alice):
        attachments = ["https://files.example.com/cv.pdf"]

        response = MessageService(db_session).post_message(
            conversation.id, alice, "my cv", attachments=attachments
        )

        assert response.attachments == attachments

    def test_storage_failure_raises_dependency_error(
        self, db_session: Session, conversation, alice
    ):
        service = MessageService(db_session)

        with patch.object(
            db_session,
            "flush",
            side_effect=OperationalError("INSERT INTO messages", {}, Exception("db down")),
        ):
            with pytest.raises(DependencyError):
                service.post_message(conversation.id, alice, "lost")

    def test_recipient_notified(self, db_session: Session, conversation, alice, bob):
        MessageService(db_session).post_message(conversation.id, alice, "ping")

        notifications = (
            db_session.query(Notification)
            .filter(
                Notification.user_id == bob.id,
                Notification.notification_type == NotificationType.NEW_MESSAGE.value,
            )
            .all()
        )
        # one for the opening message, one for "ping"
        assert len(notifications) == 2
        assert all(n.from_user_id == alice.id for n in notifications)
        assert all(n.reference_id == str(conversation.id) for n in notifications)

    def test_muted_recipient_not_notified(self, db_session: Session, conversation, alice, bob):
        ConversationService(db_session).set_muted(conversation.id, bob.id, True)
        before = db_session.query(Notification).filter(Notification.user_id == bob.id).count()

        MessageService(db_session).post_message(conversation.id, alice, "quiet please")

        after = db_session.query(Notification).filter(Notification.user_id == bob.id).count()
        assert after == before

    def test_sender_not_notified(self, db_session: Session, conversation, alice):
        MessageService(db_session).post_message(conversation.id, alice, "note to self")

        assert db_session.query(Notification).filter(Notification.user_id == alice.id).count() == 0

    def test_notification_failure_does_not_fail_message(
        self, db_session: Session, conversation, alice
    ):
        service = MessageService(db_session)

        with patch(
            "app.notifications.services.notification_dispatcher.build_notification",
            side_effect=OperationalError("INSERT INTO notifications", {}, Exception("db down")),
        ):
            response = service.post_message(conversation.id, alice, "still delivered")

        assert db_session.get(Message, response.id) is not None

    def test_notifications_can_be_disabled(
        self, db_session: Session, conversation, alice, bob, monkeypatch
    ):
        monkeypatch.setattr(settings, "NOTIFY_ON_NEW_MESSAGE", False)
        dispatcher = MagicMock()

        MessageService(db_session, dispatcher=dispatcher).post_message(
            conversation.id, alice, "silent"
        )

        dispatcher.notify_new_message.assert_not_called()


class TestSoftDelete:
    """Tests for soft_delete_message and the audit read path."""

    def test_deleted_message_hidden_but_kept(
        self, db_session: Session, conversation, alice, bob
    ):
        service = MessageService(db_session)
        posted = service.post_message(conversation.id, alice, "oops")

        service.soft_delete_message(conversation.id, posted.id, alice.id)

        detail = ConversationService(db_session).get_conversation(conversation.id, bob.id)
        assert posted.id not in [m.id for m in detail.messages]

        audit = service.get_message_for_audit(conversation.id, posted.id)
        assert audit.is_deleted is True
        assert audit.deleted_at is not None
        assert audit.content == "oops"

    def test_only_sender_can_delete(self, db_session: Session, conversation, alice, bob):
        service = MessageService(db_session)
        posted = service.post_message(conversation.id, alice, "mine")

        with pytest.raises(ForbiddenError):
            service.soft_delete_message(conversation.id, posted.id, bob.id)

        assert db_session.get(Message, posted.id).is_deleted is False

    def test_delete_is_idempotent(self, db_session: Session, conversation, alice):
        service = MessageService(db_session)
        posted = service.post_message(conversation.id, alice, "twice")
        service.soft_delete_message(conversation.id, posted.id, alice.id)
        first_deleted_at = db_session.get(Message, posted.id).deleted_at

        service.soft_delete_message(conversation.id, posted.id, alice.id)

        assert db_session.get(Message, posted.id).deleted_at == first_deleted_at

    def test_unknown_message_raises_404(self, db_session: Session, conversation, alice):
        with pytest.raises(NotFoundError):
            MessageService(db_session).soft_delete_message(conversation.id, uuid.uuid4(), alice.id)

    def test_delete_leaves_preview_and_counters(
        self, db_session: Session, conversation, alice, bob
    ):
        service = MessageService(db_session)
        posted = service.post_message(conversation.id, alice, "latest")

        service.soft_delete_message(conversation.id, posted.id, alice.id)

        assert conversation.last_message_preview == "latest"
        summary = ConversationService(db_session).get_unread_summary(bob.id)
        assert summary.unread_messages == 2


class TestTranscript:
    """Tests for get_transcript method."""

    def test_includes_deleted_messages_in_order(
        self, db_session: Session, conversation, alice, bob
    ):
        service = MessageService(db_session)
        hidden = service.post_message(conversation.id, bob, "hidden")
        service.post_message(conversation.id, alice, "visible")
        service.soft_delete_message(conversation.id, hidden.id, bob.id)

        transcript = service.get_transcript(conversation.id)

        assert [m.content for m in transcript.messages] == ["opening message", "hidden", "visible"]
        assert [m.is_deleted for m in transcript.messages] == [False, True, False]
        assert {p.id for p in transcript.participants} == {alice.id, bob.id}

    def test_unknown_conversation_raises_404(self, db_session: Session):
        with pytest.raises(NotFoundError):
            MessageService(db_session).get_transcript(uuid.uuid4())
