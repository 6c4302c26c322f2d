"""Fire-and-forget creation of in-app notifications.

Write paths that change state other users care about (a message was posted,
an application was submitted or reviewed) call into this module after their
own work is committed. Nothing raised while recording a notification ever
reaches the caller: failures are logged and reported through a
``DispatchResult`` that callers are free to ignore.
Administrators can also ``broadcast`` a system notification to every user
or to selected user types.

Two delivery modes are supported:

- inline (default): the row is written inside a SAVEPOINT on the caller's
  session and committed, so a failed insert never poisons the caller's
  transaction;
- async (``NOTIFICATIONS_ASYNC``): the payload is handed to the Celery task
  ``create_notification`` which writes it with its own session.
"""

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.auth.models.user import User, UserType
from app.core.config import settings
from app.core.exceptions import ValidationError
from app.notifications.models.notification import (
    Notification,
    NotificationType,
    ReferenceType,
)

logger = logging.getLogger(__name__)


@dataclass
class NotificationPayload:
    """Everything needed to write one notification row."""

    user_id: UUID
    notification_type: NotificationType
    title: str
    content: str | None = None
    action_url: str | None = None
    action_text: str | None = None
    reference_type: ReferenceType | None = None
    reference_id: str | None = None
    from_user_id: UUID | None = None

    def to_task_kwargs(self) -> dict[str, str | None]:
        """Serialize to JSON-safe keyword arguments for the Celery task."""
        return {
            "user_id": str(self.user_id),
            "notification_type": self.notification_type.value,
            "title": self.title,
            "content": self.content,
            "action_url": self.action_url,
            "action_text": self.action_text,
            "reference_type": self.reference_type.value if self.reference_type else None,
            "reference_id": self.reference_id,
            "from_user_id": str(self.from_user_id) if self.from_user_id else None,
        }

    @classmethod
    def from_task_kwargs(cls, data: dict[str, Any]) -> "NotificationPayload":
        return cls(
            user_id=UUID(data["user_id"]),
            notification_type=NotificationType(data["notification_type"]),
            title=data["title"],
            content=data.get("content"),
            action_url=data.get("action_url"),
            action_text=data.get("action_text"),
            reference_type=ReferenceType(data["reference_type"])
            if data.get("reference_type")
            else None,
            reference_id=data.get("reference_id"),
            from_user_id=UUID(data["from_user_id"]) if data.get("from_user_id") else None,
        )


@dataclass
class DispatchResult:
    """Outcome of a dispatch; callers may discard it."""

    created: bool = False
    queued: bool = False
    failed: bool = False
    reason: str | None = None
    notification_id: UUID | None = field(default=None)


def build_notification(payload: NotificationPayload) -> Notification:
    return Notification(
        user_id=payload.user_id,
        notification_type=payload.notification_type.value,
        title=payload.title[:255],
        content=payload.content,
        action_url=payload.action_url,
        action_text=payload.action_text,
        reference_type=payload.reference_type.value if payload.reference_type else None,
        reference_id=payload.reference_id,
        from_user_id=payload.from_user_id,
        is_read=False,
    )


def _preview(text: str) -> str:
    return text[: settings.MESSAGE_PREVIEW_LENGTH]


class NotificationDispatcher:
    """Records notifications on behalf of unrelated write paths."""

    def __init__(self, db: Session, *, run_async: bool | None = None) -> None:
        self.db = db
        self.run_async = settings.NOTIFICATIONS_ASYNC if run_async is None else run_async

    def notify(
        self,
        recipient_id: UUID | None,
        notification_type: NotificationType,
        title: str,
        content: str | None = None,
        *,
        action_url: str | None = None,
        action_text: str | None = None,
        reference_type: ReferenceType | None = None,
        reference_id: UUID | str | None = None,
        from_user_id: UUID | None = None,
    ) -> DispatchResult:
        """Record a notification for a single recipient. Never raises."""
        if recipient_id is None:
            logger.warning("Dropping %s notification without recipient", notification_type.value)
            return DispatchResult(failed=True, reason="missing_recipient")

        payload = NotificationPayload(
            user_id=recipient_id,
            notification_type=notification_type,
            title=title,
            content=content,
            action_url=action_url,
            action_text=action_text,
            reference_type=reference_type,
            reference_id=str(reference_id) if reference_id is not None else None,
            from_user_id=from_user_id,
        )

        if self.run_async:
            return self._enqueue(payload)
        return self._write(payload)

    def notify_new_application(
        self,
        owner_id: UUID,
        applicant_id: UUID,
        application_id: UUID,
        target_type: ReferenceType,
        target_id: UUID,
        target_title: str,
        applicant_name: str | None = None,
    ) -> DispatchResult:
        """Tell a job/project owner that someone applied."""
        who = applicant_name or "A candidate"
        return self.notify(
            owner_id,
            NotificationType.NEW_APPLICATION,
            "New application received",
            f"{who} applied to {target_title}",
            action_url=f"/{target_type.value}s/{target_id}/applications",
            action_text="View application",
            reference_type=ReferenceType.APPLICATION,
            reference_id=application_id,
            from_user_id=applicant_id,
        )

    def notify_application_status_change(
        self,
        applicant_id: UUID,
        reviewer_id: UUID | None,
        application_id: UUID,
        new_status: str,
        target_type: ReferenceType,
        target_id: UUID,
        target_title: str,
    ) -> DispatchResult:
        """Tell an applicant that their application moved to ``new_status``."""
        status_label = new_status.replace("_", " ")
        return self.notify(
            applicant_id,
            NotificationType.APPLICATION_STATUS_CHANGE,
            "Application status updated",
            f"Your application for {target_title} is now {status_label}.",
            action_url=f"/{target_type.value}s/{target_id}",
            action_text="View details",
            reference_type=ReferenceType.APPLICATION,
            reference_id=application_id,
            from_user_id=reviewer_id,
        )

    def notify_new_message(
        self,
        conversation_id: UUID,
        sender_id: UUID,
        sender_name: str,
        recipient_ids: list[UUID],
        content: str,
    ) -> list[DispatchResult]:
        return [
            self.notify(
                recipient_id,
                NotificationType.NEW_MESSAGE,
                f"New message from {sender_name}",
                _preview(content),
                action_url=f"/messages/{conversation_id}",
                action_text="Reply",
                reference_type=ReferenceType.CONVERSATION,
                reference_id=conversation_id,
                from_user_id=sender_id,
            )
            for recipient_id in recipient_ids
        ]

    def broadcast(
        self,
        title: str,
        content: str,
        *,
        user_types: list[UserType] | None = None,
        from_user_id: UUID | None = None,
    ) -> list[DispatchResult]:
        """Send a system notification to every active user, optionally by profile kind.

        A blank title or message is rejected up front with ``ValidationError``;
        once recipients are selected each delivery behaves like ``notify``.
        """
        if not title.strip():
            raise ValidationError("Title is required", field="title")
        if not content.strip():
            raise ValidationError("Message is required", field="message")

        query = self.db.query(User.id).filter(User.is_active == True)  # noqa: E712
        if user_types:
            query = query.filter(User.user_type.in_([t.value for t in user_types]))
        recipient_ids = [row.id for row in query.order_by(User.created_at.asc()).all()]

        results = [
            self.notify(
                recipient_id,
                NotificationType.SYSTEM,
                title,
                content,
                from_user_id=from_user_id,
            )
            for recipient_id in recipient_ids
        ]
        logger.info(
            "Broadcast %r sent to %d users (%d failed)",
            title,
            len(results),
            sum(1 for r in results if r.failed),
        )
        return results

    def _write(self, payload: NotificationPayload) -> DispatchResult:
        try:
            with self.db.begin_nested():
                notification = build_notification(payload)
                self.db.add(notification)
        except Exception as exc:
            logger.exception(
                "Failed to create %s notification for user %s",
                payload.notification_type.value,
                payload.user_id,
            )
            return DispatchResult(failed=True, reason=str(exc)[:200])

        try:
            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            logger.exception(
                "Failed to commit %s notification for user %s",
                payload.notification_type.value,
                payload.user_id,
            )
            return DispatchResult(failed=True, reason=str(exc)[:200])

        return DispatchResult(created=True, notification_id=notification.id)

    @staticmethod
    def _enqueue(payload: NotificationPayload) -> DispatchResult:
        try:
            from app.notifications.tasks import create_notification

            create_notification.delay(**payload.to_task_kwargs())
        except (ImportError, AttributeError) as exc:
            logger.error("Celery task import failed: %s", exc, exc_info=True)
            return DispatchResult(failed=True, reason="task_unavailable")
        except Exception as exc:
            logger.warning(
                "Failed to enqueue %s notification for user %s: %s",
                payload.notification_type.value,
                payload.user_id,
                exc,
            )
            return DispatchResult(failed=True, reason=str(exc)[:200])
        return DispatchResult(queued=True)
