"""Recipient-facing notification inbox and the admin-wide listing."""

import logging
from typing import cast
from uuid import UUID

from sqlalchemy import delete, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.core.datetime_utils import utcnow
from app.core.exceptions import DependencyError, ForbiddenError, NotFoundError
from app.core.schemas import PaginationMeta
from app.notifications.models.notification import Notification, NotificationType
from app.notifications.schemas.notification import (
    AdminNotificationListResponse,
    AdminNotificationResponse,
    NotificationListResponse,
    NotificationResponse,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """Read, mark-read and delete operations over a user's inbox."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def list_notifications(
        self,
        user_id: UUID,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
    ) -> NotificationListResponse:
        """Newest first; ``unread_count`` always covers the whole inbox."""
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)  # noqa: E712

        total = query.count()
        notifications = (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        return NotificationListResponse(
            notifications=[NotificationResponse.model_validate(n) for n in notifications],
            unread_count=self.get_unread_count(user_id),
            pagination=PaginationMeta.from_query(total, page, limit),
        )

    def get_unread_count(self, user_id: UUID) -> int:
        count = (
            self.db.query(func.count(Notification.id))
            .filter(
                Notification.user_id == user_id,
                Notification.is_read == False,  # noqa: E712
            )
            .scalar()
        )
        return int(count or 0)

    def mark_as_read(self, user_id: UUID, notification_id: UUID) -> NotificationResponse:
        notification = self._get_owned_or_raise(user_id, notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            self._commit()
        return NotificationResponse.model_validate(notification)

    def mark_all_as_read(self, user_id: UUID) -> int:
        result = self.db.execute(
            update(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.is_read == False,  # noqa: E712
            )
            .values(is_read=True, read_at=utcnow())
            .execution_options(synchronize_session="evaluate")
        )
        self._commit()
        return int(result.rowcount or 0)  # type: ignore[attr-defined]

    def delete_notification(self, user_id: UUID, notification_id: UUID) -> None:
        notification = self._get_owned_or_raise(user_id, notification_id)
        self.db.delete(notification)
        self._commit()

    def delete_all_read(self, user_id: UUID) -> int:
        result = self.db.execute(
            delete(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.is_read == True,  # noqa: E712
            )
            .execution_options(synchronize_session="evaluate")
        )
        self._commit()
        deleted = int(result.rowcount or 0)  # type: ignore[attr-defined]
        logger.info("Deleted %d read notifications for user %s", deleted, user_id)
        return deleted

    def list_all(
        self,
        page: int = 1,
        limit: int = 50,
        notification_type: NotificationType | None = None,
    ) -> AdminNotificationListResponse:
        """Notifications across all users, newest first, with the recipient attached."""
        query = self.db.query(Notification)
        if notification_type is not None:
            query = query.filter(Notification.notification_type == notification_type.value)

        total = query.count()
        notifications = (
            query.options(joinedload(Notification.user))
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return AdminNotificationListResponse(
            notifications=[AdminNotificationResponse.model_validate(n) for n in notifications],
            pagination=PaginationMeta.from_query(total, page, limit),
        )

    def _get_owned_or_raise(self, user_id: UUID, notification_id: UUID) -> Notification:
        notification = (
            self.db.query(Notification).filter(Notification.id == notification_id).first()
        )
        if not notification:
            raise NotFoundError("Notification not found", resource="notification")
        if notification.user_id != user_id:
            raise ForbiddenError("You can only manage your own notifications")
        return cast(Notification, notification)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Notification update failed")
            raise DependencyError("Could not update notifications", service="database") from exc
