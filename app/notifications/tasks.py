"""Celery tasks for recording notifications outside the request cycle."""

import logging
from typing import Any

from app.core.celery_app import celery_app
from app.db.session import SessionLocal
from app.notifications.services.notification_dispatcher import (
    NotificationPayload,
    build_notification,
)

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=2, default_retry_delay=30)
def create_notification(self: Any, **payload: Any) -> dict[str, str]:
    """Write a single notification row with a dedicated session."""
    db = SessionLocal()
    try:
        notification = build_notification(NotificationPayload.from_task_kwargs(payload))
        db.add(notification)
        db.commit()
        logger.info(
            "Created %s notification %s for user %s",
            notification.notification_type,
            notification.id,
            notification.user_id,
        )
        return {"status": "created", "id": str(notification.id)}
    except Exception as exc:
        logger.exception("create_notification failed for user %s", payload.get("user_id"))
        db.rollback()
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc) from exc
        raise
    finally:
        db.close()
