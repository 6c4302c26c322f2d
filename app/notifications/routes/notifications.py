from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.auth.dependencies import get_current_user
from app.auth.models.user import User
from app.db.session import get_db
from app.notifications.schemas.notification import (
    BulkUpdateResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from app.notifications.services.notification_service import NotificationService

router = APIRouter()


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationListResponse:
    service = NotificationService(db)
    return service.list_notifications(
        current_user.id, page=page, limit=limit, unread_only=unread_only
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UnreadCountResponse:
    service = NotificationService(db)
    return UnreadCountResponse(unread_count=service.get_unread_count(current_user.id))


# Declared before /{notification_id}/read so "read-all" is not parsed as an id
@router.patch("/read-all", response_model=BulkUpdateResponse)
def mark_all_as_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BulkUpdateResponse:
    service = NotificationService(db)
    return BulkUpdateResponse(affected=service.mark_all_as_read(current_user.id))


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_as_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationResponse:
    service = NotificationService(db)
    return service.mark_as_read(current_user.id, notification_id)


@router.delete("", response_model=BulkUpdateResponse)
def delete_read_notifications(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BulkUpdateResponse:
    service = NotificationService(db)
    return BulkUpdateResponse(affected=service.delete_all_read(current_user.id))


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> None:
    service = NotificationService(db)
    service.delete_notification(current_user.id, notification_id)
