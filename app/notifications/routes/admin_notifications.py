from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.auth.dependencies import require_admin
from app.auth.models.user import User
from app.db.session import get_db
from app.notifications.models.notification import NotificationType
from app.notifications.schemas.notification import (
    AdminNotificationListResponse,
    BroadcastRequest,
    BroadcastResponse,
)
from app.notifications.services.notification_dispatcher import NotificationDispatcher
from app.notifications.services.notification_service import NotificationService

router = APIRouter()


@router.post(
    "/broadcast", response_model=BroadcastResponse, status_code=status.HTTP_201_CREATED
)
def broadcast_notification(
    data: BroadcastRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> BroadcastResponse:
    dispatcher = NotificationDispatcher(db)
    results = dispatcher.broadcast(
        data.title,
        data.message,
        user_types=data.user_types,
        from_user_id=current_user.id,
    )
    return BroadcastResponse(
        recipients=len(results),
        failed=sum(1 for r in results if r.failed),
    )


@router.get("", response_model=AdminNotificationListResponse)
def admin_list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    notification_type: NotificationType | None = Query(None, alias="type"),
    _current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AdminNotificationListResponse:
    service = NotificationService(db)
    return service.list_all(page=page, limit=limit, notification_type=notification_type)
