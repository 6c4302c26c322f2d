from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from app.auth.dependencies import get_current_user
from app.auth.models.user import User
from app.core.config import settings
from app.core.rate_limit import limiter
from app.db.session import get_db
from app.messaging.schemas.conversation import (
    ConversationCreate,
    ConversationListResponse,
    MuteUpdate,
    UnreadSummary,
)
from app.messaging.schemas.message import (
    ConversationDetail,
    DirectMessageResult,
    MessageCreate,
    MessageResponse,
)
from app.messaging.services.conversation_service import ConversationService
from app.messaging.services.message_service import MessageService

router = APIRouter()


@router.get("/conversations", response_model=ConversationListResponse)
def list_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationListResponse:
    service = ConversationService(db)
    return service.list_conversations(user_id=current_user.id, page=page, limit=limit)


@router.post(
    "/conversations",
    response_model=DirectMessageResult,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.MESSAGE_RATE_LIMIT)
def start_conversation(
    request: Request,
    response: Response,
    data: ConversationCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> DirectMessageResult:
    """Start a direct conversation, or append to the existing one (200)."""
    service = ConversationService(db)
    result = service.start_or_append_direct(current_user, data)
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return result


@router.get("/conversations/{conversation_id}", response_model=ConversationDetail)
def get_conversation(
    conversation_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationDetail:
    service = ConversationService(db)
    return service.get_conversation(
        conversation_id=conversation_id,
        user_id=current_user.id,
        page=page,
        limit=limit,
    )


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.MESSAGE_RATE_LIMIT)
def send_message(
    request: Request,
    conversation_id: UUID,
    data: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    service = MessageService(db)
    return service.post_message(
        conversation_id,
        current_user,
        data.content,
        reply_to_id=data.reply_to_id,
        attachments=data.attachments,
    )


@router.delete(
    "/conversations/{conversation_id}/messages/{message_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_message(
    conversation_id: UUID,
    message_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> None:
    service = MessageService(db)
    service.soft_delete_message(conversation_id, message_id, current_user.id)


@router.patch("/conversations/{conversation_id}/mute", status_code=status.HTTP_204_NO_CONTENT)
def mute_conversation(
    conversation_id: UUID,
    data: MuteUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> None:
    service = ConversationService(db)
    service.set_muted(conversation_id, current_user.id, data.is_muted)


@router.post("/conversations/{conversation_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
def leave_conversation(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> None:
    service = ConversationService(db)
    service.leave_conversation(conversation_id, current_user.id)


@router.get("/unread-count", response_model=UnreadSummary)
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UnreadSummary:
    service = ConversationService(db)
    return await service.get_unread_summary_cached(current_user.id)
