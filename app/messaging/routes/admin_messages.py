from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth.dependencies import require_admin
from app.auth.models.user import User
from app.db.session import get_db
from app.messaging.schemas.message import AuditMessageResponse, ConversationTranscript
from app.messaging.services.message_service import MessageService

router = APIRouter()


@router.get("/conversations/{conversation_id}", response_model=ConversationTranscript)
def admin_get_transcript(
    conversation_id: UUID,
    _current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ConversationTranscript:
    service = MessageService(db)
    return service.get_transcript(conversation_id)


@router.get(
    "/conversations/{conversation_id}/messages/{message_id}",
    response_model=AuditMessageResponse,
)
def admin_get_message(
    conversation_id: UUID,
    message_id: UUID,
    _current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AuditMessageResponse:
    service = MessageService(db)
    return service.get_message_for_audit(conversation_id, message_id)
