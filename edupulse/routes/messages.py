from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import get_current_user
from ..models import User
from ..responses import ApiResponse, ok, paged
from ..schemas.messaging import ConversationCreate, ConversationOut, MessageCreate, MessageOut, UnreadCount
from ..services import messages as message_service

router = APIRouter(prefix="/messages", tags=["Messages"])


@router.post("/conversations", response_model=ApiResponse[ConversationOut], status_code=status.HTTP_201_CREATED)
def start_conversation(
    payload: ConversationCreate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    conversation = message_service.start_conversation(
        db,
        sender=current_user,
        participant_ids=payload.participant_ids,
        subject=payload.subject,
        message=payload.message,
    )
    summary = message_service.get_conversation(db, conversation_id=conversation.id, user=current_user)
    return ok(ConversationOut.model_validate(summary), "Conversation started")


@router.get("/conversations", response_model=ApiResponse[list[ConversationOut]])
def list_conversations(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    return paged(message_service.list_conversations(db, user=current_user, page=page, limit=limit), ConversationOut)


@router.get("/unread-count", response_model=ApiResponse[UnreadCount])
def unread_count(db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    return ok(UnreadCount(unread=message_service.total_unread(db, user=current_user)))


@router.get("/conversations/{conversation_id}", response_model=ApiResponse[ConversationOut])
def get_conversation(
    conversation_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    summary = message_service.get_conversation(db, conversation_id=conversation_id, user=current_user)
    return ok(ConversationOut.model_validate(summary))


@router.get("/conversations/{conversation_id}/messages", response_model=ApiResponse[list[MessageOut]])
def conversation_messages(
    conversation_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    result = message_service.get_conversation_messages(
        db, conversation_id=conversation_id, user=current_user, page=page, limit=limit
    )
    return paged(result, MessageOut)


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=ApiResponse[MessageOut],
    status_code=status.HTTP_201_CREATED,
)
def send_message(
    conversation_id: int,
    payload: MessageCreate,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    message = message_service.send_message(
        db, conversation_id=conversation_id, sender=current_user, content=payload.content
    )
    return ok(MessageOut.model_validate(message), "Message sent")
