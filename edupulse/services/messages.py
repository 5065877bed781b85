from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ..app_logger import get_logger
from ..errors import AuthorizationError, BadRequestError, NotFoundError
from ..models import Conversation, ConversationParticipant, Message, User, utcnow
from ..pagination import Page, paginate, paginate_list
from .common import get_or_404, save
from .notifications import notify

logger = get_logger("messages")

PREVIEW_LENGTH = 80


def _participant(db: Session, conversation_id: int, user_id: int) -> ConversationParticipant | None:
    return (
        db.query(ConversationParticipant)
        .filter(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.user_id == user_id,
        )
        .first()
    )


def _membership(db: Session, conversation_id: int, user: User) -> tuple[Conversation, ConversationParticipant]:
    conversation = get_or_404(db, Conversation, conversation_id, "Conversation")
    membership = _participant(db, conversation.id, user.id)
    if membership is None:
        raise AuthorizationError("You are not a participant in this conversation")
    return conversation, membership


def _notify_others(db: Session, conversation: Conversation, sender: User, content: str) -> None:
    preview = content if len(content) <= PREVIEW_LENGTH else content[: PREVIEW_LENGTH - 3] + "..."
    for participant in conversation.participants:
        if participant.user_id == sender.id:
            continue
        notify(
            db,
            user_id=participant.user_id,
            type="NEW_MESSAGE",
            title=f"New message from {sender.full_name}",
            message=preview,
            link=f"/messages/{conversation.id}",
        )


def unread_in(db: Session, membership: ConversationParticipant) -> int:
    query = db.query(func.count(Message.id)).filter(
        Message.conversation_id == membership.conversation_id,
        Message.sender_id != membership.user_id,
    )
    if membership.last_read_at is not None:
        query = query.filter(Message.created_at > membership.last_read_at)
    return query.scalar() or 0


def start_conversation(
    db: Session, *, sender: User, participant_ids: list[int], subject: str | None = None, message: str | None = None
) -> Conversation:
    user_ids = {user_id for user_id in participant_ids if user_id != sender.id}
    if not user_ids:
        raise BadRequestError("A conversation needs at least one other participant")
    found = db.query(User.id).filter(User.id.in_(user_ids)).all()
    missing = user_ids - {user_id for (user_id,) in found}
    if missing:
        raise NotFoundError(f"Users {sorted(missing)}")

    now = utcnow()
    conversation = Conversation(subject=subject)
    conversation.participants.append(ConversationParticipant(user_id=sender.id, last_read_at=now))
    for user_id in sorted(user_ids):
        conversation.participants.append(ConversationParticipant(user_id=user_id))
    db.add(conversation)
    if message:
        conversation.messages.append(Message(sender_id=sender.id, content=message, created_at=now))
        db.flush()
        _notify_others(db, conversation, sender, message)
    save(db, conversation)
    logger.info("User %s started conversation %s with %s", sender.id, conversation.id, sorted(user_ids))
    return conversation


def conversation_summary(db: Session, conversation: Conversation, membership: ConversationParticipant) -> dict:
    last_message = (
        db.query(Message)
        .filter(Message.conversation_id == conversation.id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .first()
    )
    return {
        "id": conversation.id,
        "subject": conversation.subject,
        "participants": [participant.user for participant in conversation.participants],
        "last_message": last_message,
        "unread_count": unread_in(db, membership),
        "created_at": conversation.created_at,
        "updated_at": conversation.updated_at,
    }


def list_conversations(db: Session, *, user: User, page: int = 1, limit: int = 10) -> Page:
    memberships = (
        db.query(ConversationParticipant)
        .join(ConversationParticipant.conversation)
        .options(joinedload(ConversationParticipant.conversation))
        .filter(ConversationParticipant.user_id == user.id)
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        .all()
    )
    summaries = [conversation_summary(db, item.conversation, item) for item in memberships]
    return paginate_list(summaries, page, limit)


def get_conversation(db: Session, *, conversation_id: int, user: User) -> dict:
    conversation, membership = _membership(db, conversation_id, user)
    return conversation_summary(db, conversation, membership)


def get_conversation_messages(
    db: Session, *, conversation_id: int, user: User, page: int = 1, limit: int = 10
) -> Page:
    conversation, membership = _membership(db, conversation_id, user)
    query = (
        db.query(Message)
        .options(joinedload(Message.sender))
        .filter(Message.conversation_id == conversation.id)
        .order_by(Message.created_at.desc(), Message.id.desc())
    )
    result = paginate(query, page, limit)
    membership.last_read_at = utcnow()
    db.commit()
    return result


def send_message(db: Session, *, conversation_id: int, sender: User, content: str) -> Message:
    conversation, membership = _membership(db, conversation_id, sender)
    now = utcnow()
    message = Message(conversation_id=conversation.id, sender_id=sender.id, content=content, created_at=now)
    db.add(message)
    membership.last_read_at = now
    conversation.updated_at = now
    _notify_others(db, conversation, sender, content)
    save(db, message)
    return message


def total_unread(db: Session, *, user: User) -> int:
    return (
        db.query(func.count(Message.id))
        .join(
            ConversationParticipant,
            ConversationParticipant.conversation_id == Message.conversation_id,
        )
        .filter(
            ConversationParticipant.user_id == user.id,
            Message.sender_id != user.id,
            or_(
                ConversationParticipant.last_read_at.is_(None),
                Message.created_at > ConversationParticipant.last_read_at,
            ),
        )
        .scalar()
        or 0
    )
