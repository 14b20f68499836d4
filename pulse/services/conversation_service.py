"""Direct conversations: lookup, messages, read receipts and typing state."""
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..constants import DM_POLICY_FOLLOWERS, DM_POLICY_NONE
from ..database import as_utc, utcnow
from ..models import (
    Conversation,
    ConversationParticipant,
    DirectMessage,
    MessageRead,
    Profile,
    TypingIndicator,
)
from ..schemas import DirectMessageCreate
from .changefeed import emit_change
from .follow_service import is_following
from .notification_service import NotificationType, add_notification
from .profile_service import get_profile_or_404

logger = logging.getLogger(__name__)


def pair_key(first: UUID, second: UUID) -> str:
    """Order-independent key identifying the conversation between two users."""

    return ":".join(sorted((str(first), str(second))))


def ensure_dm_allowed(db: Session, *, sender_id: UUID, recipient: Profile) -> None:
    """Apply the recipient's ``allow_dm_from`` setting to ``sender_id``."""

    policy = recipient.allow_dm_from or "everyone"
    if policy == DM_POLICY_NONE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This user is not accepting messages")
    if policy == DM_POLICY_FOLLOWERS and not is_following(db, follower_id=sender_id, following_id=recipient.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="This user only accepts messages from followers"
        )


def participant_ids(db: Session, conversation_id: UUID) -> list[UUID]:
    stmt = select(ConversationParticipant.user_id).where(ConversationParticipant.conversation_id == conversation_id)
    return list(db.scalars(stmt))


def _require_participant(db: Session, conversation_id: UUID, user_id: UUID) -> tuple[Conversation, list[UUID]]:
    conversation = db.get(Conversation, conversation_id)
    members = participant_ids(db, conversation_id) if conversation is not None else []
    if conversation is None or user_id not in members:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return conversation, members


def _other_participant(members: list[UUID], user_id: UUID) -> UUID | None:
    for member in members:
        if member != user_id:
            return member
    return None


def find_or_create_conversation(db: Session, *, viewer: Profile, other_id: UUID) -> tuple[Conversation, bool]:
    """Return the single conversation between ``viewer`` and ``other_id``, creating it if needed."""

    if viewer.id == other_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot message yourself")
    other = get_profile_or_404(db, other_id)

    key = pair_key(viewer.id, other_id)
    existing = db.scalar(select(Conversation).where(Conversation.pair_key == key))
    if existing is not None:
        return existing, False

    ensure_dm_allowed(db, sender_id=viewer.id, recipient=other)

    conversation = Conversation(pair_key=key)
    db.add(conversation)
    try:
        db.flush()
        db.add_all(
            [
                ConversationParticipant(conversation_id=conversation.id, user_id=viewer.id),
                ConversationParticipant(conversation_id=conversation.id, user_id=other_id),
            ]
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = db.scalar(select(Conversation).where(Conversation.pair_key == key))
        if existing is None:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to start conversation"
            )
        return existing, False
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to create conversation %s", key)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to start conversation"
        ) from exc

    audience = [viewer.id, other_id]
    emit_change("conversations", "INSERT", new=conversation, audience=audience)
    for member_id in audience:
        emit_change(
            "conversation_participants",
            "INSERT",
            new={"conversation_id": str(conversation.id), "user_id": str(member_id)},
            audience=audience,
        )
    return conversation, True


def _last_message(db: Session, conversation_id: UUID) -> DirectMessage | None:
    stmt = (
        select(DirectMessage)
        .where(DirectMessage.conversation_id == conversation_id)
        .order_by(DirectMessage.created_at.desc())
        .limit(1)
    )
    return db.scalar(stmt)


def list_conversations(db: Session, *, viewer_id: UUID) -> list[dict[str, Any]]:
    """One entry per conversation with the other user and a last-message preview.

    Conversations that never received a message are only listed when the
    viewer follows the other participant.
    """

    stmt = (
        select(Conversation)
        .join(ConversationParticipant, ConversationParticipant.conversation_id == Conversation.id)
        .where(ConversationParticipant.user_id == viewer_id)
    )
    entries: list[dict[str, Any]] = []
    for conversation in db.scalars(stmt):
        other_id = _other_participant(participant_ids(db, conversation.id), viewer_id)
        if other_id is None:
            continue
        other = db.get(Profile, other_id)
        if other is None:
            continue
        last = _last_message(db, conversation.id)
        if last is None and not is_following(db, follower_id=viewer_id, following_id=other_id):
            continue
        entries.append(
            {
                "id": conversation.id,
                "created_at": conversation.created_at,
                "other_user": other,
                "last_message": last,
            }
        )

    def _activity(entry: dict[str, Any]):
        last = entry["last_message"]
        return as_utc(last.created_at if last is not None else entry["created_at"])

    entries.sort(key=_activity, reverse=True)
    return entries


def list_direct_messages(db: Session, *, conversation_id: UUID, viewer_id: UUID) -> list[DirectMessage]:
    _require_participant(db, conversation_id, viewer_id)
    stmt = (
        select(DirectMessage)
        .where(DirectMessage.conversation_id == conversation_id)
        .order_by(DirectMessage.created_at.asc())
    )
    return list(db.scalars(stmt))


def send_direct_message(
    db: Session, *, conversation_id: UUID, sender: Profile, payload: DirectMessageCreate
) -> DirectMessage:
    _, members = _require_participant(db, conversation_id, sender.id)
    recipient_id = _other_participant(members, sender.id)
    recipient = db.get(Profile, recipient_id) if recipient_id is not None else None
    if recipient is not None:
        ensure_dm_allowed(db, sender_id=sender.id, recipient=recipient)

    message = DirectMessage(
        conversation_id=conversation_id,
        user_id=sender.id,
        content=payload.content,
        image_url=payload.image_url,
        video_url=payload.video_url,
    )
    db.add(message)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to send message") from exc
    db.refresh(message)
    emit_change("direct_messages", "INSERT", new=message, audience=members)

    if recipient is not None:
        preview = payload.content or ("sent an attachment" if (payload.image_url or payload.video_url) else "")
        add_notification(
            db,
            recipient_id=recipient.id,
            sender=sender,
            type_=NotificationType.MESSAGE,
            content=f"{sender.username}: {preview}"[:500],
            related_conversation_id=conversation_id,
        )
    return message


def mark_conversation_read(db: Session, *, conversation_id: UUID, user_id: UUID) -> MessageRead:
    _require_participant(db, conversation_id, user_id)
    record = db.get(MessageRead, (conversation_id, user_id))
    event = "UPDATE"
    if record is None:
        record = MessageRead(conversation_id=conversation_id, user_id=user_id)
        db.add(record)
        event = "INSERT"
    record.last_read_at = utcnow()
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to update read receipt"
        ) from exc
    emit_change("message_reads", event, new=record, audience=[user_id])
    return record


def count_unread_conversations(db: Session, *, user_id: UUID) -> int:
    """Conversations whose newest message is from someone else and newer than the last read."""

    stmt = select(ConversationParticipant.conversation_id).where(ConversationParticipant.user_id == user_id)
    unread = 0
    for conversation_id in db.scalars(stmt):
        last = _last_message(db, conversation_id)
        if last is None or last.user_id == user_id:
            continue
        receipt = db.get(MessageRead, (conversation_id, user_id))
        if receipt is None or as_utc(last.created_at) > as_utc(receipt.last_read_at):
            unread += 1
    return unread


def set_typing_state(db: Session, *, conversation_id: UUID, user_id: UUID, is_typing: bool) -> TypingIndicator:
    _, members = _require_participant(db, conversation_id, user_id)
    record = db.get(TypingIndicator, (conversation_id, user_id))
    event = "UPDATE"
    if record is None:
        record = TypingIndicator(conversation_id=conversation_id, user_id=user_id)
        db.add(record)
        event = "INSERT"
    record.is_typing = is_typing
    record.updated_at = utcnow()
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to update typing state"
        ) from exc
    emit_change("typing_indicators", event, new=record, audience=members)
    return record


def list_typing(db: Session, *, conversation_id: UUID, viewer_id: UUID) -> list[TypingIndicator]:
    _require_participant(db, conversation_id, viewer_id)
    stmt = select(TypingIndicator).where(TypingIndicator.conversation_id == conversation_id)
    return list(db.scalars(stmt))


__all__ = [
    "pair_key",
    "ensure_dm_allowed",
    "participant_ids",
    "find_or_create_conversation",
    "list_conversations",
    "list_direct_messages",
    "send_direct_message",
    "mark_conversation_read",
    "count_unread_conversations",
    "set_typing_state",
    "list_typing",
]
