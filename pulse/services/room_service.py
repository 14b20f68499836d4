"""Community chat rooms: listing, membership and room messages."""
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import ChatRoom, CommunityMember, Profile, RoomMessage
from ..schemas import RoomCreate, RoomMessageCreate
from .changefeed import emit_change

logger = logging.getLogger(__name__)


def _get_room_or_404(db: Session, room_id: UUID) -> ChatRoom:
    room = db.get(ChatRoom, room_id)
    if room is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return room


def is_member(db: Session, *, room_id: UUID, user_id: UUID) -> bool:
    return db.get(CommunityMember, (room_id, user_id)) is not None


def list_rooms(db: Session) -> list[ChatRoom]:
    return list(db.scalars(select(ChatRoom).order_by(ChatRoom.created_at.asc())))


def member_room_ids(db: Session, *, user_id: UUID) -> set[UUID]:
    return set(db.scalars(select(CommunityMember.room_id).where(CommunityMember.user_id == user_id)))


def create_room(db: Session, *, creator: Profile, payload: RoomCreate) -> ChatRoom:
    """Create a room with its creator as the first member."""

    room = ChatRoom(
        name=payload.name.strip(),
        description=(payload.description or "").strip() or None,
        created_by=creator.id,
        is_private=payload.is_private,
        banner_url=payload.banner_url,
        member_count=1,
    )
    db.add(room)
    try:
        db.flush()
        db.add(CommunityMember(room_id=room.id, user_id=creator.id))
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to create room %r", payload.name)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to create room") from exc
    db.refresh(room)
    emit_change("chat_rooms", "INSERT", new=room)
    return room


def _membership(room: ChatRoom, *, is_member_: bool, changed: bool, joined: bool) -> dict[str, Any]:
    if not changed:
        state = "noop"
    else:
        state = "joined" if joined else "left"
    return {
        "room_id": room.id,
        "member_count": int(room.member_count or 0),
        "is_member": is_member_,
        "status": state,
    }


def join_room(db: Session, *, room_id: UUID, user_id: UUID) -> dict[str, Any]:
    """Add the membership row and bump ``member_count`` in one transaction."""

    room = _get_room_or_404(db, room_id)
    if is_member(db, room_id=room_id, user_id=user_id):
        return _membership(room, is_member_=True, changed=False, joined=True)

    member = CommunityMember(room_id=room_id, user_id=user_id)
    db.add(member)
    try:
        db.flush()
        db.execute(
            update(ChatRoom)
            .where(ChatRoom.id == room_id)
            .values(member_count=ChatRoom.member_count + 1)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        db.refresh(room)
        return _membership(room, is_member_=True, changed=False, joined=True)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to join room") from exc

    db.refresh(room)
    emit_change("community_members", "INSERT", new=member)
    emit_change("chat_rooms", "UPDATE", new=room)
    return _membership(room, is_member_=True, changed=True, joined=True)


def leave_room(db: Session, *, room_id: UUID, user_id: UUID) -> dict[str, Any]:
    room = _get_room_or_404(db, room_id)
    member = db.get(CommunityMember, (room_id, user_id))
    if member is None:
        return _membership(room, is_member_=False, changed=False, joined=False)

    old = {"room_id": str(room_id), "user_id": str(user_id)}
    try:
        db.delete(member)
        db.flush()
        db.execute(
            update(ChatRoom)
            .where(ChatRoom.id == room_id, ChatRoom.member_count > 0)
            .values(member_count=ChatRoom.member_count - 1)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to leave room") from exc

    db.refresh(room)
    emit_change("community_members", "DELETE", old=old)
    emit_change("chat_rooms", "UPDATE", new=room)
    return _membership(room, is_member_=False, changed=True, joined=False)


def _ensure_can_access(db: Session, room: ChatRoom, user_id: UUID) -> None:
    if room.is_private and not is_member(db, room_id=room.id, user_id=user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Join this room to see its messages")


def list_room_messages(db: Session, *, room_id: UUID, user_id: UUID) -> list[RoomMessage]:
    room = _get_room_or_404(db, room_id)
    _ensure_can_access(db, room, user_id)
    stmt = select(RoomMessage).where(RoomMessage.room_id == room_id).order_by(RoomMessage.created_at.asc())
    return list(db.scalars(stmt))


def send_room_message(db: Session, *, room_id: UUID, sender: Profile, payload: RoomMessageCreate) -> RoomMessage:
    room = _get_room_or_404(db, room_id)
    _ensure_can_access(db, room, sender.id)

    message = RoomMessage(
        room_id=room_id,
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
    audience = None
    if room.is_private:
        audience = db.scalars(select(CommunityMember.user_id).where(CommunityMember.room_id == room_id)).all()
    emit_change("messages", "INSERT", new=message, audience=audience)
    return message


__all__ = [
    "is_member",
    "list_rooms",
    "member_room_ids",
    "create_room",
    "join_room",
    "leave_room",
    "list_room_messages",
    "send_room_message",
]
