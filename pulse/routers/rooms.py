"""Community chat room routes."""
from __future__ import annotations

from typing import cast
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import Profile
from ..schemas import (
    MembershipResponse,
    RoomCreate,
    RoomListResponse,
    RoomMessageCreate,
    RoomMessageListResponse,
    RoomMessageResponse,
    RoomResponse,
)
from ..services import (
    create_room,
    get_current_profile,
    join_room,
    leave_room,
    list_room_messages,
    list_rooms,
    member_room_ids,
    send_room_message,
)

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.get("/", response_model=RoomListResponse)
async def list_rooms_endpoint(
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> RoomListResponse:
    joined = member_room_ids(db, user_id=cast(UUID, current_user.id))
    items = []
    for room in list_rooms(db):
        item = RoomResponse.model_validate(room)
        item.is_member = room.id in joined
        items.append(item)
    return RoomListResponse(items=items)


@router.post("/", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room_endpoint(
    payload: RoomCreate,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> RoomResponse:
    item = RoomResponse.model_validate(create_room(db, creator=current_user, payload=payload))
    item.is_member = True
    return item


@router.put("/{room_id}/membership", response_model=MembershipResponse)
async def join_room_endpoint(
    room_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> MembershipResponse:
    return MembershipResponse(**join_room(db, room_id=room_id, user_id=cast(UUID, current_user.id)))


@router.delete("/{room_id}/membership", response_model=MembershipResponse)
async def leave_room_endpoint(
    room_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> MembershipResponse:
    return MembershipResponse(**leave_room(db, room_id=room_id, user_id=cast(UUID, current_user.id)))


@router.get("/{room_id}/messages", response_model=RoomMessageListResponse)
async def room_messages_endpoint(
    room_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> RoomMessageListResponse:
    records = list_room_messages(db, room_id=room_id, user_id=cast(UUID, current_user.id))
    return RoomMessageListResponse(
        room_id=room_id,
        messages=[RoomMessageResponse.model_validate(item) for item in records],
    )


@router.post("/{room_id}/messages", response_model=RoomMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_room_message_endpoint(
    room_id: UUID,
    payload: RoomMessageCreate,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> RoomMessageResponse:
    message = send_room_message(db, room_id=room_id, sender=current_user, payload=payload)
    return RoomMessageResponse.model_validate(message)


__all__ = ["router"]
