"""Direct conversation routes."""
from __future__ import annotations

from typing import cast
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import Profile
from ..schemas import (
    ConversationListResponse,
    ConversationOpenRequest,
    ConversationResponse,
    DirectMessageCreate,
    DirectMessageListResponse,
    DirectMessageResponse,
    ProfileResponse,
    ReadReceiptResponse,
    TypingIndicatorResponse,
    TypingListResponse,
    TypingUpdate,
    UnreadSummaryResponse,
)
from ..services import (
    count_unread_conversations,
    find_or_create_conversation,
    get_current_profile,
    get_profile_or_404,
    list_conversations,
    list_direct_messages,
    list_typing,
    mark_conversation_read,
    send_direct_message,
    set_typing_state,
)

router = APIRouter(prefix="/conversations", tags=["conversations"])


def _to_conversation_response(entry: dict) -> ConversationResponse:
    last = entry.get("last_message")
    return ConversationResponse(
        id=entry["id"],
        created_at=entry["created_at"],
        other_user=ProfileResponse.model_validate(entry["other_user"]),
        last_message=DirectMessageResponse.model_validate(last) if last is not None else None,
    )


@router.get("/", response_model=ConversationListResponse)
async def list_conversations_endpoint(
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> ConversationListResponse:
    entries = list_conversations(db, viewer_id=cast(UUID, current_user.id))
    return ConversationListResponse(items=[_to_conversation_response(entry) for entry in entries])


@router.post("/", response_model=ConversationResponse)
async def open_conversation_endpoint(
    payload: ConversationOpenRequest,
    response: Response,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> ConversationResponse:
    conversation, created = find_or_create_conversation(db, viewer=current_user, other_id=payload.user_id)
    if created:
        response.status_code = status.HTTP_201_CREATED
    return _to_conversation_response(
        {
            "id": conversation.id,
            "created_at": conversation.created_at,
            "other_user": get_profile_or_404(db, payload.user_id),
            "last_message": None,
        }
    )


@router.get("/unread", response_model=UnreadSummaryResponse)
async def unread_summary_endpoint(
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> UnreadSummaryResponse:
    return UnreadSummaryResponse(unread_count=count_unread_conversations(db, user_id=cast(UUID, current_user.id)))


@router.get("/{conversation_id}/messages", response_model=DirectMessageListResponse)
async def list_messages_endpoint(
    conversation_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> DirectMessageListResponse:
    records = list_direct_messages(db, conversation_id=conversation_id, viewer_id=cast(UUID, current_user.id))
    return DirectMessageListResponse(
        conversation_id=conversation_id,
        messages=[DirectMessageResponse.model_validate(item) for item in records],
    )


@router.post(
    "/{conversation_id}/messages",
    response_model=DirectMessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message_endpoint(
    conversation_id: UUID,
    payload: DirectMessageCreate,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> DirectMessageResponse:
    message = send_direct_message(db, conversation_id=conversation_id, sender=current_user, payload=payload)
    return DirectMessageResponse.model_validate(message)


@router.post("/{conversation_id}/read", response_model=ReadReceiptResponse)
async def mark_read_endpoint(
    conversation_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> ReadReceiptResponse:
    record = mark_conversation_read(db, conversation_id=conversation_id, user_id=cast(UUID, current_user.id))
    return ReadReceiptResponse.model_validate(record)


@router.put("/{conversation_id}/typing", response_model=TypingIndicatorResponse)
async def set_typing_endpoint(
    conversation_id: UUID,
    payload: TypingUpdate,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> TypingIndicatorResponse:
    record = set_typing_state(
        db,
        conversation_id=conversation_id,
        user_id=cast(UUID, current_user.id),
        is_typing=payload.is_typing,
    )
    return TypingIndicatorResponse.model_validate(record)


@router.get("/{conversation_id}/typing", response_model=TypingListResponse)
async def list_typing_endpoint(
    conversation_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> TypingListResponse:
    records = list_typing(db, conversation_id=conversation_id, viewer_id=cast(UUID, current_user.id))
    return TypingListResponse(items=[TypingIndicatorResponse.model_validate(item) for item in records])


__all__ = ["router"]
