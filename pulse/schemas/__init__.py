"""Convenience exports for schema layer."""
from .conversations import (
    ConversationListResponse,
    ConversationOpenRequest,
    ConversationResponse,
    DirectMessageCreate,
    DirectMessageListResponse,
    DirectMessageResponse,
    ReadReceiptResponse,
    TypingIndicatorResponse,
    TypingListResponse,
    TypingUpdate,
    UnreadSummaryResponse,
)
from .follow import FollowActionResponse, FollowStatsResponse
from .media import UploadResponse
from .notifications import NotificationListResponse, NotificationResponse, NotificationSummaryResponse
from .posts import (
    CommentCreate,
    CommentListResponse,
    CommentResponse,
    PostCreate,
    PostEngagementResponse,
    PostFeedResponse,
    PostResponse,
    ReelCreate,
)
from .profiles import ProfileListResponse, ProfileResponse, ProfileUpdateRequest, SessionResponse
from .realtime import ChangeFrame, SubscribeFrame, UnsubscribeFrame
from .rooms import (
    MembershipResponse,
    RoomCreate,
    RoomListResponse,
    RoomMessageCreate,
    RoomMessageListResponse,
    RoomMessageResponse,
    RoomResponse,
)

__all__ = [
    "ConversationListResponse",
    "ConversationOpenRequest",
    "ConversationResponse",
    "DirectMessageCreate",
    "DirectMessageListResponse",
    "DirectMessageResponse",
    "ReadReceiptResponse",
    "TypingIndicatorResponse",
    "TypingListResponse",
    "TypingUpdate",
    "UnreadSummaryResponse",
    "FollowActionResponse",
    "FollowStatsResponse",
    "UploadResponse",
    "NotificationListResponse",
    "NotificationResponse",
    "NotificationSummaryResponse",
    "CommentCreate",
    "CommentListResponse",
    "CommentResponse",
    "PostCreate",
    "PostEngagementResponse",
    "PostFeedResponse",
    "PostResponse",
    "ReelCreate",
    "ProfileListResponse",
    "ProfileResponse",
    "ProfileUpdateRequest",
    "SessionResponse",
    "ChangeFrame",
    "SubscribeFrame",
    "UnsubscribeFrame",
]
