"""Convenience exports for ORM models."""
from .conversation import Conversation, ConversationParticipant, DirectMessage, MessageRead, TypingIndicator
from .follow import Follow
from .notification import Notification
from .post import Comment, Like, Post, Share
from .profile import Profile
from .room import ChatRoom, CommunityMember, RoomMessage

__all__ = [
    "ChatRoom",
    "Comment",
    "CommunityMember",
    "Conversation",
    "ConversationParticipant",
    "DirectMessage",
    "Follow",
    "Like",
    "MessageRead",
    "Notification",
    "Post",
    "Profile",
    "RoomMessage",
    "Share",
    "TypingIndicator",
]
