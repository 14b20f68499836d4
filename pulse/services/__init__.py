"""Convenience exports for service layer."""
from .auth_service import (
    AuthIdentity,
    LoginRequiredError,
    create_access_token,
    decode_access_token,
    get_current_identity,
    get_current_profile,
)
from .changefeed import ChangeEvent, Subscription, change_feed_manager, emit_change, parse_filter
from .conversation_service import (
    count_unread_conversations,
    ensure_dm_allowed,
    find_or_create_conversation,
    list_conversations,
    list_direct_messages,
    list_typing,
    mark_conversation_read,
    pair_key,
    send_direct_message,
    set_typing_state,
)
from .follow_service import (
    FollowStats,
    follow_user,
    get_follow_stats,
    is_following,
    list_followers,
    list_following,
    unfollow_user,
)
from .notification_service import (
    NotificationType,
    add_notification,
    count_unread_notifications,
    list_notifications,
    mark_all_read,
    mark_notification_read,
)
from .post_service import (
    compose_reel_caption,
    create_post_comment,
    create_post_record,
    create_reel_record,
    delete_post_comment,
    delete_post_record,
    list_feed_records,
    list_liked_posts,
    list_post_comments,
    list_reel_records,
    list_user_posts,
    normalize_hashtags,
    post_engagement_snapshot,
    serialize_posts,
    set_post_like_state,
    set_post_share_state,
)
from .profile_service import (
    derive_username,
    get_profile_or_404,
    provision_profile,
    search_profiles,
    update_profile,
)
from .room_service import (
    create_room,
    join_room,
    leave_room,
    list_room_messages,
    list_rooms,
    member_room_ids,
    send_room_message,
)
from .storage_service import (
    StorageConfigurationError,
    StorageUploadError,
    get_storage_client,
    load_storage_config,
    upload_to_storage,
)

__all__ = [
    "AuthIdentity",
    "LoginRequiredError",
    "create_access_token",
    "decode_access_token",
    "get_current_identity",
    "get_current_profile",
    "ChangeEvent",
    "Subscription",
    "change_feed_manager",
    "emit_change",
    "parse_filter",
    "count_unread_conversations",
    "ensure_dm_allowed",
    "find_or_create_conversation",
    "list_conversations",
    "list_direct_messages",
    "list_typing",
    "mark_conversation_read",
    "pair_key",
    "send_direct_message",
    "set_typing_state",
    "FollowStats",
    "follow_user",
    "get_follow_stats",
    "is_following",
    "list_followers",
    "list_following",
    "unfollow_user",
    "NotificationType",
    "add_notification",
    "count_unread_notifications",
    "list_notifications",
    "mark_all_read",
    "mark_notification_read",
    "compose_reel_caption",
    "create_post_comment",
    "create_post_record",
    "create_reel_record",
    "delete_post_comment",
    "delete_post_record",
    "list_feed_records",
    "list_liked_posts",
    "list_post_comments",
    "list_reel_records",
    "list_user_posts",
    "normalize_hashtags",
    "post_engagement_snapshot",
    "serialize_posts",
    "set_post_like_state",
    "set_post_share_state",
    "derive_username",
    "get_profile_or_404",
    "provision_profile",
    "search_profiles",
    "update_profile",
    "create_room",
    "join_room",
    "leave_room",
    "list_room_messages",
    "list_rooms",
    "member_room_ids",
    "send_room_message",
    "StorageConfigurationError",
    "StorageUploadError",
    "get_storage_client",
    "load_storage_config",
    "upload_to_storage",
]
