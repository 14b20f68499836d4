"""Client-side sync layer: local store kept current from the change feed."""
from .attachments import Attachment, AttachmentPipeline, UploadedAttachment, destination_path, validate_attachment
from .client import BackendClient
from .config import ClientSettings, get_client_settings
from .errors import (
    BackendError,
    BackendReadError,
    BackendWriteError,
    ConfigurationError,
    DirectMessageBlocked,
    LoginRequired,
    SyncError,
    ValidationError,
)
from .loader import ListLoader
from .mutations import MutationDispatcher, PendingMutation
from .policy import check_dm_policy
from .presence import TypingTracker
from .session import SessionResolver, SessionState
from .store import ChangeRecord, Collection, LocalStore, ProfileCache, count_edges, mirror_rows
from .subscriber import ChangeSource, ChangeSourceClosed, ChangeSubscriber, WebSocketChangeSource
from .views import (
    ChatRoomSync,
    CommentsSync,
    ConversationListSync,
    ConversationSync,
    FeedSync,
    NotificationsSync,
    ProfileSync,
    RoomListSync,
    SyncContext,
)

__all__ = [
    "Attachment",
    "AttachmentPipeline",
    "UploadedAttachment",
    "destination_path",
    "validate_attachment",
    "BackendClient",
    "ClientSettings",
    "get_client_settings",
    "BackendError",
    "BackendReadError",
    "BackendWriteError",
    "ConfigurationError",
    "DirectMessageBlocked",
    "LoginRequired",
    "SyncError",
    "ValidationError",
    "ListLoader",
    "MutationDispatcher",
    "PendingMutation",
    "check_dm_policy",
    "TypingTracker",
    "SessionResolver",
    "SessionState",
    "ChangeRecord",
    "Collection",
    "LocalStore",
    "ProfileCache",
    "count_edges",
    "mirror_rows",
    "ChangeSource",
    "ChangeSourceClosed",
    "ChangeSubscriber",
    "WebSocketChangeSource",
    "ChatRoomSync",
    "CommentsSync",
    "ConversationListSync",
    "ConversationSync",
    "FeedSync",
    "NotificationsSync",
    "ProfileSync",
    "RoomListSync",
    "SyncContext",
]
