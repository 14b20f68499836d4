"""Aggregate router exports."""
from .auth import router as auth_router
from .conversations import router as conversations_router
from .follows import router as follows_router
from .notifications import router as notifications_router
from .posts import router as posts_router
from .profiles import router as profiles_router
from .realtime import router as realtime_router
from .rooms import router as rooms_router
from .uploads import router as uploads_router

__all__ = [
    "auth_router",
    "conversations_router",
    "follows_router",
    "notifications_router",
    "posts_router",
    "profiles_router",
    "realtime_router",
    "rooms_router",
    "uploads_router",
]
