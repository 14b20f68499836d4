"""SQLAlchemy ORM model for user profiles."""
from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import expression, func

from pulse.database import Base, utcnow


class Profile(Base):
    __tablename__ = "profiles"

    # Same identifier as the authenticated user; one profile per session identity.
    id = Column(UUID(as_uuid=True), primary_key=True)
    username = Column(String(150), unique=True, nullable=False, index=True)
    display_name = Column(String(150), nullable=False)
    avatar_url = Column(String(1024), nullable=True)
    bio = Column(String(500), nullable=True)
    likes_private = Column(Boolean, nullable=False, server_default=expression.false(), default=False)
    followers_private = Column(Boolean, nullable=False, server_default=expression.false(), default=False)
    allow_dm_from = Column(String(16), nullable=False, server_default="everyone", default="everyone")
    is_admin = Column(Boolean, nullable=False, server_default=expression.false(), default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), default=utcnow, onupdate=utcnow, nullable=False
    )

    posts = relationship("Post", back_populates="author", cascade="all, delete-orphan")
    follower_relations = relationship(
        "Follow",
        foreign_keys="Follow.following_id",
        back_populates="following",
        cascade="all, delete-orphan",
    )
    following_relations = relationship(
        "Follow",
        foreign_keys="Follow.follower_id",
        back_populates="follower",
        cascade="all, delete-orphan",
    )


__all__ = ["Profile"]
