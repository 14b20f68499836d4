"""Engine, session factory and declarative base shared by every model."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import get_settings

settings = get_settings()

# SQLite connections are shared with the threadpool that runs sync endpoints
_connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine: Engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=_connect_args)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def utcnow() -> datetime:
    """Timestamp used for ``created_at`` columns; rows are ordered by it."""

    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps read back from SQLite."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_session() -> Generator[Session, None, None]:
    """Request-scoped session dependency."""
    with SessionLocal() as session:
        yield session


def init_db() -> None:
    """Create any missing tables."""
    # Every model module must be imported so its table is on the metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


__all__ = ["Base", "SessionLocal", "engine", "utcnow", "as_utc", "get_session", "init_db"]
