"""Engine, session factory and declarative base for the relational store."""

from __future__ import annotations

from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import get_settings

Base = declarative_base()

SessionLocal = sessionmaker(autocommit=False, autoflush=False)

_engine: Optional[Engine] = None


def create_db_engine(database_url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across sessions."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    settings = get_settings()
    return create_engine(
        database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        connect_args={"application_name": settings.app_name},
    )


def get_engine() -> Engine:
    """Return the process engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(get_settings().database_url)
        SessionLocal.configure(bind=_engine)
    return _engine


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
