"""
Database Models and Connection Management

This module defines the SQLAlchemy ORM model for persisted settings and
provides database connection management.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine, Column, Integer, String, Text, DateTime, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..core.config import settings


# Create declarative base
Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Setting(Base):
    """A persisted key/value setting (values are JSON encoded)"""
    __tablename__ = 'settings'

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<Setting(key='{self.key}', value={self.value})>"


# Database connection management
_engine = None
_SessionLocal = None


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    Args:
        url: Database URL
        echo: Echo SQL statements

    Returns:
        SQLAlchemy engine
    """
    if url.startswith("sqlite"):
        # Make sure the database directory exists
        path = url.split("///", 1)[1] if "///" in url else ""
        if path and path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        return engine

    return create_engine(url, pool_size=settings.database.pool_size, echo=echo)


def get_engine(database_url: Optional[str] = None) -> Engine:
    """
    Get or create the shared database engine.

    Args:
        database_url: Optional database URL (uses settings if not specified)

    Returns:
        SQLAlchemy engine
    """
    global _engine

    if _engine is None:
        _engine = create_db_engine(database_url or settings.database.url, settings.database.echo)

    return _engine


def get_session_factory(engine: Optional[Engine] = None):
    """
    Get session factory.

    Args:
        engine: Engine to bind (the shared engine if not specified)

    Returns:
        Session factory
    """
    global _SessionLocal

    if engine is not None:
        return sessionmaker(autocommit=False, autoflush=False, bind=engine)

    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine()
        )

    return _SessionLocal


def init_db(engine: Optional[Engine] = None):
    """
    Create all tables.

    Args:
        engine: Engine to use (the shared engine if not specified)
    """
    Base.metadata.create_all(bind=engine or get_engine())


class DatabaseSession:
    """Context manager for database sessions"""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or get_session_factory()
        self.session = None

    def __enter__(self) -> Session:
        self.session = self.session_factory()
        return self.session

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.session.rollback()
        else:
            self.session.commit()
        self.session.close()
