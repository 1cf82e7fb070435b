"""SQLAlchemy engine and session setup."""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from rentalhost.config import get_database_url


class Base(DeclarativeBase):
    pass


def _connect_args(url: str) -> dict:
    # SQLite needs this for multi-thread use by the scheduler
    return {"check_same_thread": False} if url.startswith("sqlite") else {}


engine = create_engine(
    get_database_url(),
    echo=False,
    connect_args=_connect_args(get_database_url()),
)

SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def get_session() -> Session:
    """Create a new database session."""
    return SessionLocal()


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the form every column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime | date) -> datetime:
    """Normalize a date or (aware or naive) datetime to naive UTC."""
    if not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def init_db() -> None:
    """Create all tables. Import models first so they register with Base."""
    import rentalhost.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
