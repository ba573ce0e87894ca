"""Database engine & session utilities.

The DB helper is deliberately minimal: sync engine + classic session maker.
Async code paths hand the blocking calls to a worker thread.
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker

from audio_assembly.config import settings
from audio_assembly.db.base import Base
from audio_assembly import models  # noqa: F401 - registers every table on Base

logger = logging.getLogger(__name__)


def build_engine(url: str, echo: bool = False):
    """Create an engine, applying the SQLite tweaks needed for threaded use."""
    kwargs = {"echo": echo, "future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            # A single shared connection, otherwise every checkout sees an empty DB
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


# ---------------------------------------------------------------------------
# Engine & session factory
# ---------------------------------------------------------------------------

logger.info("Creating database engine for %s", settings.DATABASE_URL.split('@')[-1])
engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def create_tables(bind=None) -> None:
    """Create all tables if they do not yet exist. Harmless when they do."""
    try:
        Base.metadata.create_all(bind=bind or engine)
        logger.info("Database tables ensured")
    except Exception as exc:  # broad except OK in one-off helper
        logger.exception("Could not create DB tables: %s", exc)


def get_db():
    """Yields a database session and ensures it's closed after use."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        logger.debug("DB session closed")
