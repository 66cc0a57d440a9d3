"""Database connections and initialization helpers."""

import logging
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from pagelens.config import config
from pagelens.models import Base

logger = logging.getLogger(__name__)

_url = make_url(config.DATABASE_URL)

# Engine configuration.
engine = create_engine(
    config.DATABASE_URL,
    connect_args={"check_same_thread": False} if _url.get_backend_name() == "sqlite" else {},
)

# Session factory.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """Create the SQLite data directory (if any) and database tables."""
    if _url.get_backend_name() == "sqlite" and _url.database and _url.database != ":memory:":
        Path(_url.database).parent.mkdir(parents=True, exist_ok=True)

    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized.")


def get_db() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session for FastAPI dependencies.

    Yields:
        Session: A database session that is automatically closed when the
        dependency scope finishes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
