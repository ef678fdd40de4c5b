from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url

_engine_options: dict = {}
if DATABASE_URL.startswith("sqlite"):
    # A single shared connection keeps in-memory databases alive across sessions
    _engine_options = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}

engine = create_engine(DATABASE_URL, **_engine_options)

SessionLocal = sessionmaker(bind=engine)
Base = declarative_base()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commits on success, rolls back and re-raises on any error."""
    try:
        yield db
        db.commit()
    except Exception:
        logger.debug("Rolling back transaction")
        db.rollback()
        raise
