from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, DeclarativeBase

from .errors import StorageFailure
from .settings import settings

logger = logging.getLogger("recipeshare.db")


class Base(DeclarativeBase):
    pass


_engine = None
_SessionLocal = None


def init_engine(database_url: str | None = None):
    global _engine, _SessionLocal
    url = database_url or settings.database_url
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    _engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)
    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _engine


def SessionLocal():
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def get_db():
    db = SessionLocal()()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session, *, operation: str) -> Iterator[Session]:
    """Commit everything done inside the block as one transaction.

    Any exception rolls the session back. Driver/ORM errors are re-raised as
    StorageFailure so handlers can report them uniformly; domain errors pass
    through untouched.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"{operation} failed, transaction rolled back: {e}")
        raise StorageFailure(f"Database error during {operation}") from e
    except Exception:
        db.rollback()
        raise
