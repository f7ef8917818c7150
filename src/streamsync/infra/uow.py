"""
This is the canonical Unit of Work boundary for StreamSync. All transactional changes must go through this.

Do not open ad hoc sessions elsewhere.

Sync phases, workers and CLI commands each open their own unit of work, so a
failure in one chunk or job never rolls back the work of another.
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator

from sqlalchemy.orm import Session, sessionmaker

from . import db as db_module


@contextlib.contextmanager
def session(factory: sessionmaker | None = None) -> Generator[Session, None, None]:
    """
    Database session context manager for CLI operations and batch jobs.

    Provides Unit of Work semantics:
    - Opens a DB session (from ``factory`` or the process-wide sessionmaker)
    - Yields it for use
    - On success: commits the transaction
    - On exception: rolls back and re-raises the exception
    - Always closes the session

    Usage:
        with session() as db:
            db.add(some_object)
    """
    db = (factory or db_module.get_sessionmaker())()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
