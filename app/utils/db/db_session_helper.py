from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from app.db import SessionLocal, get_engine


@contextmanager
def db_session() -> Iterator[Session]:
    """Session for code running outside a request (socket handlers, tasks)."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
