from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from .exceptions import ConcurrencyConflictError


class UnitOfWork:
    """One transaction per ``begin()`` block: commit on success, rollback on error."""

    def __init__(self, SessionLocal: sessionmaker[Session]):
        self.SessionLocal = SessionLocal

    @contextmanager
    def begin(self) -> Iterator[Session]:
        s = self.SessionLocal()
        try:
            yield s
            s.commit()
        except StaleDataError as exc:
            s.rollback()
            raise ConcurrencyConflictError(str(exc)) from exc
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()
