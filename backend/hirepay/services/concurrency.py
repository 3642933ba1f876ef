# Overview: Service-layer helpers for locking, retries and explicit transaction scopes.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import scoped_session
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Not used for wallet confirmation,
    which must be retried explicitly by the caller.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


class UnitOfWork:
    """
    Explicit transaction scope over the request session.

    Everything written between begin() and commit() lands in a single
    database transaction; rollback() discards all of it. Usable as a
    context manager, which commits on success and rolls back on any
    exception before re-raising it.

        with UnitOfWork() as uow:
            ...
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def begin(self) -> "UnitOfWork":
        if self._active:
            raise RuntimeError("Unit of work already started")
        # Close out whatever the request did before the unit of work
        # (authority lookups, lazy loads) so the scope starts clean.
        # scoped_session does not proxy in_transaction(); ask the real Session
        session = self.session() if isinstance(self.session, scoped_session) else self.session
        if session.in_transaction():
            session.commit()
        self.session.begin()
        self._active = True
        return self

    def commit(self) -> None:
        if not self._active:
            raise RuntimeError("Unit of work not started")
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        finally:
            self._active = False

    def rollback(self) -> None:
        self._active = False
        self.session.rollback()

    def __enter__(self) -> "UnitOfWork":
        return self.begin()

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.rollback()
            return False
        self.commit()
        return False
