# Overview: Transaction scope, locking, retry and deadline helpers for write paths.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import LedgerError, StorageError, PostingTimeoutError


TRANSIENT_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; write transactions there are
    serialized by begin_write_transaction() instead.
    """
    return query.with_for_update()


def begin_write_transaction(*, timeout_seconds: float | None = None) -> None:
    """
    Open the current session's transaction as a writer.

    SQLite: BEGIN IMMEDIATE takes the database write lock up front, so a
    check made at the start of the transaction still holds at commit.
    Postgres: bound every statement by the posting timeout.
    """
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql" and timeout_seconds:
        db.session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_seconds * 1000)}"))


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, TRANSIENT_ERRORS):
        return True
    return isinstance(exc, StorageError) and exc.transient


def run_with_retry(func, *, attempts: int = 2, backoff_base: float = 0.05, deadline: Deadline | None = None):
    """
    Execute a unit of work, rolling back on any failure.

    Transient failures (lock contention, deadlocks, optimistic-lock misses,
    counter-creation races) are retried until `attempts` is used up and then
    surfaced as StorageError. Domain errors are re-raised unchanged; any other
    SQLAlchemy error becomes a fatal StorageError.

    With a `deadline`, a database error raised once it has expired (Postgres
    cancels statements under statement_timeout) is a PostingTimeoutError.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except Exception as exc:
            db.session.rollback()

            if deadline is not None and isinstance(exc, OperationalError) and deadline.expired():
                raise deadline.timeout_error("storage") from exc

            if is_transient(exc) and attempt < attempts:
                current_app.logger.warning(
                    "Transient storage failure (attempt %d/%d): %s", attempt, attempts, exc
                )
                time.sleep(backoff_base * (2 ** (attempt - 1)))
                continue

            if isinstance(exc, LedgerError):
                raise
            if isinstance(exc, SQLAlchemyError):
                if is_transient(exc):
                    raise StorageError(
                        "Storage is busy; the operation was not applied",
                        details={"attempts": attempts},
                        transient=True,
                    ) from exc
                raise StorageError("Storage failure; the operation was not applied") from exc
            raise


class Deadline:
    """Wall-clock budget for one posting call."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.expires_at = time.monotonic() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def timeout_error(self, stage: str) -> PostingTimeoutError:
        return PostingTimeoutError(
            f"Posting exceeded {self.seconds:g}s and was aborted",
            details={"stage": stage, "timeout_seconds": self.seconds},
        )

    def check(self, stage: str) -> None:
        if self.expired():
            raise self.timeout_error(stage)
