# Overview: Row locking and the single commit path shared by every catalog and stock write.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import StorageError
"""
Write protocol

- A write is a prepare function that reads, validates and flushes, but never
  commits. run_write() owns the one commit.
- Conflicts raised while preparing (stale batch version_id, lock timeout,
  deadlock) happen before anything is durable: the attempt is rolled back
  and re-run from a fresh read, so a movement that lost the race re-checks
  available stock.
- The commit is attempted exactly once. If it fails the outcome is unknown
  (it may have landed), so it is rolled back, raised as StorageError and
  never replayed. Reconcile with `flask ledger verify`.
- Domain errors (ValueError subclasses) roll back and pass through.
"""

# OperationalError messages that mean "another writer holds the row", per backend
_LOCK_CONFLICT_MARKERS = (
    "database is locked",
    "database table is locked",
    "lock wait timeout",
    "deadlock",
    "could not obtain lock",
    "could not serialize access",
    "lock timeout",
)


def lock_for_update(query):
    """
    Apply row-level locking to a batch read that precedes a quantity change.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id
    optimistic lock on Batch is what rejects the second writer.
    """
    return query.with_for_update()


def is_lock_conflict(exc: OperationalError) -> bool:
    message = str(getattr(exc, "orig", None) or exc).lower()
    return any(marker in message for marker in _LOCK_CONFLICT_MARKERS)


class WriteAttempt:
    """Per-attempt state handed to a prepare function."""

    def __init__(self, number: int):
        self.number = number
        self.flushed = False

    def flush(self) -> None:
        db.session.flush()
        self.flushed = True


def run_write(
    prepare,
    *,
    what: str,
    attempts: int = 3,
    backoff_base: float = 0.05,
    partial_error: type[StorageError] = StorageError,
):
    """
    Run prepare(attempt) and commit its result once.

    partial_error is raised when a storage failure hits after the attempt
    flushed something (e.g. InconsistentLedgerWrite for a batch/ledger pair);
    a failure before the first flush is a plain StorageError.
    """
    for number in range(1, attempts + 1):
        attempt = WriteAttempt(number)
        try:
            result = prepare(attempt)
        except StaleDataError as exc:
            conflict = exc
        except OperationalError as exc:
            if not is_lock_conflict(exc):
                _fail(exc, attempt, what=what, partial_error=partial_error)
            conflict = exc
        except StorageError:
            db.session.rollback()
            raise
        except ValueError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            _fail(exc, attempt, what=what, partial_error=partial_error)
        else:
            _commit_once(what)
            return result

        db.session.rollback()
        if number >= attempts:
            current_app.logger.error(
                "%s: still conflicting after %d attempts (%s)", what, attempts, type(conflict).__name__,
            )
            raise StorageError(f"{what} kept conflicting with a concurrent write; nothing was applied") from conflict
        current_app.logger.warning(
            "%s: concurrent write conflict (%s), re-reading and retrying (attempt %d/%d)",
            what, type(conflict).__name__, number, attempts,
        )
        time.sleep(backoff_base * (2 ** (number - 1)))


def _fail(exc: SQLAlchemyError, attempt: WriteAttempt, *, what: str, partial_error):
    db.session.rollback()
    current_app.logger.exception("%s failed in storage; rolled back", what)
    if attempt.flushed:
        raise partial_error(f"{what} could not be written atomically; nothing was applied") from exc
    raise StorageError(f"{what} failed before any write") from exc


def _commit_once(what: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("%s: commit failed, outcome unknown; not retrying", what)
        raise StorageError(
            f"{what} could not be confirmed; run a ledger verify before resubmitting"
        ) from exc
