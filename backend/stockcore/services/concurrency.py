# Overview: Atomic scope runner for stock-mutating operations; locking, retry and deadlines.

from __future__ import annotations

import time
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import TransactionAborted
"""
Atomic scope semantics (authoritative)

- Every stock-mutating operation runs inside run_atomic(). The callable gets
  an AtomicScope and does validate -> mutate -> ledger -> money -> persist
  without committing; run_atomic commits once at the end.
- Any exception inside the scope rolls the session back before it
  propagates, unchanged, to the caller. No partial stock change is ever
  committed.
- Store-level conflicts (OperationalError: locked/deadlock, StaleDataError:
  version mismatch) roll back and re-run the whole callable from the start.
  When attempts run out the caller gets TransactionAborted.
- Each attempt has a bounded lifetime (STOCK_TXN_TIMEOUT_SECONDS). Steps call
  scope.checkpoint(); an expired scope aborts like a validation failure.
- On SQLite the scope opens with BEGIN IMMEDIATE so concurrent writers are
  serialized by the database; elsewhere rows are locked with FOR UPDATE.
"""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; BEGIN IMMEDIATE covers it there.
    """
    return query.with_for_update()


@dataclass
class AtomicScope:
    """Per-attempt handle passed into the operation body."""
    operation: str
    timeout: float
    attempt: int = 1
    started_at: float = field(default_factory=time.monotonic)
    steps: list[str] = field(default_factory=list)

    @property
    def deadline(self) -> float:
        return self.started_at + self.timeout

    def checkpoint(self, step: str) -> None:
        """Record a step boundary; abort if the scope outlived its deadline."""
        self.steps.append(step)
        if time.monotonic() > self.deadline:
            raise TransactionAborted(
                self.operation,
                f"timed out after {self.timeout:g}s during {step}",
                attempts=self.attempt,
            )


def _begin_write_scope() -> None:
    """Take the database write lock up front on SQLite."""
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_atomic(
    func,
    *,
    operation: str,
    attempts: int | None = None,
    backoff_base: float | None = None,
    timeout: float | None = None,
):
    """
    Execute func(scope) as one atomic unit and commit it.

    Retries on OperationalError (locks, deadlocks) and StaleDataError
    (optimistic locking conflicts); everything else rolls back and re-raises.
    """
    config = current_app.config
    attempts = attempts or config.get("STOCK_TXN_RETRY_ATTEMPTS", 3)
    backoff_base = config.get("STOCK_TXN_RETRY_BACKOFF", 0.05) if backoff_base is None else backoff_base
    timeout = config.get("STOCK_TXN_TIMEOUT_SECONDS", 5.0) if timeout is None else timeout

    for attempt in range(1, attempts + 1):
        scope = AtomicScope(operation=operation, timeout=timeout, attempt=attempt)
        try:
            _begin_write_scope()
            result = func(scope)
            scope.checkpoint("commit")
            db.session.commit()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            current_app.logger.warning(
                "%s conflicted on attempt %d/%d: %s", operation, attempt, attempts, exc
            )
            if attempt >= attempts:
                raise TransactionAborted(
                    operation, "store conflict, retry the operation", attempts=attempt
                ) from exc
            time.sleep(backoff_base * (2 ** (attempt - 1)))
            continue
        except BaseException:
            db.session.rollback()
            raise
        return result

    raise TransactionAborted(operation, "no attempts were made", attempts=0)
