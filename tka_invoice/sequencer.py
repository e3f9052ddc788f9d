"""
tka_invoice/sequencer.py

Issues invoice numbers of the form PREFIX/YY/MM/NNN, e.g. FSN/24/01/001.

Numbering restarts every calendar month. The counter row for (year, month)
is bumped with a single conditional UPDATE, so two writers can never read
the same value and both write value + 1:

    UPDATE invoice_number_sequences
       SET current_number = current_number + 1
     WHERE year = :y AND month = :m

The UPDATE holds the row's write lock until the caller commits, so the
number and the invoice that uses it land in the same transaction. When no
row exists yet an INSERT with current_number = 1 is attempted; the unique
(year, month) constraint turns a concurrent first insert into an
IntegrityError, which is retried like any other lost race.

IMPORTANT:
- next() must be the first write of the unit of work. A retry rolls the
  whole session back (pysqlite cannot be trusted with SAVEPOINT), so
  anything added to the session before the call would be discarded.
- The per-attempt wait is bounded by the database lock timeout
  (SQLALCHEMY_ENGINE_OPTIONS connect_args "timeout" for SQLite).
"""

from __future__ import annotations

import logging
import time
from datetime import date, datetime
from typing import Callable

from flask import current_app
from sqlalchemy import insert, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from .errors import InvalidArgument, PersistenceFailure, SequenceExhausted
from .models import InvoiceNumberSequence
from .validation import PREFIX_RE

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "FSN"
MAX_COUNTER = 9999

_TRANSIENT_MARKERS = (
    "database is locked",
    "database table is locked",
    "deadlock",
    "could not serialize",
    "lock timeout",
    "lock wait timeout",
)


def validate_prefix(prefix: str | None) -> str:
    value = (prefix or "").strip()
    if not PREFIX_RE.match(value):
        raise InvalidArgument(f"Invoice prefix must be 2-5 uppercase letters, got {prefix!r}")
    return value


def format_invoice_number(prefix: str, year: int, month: int, number: int) -> str:
    """Counter is zero-padded to three digits and widens to four past 999."""
    return f"{prefix}/{year % 100:02d}/{month:02d}/{number:03d}"


def _is_transient(exc: DBAPIError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


class InvoiceNumberSequencer:
    """Atomic per-(year, month) invoice numbering on top of a SQLAlchemy session."""

    def __init__(
        self,
        session,
        max_attempts: int = 5,
        backoff: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.session = session
        self.max_attempts = max_attempts
        self.backoff = backoff
        self._sleep = sleep

    @classmethod
    def from_config(cls, session) -> "InvoiceNumberSequencer":
        config = current_app.config
        return cls(
            session,
            max_attempts=int(config.get("SEQUENCE_MAX_ATTEMPTS", 5)),
            backoff=float(config.get("SEQUENCE_RETRY_BACKOFF", 0.05)),
        )

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------
    def next(self, invoice_date: date, prefix: str = DEFAULT_PREFIX) -> str:
        """
        Consume and return the next number for invoice_date's month.

        Raises SequenceExhausted after max_attempts lost races / lock
        timeouts or once the month passes MAX_COUNTER numbers,
        PersistenceFailure on any other database error.
        """
        prefix = validate_prefix(prefix)
        year, month = invoice_date.year, invoice_date.month

        for attempt in range(1, self.max_attempts + 1):
            try:
                current = self._increment(year, month, prefix)
            except (IntegrityError, OperationalError) as exc:
                if isinstance(exc, OperationalError) and not _is_transient(exc):
                    self.session.rollback()
                    raise PersistenceFailure(f"Could not issue invoice number: {exc.orig}") from exc
                self.session.rollback()
                if attempt == self.max_attempts:
                    raise SequenceExhausted(
                        f"No invoice number for {year}-{month:02d} after {attempt} attempts"
                    ) from exc
                delay = self.backoff * (2 ** (attempt - 1))
                logger.warning(
                    "Invoice sequence %s-%02d contended (attempt %s/%s), retrying in %.3fs",
                    year, month, attempt, self.max_attempts, delay,
                )
                self._sleep(delay)
                continue
            except DBAPIError as exc:
                self.session.rollback()
                raise PersistenceFailure(f"Could not issue invoice number: {exc.orig}") from exc

            if current > MAX_COUNTER:
                self.session.rollback()
                raise SequenceExhausted(f"Invoice numbers for {year}-{month:02d} are used up ({MAX_COUNTER})")

            number = format_invoice_number(prefix, year, month, current)
            logger.info("Issued invoice number %s", number)
            return number

        raise SequenceExhausted(f"No invoice number for {year}-{month:02d}")

    def peek(self, invoice_date: date, prefix: str = DEFAULT_PREFIX) -> str:
        """Number the next call would issue. Does not consume it."""
        prefix = validate_prefix(prefix)
        table = InvoiceNumberSequence.__table__
        current = self.session.execute(
            select(table.c.current_number).where(
                table.c.year == invoice_date.year,
                table.c.month == invoice_date.month,
            )
        ).scalar()
        return format_invoice_number(prefix, invoice_date.year, invoice_date.month, (current or 0) + 1)

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------
    def _increment(self, year: int, month: int, prefix: str) -> int:
        table = InvoiceNumberSequence.__table__
        now = datetime.utcnow()
        period = (table.c.year == year, table.c.month == month)

        result = self.session.execute(
            update(table)
            .where(*period)
            .values(current_number=table.c.current_number + 1, prefix=prefix, updated_at=now)
        )
        if result.rowcount == 0:
            self.session.execute(
                insert(table).values(
                    year=year,
                    month=month,
                    current_number=1,
                    prefix=prefix,
                    created_at=now,
                    updated_at=now,
                )
            )

        return self.session.execute(select(table.c.current_number).where(*period)).scalar_one()
