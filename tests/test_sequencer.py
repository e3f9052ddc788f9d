import threading
from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from config import TestConfig
from tka_invoice import create_app
from tka_invoice.errors import InvalidArgument, PersistenceFailure, SequenceExhausted
from tka_invoice.extensions import db
from tka_invoice.models import InvoiceNumberSequence
from tka_invoice.sequencer import InvoiceNumberSequencer, format_invoice_number, validate_prefix


def test_numbers_increase_within_a_month(ctx):
    sequencer = InvoiceNumberSequencer(db.session)

    numbers = [sequencer.next(date(2024, 1, 15), "FSN") for _ in range(3)]
    db.session.commit()

    assert numbers == ["FSN/24/01/001", "FSN/24/01/002", "FSN/24/01/003"]


def test_each_month_has_its_own_counter(ctx):
    sequencer = InvoiceNumberSequencer(db.session)

    assert sequencer.next(date(2024, 1, 31), "FSN") == "FSN/24/01/001"
    assert sequencer.next(date(2024, 2, 1), "FSN") == "FSN/24/02/001"
    assert sequencer.next(date(2024, 1, 2), "FSN") == "FSN/24/01/002"
    assert sequencer.next(date(2025, 1, 2), "FSN") == "FSN/25/01/001"
    db.session.commit()

    periods = {(row.year, row.month): row.current_number for row in InvoiceNumberSequence.query.all()}
    assert periods == {(2024, 1): 2, (2024, 2): 1, (2025, 1): 1}


def test_prefix_is_recorded_on_the_period(ctx):
    sequencer = InvoiceNumberSequencer(db.session)
    sequencer.next(date(2024, 3, 1), "FSN")
    assert sequencer.next(date(2024, 3, 1), "ABC") == "ABC/24/03/002"
    db.session.commit()

    row = InvoiceNumberSequence.query.filter_by(year=2024, month=3).one()
    assert row.prefix == "ABC"


def test_counter_widens_past_999(ctx):
    db.session.add(InvoiceNumberSequence(year=2024, month=5, current_number=999, prefix="FSN"))
    db.session.commit()

    sequencer = InvoiceNumberSequencer(db.session)
    assert sequencer.next(date(2024, 5, 20), "FSN") == "FSN/24/05/1000"


def test_month_runs_out_after_9999(ctx):
    db.session.add(InvoiceNumberSequence(year=2024, month=7, current_number=9999, prefix="FSN"))
    db.session.commit()

    sequencer = InvoiceNumberSequencer(db.session)
    with pytest.raises(SequenceExhausted):
        sequencer.next(date(2024, 7, 1), "FSN")

    assert InvoiceNumberSequence.query.filter_by(year=2024, month=7).one().current_number == 9999


def test_peek_does_not_consume(ctx):
    sequencer = InvoiceNumberSequencer(db.session)
    assert sequencer.peek(date(2024, 6, 1), "FSN") == "FSN/24/06/001"
    assert sequencer.peek(date(2024, 6, 1), "FSN") == "FSN/24/06/001"
    assert sequencer.next(date(2024, 6, 1), "FSN") == "FSN/24/06/001"
    assert sequencer.peek(date(2024, 6, 1), "FSN") == "FSN/24/06/002"


def test_format_invoice_number():
    assert format_invoice_number("FSN", 2024, 1, 1) == "FSN/24/01/001"
    assert format_invoice_number("FSN", 2100, 12, 42) == "FSN/00/12/042"
    assert format_invoice_number("FSN", 2024, 1, 1234) == "FSN/24/01/1234"


@pytest.mark.parametrize("prefix", ["", "F", "fsn", "TOOLONG", "FS1", None])
def test_invalid_prefix(prefix):
    with pytest.raises(InvalidArgument):
        validate_prefix(prefix)


def test_valid_prefix():
    assert validate_prefix(" INV ") == "INV"


# ---------------------------------------------------------------------
# Retry behaviour against a scripted session
# ---------------------------------------------------------------------
class _Result:
    def __init__(self, value=7, rowcount=1):
        self.value = value
        self.rowcount = rowcount

    def scalar_one(self):
        return self.value

    def scalar(self):
        return self.value


class ScriptedSession:
    """Raises the queued errors first, then behaves like an existing period row."""

    def __init__(self, errors):
        self.errors = list(errors)
        self.rollbacks = 0
        self.executed = 0

    def execute(self, statement):
        self.executed += 1
        if self.errors:
            raise self.errors.pop(0)
        return _Result()

    def rollback(self):
        self.rollbacks += 1


def _locked():
    return OperationalError("UPDATE invoice_number_sequences", {}, Exception("database is locked"))


def test_lost_race_is_retried_with_backoff():
    delays = []
    session = ScriptedSession([IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")), _locked()])
    sequencer = InvoiceNumberSequencer(session, max_attempts=5, backoff=0.1, sleep=delays.append)

    assert sequencer.next(date(2024, 1, 15), "FSN") == "FSN/24/01/007"
    assert session.rollbacks == 2
    assert delays == pytest.approx([0.1, 0.2])


def test_gives_up_after_max_attempts():
    delays = []
    session = ScriptedSession([_locked() for _ in range(3)])
    sequencer = InvoiceNumberSequencer(session, max_attempts=3, backoff=0.01, sleep=delays.append)

    with pytest.raises(SequenceExhausted):
        sequencer.next(date(2024, 1, 15), "FSN")

    assert session.rollbacks == 3
    assert len(delays) == 2


def test_non_transient_database_error_is_not_retried():
    session = ScriptedSession([OperationalError("UPDATE", {}, Exception("disk I/O error"))])
    sequencer = InvoiceNumberSequencer(session, max_attempts=5, sleep=lambda _: None)

    with pytest.raises(PersistenceFailure):
        sequencer.next(date(2024, 1, 15), "FSN")

    assert session.executed == 1
    assert session.rollbacks == 1


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        InvoiceNumberSequencer(None, max_attempts=0)


# ---------------------------------------------------------------------
# Concurrency against a real database file
# ---------------------------------------------------------------------
def test_concurrent_writers_never_share_a_number(tmp_path):
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'seq.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}}
        SEQUENCE_MAX_ATTEMPTS = 10

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()

    issued = []
    failures = []
    lock = threading.Lock()

    def worker():
        with app.app_context():
            sequencer = InvoiceNumberSequencer.from_config(db.session)
            for _ in range(10):
                try:
                    number = sequencer.next(date(2024, 1, 15), "FSN")
                    db.session.commit()
                except Exception as exc:  # collected and asserted below
                    db.session.rollback()
                    failures.append(exc)
                    continue
                with lock:
                    issued.append(number)
            db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert failures == []
    assert len(issued) == 80
    assert len(set(issued)) == 80
    assert sorted(int(n.rsplit("/", 1)[1]) for n in issued) == list(range(1, 81))

    with app.app_context():
        row = InvoiceNumberSequence.query.filter_by(year=2024, month=1).one()
        assert row.current_number == 80
        db.engine.dispose()
