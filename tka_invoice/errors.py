"""
tka_invoice/errors.py

Exception hierarchy shared by the domain modules, services and blueprints.

Services raise these; blueprints translate them into flashed messages.
"""

from __future__ import annotations


class InvoiceAppError(Exception):
    """Base class for all application errors."""


class InvalidArgument(InvoiceAppError, ValueError):
    """Caller supplied an invalid value (VAT out of range, bad number format, ...)."""


class NotFound(InvoiceAppError, LookupError):
    """Requested record does not exist."""


class InvalidStateTransition(InvoiceAppError):
    """Invoice lifecycle rule violated."""


class DuplicateRecord(InvoiceAppError):
    """Uniqueness rule violated (invoice number, passport, username, ...)."""


class TransientConflict(InvoiceAppError):
    """Lost a race against a concurrent writer; the operation may be retried."""


class SequenceExhausted(TransientConflict):
    """Invoice number could not be issued within the configured attempts."""


class PersistenceFailure(InvoiceAppError):
    """Store unreachable or rejected the write for a non-retryable reason."""
