"""
tka_invoice/blueprints/forms.py

Form/query-string parsing shared by the blueprints.

Parsers never raise: invalid input becomes None and the service layer
reports what is missing.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from urllib.parse import urlparse

from flask import flash, request, url_for

from ..errors import InvoiceAppError
from ..money import try_parse_currency


def parse_decimal(value: str | None) -> Decimal | None:
    """Parse an amount from user input ("1.000.000", "1,000,000.50", "Rp 50.000")."""
    if value is None or str(value).strip() == "":
        return None
    return try_parse_currency(str(value))


def parse_optional_int(value: str | None) -> int | None:
    """Parse optional int from form/query."""
    if value is None:
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_date(value: str | None) -> date | None:
    """HTML date inputs send YYYY-MM-DD."""
    raw = (value or "").strip()
    if not raw:
        return None
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_id_list(values: list[str]) -> list[int]:
    ids = []
    for value in values:
        parsed = parse_optional_int(value)
        if parsed is not None:
            ids.append(parsed)
    return ids


def form_text(name: str) -> str:
    return (request.form.get(name) or "").strip()


def flash_error(exc: InvoiceAppError) -> None:
    flash(str(exc), "danger")


def safe_next_url(fallback_endpoint: str, **values) -> str:
    """
    Local "next" URL from args/form, else the fallback endpoint.

    Only relative paths are accepted (no scheme/netloc).
    """
    raw = request.args.get("next") or request.form.get("next")
    if raw:
        parsed = urlparse(raw)
        if not parsed.scheme and not parsed.netloc and raw.startswith("/"):
            return raw
    return url_for(fallback_endpoint, **values)
