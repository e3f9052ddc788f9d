"""
tka_invoice/money.py

Monetary rules for Rupiah invoices.

- round_amount(): the invoice rounding rule. Every subtotal, VAT amount and
  total passes through it, so stored header amounts are always whole Rupiah.
- calculate_vat() / calculate_total(): VAT on an already rounded subtotal.
- format_currency() / parse_currency(): locale-independent Indonesian
  formatting ("Rp 1.234.567") and a tolerant parser for user input.

All arithmetic is Decimal. Floats are converted through str() so that 0.1
stays 0.1.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext

from .errors import InvalidArgument

ONE = Decimal("1")
HALF = Decimal("0.50")
HUNDRED = Decimal("100")
DEFAULT_VAT_PERCENTAGE = Decimal("11.00")

_NON_NUMERIC = re.compile(r"[^\d,.\-]")


def to_decimal(value) -> Decimal:
    """Convert int/str/float/Decimal/None to Decimal (None -> 0)."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise InvalidArgument(f"Not a number: {value!r}") from exc
    if not result.is_finite():
        raise InvalidArgument(f"Not a finite number: {value!r}")
    return result


def money(value) -> Decimal:
    """Quantize to two decimals for storage in Numeric(15, 2) columns."""
    return to_decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def round_amount(amount) -> Decimal:
    """
    Round to a whole Rupiah.

    r is the nearest integer with ties away from zero; if the remaining
    fraction amount - r is still >= 0.50 the result is r + 1.

        18000.49 -> 18000
        18000.50 -> 18001
        18000.00 -> 18000

    Negative ties follow the same mechanical rule (-0.50 -> 0, -1.50 -> -1).
    """
    value = to_decimal(amount)
    # quantize needs room for every integer digit
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + 3)
        rounded = value.quantize(ONE, rounding=ROUND_HALF_UP)
        if value - rounded >= HALF:
            rounded += ONE
    # Decimal keeps the sign of -0
    if rounded == 0:
        return Decimal("0")
    return rounded


def validate_vat_percentage(vat_percentage) -> Decimal:
    pct = to_decimal(vat_percentage)
    if pct < 0 or pct > HUNDRED:
        raise InvalidArgument(f"VAT percentage must be between 0 and 100, got {pct}")
    return pct


def calculate_vat(subtotal, vat_percentage=DEFAULT_VAT_PERCENTAGE) -> Decimal:
    """VAT = round_amount(subtotal * pct / 100). Raises InvalidArgument outside [0, 100]."""
    pct = validate_vat_percentage(vat_percentage)
    return round_amount(to_decimal(subtotal) * pct / HUNDRED)


def calculate_total(subtotal, vat_percentage=DEFAULT_VAT_PERCENTAGE) -> Decimal:
    return to_decimal(subtotal) + calculate_vat(subtotal, vat_percentage)


def _group_thousands(digits: str) -> str:
    parts = []
    while len(digits) > 3:
        parts.insert(0, digits[-3:])
        digits = digits[:-3]
    parts.insert(0, digits)
    return ".".join(parts)


def format_currency(amount, include_prefix: bool = True, include_decimal: bool = False) -> str:
    """
    Format as Indonesian Rupiah, e.g. "Rp 1.234.567".

    The amount is rounded with round_amount() first, so include_decimal only
    ever appends ",00".
    """
    rounded = round_amount(amount)
    sign = "-" if rounded < 0 else ""
    formatted = sign + _group_thousands(str(int(abs(rounded))))
    if include_decimal:
        formatted += ",00"
    return f"Rp {formatted}" if include_prefix else formatted


def try_parse_currency(text: str | None) -> Decimal | None:
    """
    Parse user input such as "Rp 1.000.000", "1,000,000.50", "1.000,50" or
    "1000.50". Returns None when the text cannot be read as an amount.

    Separator rules:
    - both "," and ".": the last one is the decimal separator
    - only ".": decimal if there is exactly one with at most two digits after it
    - only ",": same test, otherwise thousands separators
    """
    if text is None:
        return None
    cleaned = _NON_NUMERIC.sub("", str(text).strip())
    if not cleaned or cleaned in {"-", ".", ","}:
        return None

    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(".") > cleaned.rfind(","):
            cleaned = cleaned.replace(",", "")
        else:
            cleaned = cleaned.replace(".", "").replace(",", ".")
    elif "." in cleaned:
        parts = cleaned.split(".")
        if not (len(parts) == 2 and len(parts[1]) <= 2):
            cleaned = cleaned.replace(".", "")
    elif "," in cleaned:
        parts = cleaned.split(",")
        if len(parts) == 2 and len(parts[1]) <= 2:
            cleaned = cleaned.replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")

    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def parse_currency(text: str | None) -> Decimal:
    value = try_parse_currency(text)
    if value is None:
        raise InvalidArgument(f"Cannot parse {text!r} as a currency amount")
    return value
