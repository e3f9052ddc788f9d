"""
tka_invoice/terbilang.py

Indonesian number-to-words ("terbilang") for invoice amounts.

    to_words(1000)               -> "Seribu"
    to_words(1_000_000)          -> "Satu Juta"
    to_invoice_words(444001)     -> "Empat Ratus Empat Puluh Empat Ribu Satu Rupiah"

Amounts are rounded with round_amount() before conversion. Supported
magnitudes are below 10^15 (up to "... Ratus ... Triliyun").
"""

from __future__ import annotations

from .errors import InvalidArgument
from .money import round_amount, to_decimal

ONES = (
    "", "Satu", "Dua", "Tiga", "Empat", "Lima", "Enam", "Tujuh", "Delapan", "Sembilan",
    "Sepuluh", "Sebelas", "Dua Belas", "Tiga Belas", "Empat Belas", "Lima Belas",
    "Enam Belas", "Tujuh Belas", "Delapan Belas", "Sembilan Belas",
)

TENS = (
    "", "", "Dua Puluh", "Tiga Puluh", "Empat Puluh", "Lima Puluh",
    "Enam Puluh", "Tujuh Puluh", "Delapan Puluh", "Sembilan Puluh",
)

# (threshold, unit word, word used when the multiplier is exactly one)
MAGNITUDES = (
    (10**12, "Triliyun", "Satu Triliyun"),
    (10**9, "Miliar", "Satu Miliar"),
    (10**6, "Juta", "Satu Juta"),
    (10**3, "Ribu", "Seribu"),
    (10**2, "Ratus", "Seratus"),
)

MAX_SUPPORTED = 10**15


def _integer_to_words(number: int) -> list[str]:
    words: list[str] = []

    for threshold, unit, single in MAGNITUDES:
        if number < threshold:
            continue
        multiplier, number = divmod(number, threshold)
        if multiplier == 1:
            words.append(single)
        else:
            words.extend(_integer_to_words(multiplier))
            words.append(unit)

    if number >= 20:
        tens, number = divmod(number, 10)
        words.append(TENS[tens])

    if number > 0:
        words.append(ONES[number])

    return words


def to_words(amount) -> str:
    """
    Spell an amount in Indonesian.

    Zero, and anything that rounds to zero, is "Nol". Negative amounts are
    prefixed with "Minus". Raises InvalidArgument at or above 10^15.
    """
    value = to_decimal(amount)
    if value == 0:
        return "Nol"
    if abs(value) >= MAX_SUPPORTED:
        raise InvalidArgument(f"Amount {value} is too large to spell out")

    rounded = int(round_amount(value))
    if rounded < 0:
        return "Minus " + to_words(abs(value))
    if rounded >= MAX_SUPPORTED:
        raise InvalidArgument(f"Amount {value} is too large to spell out")
    if rounded == 0:
        return "Nol"

    return " ".join(_integer_to_words(rounded))


def to_invoice_words(amount) -> str:
    """Words followed by "Rupiah"; an empty result becomes "Nol Rupiah"."""
    words = to_words(amount).strip()
    if not words:
        return "Nol Rupiah"
    return f"{words} Rupiah"
