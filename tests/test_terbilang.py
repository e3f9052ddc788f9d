from decimal import Decimal

import pytest

from tka_invoice.errors import InvalidArgument
from tka_invoice.terbilang import to_invoice_words, to_words


@pytest.mark.parametrize(
    "amount, words",
    [
        (1, "Satu"),
        (10, "Sepuluh"),
        (11, "Sebelas"),
        (15, "Lima Belas"),
        (20, "Dua Puluh"),
        (21, "Dua Puluh Satu"),
        (100, "Seratus"),
        (101, "Seratus Satu"),
        (250, "Dua Ratus Lima Puluh"),
        (1000, "Seribu"),
        (1100, "Seribu Seratus"),
        (2000, "Dua Ribu"),
        (11000, "Sebelas Ribu"),
        (1_000_000, "Satu Juta"),
        (2_500_000, "Dua Juta Lima Ratus Ribu"),
        (1_000_000_000, "Satu Miliar"),
        (1_000_000_000_000, "Satu Triliyun"),
        (123_456_789, "Seratus Dua Puluh Tiga Juta Empat Ratus Lima Puluh Enam Ribu Tujuh Ratus Delapan Puluh Sembilan"),
    ],
)
def test_to_words(amount, words):
    assert to_words(amount) == words


def test_zero_and_amounts_rounding_to_zero():
    assert to_words(0) == "Nol"
    assert to_words(Decimal("0.49")) == "Nol"
    assert to_invoice_words(0) == "Nol Rupiah"


def test_amount_is_rounded_before_spelling():
    assert to_words(Decimal("18000.50")) == "Delapan Belas Ribu Satu"
    assert to_words(Decimal("18000.49")) == "Delapan Belas Ribu"


def test_negative_amounts():
    assert to_words(-5000) == "Minus Lima Ribu"


def test_invoice_words():
    assert to_invoice_words(Decimal("444001")) == "Empat Ratus Empat Puluh Empat Ribu Satu Rupiah"


def test_largest_supported_amount():
    words = to_words(10**15 - 1)
    assert words.startswith("Sembilan Ratus Sembilan Puluh Sembilan Triliyun")


def test_too_large():
    with pytest.raises(InvalidArgument):
        to_words(10**15)


def test_thousand_and_one():
    assert to_words(1001) == "Seribu Satu"
    # 1000.50 rounds up to 1001 first
    assert to_words(Decimal("1000.50")) == "Seribu Satu"
    assert to_invoice_words(Decimal("1000.50")) == "Seribu Satu Rupiah"


@pytest.mark.parametrize("amount", [Decimal("1E+30"), Decimal("-1E+30"), Decimal("999999999999999.5")])
def test_amounts_beyond_the_supported_range(amount):
    with pytest.raises(InvalidArgument):
        to_words(amount)
