"""Tests for money amount parsing."""

from decimal import Decimal

import pytest

from ledgerflow.utils.amount_parser import parse_amount, parse_positive_amount


@pytest.mark.parametrize(
    "text,expected",
    [
        ("123.45", Decimal("123.45")),
        ("1,234.56", Decimal("1234.56")),
        ("$99", Decimal("99.00")),
        ("USD 100", Decimal("100.00")),
        ("250000 IQD", Decimal("250000.00")),
        ("-12.5", Decimal("-12.50")),
        ("(40.00)", Decimal("-40.00")),
        ("10.004", Decimal("10.00")),
    ],
)
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


@pytest.mark.parametrize("text", ["", "   ", "abc", "NaN", "Infinity"])
def test_parse_amount_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_amount(text)


def test_parse_positive_amount():
    assert parse_positive_amount("10") == Decimal("10.00")
    with pytest.raises(ValueError, match="positive"):
        parse_positive_amount("0")
    with pytest.raises(ValueError):
        parse_positive_amount("(5)")
