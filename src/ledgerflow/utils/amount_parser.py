"""Money amount parsing utilities."""

import re
from decimal import Decimal, InvalidOperation

CENT = Decimal("0.01")

# Leading or trailing ISO currency code, e.g. "USD 100" or "100 IQD"
_CURRENCY_CODE = re.compile(r"^[A-Za-z]{3}\s+|\s+[A-Za-z]{3}$")


def parse_amount(amount_str: str) -> Decimal:
    """Parse an amount string into a Decimal rounded to cents.

    Handles:
    - "123.45", "1,234.56"
    - "$123.45", "USD 123.45", "123.45 IQD"
    - "-123.45", "(123.45)" (negative in parentheses)

    Args:
        amount_str: Amount string

    Returns:
        Decimal amount with two decimal places

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if amount_str is None or not str(amount_str).strip():
        raise ValueError("Empty amount string")

    text = str(amount_str).strip()
    is_negative = False
    if text.startswith("(") and text.endswith(")"):
        is_negative = True
        text = text[1:-1]

    text = _CURRENCY_CODE.sub("", text.strip())
    text = re.sub(r"[$€£¥]", "", text).replace(",", "").strip()

    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Could not parse amount '{amount_str}'")
    if not amount.is_finite():
        raise ValueError(f"Could not parse amount '{amount_str}'")
    if is_negative:
        amount = -amount
    return amount.quantize(CENT)


def parse_positive_amount(amount_str: str) -> Decimal:
    """Parse an amount that must be greater than zero.

    Raises:
        ValueError: If the string cannot be parsed or is not positive
    """
    amount = parse_amount(amount_str)
    if amount <= 0:
        raise ValueError(f"Amount must be positive, got {amount}")
    return amount
