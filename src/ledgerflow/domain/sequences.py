"""Prefix-scoped voucher number generation."""

import logging

from ledgerflow.database.base import Database
from ledgerflow.domain.errors import ValidationError

logger = logging.getLogger(__name__)

NUMBER_WIDTH = 6

# Source types whose prefix is not simply the upper-cased type
PREFIX_ALIASES = {
    "voucher": "JE",
    "journal": "JE",
    "journal_voucher": "JE",
    "booking": "BK",
    "bookings": "BK",
    "visa": "VS",
    "visas": "VS",
    "refund": "RF",
    "payment": "PV",
    "payments": "PV",
    "receipt": "RC",
    "receipts": "RC",
    "manual_expense": "EX",
    "transfer": "TR",
    "subscription": "SUB",
    "subscription_installment": "SUBP",
    "subscription_overpayment": "SUBP",
    "adjustment": "ADJ",
    "subscription_payment_adjustment": "ADJ",
    "segment": "SEG",
    "segment_period": "SEG",
    "segment_payout": "PARTNER",
    "partner_share": "PARTNER",
    "company_share": "COMP",
    "profit_distribution": "PR",
    "reversal": "REV",
    "void": "VOID",
}


def normalize_prefix(prefix: str) -> str:
    """Upper-case and strip a prefix.

    Raises:
        ValidationError: If the prefix is empty
    """
    normalized = (prefix or "").strip().upper()
    if not normalized:
        raise ValidationError("Sequence prefix cannot be empty")
    return normalized


def resolve_prefix(source_type: str) -> str:
    """Map a voucher source type to its number prefix."""
    key = (source_type or "").strip().lower()
    if key in PREFIX_ALIASES:
        return PREFIX_ALIASES[key]
    return normalize_prefix(source_type)


def format_voucher_number(prefix: str, value: int) -> str:
    """Format ``PREFIX-000123``; values wider than the padding print in full."""
    return f"{prefix}-{value:0{NUMBER_WIDTH}d}"


class SequenceService:
    """Issues unique, strictly increasing numbers per prefix."""

    def __init__(self, db: Database):
        """Initialize sequence service.

        Args:
            db: Database instance
        """
        self.db = db

    def next_value(self, prefix: str) -> int:
        """Atomically advance the counter for ``prefix`` and return it."""
        return self.db.increment_sequence(normalize_prefix(prefix))

    def next_voucher_number(self, prefix: str) -> str:
        """Return the next voucher number for a prefix.

        The counter is advanced with a single atomic increment, so concurrent
        callers never receive the same number. When called inside
        ``Database.transaction()`` the increment joins that transaction and is
        rolled back with it.

        Args:
            prefix: Number prefix such as "SEG" or "SUB"

        Returns:
            Formatted number, e.g. "SEG-000042"

        Raises:
            ValidationError: If the prefix is empty
            TransientStoreError: If the counter store is unavailable
        """
        normalized = normalize_prefix(prefix)
        value = self.db.increment_sequence(normalized)
        number = format_voucher_number(normalized, value)
        logger.debug("Issued voucher number %s", number)
        return number
