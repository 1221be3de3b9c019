"""Chart of accounts, relations and boxes."""

from typing import Optional

from ledgerflow.database.base import Database
from ledgerflow.domain.entities import (
    ACCOUNT_CATEGORIES,
    RELATION_KINDS,
    Box,
    LedgerAccount,
    Relation,
)
from ledgerflow.domain.errors import ValidationError


class ChartService:
    """Service for managing the accounts vouchers may post to."""

    def __init__(self, db: Database):
        """Initialize chart service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_account(self, code: str, name: str, category: str) -> str:
        """Create a ledger account.

        Args:
            code: Account code, unique in the chart
            name: Account name
            category: One of asset, liability, equity, revenue, expense

        Returns:
            Account ID

        Raises:
            ValidationError: If the category is unknown or the code is taken
        """
        category = category.strip().lower()
        if category not in ACCOUNT_CATEGORIES:
            raise ValidationError(
                f"Unknown account category '{category}'. Use one of: {', '.join(ACCOUNT_CATEGORIES)}"
            )
        for account in self.db.list_ledger_accounts():
            if account.code == code:
                raise ValidationError(f"Account with code '{code}' already exists")
        return self.db.create_ledger_account(code=code, name=name, category=category)

    def list_accounts(self) -> list[LedgerAccount]:
        """List all ledger accounts ordered by code."""
        return self.db.list_ledger_accounts()

    def create_relation(self, name: str, kind: str) -> str:
        """Create a client, supplier or partner.

        Raises:
            ValidationError: If the kind is unknown
        """
        kind = kind.strip().lower()
        if kind not in RELATION_KINDS:
            raise ValidationError(f"Unknown relation kind '{kind}'. Use one of: {', '.join(RELATION_KINDS)}")
        return self.db.create_relation(name=name, kind=kind)

    def list_relations(self, kind: Optional[str] = None) -> list[Relation]:
        return self.db.list_relations(kind=kind)

    def create_box(self, name: str, currency: str) -> str:
        """Create a cash box.

        Raises:
            ValidationError: If the name is taken or the currency is not a 3-letter code
        """
        currency = currency.strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError(f"Currency must be a 3-letter code, got '{currency}'")
        for box in self.db.list_boxes():
            if box.name == name:
                raise ValidationError(f"Box with name '{name}' already exists")
        return self.db.create_box(name=name, currency=currency)

    def list_boxes(self) -> list[Box]:
        return self.db.list_boxes()
