"""Ledger posting service: validates and persists journal vouchers."""

import logging
from dataclasses import dataclass, field
from datetime import date as date_type
from decimal import Decimal
from typing import Optional

from ledgerflow.database.base import Database
from ledgerflow.domain.audit import AuditLog, NullAuditLog
from ledgerflow.domain.entities import Actor, JournalVoucher, VoucherLine
from ledgerflow.domain.errors import (
    InvalidVoucherError,
    NotFoundError,
    ValidationError,
    unbalanced_entries,
    unknown_accounts,
    voucher_not_found,
)
from ledgerflow.domain.finance_accounts import load_finance_accounts
from ledgerflow.domain.sequences import SequenceService, resolve_prefix
from ledgerflow.utils.batching import batched_lookup

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")


def quantize(amount: Decimal) -> Decimal:
    """Round an amount to cents."""
    return Decimal(amount).quantize(CENT)


@dataclass(frozen=True)
class DraftEntry:
    """One line of a voucher draft; exactly one of debit/credit is set."""

    account_id: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str = ""


@dataclass(frozen=True)
class VoucherDraft:
    """Unposted voucher."""

    source_type: str
    source_id: str
    date: date_type
    currency: str
    description: str
    entries: list[DraftEntry] = field(default_factory=list)
    reference: Optional[str] = None
    officer: str = "system"
    created_by: str = "system"
    reversed_voucher_id: Optional[str] = None
    idempotency_key: Optional[str] = None


def validate_entries(entries: list[DraftEntry]) -> tuple[list[VoucherLine], list[VoucherLine]]:
    """Check a draft's lines and split them into debit and credit lines.

    Raises:
        InvalidVoucherError: If a line is malformed or the sides do not balance
    """
    if not entries:
        raise InvalidVoucherError("Voucher has no entries")

    debits: list[VoucherLine] = []
    credits: list[VoucherLine] = []
    for entry in entries:
        account_id = (entry.account_id or "").strip()
        if not account_id:
            raise InvalidVoucherError("Every entry needs an account id")
        debit = quantize(entry.debit or ZERO)
        credit = quantize(entry.credit or ZERO)
        if debit < 0 or credit < 0:
            raise InvalidVoucherError(f"Entry for account {account_id} has a negative amount")
        if debit > 0 and credit > 0:
            raise InvalidVoucherError(f"Entry for account {account_id} is both debit and credit")
        if debit == 0 and credit == 0:
            raise InvalidVoucherError(f"Entry for account {account_id} has no amount")
        if debit > 0:
            debits.append(VoucherLine(account_id, debit, entry.description))
        else:
            credits.append(VoucherLine(account_id, credit, entry.description))

    if not debits or not credits:
        raise InvalidVoucherError("Voucher needs at least one debit and one credit entry")

    total_debit = sum((line.amount for line in debits), ZERO)
    total_credit = sum((line.amount for line in credits), ZERO)
    if total_debit != total_credit:
        raise InvalidVoucherError(unbalanced_entries(total_debit, total_credit))
    return debits, credits


class PostingService:
    """Service for posting and reversing journal vouchers."""

    def __init__(self, db: Database, audit: Optional[AuditLog] = None):
        """Initialize posting service.

        Args:
            db: Database instance
            audit: Audit sink (defaults to discarding entries)
        """
        self.db = db
        self.audit = audit or NullAuditLog()
        self.sequences = SequenceService(db)

    def _check_accounts_exist(self, lines: list[VoucherLine]) -> None:
        account_ids = [line.account_id for line in lines]
        found: set[str] = set(
            batched_lookup(account_ids, self.db.find_known_account_ids, self.db.in_query_limit)
        )
        missing = sorted(set(account_ids) - found)
        if missing:
            raise InvalidVoucherError(unknown_accounts(missing))

    def post(self, draft: VoucherDraft) -> str:
        """Validate and persist a voucher.

        Validation happens before any write. When called inside
        ``Database.transaction()`` the number and the voucher join the
        caller's unit of work.

        Args:
            draft: Voucher to post

        Returns:
            Voucher ID (the existing one when the idempotency key was already used)

        Raises:
            InvalidVoucherError: If entries are malformed, unbalanced or reference
                unknown accounts
            TransientStoreError: If the store is unavailable
        """
        debits, credits = validate_entries(draft.entries)
        if not (draft.currency or "").strip():
            raise InvalidVoucherError("Voucher currency is required")
        self._check_accounts_exist(debits + credits)

        with self.db.transaction():
            if draft.idempotency_key:
                existing = self.db.get_voucher_by_idempotency_key(draft.idempotency_key)
                if existing is not None:
                    logger.info(
                        "Voucher for key %s already posted as %s",
                        draft.idempotency_key,
                        existing.invoice_number,
                    )
                    return existing.id

            invoice_number = draft.reference or self.sequences.next_voucher_number(
                resolve_prefix(draft.source_type)
            )
            voucher_id = self.db.create_voucher(
                invoice_number=invoice_number,
                source_type=draft.source_type,
                source_id=draft.source_id,
                date=draft.date,
                currency=draft.currency,
                description=draft.description,
                officer=draft.officer,
                created_by=draft.created_by,
                debit_entries=debits,
                credit_entries=credits,
                reversed_voucher_id=draft.reversed_voucher_id,
                idempotency_key=draft.idempotency_key,
            )

        logger.info(
            "Posted voucher %s (%s %s) for %s %s",
            invoice_number,
            sum((line.amount for line in debits), ZERO),
            draft.currency,
            draft.source_type,
            draft.source_id,
        )
        return voucher_id

    def reverse(self, voucher_id: str, actor: Actor, description: Optional[str] = None) -> str:
        """Post a voucher that undoes another by swapping debit and credit.

        The original voucher is left untouched.

        Args:
            voucher_id: Voucher to reverse
            actor: Acting user
            description: Optional description (defaults to "Reversal of <number>")

        Returns:
            ID of the reversal voucher

        Raises:
            NotFoundError: If the voucher does not exist
            ValidationError: If the voucher is soft-deleted
        """
        original = self.db.get_voucher(voucher_id)
        if original is None:
            raise NotFoundError(voucher_not_found(voucher_id))
        if original.is_deleted:
            raise ValidationError(f"Voucher {original.invoice_number} is deleted and cannot be reversed")

        entries = [
            DraftEntry(line.account_id, credit=line.amount, description=line.description)
            for line in original.debit_entries
        ] + [
            DraftEntry(line.account_id, debit=line.amount, description=line.description)
            for line in original.credit_entries
        ]
        reversal_id = self.post(
            VoucherDraft(
                source_type="reversal",
                source_id=original.id,
                date=date_type.today(),
                currency=original.currency,
                description=description or f"Reversal of {original.invoice_number}",
                entries=entries,
                officer=actor.name,
                created_by=actor.user_id,
                reversed_voucher_id=original.id,
            )
        )
        self.audit.record(
            actor,
            "reverse",
            "voucher",
            f"Reversed voucher {original.invoice_number}",
            target_id=original.id,
        )
        return reversal_id

    def get_voucher(self, voucher_id: str) -> Optional[JournalVoucher]:
        """Get voucher by ID.

        Args:
            voucher_id: Voucher ID

        Returns:
            Voucher entity or None if not found
        """
        return self.db.get_voucher(voucher_id)

    def list_vouchers(
        self,
        include_deleted: bool = False,
        source_type: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> list[JournalVoucher]:
        """List vouchers, newest first."""
        return self.db.list_vouchers(
            include_deleted=include_deleted, source_type=source_type, source_id=source_id
        )

    def post_revenue(
        self,
        source_type: str,
        source_id: str,
        date: date_type,
        currency: str,
        amount: Decimal,
        description: str,
        actor: Actor,
        reference: Optional[str] = None,
    ) -> Optional[str]:
        """Recognise revenue for a business unit.

        Debits the default cash account (or the receivable account when direct
        cash revenue is disabled or no cash account is set) and credits the
        unit's mapped revenue account. Non-positive amounts post nothing.

        Returns:
            Voucher ID, or None when nothing was posted

        Raises:
            ConfigurationError: If the revenue or receivable mapping is unset
        """
        if amount <= 0:
            return None
        finance = load_finance_accounts(self.db)
        revenue_account = finance.revenue_account(source_type)
        receivable = finance.require("receivable")
        defer = finance.prevent_direct_cash_revenue and finance.default_cash_id
        debit_account = receivable if defer else (finance.default_cash_id or receivable)
        return self.post(
            VoucherDraft(
                source_type=source_type,
                source_id=source_id,
                date=date,
                currency=currency,
                description=description,
                entries=[
                    DraftEntry(debit_account, debit=amount, description=description),
                    DraftEntry(revenue_account, credit=amount, description=description),
                ],
                reference=reference,
                officer=actor.name,
                created_by=actor.user_id,
            )
        )

    def post_cost(
        self,
        cost_key: str,
        source_type: str,
        source_id: str,
        date: date_type,
        currency: str,
        amount: Decimal,
        actor: Actor,
        description: str = "Expense",
        reference: Optional[str] = None,
    ) -> Optional[str]:
        """Record a cost: debit the mapped expense, credit accounts payable.

        Returns:
            Voucher ID, or None when nothing was posted

        Raises:
            ConfigurationError: If the expense or payable mapping is unset
        """
        if amount <= 0:
            return None
        finance = load_finance_accounts(self.db)
        expense_account = finance.expense_account(cost_key)
        payable = finance.require("payable")
        return self.post(
            VoucherDraft(
                source_type=source_type,
                source_id=source_id,
                date=date,
                currency=currency,
                description=description,
                entries=[
                    DraftEntry(expense_account, debit=amount, description=description),
                    DraftEntry(payable, credit=amount, description=description),
                ],
                reference=reference,
                officer=actor.name,
                created_by=actor.user_id,
            )
        )
