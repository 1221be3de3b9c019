"""Abstract database interface."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

# Import entities directly to avoid circular import through domain/__init__.py
from ledgerflow.domain.entities import (
    LedgerAccount,
    Relation,
    Box,
    VoucherLine,
    JournalVoucher,
    DeletedVoucher,
    SegmentPeriod,
    SegmentEntry,
    Subscription,
    Installment,
    Payment,
    AuditRecord,
)


class Database(ABC):
    """Abstract document-store interface for ledgerflow.

    Every method runs in its own short transaction unless called inside
    ``transaction()``, in which case all calls on the current thread share one
    atomic unit of work that commits when the block exits cleanly.
    """

    # Largest id list a single `in` lookup may carry
    in_query_limit: int = 30

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Open an atomic unit of work; nested calls join the outer one."""
        pass

    # Chart of accounts
    @abstractmethod
    def create_ledger_account(
        self, code: str, name: str, category: str, account_id: Optional[str] = None
    ) -> str:
        """Create a ledger account. Returns account ID."""
        pass

    @abstractmethod
    def get_ledger_account(self, account_id: str) -> Optional[LedgerAccount]:
        """Get ledger account by ID."""
        pass

    @abstractmethod
    def list_ledger_accounts(self) -> list[LedgerAccount]:
        """List all ledger accounts ordered by code."""
        pass

    @abstractmethod
    def create_relation(self, name: str, kind: str, relation_id: Optional[str] = None) -> str:
        """Create a client, supplier or partner. Returns relation ID."""
        pass

    @abstractmethod
    def get_relation(self, relation_id: str) -> Optional[Relation]:
        """Get relation by ID."""
        pass

    @abstractmethod
    def list_relations(self, kind: Optional[str] = None) -> list[Relation]:
        """List relations, optionally filtered by kind."""
        pass

    @abstractmethod
    def update_relation_segment_settings(self, relation_id: str, settings: dict[str, Any]) -> None:
        """Store the pricing rules last used for a client."""
        pass

    @abstractmethod
    def create_box(self, name: str, currency: str, box_id: Optional[str] = None) -> str:
        """Create a cash box. Returns box ID."""
        pass

    @abstractmethod
    def get_box(self, box_id: str) -> Optional[Box]:
        """Get box by ID."""
        pass

    @abstractmethod
    def list_boxes(self) -> list[Box]:
        """List all boxes."""
        pass

    @abstractmethod
    def find_known_account_ids(self, account_ids: list[str]) -> set[str]:
        """Return the subset of ids that are ledger accounts, relations or boxes.

        Callers must not pass more than ``in_query_limit`` ids at once.
        """
        pass

    # Settings
    @abstractmethod
    def get_setting(self, key: str) -> Optional[dict[str, Any]]:
        """Get a settings document by key."""
        pass

    @abstractmethod
    def set_setting(self, key: str, value: dict[str, Any]) -> None:
        """Create or replace a settings document."""
        pass

    # Sequences
    @abstractmethod
    def increment_sequence(self, prefix: str) -> int:
        """Atomically increment the counter for prefix and return the new value."""
        pass

    # Vouchers
    @abstractmethod
    def create_voucher(
        self,
        invoice_number: str,
        source_type: str,
        source_id: str,
        date: date,
        currency: str,
        description: str,
        officer: str,
        created_by: str,
        debit_entries: list[VoucherLine],
        credit_entries: list[VoucherLine],
        reversed_voucher_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        voucher_id: Optional[str] = None,
        status: str = "active",
    ) -> str:
        """Create a voucher with its lines. Returns voucher ID."""
        pass

    @abstractmethod
    def get_voucher(self, voucher_id: str) -> Optional[JournalVoucher]:
        """Get voucher by ID."""
        pass

    @abstractmethod
    def get_voucher_by_idempotency_key(self, key: str) -> Optional[JournalVoucher]:
        """Get the voucher posted under an idempotency key."""
        pass

    @abstractmethod
    def list_vouchers(
        self,
        include_deleted: bool = False,
        source_type: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> list[JournalVoucher]:
        """List vouchers, newest first."""
        pass

    @abstractmethod
    def get_vouchers(self, voucher_ids: list[str]) -> list[JournalVoucher]:
        """Get vouchers by id (at most ``in_query_limit`` ids); missing ids are skipped."""
        pass

    @abstractmethod
    def find_vouchers_by_source_ids(self, source_ids: list[str]) -> list[JournalVoucher]:
        """Get vouchers whose source_id is in the list (at most ``in_query_limit`` ids)."""
        pass

    @abstractmethod
    def update_voucher_lifecycle(self, voucher_id: str, **fields: Any) -> None:
        """Set lifecycle fields (status, is_deleted, deleted_*, restored_*)."""
        pass

    @abstractmethod
    def delete_voucher(self, voucher_id: str) -> bool:
        """Physically delete a voucher and its lines. Returns False if absent."""
        pass

    @abstractmethod
    def create_deleted_voucher(
        self,
        voucher_id: str,
        snapshot: dict[str, Any],
        deleted_at: datetime,
        deleted_by: str,
        delete_reason: Optional[str] = None,
    ) -> None:
        """Create or replace the deleted-log mirror of a voucher."""
        pass

    @abstractmethod
    def get_deleted_voucher(self, voucher_id: str) -> Optional[DeletedVoucher]:
        """Get the deleted-log mirror of a voucher."""
        pass

    @abstractmethod
    def get_deleted_vouchers(self, voucher_ids: list[str]) -> list[DeletedVoucher]:
        """Get deleted-log mirrors by voucher id (at most ``in_query_limit`` ids); missing ids are skipped."""
        pass

    @abstractmethod
    def list_deleted_vouchers(self) -> list[DeletedVoucher]:
        """List the deleted log, most recent first."""
        pass

    @abstractmethod
    def delete_deleted_voucher(self, voucher_id: str) -> bool:
        """Remove a deleted-log mirror. Returns False if absent."""
        pass

    # Segments
    @abstractmethod
    def create_segment_period(
        self,
        from_date: date,
        to_date: date,
        currency: str,
        invoice_number: str,
        period_id: Optional[str] = None,
    ) -> str:
        """Create a segment period. Returns period ID."""
        pass

    @abstractmethod
    def get_segment_period(self, period_id: str) -> Optional[SegmentPeriod]:
        """Get segment period by ID."""
        pass

    @abstractmethod
    def list_segment_periods(self, include_deleted: bool = False) -> list[SegmentPeriod]:
        """List segment periods, newest first."""
        pass

    @abstractmethod
    def update_segment_period(self, period_id: str, **fields: Any) -> None:
        """Update segment period fields; always bumps its version."""
        pass

    @abstractmethod
    def delete_segment_period(self, period_id: str) -> bool:
        """Physically delete a segment period. Returns False if absent."""
        pass

    @abstractmethod
    def create_segment_entry(self, **fields: Any) -> str:
        """Create a segment entry. Returns entry ID."""
        pass

    @abstractmethod
    def get_segment_entry(self, entry_id: str) -> Optional[SegmentEntry]:
        """Get segment entry by ID."""
        pass

    @abstractmethod
    def list_segment_entries(
        self, period_id: Optional[str] = None, include_deleted: bool = False
    ) -> list[SegmentEntry]:
        """List segment entries, optionally for one period."""
        pass

    @abstractmethod
    def update_segment_entry(self, entry_id: str, **fields: Any) -> bool:
        """Update segment entry fields. Returns False if absent."""
        pass

    @abstractmethod
    def delete_segment_entry(self, entry_id: str) -> bool:
        """Physically delete a segment entry. Returns False if absent."""
        pass

    # Subscriptions
    @abstractmethod
    def create_subscription(self, **fields: Any) -> str:
        """Create a subscription. Returns subscription ID."""
        pass

    @abstractmethod
    def get_subscription(self, subscription_id: str, for_update: bool = False) -> Optional[Subscription]:
        """Get subscription by ID, optionally locking the row."""
        pass

    @abstractmethod
    def list_subscriptions(self, include_deleted: bool = False) -> list[Subscription]:
        """List subscriptions, newest purchase first."""
        pass

    @abstractmethod
    def update_subscription(self, subscription_id: str, **fields: Any) -> bool:
        """Update subscription fields. Returns False if absent."""
        pass

    @abstractmethod
    def delete_subscription(self, subscription_id: str) -> bool:
        """Delete a subscription with its installments and payments."""
        pass

    @abstractmethod
    def create_installment(
        self,
        subscription_id: str,
        amount: Decimal,
        due_date: date,
        currency: str,
    ) -> str:
        """Create an unpaid installment. Returns installment ID."""
        pass

    @abstractmethod
    def get_installment(self, installment_id: str, for_update: bool = False) -> Optional[Installment]:
        """Get installment by ID, optionally locking the row."""
        pass

    @abstractmethod
    def list_installments(
        self, subscription_id: str, status: Optional[str] = None, for_update: bool = False
    ) -> list[Installment]:
        """List a subscription's installments ordered by due date (oldest first)."""
        pass

    @abstractmethod
    def update_installment(self, installment_id: str, **fields: Any) -> None:
        """Update installment fields."""
        pass

    @abstractmethod
    def create_payment(
        self,
        installment_id: str,
        amount: Decimal,
        discount: Decimal,
        currency: str,
        date: date,
        journal_voucher_id: str,
        invoice_number: str,
        box_id: str,
        paid_by: str,
    ) -> str:
        """Create a payment record. Returns payment ID."""
        pass

    @abstractmethod
    def get_payment(self, payment_id: str) -> Optional[Payment]:
        """Get payment by ID."""
        pass

    @abstractmethod
    def list_payments(
        self, installment_id: Optional[str] = None, journal_voucher_id: Optional[str] = None
    ) -> list[Payment]:
        """List payments for an installment or voucher, newest first."""
        pass

    @abstractmethod
    def update_payment(self, payment_id: str, **fields: Any) -> bool:
        """Update payment fields. Returns False if absent."""
        pass

    @abstractmethod
    def delete_payment(self, payment_id: str) -> bool:
        """Delete a payment record. Returns False if absent."""
        pass

    # Audit log
    @abstractmethod
    def append_audit_record(
        self,
        user_id: str,
        user_name: str,
        action: str,
        target_type: str,
        description: str,
        target_id: Optional[str] = None,
    ) -> str:
        """Append an audit record. Returns record ID."""
        pass

    @abstractmethod
    def list_audit_records(self, target_type: Optional[str] = None) -> list[AuditRecord]:
        """List audit records, oldest first."""
        pass
