"""Domain model entities for ledgerflow.

These are pure data classes representing business concepts, independent of
database schema. Services receive and return these; the database layer maps
its ORM rows onto them.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ledgerflow.domain.errors import ValidationError

# Voucher lifecycle states
VOUCHER_ACTIVE = "active"
VOUCHER_DELETED = "deleted"
VOUCHER_RESTORED = "restored"

# Installment states
INSTALLMENT_UNPAID = "Unpaid"
INSTALLMENT_PAID = "Paid"

# Subscription states
SUBSCRIPTION_ACTIVE = "Active"
SUBSCRIPTION_PAID = "Paid"
SUBSCRIPTION_SUSPENDED = "Suspended"
SUBSCRIPTION_CANCELLED = "Cancelled"
SUBSCRIPTION_STATUSES = (
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_PAID,
    SUBSCRIPTION_SUSPENDED,
    SUBSCRIPTION_CANCELLED,
)

RELATION_KINDS = ("client", "supplier", "partner")
ACCOUNT_CATEGORIES = ("asset", "liability", "equity", "revenue", "expense")

# Tolerance used when deciding whether an obligation is settled
EPSILON = Decimal("0.01")


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf an operation runs."""

    user_id: str
    name: str
    permissions: frozenset[str] = frozenset()
    is_admin: bool = False

    def has_permission(self, permission: str) -> bool:
        return self.is_admin or permission in self.permissions


@dataclass(frozen=True)
class LedgerAccount:
    """Static chart-of-accounts node."""

    id: str
    code: str
    name: str
    category: str
    created_at: datetime


@dataclass(frozen=True)
class Relation:
    """Client, supplier or partner; usable as a ledger account."""

    id: str
    name: str
    kind: str
    segment_settings: Optional[dict[str, Any]]
    created_at: datetime


@dataclass(frozen=True)
class Box:
    """Cash box or bank account; usable as a ledger account."""

    id: str
    name: str
    currency: str
    created_at: datetime


@dataclass(frozen=True)
class VoucherLine:
    """One side of a journal voucher."""

    account_id: str
    amount: Decimal
    description: str = ""


@dataclass(frozen=True)
class JournalVoucher:
    """Balanced double-entry accounting record."""

    id: str
    invoice_number: str
    source_type: str
    source_id: str
    date: date
    currency: str
    description: str
    officer: str
    created_by: str
    debit_entries: tuple[VoucherLine, ...]
    credit_entries: tuple[VoucherLine, ...]
    status: str
    is_deleted: bool
    created_at: datetime
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    delete_reason: Optional[str] = None
    restored_at: Optional[datetime] = None
    restored_by: Optional[str] = None
    reversed_voucher_id: Optional[str] = None
    idempotency_key: Optional[str] = None

    @property
    def total_debit(self) -> Decimal:
        return sum((line.amount for line in self.debit_entries), Decimal("0"))

    @property
    def total_credit(self) -> Decimal:
        return sum((line.amount for line in self.credit_entries), Decimal("0"))


@dataclass(frozen=True)
class DeletedVoucher:
    """Mirror record of a soft-deleted voucher (the deleted log)."""

    voucher_id: str
    snapshot: dict[str, Any]
    deleted_at: datetime
    deleted_by: str
    delete_reason: Optional[str]


@dataclass(frozen=True)
class SegmentPeriod:
    """Grouping key for segment entries entered together."""

    id: str
    from_date: date
    to_date: date
    currency: str
    invoice_number: str
    version: int
    is_deleted: bool
    created_at: datetime


@dataclass(frozen=True)
class SegmentEntry:
    """One company's profit-sharing record for a period."""

    id: str
    period_id: str
    client_id: str
    partner_id: Optional[str]
    from_date: date
    to_date: date
    currency: str
    tickets: int
    visas: int
    hotels: int
    groups: int
    pricing_rules: dict[str, dict[str, Any]]
    company_split_percent: Optional[Decimal]
    ticket_profits: Decimal
    other_profits: Decimal
    total: Decimal
    company_share: Decimal
    partner_share: Decimal
    invoice_number: str
    period_invoice_number: str
    entered_by: str
    is_deleted: bool
    created_at: datetime
    partner_shares: tuple["PartnerShare", ...] = ()
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None


@dataclass(frozen=True)
class Subscription:
    """A sold recurring service billed as dated installments."""

    id: str
    client_id: str
    supplier_id: str
    box_id: Optional[str]
    service_name: str
    quantity: int
    unit_price: Decimal
    purchase_price: Decimal
    discount: Decimal
    sale_price: Decimal
    profit: Decimal
    currency: str
    purchase_date: date
    start_date: date
    number_of_installments: int
    paid_amount: Decimal
    status: str
    invoice_number: str
    is_deleted: bool
    created_at: datetime
    notes: Optional[str] = None
    deleted_at: Optional[datetime] = None
    cancellation_date: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


@dataclass(frozen=True)
class Installment:
    """One scheduled payment obligation within a subscription."""

    id: str
    subscription_id: str
    amount: Decimal
    paid_amount: Decimal
    discount: Decimal
    due_date: date
    currency: str
    status: str
    paid_at: Optional[datetime] = None

    @property
    def remaining(self) -> Decimal:
        return self.amount - self.paid_amount - self.discount


@dataclass(frozen=True)
class Payment:
    """Cash (and discount) applied to one installment by one voucher."""

    id: str
    installment_id: str
    amount: Decimal
    discount: Decimal
    currency: str
    date: date
    journal_voucher_id: str
    invoice_number: str
    box_id: str
    paid_by: str


@dataclass(frozen=True)
class AuditRecord:
    """Entry appended to the audit log."""

    id: str
    user_id: str
    user_name: str
    action: str
    target_type: str
    target_id: Optional[str]
    description: str
    created_at: datetime


@dataclass(frozen=True)
class PricingRule:
    """How one service line's profit is computed from its count."""

    type: str = "percentage"
    value: Optional[Decimal] = None

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "value": None if self.value is None else str(self.value)}

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "PricingRule":
        """Build a rule from its JSON form.

        An empty or missing value means the line contributes nothing.

        Raises:
            ValidationError: If the value is not a finite number
        """
        if not data:
            return cls()
        value = data.get("value")
        if isinstance(value, str):
            value = value.strip() or None
        if value is not None:
            try:
                value = Decimal(str(value))
            except (InvalidOperation, TypeError, ValueError):
                raise ValidationError(f"Invalid pricing value '{data.get('value')}'")
            if not value.is_finite():
                raise ValidationError(f"Invalid pricing value '{data.get('value')}'")
        return cls(type=data.get("type") or "percentage", value=value)


@dataclass(frozen=True)
class ServiceCounts:
    """Per-service sale counts for a segment entry."""

    tickets: Optional[int] = None
    visas: Optional[int] = None
    hotels: Optional[int] = None
    groups: Optional[int] = None


@dataclass(frozen=True)
class ShareBreakdown:
    """Profit totals and the company/partner split for a segment entry."""

    ticket_profits: Decimal
    other_profits: Decimal
    total: Decimal
    company_share: Decimal
    partner_share: Decimal


@dataclass(frozen=True)
class PartnerShare:
    """A partner's portion of the partner share."""

    partner_id: str
    percentage: Decimal
    share: Decimal = field(default=Decimal("0"))
