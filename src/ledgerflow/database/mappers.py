"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic, so services never see ORM rows and
the storage schema can change without touching business logic.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from ledgerflow.domain import entities as domain
from ledgerflow.database.models import (
    LedgerAccount as ORMLedgerAccount,
    Relation as ORMRelation,
    Box as ORMBox,
    JournalVoucher as ORMJournalVoucher,
    DeletedVoucher as ORMDeletedVoucher,
    SegmentPeriod as ORMSegmentPeriod,
    SegmentEntry as ORMSegmentEntry,
    Subscription as ORMSubscription,
    Installment as ORMInstallment,
    Payment as ORMPayment,
    AuditRecord as ORMAuditRecord,
)

DEBIT = "debit"
CREDIT = "credit"


def _money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(value).quantize(Decimal("0.01"))


def ledger_account_to_domain(orm_account: ORMLedgerAccount) -> domain.LedgerAccount:
    """Convert SQLAlchemy LedgerAccount model to domain LedgerAccount entity."""
    return domain.LedgerAccount(
        id=orm_account.id,
        code=orm_account.code,
        name=orm_account.name,
        category=orm_account.category,
        created_at=orm_account.created_at,
    )


def relation_to_domain(orm_relation: ORMRelation) -> domain.Relation:
    """Convert SQLAlchemy Relation model to domain Relation entity."""
    return domain.Relation(
        id=orm_relation.id,
        name=orm_relation.name,
        kind=orm_relation.kind,
        segment_settings=orm_relation.segment_settings,
        created_at=orm_relation.created_at,
    )


def box_to_domain(orm_box: ORMBox) -> domain.Box:
    """Convert SQLAlchemy Box model to domain Box entity."""
    return domain.Box(
        id=orm_box.id,
        name=orm_box.name,
        currency=orm_box.currency,
        created_at=orm_box.created_at,
    )


def voucher_to_domain(orm_voucher: ORMJournalVoucher) -> domain.JournalVoucher:
    """Convert SQLAlchemy JournalVoucher (with its lines) to a domain entity."""
    debit_entries = []
    credit_entries = []
    for line in orm_voucher.lines:
        entry = domain.VoucherLine(
            account_id=line.account_id,
            amount=_money(line.amount),
            description=line.description or "",
        )
        if line.side == DEBIT:
            debit_entries.append(entry)
        else:
            credit_entries.append(entry)

    return domain.JournalVoucher(
        id=orm_voucher.id,
        invoice_number=orm_voucher.invoice_number,
        source_type=orm_voucher.source_type,
        source_id=orm_voucher.source_id,
        date=orm_voucher.date,
        currency=orm_voucher.currency,
        description=orm_voucher.description or "",
        officer=orm_voucher.officer,
        created_by=orm_voucher.created_by,
        debit_entries=tuple(debit_entries),
        credit_entries=tuple(credit_entries),
        status=orm_voucher.status,
        is_deleted=orm_voucher.is_deleted,
        created_at=orm_voucher.created_at,
        deleted_at=orm_voucher.deleted_at,
        deleted_by=orm_voucher.deleted_by,
        delete_reason=orm_voucher.delete_reason,
        restored_at=orm_voucher.restored_at,
        restored_by=orm_voucher.restored_by,
        reversed_voucher_id=orm_voucher.reversed_voucher_id,
        idempotency_key=orm_voucher.idempotency_key,
    )


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def voucher_to_snapshot(voucher: domain.JournalVoucher) -> dict[str, Any]:
    """Serialise a voucher into a JSON-safe dict for the deleted log."""
    snapshot: dict[str, Any] = {}
    for name in (
        "id",
        "invoice_number",
        "source_type",
        "source_id",
        "date",
        "currency",
        "description",
        "officer",
        "created_by",
        "status",
        "created_at",
        "reversed_voucher_id",
        "idempotency_key",
    ):
        snapshot[name] = _json_value(getattr(voucher, name))
    snapshot["debit_entries"] = [
        {"account_id": e.account_id, "amount": str(e.amount), "description": e.description}
        for e in voucher.debit_entries
    ]
    snapshot["credit_entries"] = [
        {"account_id": e.account_id, "amount": str(e.amount), "description": e.description}
        for e in voucher.credit_entries
    ]
    return snapshot


def snapshot_to_lines(snapshot: dict[str, Any]) -> tuple[list[domain.VoucherLine], list[domain.VoucherLine]]:
    """Rebuild debit and credit lines from a deleted-log snapshot."""

    def build(items):
        return [
            domain.VoucherLine(
                account_id=item["account_id"],
                amount=Decimal(item["amount"]),
                description=item.get("description", ""),
            )
            for item in items
        ]

    return build(snapshot.get("debit_entries", [])), build(snapshot.get("credit_entries", []))


def deleted_voucher_to_domain(orm_deleted: ORMDeletedVoucher) -> domain.DeletedVoucher:
    """Convert SQLAlchemy DeletedVoucher model to domain DeletedVoucher entity."""
    return domain.DeletedVoucher(
        voucher_id=orm_deleted.voucher_id,
        snapshot=dict(orm_deleted.snapshot or {}),
        deleted_at=orm_deleted.deleted_at,
        deleted_by=orm_deleted.deleted_by,
        delete_reason=orm_deleted.delete_reason,
    )


def segment_period_to_domain(orm_period: ORMSegmentPeriod) -> domain.SegmentPeriod:
    """Convert SQLAlchemy SegmentPeriod model to domain SegmentPeriod entity."""
    return domain.SegmentPeriod(
        id=orm_period.id,
        from_date=orm_period.from_date,
        to_date=orm_period.to_date,
        currency=orm_period.currency,
        invoice_number=orm_period.invoice_number,
        version=orm_period.version,
        is_deleted=orm_period.is_deleted,
        created_at=orm_period.created_at,
    )


def partner_shares_to_json(shares) -> Optional[list[dict[str, str]]]:
    """Serialise partner shares for storage."""
    if not shares:
        return None
    return [
        {"partner_id": s.partner_id, "percentage": str(s.percentage), "share": str(s.share)}
        for s in shares
    ]


def segment_entry_to_domain(orm_entry: ORMSegmentEntry) -> domain.SegmentEntry:
    """Convert SQLAlchemy SegmentEntry model to domain SegmentEntry entity."""
    shares = tuple(
        domain.PartnerShare(
            partner_id=item["partner_id"],
            percentage=Decimal(item["percentage"]),
            share=Decimal(item["share"]),
        )
        for item in (orm_entry.partner_shares or [])
    )
    split = orm_entry.company_split_percent
    return domain.SegmentEntry(
        id=orm_entry.id,
        period_id=orm_entry.period_id,
        client_id=orm_entry.client_id,
        partner_id=orm_entry.partner_id,
        from_date=orm_entry.from_date,
        to_date=orm_entry.to_date,
        currency=orm_entry.currency,
        tickets=orm_entry.tickets,
        visas=orm_entry.visas,
        hotels=orm_entry.hotels,
        groups=orm_entry.groups,
        pricing_rules=dict(orm_entry.pricing_rules or {}),
        company_split_percent=None if split is None else Decimal(split),
        ticket_profits=_money(orm_entry.ticket_profits),
        other_profits=_money(orm_entry.other_profits),
        total=_money(orm_entry.total),
        company_share=_money(orm_entry.company_share),
        partner_share=_money(orm_entry.partner_share),
        invoice_number=orm_entry.invoice_number,
        period_invoice_number=orm_entry.period_invoice_number,
        entered_by=orm_entry.entered_by,
        is_deleted=orm_entry.is_deleted,
        created_at=orm_entry.created_at,
        partner_shares=shares,
        deleted_at=orm_entry.deleted_at,
        deleted_by=orm_entry.deleted_by,
    )


def subscription_to_domain(orm_sub: ORMSubscription) -> domain.Subscription:
    """Convert SQLAlchemy Subscription model to domain Subscription entity."""
    return domain.Subscription(
        id=orm_sub.id,
        client_id=orm_sub.client_id,
        supplier_id=orm_sub.supplier_id,
        box_id=orm_sub.box_id,
        service_name=orm_sub.service_name,
        quantity=orm_sub.quantity,
        unit_price=_money(orm_sub.unit_price),
        purchase_price=_money(orm_sub.purchase_price),
        discount=_money(orm_sub.discount),
        sale_price=_money(orm_sub.sale_price),
        profit=_money(orm_sub.profit),
        currency=orm_sub.currency,
        purchase_date=orm_sub.purchase_date,
        start_date=orm_sub.start_date,
        number_of_installments=orm_sub.number_of_installments,
        paid_amount=_money(orm_sub.paid_amount),
        status=orm_sub.status,
        invoice_number=orm_sub.invoice_number,
        is_deleted=orm_sub.is_deleted,
        created_at=orm_sub.created_at,
        notes=orm_sub.notes,
        deleted_at=orm_sub.deleted_at,
        cancellation_date=orm_sub.cancellation_date,
        cancellation_reason=orm_sub.cancellation_reason,
    )


def installment_to_domain(orm_inst: ORMInstallment) -> domain.Installment:
    """Convert SQLAlchemy Installment model to domain Installment entity."""
    return domain.Installment(
        id=orm_inst.id,
        subscription_id=orm_inst.subscription_id,
        amount=_money(orm_inst.amount),
        paid_amount=_money(orm_inst.paid_amount),
        discount=_money(orm_inst.discount),
        due_date=orm_inst.due_date,
        currency=orm_inst.currency,
        status=orm_inst.status,
        paid_at=orm_inst.paid_at,
    )


def payment_to_domain(orm_payment: ORMPayment) -> domain.Payment:
    """Convert SQLAlchemy Payment model to domain Payment entity."""
    return domain.Payment(
        id=orm_payment.id,
        installment_id=orm_payment.installment_id,
        amount=_money(orm_payment.amount),
        discount=_money(orm_payment.discount),
        currency=orm_payment.currency,
        date=orm_payment.date,
        journal_voucher_id=orm_payment.journal_voucher_id,
        invoice_number=orm_payment.invoice_number,
        box_id=orm_payment.box_id,
        paid_by=orm_payment.paid_by,
    )


def audit_record_to_domain(orm_record: ORMAuditRecord) -> domain.AuditRecord:
    """Convert SQLAlchemy AuditRecord model to domain AuditRecord entity."""
    return domain.AuditRecord(
        id=orm_record.id,
        user_id=orm_record.user_id,
        user_name=orm_record.user_name,
        action=orm_record.action,
        target_type=orm_record.target_type,
        target_id=orm_record.target_id,
        description=orm_record.description,
        created_at=orm_record.created_at,
    )
