"""Tests for the ledger posting service."""

import random
from datetime import date
from decimal import Decimal

import pytest

from ledgerflow.domain.errors import (
    ConfigurationError,
    InvalidVoucherError,
    NotFoundError,
    ValidationError,
)
from ledgerflow.domain.finance_accounts import save_finance_accounts
from ledgerflow.domain.posting import DraftEntry, VoucherDraft, validate_entries


def _draft(entries, **overrides):
    fields = dict(
        source_type="journal_voucher",
        source_id="manual",
        date=date(2024, 3, 1),
        currency="USD",
        description="Test voucher",
        entries=entries,
    )
    fields.update(overrides)
    return VoucherDraft(**fields)


def test_post_balanced_voucher(posting_service, chart):
    """A balanced voucher is stored with its lines and a JE number."""
    voucher_id = posting_service.post(
        _draft(
            [
                DraftEntry(chart["cash"], debit=Decimal("100")),
                DraftEntry(chart["segment_revenue"], credit=Decimal("60")),
                DraftEntry(chart["client"], credit=Decimal("40")),
            ]
        )
    )

    voucher = posting_service.get_voucher(voucher_id)
    assert voucher.invoice_number == "JE-000001"
    assert voucher.total_debit == voucher.total_credit == Decimal("100.00")
    assert len(voucher.debit_entries) == 1
    assert len(voucher.credit_entries) == 2
    assert voucher.status == "active"
    assert not voucher.is_deleted


def test_post_uses_reference_when_given(posting_service, chart):
    voucher_id = posting_service.post(
        _draft(
            [DraftEntry(chart["cash"], debit=Decimal("5")), DraftEntry(chart["client"], credit=Decimal("5"))],
            reference="MANUAL-1",
        )
    )
    assert posting_service.get_voucher(voucher_id).invoice_number == "MANUAL-1"


def test_post_prefix_follows_source_type(posting_service, chart):
    voucher_id = posting_service.post(
        _draft(
            [DraftEntry(chart["cash"], debit=Decimal("5")), DraftEntry(chart["client"], credit=Decimal("5"))],
            source_type="company_share",
        )
    )
    assert posting_service.get_voucher(voucher_id).invoice_number == "COMP-000001"


def test_unbalanced_voucher_rejected_without_writes(posting_service, chart, temp_db):
    """Nothing is written, not even a sequence number, when validation fails."""
    with pytest.raises(InvalidVoucherError, match="not balanced"):
        posting_service.post(
            _draft(
                [
                    DraftEntry(chart["cash"], debit=Decimal("100")),
                    DraftEntry(chart["segment_revenue"], credit=Decimal("99.99")),
                ]
            )
        )
    assert posting_service.list_vouchers(include_deleted=True) == []
    assert posting_service.sequences.next_value("JE") == 1


def test_unknown_account_rejected(posting_service, chart):
    with pytest.raises(InvalidVoucherError, match="nope"):
        posting_service.post(
            _draft([DraftEntry(chart["cash"], debit=Decimal("1")), DraftEntry("nope", credit=Decimal("1"))])
        )


@pytest.mark.parametrize(
    "entries",
    [
        [],
        [DraftEntry("a", debit=Decimal("1"))],
        [DraftEntry("a", debit=Decimal("-1")), DraftEntry("b", credit=Decimal("-1"))],
        [DraftEntry("a", debit=Decimal("1"), credit=Decimal("1")), DraftEntry("b", credit=Decimal("0"))],
        [DraftEntry("a"), DraftEntry("b", credit=Decimal("1"))],
        [DraftEntry("", debit=Decimal("1")), DraftEntry("b", credit=Decimal("1"))],
    ],
)
def test_malformed_entries_rejected(entries):
    with pytest.raises(InvalidVoucherError):
        validate_entries(entries)


def test_many_accounts_checked_in_batches(posting_service, temp_db):
    """Vouchers touching more accounts than one lookup allows still validate."""
    from ledgerflow.domain.chart import ChartService

    chart_service = ChartService(temp_db)
    accounts = [chart_service.create_account(str(3000 + i), f"Acc {i}", "asset") for i in range(45)]
    sink = chart_service.create_account("9999", "Sink", "equity")
    entries = [DraftEntry(a, debit=Decimal("1")) for a in accounts]
    entries.append(DraftEntry(sink, credit=Decimal("45")))

    voucher = posting_service.get_voucher(posting_service.post(_draft(entries)))
    assert len(voucher.debit_entries) == 45


@pytest.mark.parametrize("seed", range(5))
def test_random_balanced_vouchers_post(posting_service, chart, seed):
    """Randomly split amounts always post with equal sides."""
    rng = random.Random(seed)
    total = Decimal(rng.randint(100, 100000)) / 100
    parts = []
    remaining = total
    for _ in range(rng.randint(1, 4)):
        part = (remaining * Decimal(rng.randint(1, 60)) / 100).quantize(Decimal("0.01"))
        if part <= 0:
            break
        parts.append(part)
        remaining -= part
    parts.append(remaining)

    entries = [DraftEntry(chart["cash"], debit=total)]
    entries += [DraftEntry(chart["segment_revenue"], credit=p) for p in parts if p > 0]
    voucher = posting_service.get_voucher(posting_service.post(_draft(entries)))
    assert voucher.total_debit == voucher.total_credit == total


def test_idempotency_key_returns_existing_voucher(posting_service, chart):
    entries = [DraftEntry(chart["cash"], debit=Decimal("10")), DraftEntry(chart["client"], credit=Decimal("10"))]
    first = posting_service.post(_draft(entries, idempotency_key="segment:x:segment"))
    second = posting_service.post(_draft(entries, idempotency_key="segment:x:segment"))
    assert first == second
    assert len(posting_service.list_vouchers()) == 1


def test_reverse_swaps_sides(posting_service, chart, admin, temp_db):
    voucher_id = posting_service.post(
        _draft([DraftEntry(chart["cash"], debit=Decimal("30")), DraftEntry(chart["client"], credit=Decimal("30"))])
    )
    reversal = posting_service.get_voucher(posting_service.reverse(voucher_id, admin))

    assert reversal.invoice_number.startswith("REV-")
    assert reversal.reversed_voucher_id == voucher_id
    assert reversal.debit_entries[0].account_id == chart["client"]
    assert reversal.credit_entries[0].account_id == chart["cash"]
    # Original untouched
    assert posting_service.get_voucher(voucher_id).status == "active"
    actions = [r.action for r in temp_db.list_audit_records(target_type="voucher")]
    assert actions == ["reverse"]


def test_reverse_missing_or_deleted(posting_service, lifecycle_service, chart, admin):
    with pytest.raises(NotFoundError):
        posting_service.reverse("missing", admin)

    voucher_id = posting_service.post(
        _draft([DraftEntry(chart["cash"], debit=Decimal("1")), DraftEntry(chart["client"], credit=Decimal("1"))])
    )
    lifecycle_service.soft_delete(voucher_id, admin)
    with pytest.raises(ValidationError):
        posting_service.reverse(voucher_id, admin)


def test_post_revenue_uses_cash_and_mapped_revenue(posting_service, chart, admin):
    voucher_id = posting_service.post_revenue(
        "segments", "seg-1", date(2024, 1, 31), "USD", Decimal("75"), "Segment revenue", admin
    )
    voucher = posting_service.get_voucher(voucher_id)
    assert voucher.debit_entries[0].account_id == chart["cash"]
    assert voucher.credit_entries[0].account_id == chart["segment_revenue"]


def test_post_revenue_deferred_to_receivable(posting_service, chart, admin, temp_db):
    save_finance_accounts(
        temp_db,
        {
            "receivableAccountId": chart["receivable"],
            "defaultCashId": chart["cash"],
            "preventDirectCashRevenue": True,
            "revenueMap": {"segments": chart["segment_revenue"]},
        },
    )
    voucher_id = posting_service.post_revenue(
        "segments", "seg-1", date(2024, 1, 31), "USD", Decimal("75"), "Segment revenue", admin
    )
    assert posting_service.get_voucher(voucher_id).debit_entries[0].account_id == chart["receivable"]


def test_post_revenue_zero_posts_nothing(posting_service, chart, admin):
    assert posting_service.post_revenue("segments", "s", date(2024, 1, 1), "USD", Decimal("0"), "x", admin) is None


def test_post_cost_requires_payable(posting_service, chart, admin, temp_db):
    save_finance_accounts(temp_db, {"expenseMap": {"subscriptions": chart["subscription_cost"]}})
    with pytest.raises(ConfigurationError, match="payable"):
        posting_service.post_cost("subscriptions", "sub", "s1", date(2024, 1, 1), "USD", Decimal("10"), admin)
