"""Tests for subscription sales and installment payments."""

import random
from datetime import date
from decimal import Decimal

import pytest

from ledgerflow.domain.errors import (
    ConfigurationError,
    InvalidAmountError,
    InvalidVoucherError,
    NotFoundError,
    ValidationError,
)
from ledgerflow.domain.finance_accounts import save_finance_accounts
from ledgerflow.domain.subscriptions import SubscriptionInput, allocate_fifo, split_installments


def _installments(subscription_service, subscription_id):
    return subscription_service.list_installments(subscription_id)


def _pay(service, installment_id, amount, chart, admin, discount="0", currency="USD"):
    return service.apply_payment(
        installment_id,
        Decimal(amount),
        currency,
        chart["box"],
        admin,
        discount=Decimal(discount),
        date=date(2024, 2, 1),
    )


def test_create_subscription_schedules_installments(subscription_service, make_subscription, temp_db, chart):
    subscription_id = make_subscription("300", 3)

    subscription = subscription_service.get_subscription(subscription_id)
    assert subscription.invoice_number == "SUB-000001"
    assert subscription.sale_price == Decimal("300.00")
    assert subscription.status == "Active"

    installments = _installments(subscription_service, subscription_id)
    assert [i.amount for i in installments] == [Decimal("100.00")] * 3
    assert [i.due_date for i in installments] == [date(2024, 1, 15), date(2024, 2, 15), date(2024, 3, 15)]
    assert all(i.status == "Unpaid" for i in installments)

    vouchers = temp_db.list_vouchers(source_type="subscription", source_id=subscription_id)
    assert len(vouchers) == 1
    assert vouchers[0].invoice_number == "SUB-000001"
    assert vouchers[0].debit_entries[0].account_id == chart["client"]
    assert vouchers[0].total_debit == Decimal("300.00")


def test_create_subscription_posts_purchase(subscription_service, make_subscription, temp_db, chart):
    subscription_id = make_subscription("300", 1, purchase_price="200")
    voucher = temp_db.list_vouchers(source_id=subscription_id)[0]
    debits = {line.account_id: line.amount for line in voucher.debit_entries}
    credits = {line.account_id: line.amount for line in voucher.credit_entries}
    assert debits == {chart["client"]: Decimal("300.00"), chart["subscription_cost"]: Decimal("200.00")}
    assert credits == {chart["subscription_revenue"]: Decimal("300.00"), chart["supplier"]: Decimal("200.00")}
    assert subscription_service.get_subscription(subscription_id).profit == Decimal("100.00")


def test_create_subscription_validation(subscription_service, chart, admin):
    base = dict(
        client_id=chart["client"],
        supplier_id=chart["supplier"],
        service_name="Hosting",
        unit_price=Decimal("100"),
        purchase_price=Decimal("0"),
        currency="USD",
        purchase_date=date(2024, 1, 1),
        start_date=date(2024, 1, 1),
    )
    with pytest.raises(ValidationError):
        subscription_service.create_subscription(SubscriptionInput(**{**base, "number_of_installments": 0}), admin)
    with pytest.raises(InvalidAmountError):
        subscription_service.create_subscription(SubscriptionInput(**{**base, "unit_price": Decimal("0")}), admin)
    with pytest.raises(NotFoundError):
        subscription_service.create_subscription(SubscriptionInput(**{**base, "client_id": "ghost"}), admin)
    assert subscription_service.list_subscriptions() == []


def test_split_installments_last_absorbs_rounding():
    assert split_installments(Decimal("100.00"), 3) == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]


def test_payment_settles_oldest_first(subscription_service, make_subscription, chart, admin, temp_db):
    """150 over three installments of 100 pays the first and half the second."""
    subscription_id = make_subscription("300", 3)
    first, second, third = _installments(subscription_service, subscription_id)

    # Paying against the last installment still settles the oldest first
    result = _pay(subscription_service, third.id, "150", chart, admin)

    first, second, third = _installments(subscription_service, subscription_id)
    assert (first.paid_amount, first.status) == (Decimal("100.00"), "Paid")
    assert first.paid_at is not None
    assert (second.paid_amount, second.status) == (Decimal("50.00"), "Unpaid")
    assert (third.paid_amount, third.status) == (Decimal("0.00"), "Unpaid")
    assert [p.amount for p in result.payments] == [Decimal("100.00"), Decimal("50.00")]
    assert result.overpayment_voucher_id is None

    voucher = temp_db.get_voucher(result.voucher_id)
    assert voucher.invoice_number == "SUBP-000001"
    assert voucher.debit_entries[0].account_id == chart["box"]
    assert voucher.credit_entries[0].account_id == chart["client"]
    assert voucher.total_debit == Decimal("150.00")
    assert subscription_service.get_subscription(subscription_id).paid_amount == Decimal("150.00")


def test_payment_with_discount_then_settle(subscription_service, make_subscription, chart, admin, temp_db):
    """40 cash + 10 discount leaves 50 due; a further 50 settles it."""
    subscription_id = make_subscription("100", 1)
    (installment,) = _installments(subscription_service, subscription_id)

    result = _pay(subscription_service, installment.id, "40", chart, admin, discount="10")
    (installment,) = _installments(subscription_service, subscription_id)
    assert installment.paid_amount == Decimal("40.00")
    assert installment.discount == Decimal("10.00")
    assert installment.remaining == Decimal("50.00")
    assert installment.status == "Unpaid"

    voucher = temp_db.get_voucher(result.voucher_id)
    debits = {line.account_id: line.amount for line in voucher.debit_entries}
    assert debits == {chart["box"]: Decimal("40.00"), chart["discounts"]: Decimal("10.00")}
    assert voucher.credit_entries[0].amount == Decimal("50.00")

    result = _pay(subscription_service, installment.id, "50", chart, admin)
    (installment,) = _installments(subscription_service, subscription_id)
    assert installment.status == "Paid"
    assert result.subscription_status == "Paid"
    assert subscription_service.get_subscription(subscription_id).status == "Paid"


def test_overpayment_posted_as_client_credit(subscription_service, make_subscription, chart, admin, temp_db):
    subscription_id = make_subscription("100", 1)
    (installment,) = _installments(subscription_service, subscription_id)

    result = _pay(subscription_service, installment.id, "130", chart, admin)

    assert result.remaining_payment == Decimal("30.00")
    main = temp_db.get_voucher(result.voucher_id)
    assert main.total_debit == Decimal("100.00")
    credit = temp_db.get_voucher(result.overpayment_voucher_id)
    assert credit.invoice_number == "RC-000001"
    assert credit.source_type == "subscription_overpayment"
    assert credit.total_credit == Decimal("30.00")
    assert credit.credit_entries[0].account_id == chart["client"]

    subscription = subscription_service.get_subscription(subscription_id)
    # Paid amount carries the whole payment, credit included
    assert subscription.paid_amount == Decimal("130.00")
    assert subscription.status == "Paid"
    (installment,) = _installments(subscription_service, subscription_id)
    assert installment.paid_amount == Decimal("100.00")


def test_discount_above_outstanding_rejected(subscription_service, make_subscription, chart, admin):
    subscription_id = make_subscription("100", 1)
    (installment,) = _installments(subscription_service, subscription_id)
    with pytest.raises(InvalidAmountError, match="exceeds outstanding"):
        _pay(subscription_service, installment.id, "95", chart, admin, discount="10")
    (installment,) = _installments(subscription_service, subscription_id)
    assert installment.paid_amount == Decimal("0.00")


@pytest.mark.parametrize("amount,discount", [("0", "0"), ("-5", "0"), ("10", "-1")])
def test_invalid_amounts_rejected(subscription_service, make_subscription, chart, admin, amount, discount):
    subscription_id = make_subscription("100", 1)
    (installment,) = _installments(subscription_service, subscription_id)
    with pytest.raises(InvalidAmountError):
        _pay(subscription_service, installment.id, amount, chart, admin, discount=discount)


def test_missing_installment(subscription_service, chart, admin):
    with pytest.raises(NotFoundError):
        _pay(subscription_service, "missing", "10", chart, admin)


def test_currency_mismatch_changes_nothing(subscription_service, make_subscription, chart, admin, temp_db):
    subscription_id = make_subscription("100", 1)
    (installment,) = _installments(subscription_service, subscription_id)
    with pytest.raises(ValidationError, match="currency"):
        _pay(subscription_service, installment.id, "10", chart, admin, currency="EUR")
    assert temp_db.list_vouchers(source_type="subscription_installment") == []


def test_failed_posting_rolls_back_payment(subscription_service, make_subscription, chart, admin, temp_db):
    """A voucher failure leaves installments, payments and numbers untouched."""
    subscription_id = make_subscription("100", 1)
    (installment,) = _installments(subscription_service, subscription_id)

    with pytest.raises(InvalidVoucherError):
        subscription_service.apply_payment(installment.id, Decimal("10"), "USD", "no-such-box", admin)

    (installment,) = _installments(subscription_service, subscription_id)
    assert installment.paid_amount == Decimal("0.00")
    assert subscription_service.list_payments(installment.id) == []
    assert subscription_service.posting.sequences.next_voucher_number("SUBP") == "SUBP-000001"


def test_discount_without_mapping_is_configuration_error(
    subscription_service, make_subscription, chart, admin, temp_db
):
    subscription_id = make_subscription("100", 1)
    (installment,) = _installments(subscription_service, subscription_id)
    save_finance_accounts(temp_db, {"receivableAccountId": chart["receivable"]})
    with pytest.raises(ConfigurationError):
        _pay(subscription_service, installment.id, "10", chart, admin, discount="5")


@pytest.mark.parametrize("seed", range(10))
def test_allocation_conserves_money(subscription_service, make_subscription, chart, admin, seed):
    """Whatever the payment sequence, installments absorb exactly what was applied."""
    rng = random.Random(seed)
    subscription_id = make_subscription("300", 3)
    applied = Decimal("0")

    for _ in range(rng.randint(1, 6)):
        outstanding = sum(i.remaining for i in _installments(subscription_service, subscription_id))
        if outstanding <= 0:
            break
        amount = min(Decimal(rng.randint(1, 15000)) / 100, outstanding)
        discount = Decimal("0")
        if rng.random() < 0.5 and outstanding - amount > 0:
            discount = min(Decimal(rng.randint(1, 2000)) / 100, outstanding - amount)
        target = rng.choice(_installments(subscription_service, subscription_id))
        _pay(subscription_service, target.id, str(amount), chart, admin, discount=str(discount))
        applied += amount + discount

    installments = _installments(subscription_service, subscription_id)
    absorbed = sum(i.paid_amount + i.discount for i in installments)
    assert absorbed == applied
    for i in installments:
        assert i.paid_amount + i.discount <= i.amount
        assert (i.status == "Paid") == (i.remaining <= Decimal("0.01"))
    assert subscription_service.get_subscription(subscription_id).paid_amount == applied


def test_allocate_fifo_pure():
    """The allocator orders by due date and leaves unapplied cash."""
    from ledgerflow.domain.entities import Installment

    late = Installment("b", "s", Decimal("100"), Decimal("0"), Decimal("0"), date(2024, 2, 1), "USD", "Unpaid")
    early = Installment("a", "s", Decimal("100"), Decimal("60"), Decimal("0"), date(2024, 1, 1), "USD", "Unpaid")
    allocations, cash_left, discount_left = allocate_fifo([late, early], Decimal("200"), Decimal("0"))
    assert [(a.installment.id, a.payment) for a in allocations] == [("a", Decimal("40")), ("b", Decimal("100"))]
    assert cash_left == Decimal("60")
    assert discount_left == Decimal("0")


def test_delete_payment_posts_partial_reversal(subscription_service, make_subscription, chart, admin, temp_db):
    subscription_id = make_subscription("300", 3)
    first, _, _ = _installments(subscription_service, subscription_id)
    result = _pay(subscription_service, first.id, "150", chart, admin)
    second_payment = result.payments[1]

    reversal_id = subscription_service.delete_payment(second_payment.id, admin)

    reversal = temp_db.get_voucher(reversal_id)
    assert reversal.reversed_voucher_id == result.voucher_id
    assert reversal.debit_entries[0].account_id == chart["client"]
    assert reversal.total_debit == Decimal("50.00")
    assert reversal.credit_entries[0].account_id == chart["box"]

    first, second, _ = _installments(subscription_service, subscription_id)
    assert first.status == "Paid"
    assert (second.paid_amount, second.status) == (Decimal("0.00"), "Unpaid")
    assert subscription_service.list_payments(second.id) == []
    assert subscription_service.get_subscription(subscription_id).paid_amount == Decimal("100.00")
    # The original payment voucher stays intact
    assert temp_db.get_voucher(result.voucher_id).total_debit == Decimal("150.00")


def test_delete_payment_reopens_paid_subscription(subscription_service, make_subscription, chart, admin):
    subscription_id = make_subscription("100", 1)
    (installment,) = _installments(subscription_service, subscription_id)
    result = _pay(subscription_service, installment.id, "90", chart, admin, discount="10")

    subscription_service.delete_payment(result.payments[0].id, admin)

    (installment,) = _installments(subscription_service, subscription_id)
    assert installment.status == "Unpaid"
    assert installment.paid_at is None
    assert installment.discount == Decimal("0.00")
    subscription = subscription_service.get_subscription(subscription_id)
    assert subscription.status == "Active"
    assert subscription.paid_amount == Decimal("0.00")


def test_delete_missing_payment(subscription_service, admin):
    with pytest.raises(NotFoundError):
        subscription_service.delete_payment("missing", admin)


def test_update_status(subscription_service, make_subscription, admin):
    subscription_id = make_subscription("100", 1)

    subscription_service.update_status(subscription_id, "Cancelled", admin, reason="Client left")
    subscription = subscription_service.get_subscription(subscription_id)
    assert subscription.status == "Cancelled"
    assert subscription.cancellation_reason == "Client left"
    assert subscription.cancellation_date is not None

    subscription_service.update_status(subscription_id, "Active", admin)
    subscription = subscription_service.get_subscription(subscription_id)
    assert subscription.cancellation_reason is None

    with pytest.raises(ValidationError):
        subscription_service.update_status(subscription_id, "Frozen", admin)
    with pytest.raises(NotFoundError):
        subscription_service.update_status("missing", "Active", admin)


def test_list_installments_missing_subscription(subscription_service):
    with pytest.raises(NotFoundError):
        subscription_service.list_installments("missing")


def test_update_payment_increase_posts_adjustment(subscription_service, make_subscription, chart, admin, temp_db):
    subscription_id = make_subscription("300", 3)
    first, _, _ = _installments(subscription_service, subscription_id)
    payment = _pay(subscription_service, first.id, "60", chart, admin).payments[0]

    voucher_id = subscription_service.update_payment(payment.id, Decimal("100"), admin, date=date(2024, 2, 5))

    adjustment = temp_db.get_voucher(voucher_id)
    assert adjustment.invoice_number == "ADJ-000001"
    assert adjustment.date == date(2024, 2, 5)
    assert adjustment.debit_entries[0].account_id == chart["box"]
    assert adjustment.credit_entries[0].account_id == chart["client"]
    assert adjustment.total_debit == adjustment.total_credit == Decimal("40.00")

    first, _, _ = _installments(subscription_service, subscription_id)
    assert (first.paid_amount, first.status) == (Decimal("100.00"), "Paid")
    assert first.paid_at is not None
    updated = subscription_service.list_payments(first.id)[0]
    assert (updated.amount, updated.date) == (Decimal("100.00"), date(2024, 2, 5))
    assert subscription_service.get_subscription(subscription_id).paid_amount == Decimal("100.00")


def test_update_payment_decrease_reopens(subscription_service, make_subscription, chart, admin, temp_db):
    subscription_id = make_subscription("100", 1)
    (installment,) = _installments(subscription_service, subscription_id)
    payment = _pay(subscription_service, installment.id, "100", chart, admin).payments[0]
    assert subscription_service.get_subscription(subscription_id).status == "Paid"

    voucher_id = subscription_service.update_payment(payment.id, Decimal("75"), admin)

    adjustment = temp_db.get_voucher(voucher_id)
    assert adjustment.debit_entries[0].account_id == chart["client"]
    assert adjustment.credit_entries[0].account_id == chart["box"]
    assert adjustment.total_debit == Decimal("25.00")

    (installment,) = _installments(subscription_service, subscription_id)
    assert (installment.paid_amount, installment.status) == (Decimal("75.00"), "Unpaid")
    assert installment.paid_at is None
    subscription = subscription_service.get_subscription(subscription_id)
    assert (subscription.paid_amount, subscription.status) == (Decimal("75.00"), "Active")


def test_update_payment_unchanged_amount_posts_nothing(subscription_service, make_subscription, chart, admin, temp_db):
    subscription_id = make_subscription("100", 1)
    (installment,) = _installments(subscription_service, subscription_id)
    payment = _pay(subscription_service, installment.id, "40", chart, admin).payments[0]
    before = len(temp_db.list_vouchers())

    assert subscription_service.update_payment(payment.id, Decimal("40"), admin, date=date(2024, 3, 1)) is None

    assert len(temp_db.list_vouchers()) == before
    assert subscription_service.list_payments(installment.id)[0].date == date(2024, 3, 1)


def test_update_payment_rejections(subscription_service, make_subscription, chart, admin, temp_db):
    subscription_id = make_subscription("100", 1)
    (installment,) = _installments(subscription_service, subscription_id)
    payment = _pay(subscription_service, installment.id, "40", chart, admin).payments[0]

    with pytest.raises(InvalidAmountError):
        subscription_service.update_payment(payment.id, Decimal("0"), admin)
    with pytest.raises(InvalidAmountError, match="past its amount"):
        subscription_service.update_payment(payment.id, Decimal("150"), admin)
    with pytest.raises(NotFoundError):
        subscription_service.update_payment("missing", Decimal("10"), admin)

    (installment,) = _installments(subscription_service, subscription_id)
    assert installment.paid_amount == Decimal("40.00")
    assert not [v for v in temp_db.list_vouchers() if v.invoice_number.startswith("ADJ")]


def test_payments_rejected_on_deleted_subscription(
    subscription_service, lifecycle_service, make_subscription, chart, admin, temp_db
):
    subscription_id = make_subscription("300", 3)
    first, _, _ = _installments(subscription_service, subscription_id)
    payment = _pay(subscription_service, first.id, "50", chart, admin).payments[0]
    (sale,) = temp_db.list_vouchers(source_id=subscription_id)
    lifecycle_service.soft_delete(sale.id, admin)

    with pytest.raises(ValidationError, match="is deleted"):
        _pay(subscription_service, first.id, "50", chart, admin)
    with pytest.raises(ValidationError, match="is deleted"):
        subscription_service.delete_payment(payment.id, admin)
    with pytest.raises(ValidationError, match="is deleted"):
        subscription_service.update_payment(payment.id, Decimal("60"), admin)

    first, _, _ = _installments(subscription_service, subscription_id)
    assert first.paid_amount == Decimal("50.00")
    assert len(subscription_service.list_payments(first.id)) == 1
