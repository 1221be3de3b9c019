"""Subscription sales, installment payment allocation and payment deletion."""

import logging
from dataclasses import dataclass, field
from datetime import date as date_type, datetime, UTC
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from dateutil.relativedelta import relativedelta

from ledgerflow.database.base import Database
from ledgerflow.domain.audit import AuditLog, NullAuditLog
from ledgerflow.domain.entities import (
    EPSILON,
    INSTALLMENT_PAID,
    INSTALLMENT_UNPAID,
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_CANCELLED,
    SUBSCRIPTION_PAID,
    SUBSCRIPTION_STATUSES,
    SUBSCRIPTION_SUSPENDED,
    Actor,
    Installment,
    Payment,
    Subscription,
)
from ledgerflow.domain.errors import (
    InvalidAmountError,
    NotFoundError,
    ValidationError,
    installment_not_found,
    payment_not_found,
    relation_not_found,
    subscription_deleted,
    subscription_not_found,
)
from ledgerflow.domain.finance_accounts import load_finance_accounts
from ledgerflow.domain.posting import DraftEntry, PostingService, VoucherDraft, quantize

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

SOURCE_SUBSCRIPTION = "subscription"
SOURCE_INSTALLMENT = "subscription_installment"
SOURCE_OVERPAYMENT = "subscription_overpayment"
SOURCE_ADJUSTMENT = "subscription_payment_adjustment"
OVERPAYMENT_PREFIX = "RC"
ADJUSTMENT_PREFIX = "ADJ"


@dataclass(frozen=True)
class SubscriptionInput:
    """Data needed to sell a subscription."""

    client_id: str
    supplier_id: str
    service_name: str
    unit_price: Decimal
    purchase_price: Decimal
    currency: str
    purchase_date: date_type
    start_date: date_type
    number_of_installments: int = 1
    quantity: int = 1
    discount: Decimal = ZERO
    box_id: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of applying one payment to a subscription."""

    voucher_id: Optional[str]
    overpayment_voucher_id: Optional[str]
    payments: list[Payment] = field(default_factory=list)
    remaining_payment: Decimal = ZERO
    subscription_status: str = SUBSCRIPTION_ACTIVE


@dataclass
class _Allocation:
    installment: Installment
    payment: Decimal
    discount: Decimal


def allocate_fifo(
    installments: list[Installment], amount: Decimal, discount: Decimal
) -> tuple[list[_Allocation], Decimal, Decimal]:
    """Spread cash and discount over installments, oldest due date first.

    Each installment takes cash first, then discount for whatever cash left
    uncovered.

    Returns:
        (allocations, unapplied cash, unapplied discount)
    """
    remaining_payment = amount
    remaining_discount = discount
    allocations: list[_Allocation] = []
    for installment in sorted(installments, key=lambda i: (i.due_date, i.id)):
        if remaining_payment <= 0 and remaining_discount <= 0:
            break
        due = installment.remaining
        if due <= 0:
            continue
        payment_applied = min(remaining_payment, due)
        discount_applied = min(remaining_discount, due - payment_applied)
        remaining_payment -= payment_applied
        remaining_discount -= discount_applied
        if payment_applied + discount_applied > 0:
            allocations.append(_Allocation(installment, payment_applied, discount_applied))
    return allocations, remaining_payment, remaining_discount


def split_installments(total: Decimal, count: int) -> list[Decimal]:
    """Split a sale price into ``count`` installments; the last absorbs rounding."""
    base = (total / count).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    amounts = [base] * (count - 1)
    amounts.append(total - base * (count - 1))
    return amounts


class SubscriptionService:
    """Service for subscriptions, their installments and payments."""

    def __init__(self, db: Database, audit: Optional[AuditLog] = None):
        """Initialize subscription service.

        Args:
            db: Database instance
            audit: Audit sink (defaults to discarding entries)
        """
        self.db = db
        self.audit = audit or NullAuditLog()
        self.posting = PostingService(db, audit=self.audit)

    def _require_relation(self, relation_id: str) -> None:
        if self.db.get_relation(relation_id) is None:
            raise NotFoundError(relation_not_found(relation_id))

    def create_subscription(self, data: SubscriptionInput, actor: Actor) -> str:
        """Sell a subscription: record it, schedule installments and post the sale.

        Installments fall due monthly from ``start_date``. The sale voucher
        debits the client (sale) and the subscriptions expense (purchase), and
        credits the supplier (purchase) and the subscriptions revenue (sale).

        Args:
            data: Subscription details
            actor: Acting user

        Returns:
            Subscription ID

        Raises:
            ValidationError: If quantity or installment count is not positive
            InvalidAmountError: If prices are negative or the sale is not positive
            NotFoundError: If the client or supplier does not exist
            ConfigurationError: If the subscriptions accounts are not mapped
        """
        if data.quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if data.number_of_installments < 1:
            raise ValidationError("Number of installments must be at least 1")
        if data.unit_price < 0 or data.purchase_price < 0 or data.discount < 0:
            raise InvalidAmountError("Prices and discount cannot be negative")

        total_purchase = quantize(data.quantity * Decimal(data.purchase_price))
        total_sale = quantize(data.quantity * Decimal(data.unit_price) - Decimal(data.discount))
        if total_sale <= 0:
            raise InvalidAmountError("Sale price must be greater than zero")
        profit = total_sale - total_purchase

        self._require_relation(data.client_id)
        self._require_relation(data.supplier_id)
        finance = load_finance_accounts(self.db)
        revenue_account = finance.revenue_account("subscriptions")
        expense_account = finance.expense_account("subscriptions")

        with self.db.transaction():
            invoice_number = self.posting.sequences.next_voucher_number("SUB")
            subscription_id = self.db.create_subscription(
                client_id=data.client_id,
                supplier_id=data.supplier_id,
                box_id=data.box_id,
                service_name=data.service_name,
                quantity=data.quantity,
                unit_price=quantize(Decimal(data.unit_price)),
                purchase_price=total_purchase,
                discount=quantize(Decimal(data.discount)),
                sale_price=total_sale,
                profit=profit,
                currency=data.currency,
                purchase_date=data.purchase_date,
                start_date=data.start_date,
                number_of_installments=data.number_of_installments,
                paid_amount=ZERO,
                status=SUBSCRIPTION_ACTIVE,
                invoice_number=invoice_number,
                notes=data.notes,
                is_deleted=False,
            )
            for i, amount in enumerate(split_installments(total_sale, data.number_of_installments)):
                self.db.create_installment(
                    subscription_id=subscription_id,
                    amount=amount,
                    due_date=data.start_date + relativedelta(months=i),
                    currency=data.currency,
                )

            label = data.service_name
            entries = [
                DraftEntry(data.client_id, debit=total_sale, description=f"Subscription: {label}"),
                DraftEntry(revenue_account, credit=total_sale, description=f"Subscription revenue: {label}"),
            ]
            if total_purchase > 0:
                entries += [
                    DraftEntry(expense_account, debit=total_purchase, description=f"Subscription cost: {label}"),
                    DraftEntry(data.supplier_id, credit=total_purchase, description=f"Subscription payable: {label}"),
                ]
            self.posting.post(
                VoucherDraft(
                    source_type=SOURCE_SUBSCRIPTION,
                    source_id=subscription_id,
                    date=data.purchase_date,
                    currency=data.currency,
                    description=data.notes or f"Subscription sale: {data.service_name}",
                    entries=entries,
                    reference=invoice_number,
                    officer=actor.name,
                    created_by=actor.user_id,
                )
            )

        logger.info(
            "Created subscription %s (%s %s in %d installments)",
            invoice_number,
            total_sale,
            data.currency,
            data.number_of_installments,
        )
        self.audit.record(
            actor,
            "create",
            "subscription",
            f"Created subscription {invoice_number} for {data.service_name}",
            target_id=subscription_id,
        )
        return subscription_id

    def apply_payment(
        self,
        installment_id: str,
        amount: Decimal,
        currency: str,
        box_id: str,
        actor: Actor,
        discount: Decimal = ZERO,
        date: Optional[date_type] = None,
    ) -> PaymentResult:
        """Apply a payment and optional discount across outstanding installments.

        The subscription's unpaid installments are settled oldest due date
        first. One voucher records what was applied (debit box for cash, debit
        the discount account for the discount, credit the client); cash left
        over once every installment is settled is posted as a separate client
        credit voucher and still counts towards the subscription's paid amount.
        Everything, vouchers included, runs in one
        transaction, so a failure leaves no partial payment state.

        Args:
            installment_id: Installment the payment was received against
            amount: Cash received
            currency: Payment currency (must match the subscription)
            box_id: Box receiving the cash
            actor: Acting user
            discount: Discount granted on top of the cash
            date: Payment date (defaults to today)

        Returns:
            PaymentResult

        Raises:
            InvalidAmountError: If amount is not positive, discount is negative,
                or the discount exceeds what is still owed
            NotFoundError: If the installment or subscription does not exist
            ValidationError: If the currency does not match the subscription or
                the subscription is deleted
            ConfigurationError: If a discount is given and no discount account is mapped
        """
        amount = quantize(Decimal(amount))
        discount = quantize(Decimal(discount or 0))
        if amount <= 0:
            raise InvalidAmountError("Payment amount must be greater than zero")
        if discount < 0:
            raise InvalidAmountError("Discount cannot be negative")
        payment_date = date or date_type.today()
        discount_account = load_finance_accounts(self.db).discount_account() if discount > 0 else None

        with self.db.transaction():
            installment = self.db.get_installment(installment_id, for_update=True)
            if installment is None:
                raise NotFoundError(installment_not_found(installment_id))
            subscription = self.db.get_subscription(installment.subscription_id, for_update=True)
            if subscription is None:
                raise NotFoundError(subscription_not_found(installment.subscription_id))
            if subscription.is_deleted:
                raise ValidationError(subscription_deleted(subscription.invoice_number))
            if currency != subscription.currency:
                raise ValidationError(
                    f"Payment currency {currency} does not match subscription currency {subscription.currency}"
                )

            unpaid = self.db.list_installments(
                subscription.id, status=INSTALLMENT_UNPAID, for_update=True
            )
            outstanding = sum((i.remaining for i in unpaid), ZERO)
            if discount > 0 and amount + discount > outstanding + EPSILON:
                raise InvalidAmountError(
                    f"Payment {amount} plus discount {discount} exceeds outstanding {outstanding}"
                )

            allocations, overpayment, unapplied_discount = allocate_fifo(unpaid, amount, discount)
            applied_cash = amount - overpayment
            applied_discount = discount - unapplied_discount
            applied_total = applied_cash + applied_discount

            voucher_id = None
            invoice_number = None
            if applied_total > 0:
                label = subscription.service_name
                entries = []
                if applied_cash > 0:
                    entries.append(
                        DraftEntry(box_id, debit=applied_cash, description=f"Installment received: {label}")
                    )
                if applied_discount > 0:
                    entries.append(
                        DraftEntry(discount_account, debit=applied_discount, description=f"Discount granted: {label}")
                    )
                entries.append(
                    DraftEntry(subscription.client_id, credit=applied_total, description=f"Installment settled: {label}")
                )
                invoice_number = self.posting.sequences.next_voucher_number("SUBP")
                voucher_id = self.posting.post(
                    VoucherDraft(
                        source_type=SOURCE_INSTALLMENT,
                        source_id=installment_id,
                        date=payment_date,
                        currency=currency,
                        description=f"Installment payment: {subscription.service_name}",
                        entries=entries,
                        reference=invoice_number,
                        officer=actor.name,
                        created_by=actor.user_id,
                    )
                )

            now = datetime.now(UTC)
            payment_ids = []
            for allocation in allocations:
                inst = allocation.installment
                new_paid = inst.paid_amount + allocation.payment
                new_discount = inst.discount + allocation.discount
                fields = {"paid_amount": new_paid, "discount": new_discount}
                if new_paid + new_discount >= inst.amount - EPSILON:
                    fields.update(status=INSTALLMENT_PAID, paid_at=now)
                self.db.update_installment(inst.id, **fields)
                payment_ids.append(
                    self.db.create_payment(
                        installment_id=inst.id,
                        amount=allocation.payment,
                        discount=allocation.discount,
                        currency=inst.currency,
                        date=payment_date,
                        journal_voucher_id=voucher_id,
                        invoice_number=invoice_number,
                        box_id=box_id,
                        paid_by=actor.name,
                    )
                )

            overpayment_voucher_id = None
            if overpayment > 0:
                overpayment_voucher_id = self.posting.post(
                    VoucherDraft(
                        source_type=SOURCE_OVERPAYMENT,
                        source_id=subscription.id,
                        date=payment_date,
                        currency=currency,
                        description=f"Client credit after settling all installments of {subscription.service_name}",
                        entries=[
                            DraftEntry(box_id, debit=overpayment, description="Excess payment received"),
                            DraftEntry(subscription.client_id, credit=overpayment, description="Client credit balance"),
                        ],
                        reference=self.posting.sequences.next_voucher_number(OVERPAYMENT_PREFIX),
                        officer=actor.name,
                        created_by=actor.user_id,
                    )
                )

            # The client credit counts as paid on the subscription
            paid_amount = subscription.paid_amount + applied_total + overpayment
            status = subscription.status
            if paid_amount >= subscription.sale_price - EPSILON:
                status = SUBSCRIPTION_PAID
            self.db.update_subscription(subscription.id, paid_amount=paid_amount, status=status)
            payments = [self.db.get_payment(pid) for pid in payment_ids]

        logger.info(
            "Applied payment %s (+%s discount) to subscription %s across %d installments, overpayment %s",
            amount,
            discount,
            subscription.invoice_number,
            len(allocations),
            overpayment,
        )
        self.audit.record(
            actor,
            "payment",
            "subscription",
            f"Received {amount} {currency} for {subscription.service_name}",
            target_id=subscription.id,
        )
        return PaymentResult(
            voucher_id=voucher_id,
            overpayment_voucher_id=overpayment_voucher_id,
            payments=payments,
            remaining_payment=overpayment,
            subscription_status=status,
        )

    def delete_payment(self, payment_id: str, actor: Actor) -> str:
        """Remove a payment by posting a reversal of its share of the voucher.

        The installment and subscription totals are reduced and both return to
        an unpaid/active state.

        Args:
            payment_id: Payment to delete
            actor: Acting user

        Returns:
            ID of the reversal voucher

        Raises:
            NotFoundError: If the payment, its installment, subscription or voucher is missing
            ValidationError: If the subscription is deleted
        """
        with self.db.transaction():
            payment = self.db.get_payment(payment_id)
            if payment is None:
                raise NotFoundError(payment_not_found(payment_id))
            installment = self.db.get_installment(payment.installment_id, for_update=True)
            if installment is None:
                raise NotFoundError(installment_not_found(payment.installment_id))
            subscription = self.db.get_subscription(installment.subscription_id, for_update=True)
            if subscription is None:
                raise NotFoundError(subscription_not_found(installment.subscription_id))
            if subscription.is_deleted:
                raise ValidationError(subscription_deleted(subscription.invoice_number))
            original = self.db.get_voucher(payment.journal_voucher_id)
            if original is None:
                raise NotFoundError(f"Voucher {payment.journal_voucher_id} not found")

            total = payment.amount + payment.discount
            entries = [
                DraftEntry(subscription.client_id, debit=total, description=f"Reverse installment payment {payment.invoice_number}")
            ]
            if payment.amount > 0:
                entries.append(DraftEntry(payment.box_id, credit=payment.amount, description="Reverse cash received"))
            if payment.discount > 0:
                discount_account = load_finance_accounts(self.db).discount_account()
                entries.append(DraftEntry(discount_account, credit=payment.discount, description="Reverse discount"))
            reversal_id = self.posting.post(
                VoucherDraft(
                    source_type="reversal",
                    source_id=payment.journal_voucher_id,
                    date=date_type.today(),
                    currency=original.currency,
                    description=f"Reversal of installment payment {original.invoice_number}",
                    entries=entries,
                    officer=actor.name,
                    created_by=actor.user_id,
                    reversed_voucher_id=original.id,
                )
            )

            self.db.update_installment(
                installment.id,
                paid_amount=installment.paid_amount - payment.amount,
                discount=installment.discount - payment.discount,
                status=INSTALLMENT_UNPAID,
                paid_at=None,
            )
            status = subscription.status
            if status == SUBSCRIPTION_PAID:
                status = SUBSCRIPTION_ACTIVE
            self.db.update_subscription(
                subscription.id, paid_amount=subscription.paid_amount - total, status=status
            )
            self.db.delete_payment(payment_id)

        logger.info("Deleted payment %s on subscription %s", payment_id, subscription.invoice_number)
        self.audit.record(
            actor,
            "delete",
            "payment",
            f"Deleted payment {payment.invoice_number} of {payment.amount} on {subscription.service_name}",
            target_id=payment_id,
        )
        return reversal_id

    def update_payment(
        self,
        payment_id: str,
        amount: Decimal,
        actor: Actor,
        date: Optional[date_type] = None,
    ) -> Optional[str]:
        """Change a payment's cash amount and post an adjustment for the difference.

        An increase debits the box and credits the client; a decrease does
        the opposite. The installment and subscription totals move by the
        difference and both statuses are re-evaluated, all in one
        transaction. The original payment voucher is left as posted.

        Args:
            payment_id: Payment to change
            amount: New cash amount
            actor: Acting user
            date: New payment date (also dates the adjustment)

        Returns:
            ID of the adjustment voucher, or None when the amount is unchanged

        Raises:
            InvalidAmountError: If the amount is not positive or would overpay the installment
            NotFoundError: If the payment, its installment or subscription is missing
            ValidationError: If the subscription is deleted
        """
        amount = quantize(Decimal(amount))
        if amount <= 0:
            raise InvalidAmountError("Payment amount must be greater than zero; delete the payment instead")

        with self.db.transaction():
            payment = self.db.get_payment(payment_id)
            if payment is None:
                raise NotFoundError(payment_not_found(payment_id))
            installment = self.db.get_installment(payment.installment_id, for_update=True)
            if installment is None:
                raise NotFoundError(installment_not_found(payment.installment_id))
            subscription = self.db.get_subscription(installment.subscription_id, for_update=True)
            if subscription is None:
                raise NotFoundError(subscription_not_found(installment.subscription_id))
            if subscription.is_deleted:
                raise ValidationError(subscription_deleted(subscription.invoice_number))

            difference = amount - payment.amount
            new_paid = installment.paid_amount + difference
            if new_paid + installment.discount > installment.amount + EPSILON:
                raise InvalidAmountError(
                    f"Payment of {amount} would take installment past its amount of {installment.amount}"
                )

            fields = {"amount": amount}
            if date is not None:
                fields["date"] = date
            self.db.update_payment(payment_id, **fields)
            if difference == 0:
                voucher_id = None
            else:
                voucher_id = self._post_adjustment(payment, subscription, difference, actor, date)
                self._move_totals(installment, subscription, difference)

        logger.info(
            "Updated payment %s on subscription %s from %s to %s",
            payment_id,
            subscription.invoice_number,
            payment.amount,
            amount,
        )
        self.audit.record(
            actor,
            "update",
            "payment",
            f"Changed payment {payment.invoice_number} from {payment.amount} to {amount}",
            target_id=payment_id,
        )
        return voucher_id

    def _post_adjustment(
        self,
        payment: Payment,
        subscription: Subscription,
        difference: Decimal,
        actor: Actor,
        date: Optional[date_type],
    ) -> str:
        size = abs(difference)
        if difference > 0:
            notes = f"Installment payment increased: {payment.invoice_number}"
            debit, credit = payment.box_id, subscription.client_id
        else:
            notes = f"Installment payment reduced: {payment.invoice_number}"
            debit, credit = subscription.client_id, payment.box_id
        return self.posting.post(
            VoucherDraft(
                source_type=SOURCE_ADJUSTMENT,
                source_id=payment.id,
                date=date or date_type.today(),
                currency=payment.currency,
                description=notes,
                entries=[
                    DraftEntry(debit, debit=size, description=notes),
                    DraftEntry(credit, credit=size, description=notes),
                ],
                reference=self.posting.sequences.next_voucher_number(ADJUSTMENT_PREFIX),
                officer=actor.name,
                created_by=actor.user_id,
            )
        )

    def _move_totals(self, installment: Installment, subscription: Subscription, difference: Decimal) -> None:
        new_paid = installment.paid_amount + difference
        if new_paid + installment.discount >= installment.amount - EPSILON:
            fields = {"status": INSTALLMENT_PAID, "paid_at": installment.paid_at or datetime.now(UTC)}
        else:
            fields = {"status": INSTALLMENT_UNPAID, "paid_at": None}
        self.db.update_installment(installment.id, paid_amount=new_paid, **fields)

        paid_amount = subscription.paid_amount + difference
        status = subscription.status
        if paid_amount >= subscription.sale_price - EPSILON:
            status = SUBSCRIPTION_PAID
        elif status == SUBSCRIPTION_PAID:
            status = SUBSCRIPTION_ACTIVE
        self.db.update_subscription(subscription.id, paid_amount=paid_amount, status=status)

    def update_status(
        self, subscription_id: str, status: str, actor: Actor, reason: Optional[str] = None
    ) -> None:
        """Change a subscription's status.

        Cancelled and Suspended stamp the cancellation date and reason; Active
        clears them.

        Raises:
            ValidationError: If the status is unknown
            NotFoundError: If the subscription does not exist
        """
        if status not in SUBSCRIPTION_STATUSES:
            raise ValidationError(
                f"Unknown status '{status}'. Expected one of: {', '.join(SUBSCRIPTION_STATUSES)}"
            )
        fields: dict = {"status": status}
        if status in (SUBSCRIPTION_CANCELLED, SUBSCRIPTION_SUSPENDED):
            fields.update(cancellation_date=datetime.now(UTC), cancellation_reason=reason or "No reason given")
        elif status == SUBSCRIPTION_ACTIVE:
            fields.update(cancellation_date=None, cancellation_reason=None)
        if not self.db.update_subscription(subscription_id, **fields):
            raise NotFoundError(subscription_not_found(subscription_id))
        self.audit.record(
            actor, "update", "subscription", f"Changed status to {status}", target_id=subscription_id
        )

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        """Get subscription by ID."""
        return self.db.get_subscription(subscription_id)

    def list_subscriptions(self, include_deleted: bool = False) -> list[Subscription]:
        """List subscriptions, newest purchase first."""
        return self.db.list_subscriptions(include_deleted=include_deleted)

    def list_installments(self, subscription_id: str) -> list[Installment]:
        """List a subscription's installments, oldest due date first.

        Raises:
            NotFoundError: If the subscription does not exist
        """
        if self.db.get_subscription(subscription_id) is None:
            raise NotFoundError(subscription_not_found(subscription_id))
        return self.db.list_installments(subscription_id)

    def list_payments(self, installment_id: str) -> list[Payment]:
        """List payments applied to an installment, newest first."""
        return self.db.list_payments(installment_id=installment_id)
