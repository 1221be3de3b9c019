"""Subscription commands."""

import click
from ledgerflow.cli.error_handling import handle_domain_error, run_operation
from ledgerflow.domain.entities import SUBSCRIPTION_STATUSES
from ledgerflow.domain.subscriptions import SubscriptionInput, SubscriptionService
from ledgerflow.utils.amount_parser import parse_amount, parse_positive_amount
from ledgerflow.utils.date_parser import parse_date, parse_optional_date


def _service(ctx) -> SubscriptionService:
    return SubscriptionService(ctx.obj["db"], ctx.obj["audit"])


@click.group()
def subscription_group():
    """Sell subscriptions and collect installment payments."""
    pass


@subscription_group.command("create")
@click.option("--client", "client_id", required=True, help="Client relation ID")
@click.option("--supplier", "supplier_id", required=True, help="Supplier relation ID")
@click.option("--service", "service_name", required=True, help="Service sold")
@click.option("--unit-price", required=True, help="Sale price per unit")
@click.option("--purchase-price", default="0", help="Cost per unit")
@click.option("--currency", required=True, help="Currency code")
@click.option("--purchase-date", default="today", help="Sale date")
@click.option("--start-date", default="today", help="Due date of the first installment")
@click.option("--installments", default=1, show_default=True, type=click.IntRange(min=1))
@click.option("--quantity", default=1, show_default=True, type=click.IntRange(min=1))
@click.option("--discount", default="0", help="Discount on the sale")
@click.option("--box", "box_id", help="Default box for payments")
@click.option("--notes", help="Notes")
@click.pass_context
def create_subscription(
    ctx,
    client_id,
    supplier_id,
    service_name,
    unit_price,
    purchase_price,
    currency,
    purchase_date,
    start_date,
    installments,
    quantity,
    discount,
    box_id,
    notes,
):
    """Sell a subscription billed in monthly installments.

    Examples:
        ledgerflow subscription create --client C --supplier S --service "Hosting" \\
            --unit-price 300 --purchase-price 200 --currency USD --installments 3
    """
    try:
        data = SubscriptionInput(
            client_id=client_id,
            supplier_id=supplier_id,
            service_name=service_name,
            unit_price=parse_amount(unit_price),
            purchase_price=parse_amount(purchase_price),
            currency=currency.upper(),
            purchase_date=parse_date(purchase_date),
            start_date=parse_date(start_date),
            number_of_installments=installments,
            quantity=quantity,
            discount=parse_amount(discount),
            box_id=box_id,
            notes=notes,
        )
    except ValueError as e:
        handle_domain_error(ctx, e)

    service = _service(ctx)
    subscription_id = run_operation(ctx, service.create_subscription, data, ctx.obj["actor"])
    subscription = service.get_subscription(subscription_id)
    click.echo(
        f"Created subscription {subscription.invoice_number} (ID: {subscription_id}), "
        f"{subscription.sale_price} {subscription.currency} in {installments} installment(s)"
    )


@subscription_group.command("list")
@click.option("--all", "include_deleted", is_flag=True, help="Include soft-deleted subscriptions")
@click.pass_context
def list_subscriptions(ctx, include_deleted: bool):
    """List subscriptions."""
    subscriptions = _service(ctx).list_subscriptions(include_deleted=include_deleted)
    if not subscriptions:
        click.echo("No subscriptions found.")
        return

    click.echo("\nSubscriptions:")
    click.echo("-" * 100)
    for s in subscriptions:
        click.echo(
            f"{s.invoice_number:12s} | {s.service_name:20s} | {s.sale_price:>10} {s.currency} | "
            f"paid {s.paid_amount:>10} | {s.status:9s} | {s.id}"
        )


@subscription_group.command("installments")
@click.argument("subscription_id")
@click.pass_context
def list_installments(ctx, subscription_id: str):
    """List a subscription's installments, oldest first."""
    installments = run_operation(ctx, _service(ctx).list_installments, subscription_id)
    click.echo("\nInstallments:")
    click.echo("-" * 100)
    for i in installments:
        click.echo(
            f"{i.due_date} | {i.amount:>10} | paid {i.paid_amount:>10} | discount {i.discount:>8} | "
            f"remaining {i.remaining:>10} | {i.status:6s} | {i.id}"
        )


@subscription_group.command("pay")
@click.argument("installment_id")
@click.option("--amount", required=True, help="Cash received")
@click.option("--currency", required=True, help="Payment currency")
@click.option("--box", "box_id", required=True, help="Box receiving the cash")
@click.option("--discount", default="0", help="Discount granted")
@click.option("--date", "date_str", default="today", help="Payment date")
@click.pass_context
def pay_installment(ctx, installment_id, amount, currency, box_id, discount, date_str):
    """Apply a payment, oldest unpaid installment first."""
    try:
        cash = parse_positive_amount(amount)
        discount_amount = parse_amount(discount)
        payment_date = parse_date(date_str)
    except ValueError as e:
        handle_domain_error(ctx, e)

    result = run_operation(
        ctx,
        _service(ctx).apply_payment,
        installment_id,
        cash,
        currency.upper(),
        box_id,
        ctx.obj["actor"],
        discount=discount_amount,
        date=payment_date,
    )
    click.echo(f"Applied payment to {len(result.payments)} installment(s)")
    if result.overpayment_voucher_id:
        click.echo(f"Overpayment of {result.remaining_payment} recorded as client credit")
    click.echo(f"Subscription status: {result.subscription_status}")


@subscription_group.command("delete-payment")
@click.argument("payment_id")
@click.pass_context
def delete_payment(ctx, payment_id: str):
    """Remove a payment and post its reversal."""
    reversal_id = run_operation(ctx, _service(ctx).delete_payment, payment_id, ctx.obj["actor"])
    click.echo(f"Deleted payment {payment_id} (reversal voucher {reversal_id})")


@subscription_group.command("update-payment")
@click.argument("payment_id")
@click.option("--amount", required=True, help="New cash amount")
@click.option("--date", "date_str", default=None, help="New payment date")
@click.pass_context
def update_payment(ctx, payment_id: str, amount: str, date_str: str | None):
    """Change a payment's amount, posting an adjustment for the difference."""
    try:
        cash = parse_positive_amount(amount)
        payment_date = parse_optional_date(date_str)
    except ValueError as e:
        handle_domain_error(ctx, e)

    voucher_id = run_operation(
        ctx, _service(ctx).update_payment, payment_id, cash, ctx.obj["actor"], date=payment_date
    )
    if voucher_id:
        click.echo(f"Updated payment {payment_id} (adjustment voucher {voucher_id})")
    else:
        click.echo(f"Updated payment {payment_id}; amount unchanged")


@subscription_group.command("status")
@click.argument("subscription_id")
@click.argument("status", type=click.Choice(SUBSCRIPTION_STATUSES, case_sensitive=False))
@click.option("--reason", help="Reason for cancelling or suspending")
@click.pass_context
def update_status(ctx, subscription_id: str, status: str, reason: str | None):
    """Set a subscription's status."""
    status = next(s for s in SUBSCRIPTION_STATUSES if s.lower() == status.lower())
    run_operation(ctx, _service(ctx).update_status, subscription_id, status, ctx.obj["actor"], reason)
    click.echo(f"Subscription {subscription_id} is now {status}")


def register_commands(cli):
    """Register subscription commands with main CLI."""
    cli.add_command(subscription_group, name="subscription")
