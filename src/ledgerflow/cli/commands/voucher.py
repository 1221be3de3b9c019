"""Journal voucher commands."""

import click
from ledgerflow.cli.error_handling import handle_domain_error, run_operation
from ledgerflow.domain.lifecycle import VoucherLifecycleService
from ledgerflow.domain.posting import DraftEntry, PostingService, VoucherDraft
from ledgerflow.utils.amount_parser import parse_positive_amount
from ledgerflow.utils.date_parser import parse_date


def _parse_lines(values: tuple[str, ...], side: str) -> list[DraftEntry]:
    """Turn ACCOUNT=AMOUNT options into draft entries."""
    entries = []
    for value in values:
        account_id, sep, amount = value.partition("=")
        if not sep or not account_id.strip():
            raise ValueError(f"Expected ACCOUNT=AMOUNT, got '{value}'")
        parsed = parse_positive_amount(amount)
        if side == "debit":
            entries.append(DraftEntry(account_id.strip(), debit=parsed))
        else:
            entries.append(DraftEntry(account_id.strip(), credit=parsed))
    return entries


def _print_voucher(voucher) -> None:
    click.echo(f"\nVoucher {voucher.invoice_number} ({voucher.id})")
    click.echo("-" * 80)
    click.echo(f"Date:        {voucher.date}")
    click.echo(f"Source:      {voucher.source_type} {voucher.source_id}")
    click.echo(f"Description: {voucher.description}")
    click.echo(f"Status:      {voucher.status}")
    if voucher.reversed_voucher_id:
        click.echo(f"Reverses:    {voucher.reversed_voucher_id}")
    for line in voucher.debit_entries:
        click.echo(f"  Dr {line.account_id:34s} {line.amount:>14} {voucher.currency}")
    for line in voucher.credit_entries:
        click.echo(f"  Cr {line.account_id:34s} {line.amount:>14} {voucher.currency}")


@click.group()
def voucher_group():
    """Post, inspect, delete and restore journal vouchers."""
    pass


@voucher_group.command("post")
@click.option("--debit", "debits", multiple=True, required=True, help="ACCOUNT=AMOUNT (repeatable)")
@click.option("--credit", "credits", multiple=True, required=True, help="ACCOUNT=AMOUNT (repeatable)")
@click.option("--currency", required=True, help="Voucher currency")
@click.option("--description", default="", help="Voucher description")
@click.option("--date", "date_str", default="today", help="Voucher date (YYYY-MM-DD or 'today')")
@click.option("--source-type", default="journal_voucher", show_default=True, help="Business source type")
@click.option("--source-id", default="manual", show_default=True, help="Business source id")
@click.option("--reference", help="Use this invoice number instead of generating one")
@click.pass_context
def post_voucher(ctx, debits, credits, currency, description, date_str, source_type, source_id, reference):
    """Post a manual journal voucher.

    Examples:
        ledgerflow voucher post --debit CASH_ID=100 --credit REVENUE_ID=100 --currency USD
    """
    actor = ctx.obj["actor"]
    try:
        entries = _parse_lines(debits, "debit") + _parse_lines(credits, "credit")
        voucher_date = parse_date(date_str)
    except ValueError as e:
        handle_domain_error(ctx, e)

    service = PostingService(ctx.obj["db"], ctx.obj["audit"])
    draft = VoucherDraft(
        source_type=source_type,
        source_id=source_id,
        date=voucher_date,
        currency=currency.upper(),
        description=description,
        entries=entries,
        reference=reference,
        officer=actor.name,
        created_by=actor.user_id,
    )
    voucher_id = run_operation(ctx, service.post, draft)
    voucher = service.get_voucher(voucher_id)
    click.echo(f"Posted voucher {voucher.invoice_number} (ID: {voucher_id})")


@voucher_group.command("list")
@click.option("--all", "include_deleted", is_flag=True, help="Include soft-deleted vouchers")
@click.option("--source-type", help="Only vouchers from this source type")
@click.option("--source-id", help="Only vouchers from this source record")
@click.pass_context
def list_vouchers(ctx, include_deleted: bool, source_type: str | None, source_id: str | None):
    """List vouchers, newest first."""
    service = PostingService(ctx.obj["db"])
    vouchers = service.list_vouchers(
        include_deleted=include_deleted, source_type=source_type, source_id=source_id
    )
    if not vouchers:
        click.echo("No vouchers found.")
        return

    click.echo("\nVouchers:")
    click.echo("-" * 100)
    for v in vouchers:
        click.echo(
            f"{v.invoice_number:14s} | {v.date} | {v.source_type:24s} | "
            f"{v.total_debit:>12} {v.currency} | {v.status:8s} | {v.id}"
        )


@voucher_group.command("show")
@click.argument("voucher_id")
@click.pass_context
def show_voucher(ctx, voucher_id: str):
    """Show one voucher with its lines."""
    voucher = PostingService(ctx.obj["db"]).get_voucher(voucher_id)
    if voucher is None:
        click.echo(f"Error: Voucher {voucher_id} not found", err=True)
        ctx.exit(1)
    _print_voucher(voucher)


@voucher_group.command("reverse")
@click.argument("voucher_id")
@click.option("--description", help="Description of the reversal voucher")
@click.pass_context
def reverse_voucher(ctx, voucher_id: str, description: str | None):
    """Post a voucher that undoes VOUCHER_ID."""
    service = PostingService(ctx.obj["db"], ctx.obj["audit"])
    reversal_id = run_operation(ctx, service.reverse, voucher_id, ctx.obj["actor"], description)
    click.echo(f"Posted reversal {service.get_voucher(reversal_id).invoice_number} (ID: {reversal_id})")


@voucher_group.command("delete")
@click.argument("voucher_ids", nargs=-1, required=True)
@click.option("--reason", help="Reason recorded in the deleted log")
@click.pass_context
def delete_voucher(ctx, voucher_ids: tuple[str, ...], reason: str | None):
    """Soft-delete one or more vouchers and their source records."""
    service = VoucherLifecycleService(ctx.obj["db"], ctx.obj["audit"])
    if len(voucher_ids) == 1:
        run_operation(ctx, service.soft_delete, voucher_ids[0], ctx.obj["actor"], reason)
        click.echo(f"Deleted voucher {voucher_ids[0]}")
        return
    count = run_operation(ctx, service.soft_delete_many, list(voucher_ids), ctx.obj["actor"], reason)
    click.echo(f"Deleted {count} vouchers")


@voucher_group.command("restore")
@click.argument("voucher_ids", nargs=-1, required=True)
@click.pass_context
def restore_voucher(ctx, voucher_ids: tuple[str, ...]):
    """Restore soft-deleted vouchers and their source records."""
    service = VoucherLifecycleService(ctx.obj["db"], ctx.obj["audit"])
    if len(voucher_ids) == 1:
        run_operation(ctx, service.restore, voucher_ids[0], ctx.obj["actor"])
        click.echo(f"Restored voucher {voucher_ids[0]}")
        return
    count = run_operation(ctx, service.restore_many, list(voucher_ids), ctx.obj["actor"])
    click.echo(f"Restored {count} vouchers")


@voucher_group.command("purge")
@click.argument("voucher_ids", nargs=-1, required=True)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def purge_voucher(ctx, voucher_ids: tuple[str, ...], yes: bool):
    """Permanently delete soft-deleted vouchers and their source records."""
    if not yes and not click.confirm(f"Permanently delete {len(voucher_ids)} voucher(s)?"):
        click.echo("Deletion cancelled.")
        return

    service = VoucherLifecycleService(ctx.obj["db"], ctx.obj["audit"])
    if len(voucher_ids) == 1:
        run_operation(ctx, service.purge, voucher_ids[0], ctx.obj["actor"])
        click.echo(f"Permanently deleted voucher {voucher_ids[0]}")
        return
    count = run_operation(ctx, service.purge_many, list(voucher_ids), ctx.obj["actor"])
    click.echo(f"Permanently deleted {count} vouchers")


@voucher_group.command("deleted")
@click.pass_context
def list_deleted(ctx):
    """Show the deleted log."""
    deleted = VoucherLifecycleService(ctx.obj["db"]).list_deleted()
    if not deleted:
        click.echo("Deleted log is empty.")
        return

    click.echo("\nDeleted vouchers:")
    click.echo("-" * 100)
    for item in deleted:
        snapshot = item.snapshot
        click.echo(
            f"{snapshot.get('invoice_number', ''):14s} | {item.deleted_at:%Y-%m-%d %H:%M} | "
            f"{item.deleted_by:12s} | {item.delete_reason or '':24s} | {item.voucher_id}"
        )


def register_commands(cli):
    """Register voucher commands with main CLI."""
    cli.add_command(voucher_group, name="voucher")
