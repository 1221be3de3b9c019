"""Segment period commands."""

import json

import click
from ledgerflow.cli.error_handling import run_operation
from ledgerflow.domain.segments import PeriodInput, SegmentPeriodService


def _service(ctx) -> SegmentPeriodService:
    return SegmentPeriodService(ctx.obj["db"], ctx.obj["audit"])


@click.group()
def segment_group():
    """Manage segment profit-sharing periods."""
    pass


@segment_group.command("add-period")
@click.argument("file", type=click.File("r"))
@click.option("--replace", "replace_period_id", help="Period to permanently replace")
@click.pass_context
def add_period(ctx, file, replace_period_id: str | None):
    """Add a period from a JSON FILE and post its vouchers.

    \b
    {"from_date": "2024-01-01", "to_date": "2024-01-31", "currency": "USD",
     "box_id": "...", "entries": [{"client_id": "...", "tickets": 10,
     "visas": 4, "partner_id": "...", "company_split_percent": 70}]}
    """
    try:
        raw = json.load(file)
    except json.JSONDecodeError as e:
        click.echo(f"Error: Invalid JSON in {file.name}: {e}", err=True)
        ctx.exit(1)

    period = run_operation(ctx, PeriodInput.from_dict, raw)
    result = run_operation(
        ctx, _service(ctx).add_period, period, ctx.obj["actor"], replace_period_id=replace_period_id
    )
    click.echo(
        f"Added period {result.invoice_number} (ID: {result.period_id}) with "
        f"{len(result.entry_ids)} entries and {len(result.voucher_ids)} vouchers"
    )


@segment_group.command("delete-period")
@click.argument("period_id")
@click.option("--permanent", is_flag=True, help="Permanently delete instead of soft-deleting")
@click.pass_context
def delete_period(ctx, period_id: str, permanent: bool):
    """Delete a period's entries and vouchers."""
    count = run_operation(ctx, _service(ctx).delete_period, period_id, ctx.obj["actor"], permanent=permanent)
    click.echo(f"{'Permanently deleted' if permanent else 'Deleted'} {count} segment entries")


@segment_group.command("restore-period")
@click.argument("period_id")
@click.pass_context
def restore_period(ctx, period_id: str):
    """Restore a soft-deleted period."""
    count = run_operation(ctx, _service(ctx).restore_period, period_id, ctx.obj["actor"])
    click.echo(f"Restored {count} segment entries")


@segment_group.command("periods")
@click.option("--all", "include_deleted", is_flag=True, help="Include deleted periods")
@click.pass_context
def list_periods(ctx, include_deleted: bool):
    """List periods with their totals."""
    summaries = _service(ctx).list_periods(include_deleted=include_deleted)
    if not summaries:
        click.echo("No segment periods found.")
        return

    click.echo("\nSegment periods:")
    click.echo("-" * 100)
    for s in summaries:
        flag = " (deleted)" if s.period.is_deleted else ""
        click.echo(
            f"{s.period.invoice_number:12s} | {s.period.from_date} to {s.period.to_date} | "
            f"{len(s.entries):3d} entries | total {s.total:>10} | company {s.company_share:>10} | "
            f"partners {s.partner_share:>10} {s.period.currency}{flag} | {s.period.id}"
        )


def register_commands(cli):
    """Register segment commands with main CLI."""
    cli.add_command(segment_group, name="segment")
