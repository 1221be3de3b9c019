"""Chart of accounts, relation and box commands."""

import click
from ledgerflow.cli.error_handling import run_operation
from ledgerflow.domain.chart import ChartService
from ledgerflow.domain.entities import ACCOUNT_CATEGORIES, RELATION_KINDS


@click.group()
def account_group():
    """Manage ledger accounts."""
    pass


@account_group.command("add")
@click.argument("code")
@click.argument("name")
@click.option(
    "--category",
    required=True,
    type=click.Choice(ACCOUNT_CATEGORIES, case_sensitive=False),
    help="Account category",
)
@click.pass_context
def add_account(ctx, code: str, name: str, category: str):
    """Add a ledger account.

    Examples:
        ledgerflow account add 1100 "Receivables" --category asset
        ledgerflow account add 4100 "Segment revenue" --category revenue
    """
    service = ChartService(ctx.obj["db"])
    account_id = run_operation(ctx, service.create_account, code=code, name=name, category=category)
    click.echo(f"Created account {code} '{name}' (ID: {account_id})")


@account_group.command("list")
@click.pass_context
def list_accounts(ctx):
    """List all ledger accounts."""
    accounts = ChartService(ctx.obj["db"]).list_accounts()
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\nAccounts:")
    click.echo("-" * 80)
    for acc in accounts:
        click.echo(f"{acc.code:8s} | {acc.name:30s} | {acc.category:10s} | {acc.id}")


@click.group()
def relation_group():
    """Manage clients, suppliers and partners."""
    pass


@relation_group.command("add")
@click.argument("name")
@click.option("--kind", required=True, type=click.Choice(RELATION_KINDS, case_sensitive=False))
@click.pass_context
def add_relation(ctx, name: str, kind: str):
    """Add a client, supplier or partner."""
    service = ChartService(ctx.obj["db"])
    relation_id = run_operation(ctx, service.create_relation, name=name, kind=kind)
    click.echo(f"Created {kind.lower()} '{name}' (ID: {relation_id})")


@relation_group.command("list")
@click.option("--kind", type=click.Choice(RELATION_KINDS, case_sensitive=False), help="Only this kind")
@click.pass_context
def list_relations(ctx, kind: str | None):
    """List relations."""
    relations = ChartService(ctx.obj["db"]).list_relations(kind=kind.lower() if kind else None)
    if not relations:
        click.echo("No relations found.")
        return

    click.echo("\nRelations:")
    click.echo("-" * 80)
    for rel in relations:
        click.echo(f"{rel.kind:8s} | {rel.name:30s} | {rel.id}")


@click.group()
def box_group():
    """Manage cash boxes."""
    pass


@box_group.command("add")
@click.argument("name")
@click.option("--currency", required=True, help="3-letter currency code")
@click.pass_context
def add_box(ctx, name: str, currency: str):
    """Add a cash box."""
    service = ChartService(ctx.obj["db"])
    box_id = run_operation(ctx, service.create_box, name=name, currency=currency)
    click.echo(f"Created box '{name}' (ID: {box_id})")


@box_group.command("list")
@click.pass_context
def list_boxes(ctx):
    """List cash boxes."""
    boxes = ChartService(ctx.obj["db"]).list_boxes()
    if not boxes:
        click.echo("No boxes found.")
        return

    click.echo("\nBoxes:")
    click.echo("-" * 80)
    for box in boxes:
        click.echo(f"{box.name:30s} | {box.currency} | {box.id}")


def register_commands(cli):
    """Register chart commands with main CLI."""
    cli.add_command(account_group, name="account")
    cli.add_command(relation_group, name="relation")
    cli.add_command(box_group, name="box")
