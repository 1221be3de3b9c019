"""Settings commands."""

import json

import click
from ledgerflow.domain.finance_accounts import load_finance_accounts, save_finance_accounts


@click.group()
def settings_group():
    """Manage application settings."""
    pass


@settings_group.command("finance-accounts")
@click.argument("file", type=click.File("r"))
@click.pass_context
def set_finance_accounts(ctx, file):
    """Store the finance-account map from a JSON FILE.

    The file holds the financeAccounts document, e.g.

    \b
        {"receivableAccountId": "...", "clearingAccountId": "...",
         "revenueMap": {"segments": "..."}}
    """
    try:
        raw = json.load(file)
    except json.JSONDecodeError as e:
        click.echo(f"Error: Invalid JSON in {file.name}: {e}", err=True)
        ctx.exit(1)
    if not isinstance(raw, dict):
        click.echo("Error: The finance-account map must be a JSON object", err=True)
        ctx.exit(1)

    accounts = save_finance_accounts(ctx.obj["db"], raw)
    configured = sum(1 for value in accounts.to_dict().values() if isinstance(value, str) and value)
    click.echo(f"Saved finance-account map ({configured} roles configured)")


@settings_group.command("show")
@click.pass_context
def show_settings(ctx):
    """Show the normalised finance-account map."""
    accounts = load_finance_accounts(ctx.obj["db"])
    click.echo(json.dumps(accounts.to_dict(), indent=2, sort_keys=True))


def register_commands(cli):
    """Register settings commands with main CLI."""
    cli.add_command(settings_group, name="settings")
