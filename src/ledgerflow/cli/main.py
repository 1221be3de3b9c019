"""Main CLI entry point."""

import click
from ledgerflow.database.factories import create_sqlite_database
from ledgerflow.domain.audit import DatabaseAuditLog
from ledgerflow.domain.entities import Actor
from ledgerflow.logging_config import configure_logging

# Import and register all commands at module level
from ledgerflow.cli.commands import (
    chart,
    settings,
    voucher,
    subscription,
    segment,
)

SYSTEM_USER = "system"


def build_actor(user: str, permissions: tuple[str, ...] = (), admin: bool | None = None) -> Actor:
    """Build the acting user; the system user is an administrator unless told otherwise."""
    name = (user or SYSTEM_USER).strip() or SYSTEM_USER
    is_admin = admin if admin is not None else name == SYSTEM_USER
    return Actor(user_id=name, name=name, permissions=frozenset(permissions), is_admin=is_admin)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides LEDGERFLOW_DB_PATH environment variable)",
    envvar="LEDGERFLOW_DB_PATH",
)
@click.option(
    "--user",
    default=SYSTEM_USER,
    show_default=True,
    envvar="LEDGERFLOW_USER",
    help="Acting user recorded on vouchers and in the audit log",
)
@click.option(
    "--permission",
    "permissions",
    multiple=True,
    envvar="LEDGERFLOW_PERMISSIONS",
    help="Permission granted to the acting user (repeatable), e.g. vouchers:delete",
)
@click.option("--admin/--no-admin", default=None, help="Treat the acting user as an administrator")
@click.option(
    "--log-level",
    envvar="LEDGERFLOW_LOG_LEVEL",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level (default: WARNING)",
)
@click.pass_context
def cli(
    ctx,
    db_path: str | None,
    user: str,
    permissions: tuple[str, ...],
    admin: bool | None,
    log_level: str | None,
):
    """Ledgerflow - double-entry posting for segments and subscriptions.

    Posts balanced journal vouchers for segment profit-sharing periods,
    subscription sales and installment payments, and soft-deletes, restores
    or permanently deletes them together with their source records.
    """
    ctx.ensure_object(dict)

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        configure_logging(log_level)
        db = create_sqlite_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.obj["audit"] = DatabaseAuditLog(db)
        ctx.obj["actor"] = build_actor(user, permissions, admin)


# Register all commands
chart.register_commands(cli)
settings.register_commands(cli)
voucher.register_commands(cli)
subscription.register_commands(cli)
segment.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
