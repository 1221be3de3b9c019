"""CLI error handling helpers."""

from typing import Any, Callable

import click

from ledgerflow.domain.errors import DomainError
from ledgerflow.domain.results import capture


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit with failure."""
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)


def run_operation(ctx: click.Context, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call a service operation, rendering a failed result and exiting with failure."""
    result = capture(func, *args, **kwargs)
    if not result.success:
        message = f"Error: {result.error}"
        if result.retryable:
            message += " (temporary store failure; safe to retry)"
        click.echo(message, err=True)
        ctx.exit(1)
    return result.data
