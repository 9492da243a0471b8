"""CLI error handling helpers."""

import click

from bankimport.domain.errors import DomainError

EXIT_NEEDS_MAPPING = 2


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit with failure."""
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)
