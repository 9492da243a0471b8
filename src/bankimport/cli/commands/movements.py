"""Stored movement commands."""

import click


@click.group()
def movements_group():
    """Browse imported movements."""
    pass


@movements_group.command("list")
@click.option("--account", required=True, help="Account the movements belong to")
@click.pass_context
def list_movements(ctx, account: str):
    """List imported movements of an account."""
    db = ctx.obj["db"]

    movements = db.list_movements(account)
    if not movements:
        click.echo("No movements found.")
        return

    click.echo(f"{'Date':<12} {'Amount':>12} {'Balance':>12}  Description")
    click.echo("-" * 80)
    for m in movements:
        balance = f"{m.balance:.2f}" if m.balance is not None else ""
        click.echo(f"{m.date.isoformat():<12} {m.amount:>12.2f} {balance:>12}  {m.description}")
    click.echo(f"\nTotal: {len(movements)} movements")


def register_commands(cli):
    """Register movement commands with main CLI."""
    cli.add_command(movements_group, name="movements")
