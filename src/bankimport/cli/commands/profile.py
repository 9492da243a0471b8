"""Bank profile management commands."""

from pathlib import Path

import click
from bankimport.cli.error_handling import handle_domain_error
from bankimport.domain.bank_profile import BankProfileService
from bankimport.domain.errors import DomainError, NotFoundError, profile_not_found


@click.group()
def profile_group():
    """Manage learned bank profiles."""
    pass


@profile_group.command("list")
@click.pass_context
def list_profiles(ctx):
    """List bank profiles, most used first."""
    service = BankProfileService(ctx.obj["db"])

    profiles = service.list_profiles()
    if not profiles:
        click.echo("No bank profiles found.")
        return

    click.echo("\nBank profiles:")
    click.echo("-" * 80)
    for p in profiles:
        name = p.name or "-"
        click.echo(
            f"{p.id} | {name:20s} | used {p.metadata.usage_count:3d}x | "
            f"last {p.metadata.last_used.strftime('%Y-%m-%d')}"
        )


@profile_group.command("show")
@click.argument("profile_id")
@click.pass_context
def show_profile(ctx, profile_id: str):
    """Show a bank profile."""
    service = BankProfileService(ctx.obj["db"])

    p = service.get_profile(profile_id)
    if p is None:
        handle_domain_error(ctx, NotFoundError(profile_not_found(profile_id)))
        return

    click.echo(f"Profile: {p.id}")
    click.echo(f"Name: {p.name or '-'}")
    click.echo(f"Headers: {', '.join(h or '(unnamed)' for h in p.signature.headers_ordered)}")
    click.echo("Columns:")
    for index, role in sorted(p.mapping.columns.roles().items()):
        click.echo(f"  [{index}] {role.value}")
    locale = p.mapping.locale
    click.echo(f"Number format: decimal '{locale.decimal_sep}', thousands '{locale.thousand_sep}'")
    click.echo(f"Date format: {p.mapping.date_format}")
    click.echo(f"Used: {p.metadata.usage_count} times, last {p.metadata.last_used.isoformat()}")
    if p.metadata.file_patterns:
        click.echo(f"Learned from: {', '.join(p.metadata.file_patterns)}")


@profile_group.command("delete")
@click.argument("profile_id")
@click.pass_context
def delete_profile(ctx, profile_id: str):
    """Delete a bank profile."""
    service = BankProfileService(ctx.obj["db"])

    try:
        service.delete_profile(profile_id)
        click.echo(f"Deleted bank profile '{profile_id}'")
    except DomainError as e:
        handle_domain_error(ctx, e)


@profile_group.command("export")
@click.argument("output_file", required=False, type=click.Path(dir_okay=False))
@click.pass_context
def export_profiles(ctx, output_file: str | None):
    """Export bank profiles as JSON (to stdout when no file is given)."""
    service = BankProfileService(ctx.obj["db"])

    document = service.export_profiles()
    if output_file is None:
        click.echo(document)
        return
    Path(output_file).write_text(document, encoding="utf-8")
    click.echo(f"Exported bank profiles to {output_file}")


@profile_group.command("import")
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--merge", is_flag=True, default=False, help="Keep existing profiles and add new ones")
@click.pass_context
def import_profiles(ctx, input_file: str, merge: bool):
    """Import bank profiles from a JSON export."""
    service = BankProfileService(ctx.obj["db"])

    try:
        count = service.import_profiles(Path(input_file).read_text(encoding="utf-8"), merge=merge)
        click.echo(f"Imported {count} bank profiles")
    except DomainError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register profile commands with main CLI."""
    cli.add_command(profile_group, name="profile")
