"""Statement import command."""

import click
from bankimport.cli.column_mapping import resolve_column_mapping_or_exit
from bankimport.cli.error_handling import EXIT_NEEDS_MAPPING, handle_domain_error
from bankimport.domain.bank_profile import BankProfileService
from bankimport.domain.entities import ImportResult, UploadedFile
from bankimport.domain.errors import DomainError
from bankimport.domain.importer import ImportOptions, UniversalBankImporter
from bankimport.utils.amount_parser import parse_amount


def _echo_statistics(result: ImportResult) -> None:
    stats = result.statistics
    click.echo(f"  Format: {stats.file_format}")
    if stats.locale is not None:
        click.echo(
            f"  Number format: decimal '{stats.locale.decimal_sep}', "
            f"thousands '{stats.locale.thousand_sep}' ({stats.locale.family})"
        )
    click.echo(f"  Date format: {stats.date_format}")
    click.echo(f"  Rows: {stats.data_rows} (header row: {stats.header_row_index if stats.header_row_index is not None else 'none'})")
    click.echo(f"  Parsed: {stats.successful_parsed}")
    click.echo(f"  Skipped: {stats.skipped_rows}")
    click.echo(f"  Duplicates: {stats.duplicates_detected}")
    click.echo(f"  Confidence: {stats.overall_confidence:.2f}")


def _echo_ledger(result: ImportResult) -> None:
    summary = result.ledger_summary
    if summary is None:
        return
    click.echo("\nLedger summary:")
    if summary.period_start is not None:
        click.echo(f"  Period: {summary.period_start.isoformat()} to {summary.period_end.isoformat()}")
    click.echo(f"  Inflows: {summary.total_inflows:.2f}")
    click.echo(f"  Outflows: {summary.total_outflows:.2f}")
    click.echo(f"  Net: {summary.net_movement:.2f}")
    if summary.opening_balance is not None:
        click.echo(f"  Opening balance: {summary.opening_balance:.2f}")
    if summary.closing_balance is not None:
        click.echo(f"  Closing balance: {summary.closing_balance:.2f}")


def _echo_mapping_assistant(result: ImportResult) -> None:
    assistant = result.mapping_assistant
    click.echo("Could not determine the column layout with enough confidence.")
    click.echo("\nDetected columns:")
    for index, header in enumerate(assistant.headers):
        role = assistant.detected_mapping.get(index)
        role_name = role.value if role is not None else "-"
        click.echo(f"  [{index}] {header or '(unnamed)':30s} -> {role_name}")
    if assistant.sample_rows:
        click.echo("\nSample rows:")
        for row in assistant.sample_rows:
            click.echo("  " + " | ".join(row))
    if assistant.ambiguities:
        click.echo("\nAmbiguities:")
        for ambiguity in assistant.ambiguities:
            click.echo(f"  {ambiguity}")
    click.echo("\nSuggestions:")
    for suggestion in assistant.suggestions:
        click.echo(f"  {suggestion}")
    click.echo("\nRe-run with --map ROLE=COLUMN (e.g. --map date=0 --map description=1 --map amount=3).")


@click.command("import")
@click.argument("statement_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--account", required=True, help="Account the movements belong to")
@click.option("--opening-balance", help="Balance before the first movement (e.g., 1000.00 or 1.234,56)")
@click.option(
    "--map",
    "mappings",
    multiple=True,
    metavar="ROLE=COLUMN",
    help="Explicit column role (column index or header name); skips detection",
)
@click.option("--keep-duplicates", is_flag=True, default=False, help="Do not drop duplicate movements")
@click.option("--no-save-profile", is_flag=True, default=False, help="Do not learn a bank profile")
@click.option("--profile-name", help="Name for the bank profile learned from this file")
@click.option("--dry-run", is_flag=True, default=False, help="Analyze the file without storing anything")
@click.pass_context
def import_statement(
    ctx,
    statement_file: str,
    account: str,
    opening_balance: str | None,
    mappings: tuple[str, ...],
    keep_duplicates: bool,
    no_save_profile: bool,
    profile_name: str | None,
    dry_run: bool,
):
    """Import movements from a bank statement file.

    Examples:
        bankimport import movimientos.xlsx --account santander
        bankimport import export.csv --account ing --opening-balance 1500.00
        bankimport import export.csv --account ing --map date=0 --map description=Concepto --map amount=Importe
    """
    db = ctx.obj["db"]

    balance = None
    if opening_balance is not None:
        try:
            balance = parse_amount(opening_balance)
        except ValueError:
            click.echo(f"Error: Invalid opening balance '{opening_balance}'", err=True)
            ctx.exit(1)

    upload = UploadedFile.from_path(statement_file)
    column_mapping = resolve_column_mapping_or_exit(ctx, mappings, upload)

    importer = UniversalBankImporter(profile_service=BankProfileService(db), ledger_store=db)
    result = importer.import_file(
        upload,
        ImportOptions(
            account_id=account,
            opening_balance=balance,
            skip_duplicates=not keep_duplicates,
            column_mapping=column_mapping,
            save_profile=not (no_save_profile or dry_run),
            profile_name=profile_name,
        ),
    )

    if result.needs_manual_mapping:
        _echo_mapping_assistant(result)
        ctx.exit(EXIT_NEEDS_MAPPING)

    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)
    for error in result.errors:
        click.echo(f"  {error}", err=True)

    if not result.success:
        click.echo("Import failed.", err=True)
        ctx.exit(1)

    stored = 0
    if not dry_run:
        try:
            stored = db.save_movements(account, result.movements)
        except DomainError as e:
            handle_domain_error(ctx, e)

    click.echo("\nImport complete:")
    _echo_statistics(result)
    if result.profile_used:
        click.echo(f"  Bank profile: {result.profile_used}")
    elif result.profile_saved:
        click.echo("  Learned a new bank profile")
    if dry_run:
        click.echo(f"  Dry run: {len(result.movements)} movements not stored")
    else:
        click.echo(f"  Stored: {stored} movements")
    _echo_ledger(result)


def register_commands(cli):
    """Register import command with main CLI."""
    cli.add_command(import_statement)
