"""Domain tests for the universal bank importer."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from bankimport.database.memory import InMemoryLedgerStore, InMemoryProfileStore
from bankimport.domain.bank_profile import BankProfileService
from bankimport.domain.entities import ColumnMapping, ProfileMapping, UploadedFile
from bankimport.domain.errors import LedgerStoreError
from bankimport.domain.importer import ImportOptions, UniversalBankImporter, guess_bank
from bankimport.domain.file_format import detect_file_format
from bankimport.domain.locale import SPANISH_LOCALE
from bankimport.domain.readers import read_table


@pytest.fixture
def importer(profile_service, ledger_store):
    return UniversalBankImporter(profile_service=profile_service, ledger_store=ledger_store)


@pytest.fixture
def options(today):
    return ImportOptions(account_id="acc-1", today=today)


HEADERLESS_ROWS = ["01/03/2024;Compra tienda;-10,50", "02/03/2024;Bizum recibido;25,00"]


def test_import_signed_amount_csv(importer, options, fixtures_dir):
    upload = UploadedFile.from_path(str(fixtures_dir / "movimientos_importe.csv"))

    result = importer.import_file(upload, options)

    assert result.success
    assert result.errors == []
    assert [m.amount for m in result.movements] == [
        Decimal("2500.00"),
        Decimal("-45.30"),
        Decimal("-80.15"),
        Decimal("150.00"),
    ]
    first = result.movements[0]
    assert first.date == date(2024, 3, 1)
    assert first.description == "Nómina Empresa SA marzo"
    assert first.balance == Decimal("3500.00")
    assert first.source_row_index == 1
    assert len(first.deduplication_hash) == 40

    stats = result.statistics
    assert stats.file_format == "CSV"
    assert stats.header_row_index == 0
    assert stats.data_rows == 4
    assert stats.successful_parsed == 4
    assert stats.date_format == "DD/MM/YYYY"
    assert stats.locale.family == "EU"
    assert stats.overall_confidence >= 0.8
    assert set(stats.stage_timings_ms) >= {"format_detection", "parsing", "schema", "transform"}

    summary = result.ledger_summary
    assert summary.opening_balance == Decimal("1000.00")
    assert summary.closing_balance == Decimal("3524.55")
    assert summary.net_movement == Decimal("2524.55")
    assert result.profile_saved


def test_import_debit_credit_csv(importer, options, fixtures_dir):
    upload = UploadedFile.from_path(str(fixtures_dir / "movimientos_cargo_abono.csv"))

    result = importer.import_file(upload, options)

    assert result.success
    assert [m.amount for m in result.movements] == [
        Decimal("2500.00"),
        Decimal("-45.30"),
        Decimal("-80.15"),
        Decimal("150.00"),
    ]
    assert result.movements[1].value_date == date(2024, 3, 3)
    assert result.warnings == []


def test_second_import_uses_learned_profile(importer, options, fixtures_dir, profile_service):
    upload = UploadedFile.from_path(str(fixtures_dir / "movimientos_importe.csv"))
    importer.import_file(upload, options)
    (profile,) = profile_service.list_profiles()

    result = importer.import_file(upload, ImportOptions(account_id="acc-2", today=options.today))

    assert result.success
    assert result.profile_used == profile.id
    assert not result.profile_saved
    assert len(result.movements) == 4
    assert profile_service.get_profile(profile.id).metadata.usage_count == 2


def test_cross_batch_duplicates_are_dropped(importer, options, make_csv, ledger_store):
    first = importer.import_file(make_csv(["Fecha;Concepto;Importe", *HEADERLESS_ROWS]), options)
    ledger_store.save_movements("acc-1", first.movements)

    again = make_csv(["Fecha;Concepto;Importe", "01/03/2024;COMPRA   tienda.;-10,50", "03/03/2024;Nuevo;-1,00"])
    result = importer.import_file(again, options)

    assert result.success
    assert result.statistics.successful_parsed == 2
    assert result.statistics.duplicates_detected == 1
    assert [m.description for m in result.movements] == ["Nuevo"]


def test_same_batch_duplicates_are_dropped(importer, options, make_csv):
    upload = make_csv(["Fecha;Concepto;Importe", HEADERLESS_ROWS[0], HEADERLESS_ROWS[0], HEADERLESS_ROWS[1]])
    result = importer.import_file(upload, options)
    assert len(result.movements) == 2
    assert result.statistics.duplicates_detected == 1


def test_keep_duplicates(importer, today, make_csv):
    upload = make_csv(["Fecha;Concepto;Importe", HEADERLESS_ROWS[0], HEADERLESS_ROWS[0]])
    result = importer.import_file(upload, ImportOptions(today=today, skip_duplicates=False))
    assert len(result.movements) == 2


def test_low_confidence_schema_needs_manual_mapping(importer, options, make_csv):
    result = importer.import_file(make_csv(HEADERLESS_ROWS), options)

    assert not result.success
    assert result.needs_manual_mapping
    assistant = result.mapping_assistant
    assert assistant.headers == ["", "", ""]
    assert assistant.sample_rows == [row.split(";") for row in HEADERLESS_ROWS]
    assert "Select the column that holds the movement description" in assistant.suggestions


def test_missing_roles_suggest_fixes(importer, options, make_csv):
    result = importer.import_file(make_csv(["Ana;Madrid;hola", "Luis;Sevilla;adios"]), options)

    assert result.needs_manual_mapping
    assert "No date column detected" in result.mapping_assistant.ambiguities
    assert "Select the column that holds the operation date" in result.mapping_assistant.suggestions


def test_explicit_mapping_resolves_manual_mapping(importer, options, make_csv, profile_service):
    options.column_mapping = ColumnMapping(date_column=0, description_column=1, amount_column=2)

    result = importer.import_file(make_csv(HEADERLESS_ROWS), options)

    assert result.success
    assert [m.amount for m in result.movements] == [Decimal("-10.50"), Decimal("25.00")]
    assert result.statistics.overall_confidence == 1.0
    assert result.profile_saved

    # The learned profile recognizes the same headerless layout by its rows
    again = importer.import_file(make_csv(HEADERLESS_ROWS), ImportOptions(account_id="acc-9", today=options.today))
    assert again.success
    assert again.profile_used == profile_service.list_profiles()[0].id


def test_explicit_mapping_outside_table_fails(importer, options, make_csv):
    options.column_mapping = ColumnMapping(date_column=0, description_column=1, amount_column=7)
    result = importer.import_file(make_csv(HEADERLESS_ROWS), options)
    assert not result.success
    assert "a mapped column is outside the table" in result.errors[0]


def test_row_errors_are_collected(importer, options, make_csv):
    upload = make_csv(
        [
            "Fecha;Concepto;Importe",
            "01/03/2024;Compra tienda;-10,50",
            "31/02/2024;Fecha imposible;-1,00",
            "02/03/2024;Sin importe;",
            "03/03/2024;Bizum recibido;25,00",
            "04/03/2024;Comision mantenimiento;-3,00",
        ]
    )
    result = importer.import_file(upload, options)

    assert result.success
    assert len(result.movements) == 3
    assert result.statistics.skipped_rows == 2
    assert "Row 3: invalid date '31/02/2024'" in result.errors
    assert "Row 4: could not determine the amount" in result.errors


def test_zero_amount_is_kept_with_warning(importer, options, make_csv):
    upload = make_csv(["Fecha;Concepto;Importe", "01/03/2024;Ajuste;0,00", "02/03/2024;Bizum;5,00"])
    result = importer.import_file(upload, options)
    assert len(result.movements) == 2
    assert "Row 2: zero amount" in result.warnings


def test_broken_balance_progression_is_a_warning(importer, options, make_csv):
    upload = make_csv(
        [
            "Fecha;Concepto;Importe;Saldo",
            "01/03/2024;Compra;-10,00;90,00",
            "02/03/2024;Bizum;5,00;500,00",
            "03/03/2024;Recibo;-20,00;75,00",
        ]
    )
    result = importer.import_file(upload, options)
    assert result.success
    assert any("Balance progression broken in 2 rows" in w for w in result.warnings)


def test_description_does_not_change_the_sign(importer, today, make_csv):
    amounts = []
    for description in ["Pago con tarjeta", "Abono devolucion ingreso"]:
        upload = make_csv(["Fecha;Concepto;Cargo;Abono", f"01/03/2024;{description};12,00;"])
        mapping = ColumnMapping(date_column=0, description_column=1, debit_column=2, credit_column=3)
        result = importer.import_file(upload, ImportOptions(today=today, column_mapping=mapping))
        amounts.append(result.movements[0].amount)
    assert amounts == [Decimal("-12.00"), Decimal("-12.00")]


def test_xlsx_import(importer, options, make_xlsx):
    path = make_xlsx(
        [
            ["Extracto Banco Sabadell"],
            ["Fecha", "Concepto", "Importe", "Saldo"],
            [datetime(2024, 3, 1), "Nomina empresa", 2500.0, 3500.0],
            [datetime(2024, 3, 2), "Compra supermercado", -45.3, 3454.7],
            [datetime(2024, 3, 5), "Recibo luz", -80.15, 3374.55],
        ]
    )
    upload = UploadedFile.from_path(str(path))

    result = importer.import_file(upload, options)

    assert result.success
    assert result.statistics.file_format == "XLSX"
    assert result.statistics.header_row_index == 1
    assert result.statistics.date_format == "YYYY-MM-DD"
    assert [m.amount for m in result.movements] == [Decimal("2500.00"), Decimal("-45.30"), Decimal("-80.15")]
    assert result.ledger_summary.closing_balance == Decimal("3374.55")
    assert guess_bank(upload, None) == "unknown"


def test_empty_file_is_unsupported(importer, options):
    result = importer.import_file(UploadedFile(name="empty.csv", content=b""), options)
    assert not result.success
    assert result.errors == ["Unsupported file format: Empty file"]


def test_ofx_is_not_implemented(importer, options):
    result = importer.import_file(UploadedFile(name="bank.ofx", content=b"OFXHEADER:100"), options)
    assert not result.success
    assert result.errors == ["OFX parsing not yet implemented"]
    assert result.statistics.file_format == "OFX"


def test_header_only_file_has_no_data(importer, options, make_csv):
    result = importer.import_file(make_csv(["Fecha;Concepto;Importe"]), options)
    assert not result.success
    assert result.errors == ["No data rows found in file"]


def test_corrupt_workbook_fails_cleanly(importer, options):
    result = importer.import_file(UploadedFile(name="mov.xlsx", content=b"PK\x03\x04broken"), options)
    assert not result.success
    assert result.errors[0].startswith("Could not open XLSX workbook")


def test_no_parseable_rows_fails(importer, options, make_csv):
    options.column_mapping = ColumnMapping(date_column=0, description_column=1, amount_column=2)
    result = importer.import_file(make_csv(["fecha mala;Compra;-1,00", "otra;Bizum;2,00"]), options)
    assert not result.success
    assert "No valid movements could be parsed" in result.errors


def test_abort_stops_the_import(importer, options, fixtures_dir):
    options.abort = lambda: True
    upload = UploadedFile.from_path(str(fixtures_dir / "movimientos_importe.csv"))
    result = importer.import_file(upload, options)
    assert not result.success
    assert result.errors == ["Import aborted"]


def test_importer_without_collaborators(today, fixtures_dir):
    upload = UploadedFile.from_path(str(fixtures_dir / "movimientos_importe.csv"))
    result = UniversalBankImporter().import_file(upload, ImportOptions(today=today))
    assert result.success
    assert not result.profile_saved


def test_guess_bank():
    assert guess_bank(UploadedFile(name="BBVA-movimientos-marzo.xlsx", content=b""), None) == "BBVA"
    assert guess_bank(UploadedFile(name="export_ingles.csv", content=b""), None) == "unknown"


def test_import_csv_with_preamble(importer, options, fixtures_dir):
    upload = UploadedFile.from_path(str(fixtures_dir / "movimientos_preambulo.csv"))

    result = importer.import_file(upload, options)

    assert result.success, result.errors
    assert result.statistics.header_row_index == 2
    assert [m.amount for m in result.movements] == [Decimal("-10.50"), Decimal("25.00")]
    assert result.movements[0].balance == Decimal("89.50")
    assert guess_bank(upload, read_table(upload, detect_file_format(upload))) == "Santander"


class FullDiskProfileStore(InMemoryProfileStore):
    def save_profile(self, profile):
        raise OSError("disk full")


class BrokenLedgerStore(InMemoryLedgerStore):
    def existing_hashes(self, account_id):
        raise LedgerStoreError("database is locked")


def test_repeated_explicit_mapping_updates_one_profile(importer, options, make_csv, profile_service):
    options.column_mapping = ColumnMapping(date_column=0, description_column=1, amount_column=2)

    results = [importer.import_file(make_csv(HEADERLESS_ROWS), options) for _ in range(3)]

    assert all(result.profile_saved for result in results)
    (profile,) = profile_service.list_profiles()
    assert profile.metadata.usage_count == 3


def test_profile_store_failure_is_a_warning(options, make_csv, clock):
    importer = UniversalBankImporter(profile_service=BankProfileService(FullDiskProfileStore(), clock=clock))

    result = importer.import_file(make_csv(["Fecha;Concepto;Importe", *HEADERLESS_ROWS]), options)

    assert result.success
    assert not result.profile_saved
    assert "Could not save bank profile: disk full" in result.warnings


def test_ledger_store_failure_is_a_warning(options, make_csv):
    importer = UniversalBankImporter(ledger_store=BrokenLedgerStore())

    result = importer.import_file(make_csv(["Fecha;Concepto;Importe", *HEADERLESS_ROWS]), options)

    assert result.success
    assert len(result.movements) == 2
    assert "Could not check previously imported movements: database is locked" in result.warnings


def test_empty_description_gets_default(importer, options, make_csv):
    upload = make_csv(["Fecha;Concepto;Importe", "01/03/2024;;-10,50", "02/03/2024;Bizum;25,00"])
    result = importer.import_file(upload, options)
    assert result.movements[0].description == "Movimiento bancario"


def test_profile_that_does_not_fit_is_not_counted_as_used(importer, today, make_csv, profile_service):
    headers = ["Fecha", "Concepto", "Importe"]
    stale = ProfileMapping(
        columns=ColumnMapping(date_column=0, description_column=1, amount_column=2, balance_column=5),
        locale=SPANISH_LOCALE,
        date_format="DD/MM/YYYY",
    )
    profile_id = profile_service.create_profile(headers, [], stale)

    result = importer.import_file(
        make_csv([";".join(headers), *HEADERLESS_ROWS]), ImportOptions(today=today, save_profile=False)
    )

    assert result.success
    assert result.profile_used is None
    assert profile_service.get_profile(profile_id).metadata.usage_count == 1
