"""Universal bank statement importer.

Runs one uploaded file through the whole pipeline: format detection,
table reading, profile matching or schema detection, row normalization,
deduplication, ledger validation and profile learning. Problems never
escape as exceptions; they are reported on the returned ``ImportResult``.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Optional
import logging
import re
import time

from bankimport.database.base import LedgerStore
from bankimport.domain.bank_profile import BankProfileService
from bankimport.domain.column_roles import SchemaDetectionResult, detect_schema
from bankimport.domain.deduplication import (
    MovementForDeduplication,
    deduplicate_movements,
    generate_movement_hash,
)
from bankimport.domain.entities import (
    ColumnMapping,
    ImportResult,
    ImportStatistics,
    MappingAssistantData,
    NormalizedMovement,
    NumberLocale,
    ProfileMapping,
    RawTable,
    UploadedFile,
)
from bankimport.domain.errors import (
    DomainError,
    invalid_column_mapping,
    not_implemented_format,
    row_error,
    unsupported_format,
)
from bankimport.domain.file_format import FileFormat, detect_file_format
from bankimport.domain.ledger import (
    DEFAULT_TOLERANCE,
    RECONSTRUCT,
    calculate_ledger_summary,
    validate_ledger,
    validate_ledger_summary,
)
from bankimport.domain.locale import detect_number_locale, parse_with_locale
from bankimport.domain.readers import read_table
from bankimport.domain.sign_derivation import derive_signed_amount
from bankimport.utils.date_parser import (
    DEFAULT_DATE_FORMAT,
    detect_date_format,
    parse_date,
    parse_date_with_format,
)

logger = logging.getLogger(__name__)

MIN_FORMAT_CONFIDENCE = 0.5
MIN_PROFILE_CONFIDENCE = 0.8
MIN_SAVE_CONFIDENCE = 0.8
MIN_AMOUNT_CONFIDENCE = 0.5
MIN_BALANCE_CONFIDENCE = 0.5
LOCALE_SAMPLE_ROWS = 50
DATE_SAMPLE_ROWS = 20
ASSISTANT_SAMPLE_ROWS = 5
PROFILE_SAMPLE_ROWS = 3
DEFAULT_DESCRIPTION = "Movimiento bancario"

# Failures of the injected stores, reported as warnings
STORE_ERRORS = (DomainError, OSError)

KNOWN_BANKS = (
    "Santander",
    "Sabadell",
    "Unicaja",
    "BBVA",
    "CaixaBank",
    "Banco Popular",
    "Bankinter",
    "ING",
    "Openbank",
)

CONFLICT_SUGGESTIONS = {
    "No date column detected": "Select the column that holds the operation date",
    "No amount column detected": "Select a signed amount column, or a debit column and a credit column",
    "Multiple date columns detected": "Choose the operation date column and mark the other one as value date",
    "Multiple balance columns detected": "Keep a single balance column and leave the others unmapped",
}


@dataclass
class ImportOptions:
    """Per-import settings."""

    account_id: str = "default"
    opening_balance: Optional[Decimal] = None
    skip_duplicates: bool = True
    tolerance: Decimal = DEFAULT_TOLERANCE
    # An explicit mapping bypasses profile matching and schema detection
    column_mapping: Optional[ColumnMapping] = None
    save_profile: bool = True
    profile_name: Optional[str] = None
    abort: Optional[Callable[[], bool]] = None
    today: Optional[date] = None


@dataclass
class _ResolvedSchema:
    mapping: ColumnMapping
    locale: NumberLocale
    date_format: str
    confidence: float
    profile_id: Optional[str] = None


@dataclass
class _ImportRun:
    """Mutable state of one import while it moves through the stages."""

    upload: UploadedFile
    options: ImportOptions
    started: float = field(default_factory=time.perf_counter)
    file_format: str = FileFormat.UNKNOWN.value
    table: Optional[RawTable] = None
    mapping: Optional[ColumnMapping] = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    timings: dict[str, float] = field(default_factory=dict)
    skipped_rows: int = 0

    def stage(self, name: str, stage_started: float) -> None:
        self.timings[name] = (time.perf_counter() - stage_started) * 1000

    def statistics(self, **values) -> ImportStatistics:
        table = self.table
        return ImportStatistics(
            file_format=self.file_format,
            total_rows=len(table.rows) if table else 0,
            data_rows=len(table.data_rows) if table else 0,
            skipped_rows=self.skipped_rows,
            processing_time_ms=(time.perf_counter() - self.started) * 1000,
            header_row_index=table.header_row_index if table else None,
            stage_timings_ms=dict(self.timings),
            **values,
        )

    def failure(self, error: str) -> ImportResult:
        self.errors.append(error)
        return ImportResult(
            success=False,
            statistics=self.statistics(),
            errors=self.errors,
            warnings=self.warnings,
        )


def _cell(row: list[str], index: Optional[int]) -> str:
    if index is None or index < 0 or index >= len(row):
        return ""
    return (row[index] or "").strip()


def _column_values(table: RawTable, indexes: list[Optional[int]], limit: int) -> list[str]:
    values = []
    for row in table.data_rows[:limit]:
        for index in indexes:
            value = _cell(row, index)
            if value:
                values.append(value)
    return values


def guess_bank(upload: UploadedFile, table: Optional[RawTable]) -> str:
    """Guess the issuing bank from the file name and the rows above the data."""
    haystack = [upload.name]
    if table is not None:
        for row in table.rows[: table.data_start_index]:
            haystack.extend(row)
    text = " ".join(haystack).lower()
    for bank in KNOWN_BANKS:
        if re.search(rf"\b{re.escape(bank.lower())}\b", text):
            return bank
    return "unknown"


def mapping_fits(mapping: ColumnMapping, width: int) -> bool:
    return all(index < width for index in mapping.roles())


class UniversalBankImporter:
    """Service for importing bank statement files of any supported layout."""

    def __init__(
        self,
        profile_service: Optional[BankProfileService] = None,
        ledger_store: Optional[LedgerStore] = None,
    ):
        """Initialize the importer.

        Args:
            profile_service: Bank profile service used to recognize known
                layouts and learn new ones (optional)
            ledger_store: Store of already imported movements, used to drop
                movements imported by earlier batches (optional)
        """
        self.profile_service = profile_service
        self.ledger_store = ledger_store

    def import_file(self, upload: UploadedFile, options: Optional[ImportOptions] = None) -> ImportResult:
        """Import one bank statement file.

        Args:
            upload: Uploaded file
            options: Import settings (defaults to ``ImportOptions()``)

        Returns:
            ImportResult. ``success`` is False on fatal problems;
            ``needs_manual_mapping`` is set, with assistant data, when the
            column roles could not be determined with enough confidence.
        """
        options = options or ImportOptions()
        run = _ImportRun(upload=upload, options=options)
        result = self._run(run)
        self._log_telemetry(run, result)
        return result

    def _run(self, run: _ImportRun) -> ImportResult:
        options = run.options

        stage_started = time.perf_counter()
        detected = detect_file_format(run.upload)
        run.file_format = detected.format.value
        run.stage("format_detection", stage_started)
        if detected.confidence < MIN_FORMAT_CONFIDENCE:
            return run.failure(unsupported_format(detected.reason))
        if detected.format in (FileFormat.OFX, FileFormat.QIF):
            return run.failure(not_implemented_format(detected.format.value))

        stage_started = time.perf_counter()
        try:
            run.table = read_table(run.upload, detected)
        except DomainError as e:
            return run.failure(str(e))
        run.stage("parsing", stage_started)
        table = run.table
        if not any(any(cell.strip() for cell in row) for row in table.data_rows):
            return run.failure("No data rows found in file")

        stage_started = time.perf_counter()
        schema = self._resolve_schema(run)
        run.stage("schema", stage_started)
        if isinstance(schema, ImportResult):
            return schema
        run.mapping = schema.mapping

        stage_started = time.perf_counter()
        movements = self._transform_rows(run, schema)
        run.stage("transform", stage_started)
        if movements is None:
            return run.failure("Import aborted")
        parsed_count = len(movements)

        stage_started = time.perf_counter()
        duplicates = 0
        if options.skip_duplicates:
            deduplication = deduplicate_movements(movements, hash_of=lambda m: m.deduplication_hash)
            movements = deduplication.unique_movements
            duplicates = deduplication.duplicate_count
            if self.ledger_store is not None:
                try:
                    existing = self.ledger_store.existing_hashes(options.account_id)
                except STORE_ERRORS as e:
                    run.warnings.append(f"Could not check previously imported movements: {e}")
                    existing = set()
                fresh = [m for m in movements if m.deduplication_hash not in existing]
                duplicates += len(movements) - len(fresh)
                movements = fresh
        run.stage("deduplication", stage_started)

        stage_started = time.perf_counter()
        ledger_summary = None
        if movements:
            ledger_summary = self._validate_ledger(run, movements)
        run.stage("ledger", stage_started)

        stage_started = time.perf_counter()
        profile_saved = False
        if (
            parsed_count
            and self.profile_service is not None
            and options.save_profile
            and schema.profile_id is None
            and schema.confidence > MIN_SAVE_CONFIDENCE
        ):
            profile_saved = self._save_profile(run, schema)
        run.stage("profile", stage_started)

        if parsed_count == 0:
            run.errors.append("No valid movements could be parsed")

        statistics = run.statistics(
            successful_parsed=parsed_count,
            duplicates_detected=duplicates,
            locale=schema.locale,
            date_format=schema.date_format,
            overall_confidence=schema.confidence,
        )
        return ImportResult(
            success=parsed_count > 0,
            statistics=statistics,
            movements=movements,
            errors=run.errors,
            warnings=run.warnings,
            ledger_summary=ledger_summary,
            profile_used=schema.profile_id,
            profile_saved=profile_saved,
        )

    def _resolve_schema(self, run: _ImportRun) -> "_ResolvedSchema | ImportResult":
        table = run.table
        options = run.options

        if options.column_mapping is not None:
            problems = options.column_mapping.validate()
            if not mapping_fits(options.column_mapping, table.width):
                problems.append("a mapped column is outside the table")
            if problems:
                return run.failure(invalid_column_mapping(problems))
            return self._settings_for(table, options.column_mapping, 1.0, options.today)

        match = None
        if self.profile_service is not None:
            try:
                match = self.profile_service.find_matching_profile(
                    table.headers, table.sample_rows(PROFILE_SAMPLE_ROWS)
                )
            except STORE_ERRORS as e:
                run.warnings.append(f"Bank profile lookup failed: {e}")
            if (
                match is not None
                and match.confidence > MIN_PROFILE_CONFIDENCE
                and mapping_fits(match.profile.mapping.columns, table.width)
            ):
                try:
                    self.profile_service.record_usage(match.profile.id)
                except STORE_ERRORS as e:
                    run.warnings.append(f"Could not record bank profile usage: {e}")
                profile_mapping = match.profile.mapping
                return _ResolvedSchema(
                    mapping=profile_mapping.columns,
                    locale=profile_mapping.locale,
                    date_format=profile_mapping.date_format,
                    confidence=match.confidence,
                    profile_id=match.profile.id,
                )

        detection = detect_schema(table, today=options.today)
        mapping = detection.to_mapping()
        problems = mapping.validate()
        if detection.needs_manual_mapping or problems:
            return self._manual_mapping_result(run, detection, problems)
        return self._settings_for(table, mapping, detection.overall_confidence, options.today)

    def _settings_for(
        self, table: RawTable, mapping: ColumnMapping, confidence: float, today: Optional[date]
    ) -> _ResolvedSchema:
        amount_columns = [mapping.amount_column, mapping.debit_column, mapping.credit_column, mapping.balance_column]
        locale = detect_number_locale(_column_values(table, amount_columns, LOCALE_SAMPLE_ROWS))
        detection = detect_date_format(_column_values(table, [mapping.date_column], DATE_SAMPLE_ROWS), today)
        return _ResolvedSchema(mapping=mapping, locale=locale, date_format=detection.format, confidence=confidence)

    def _manual_mapping_result(
        self, run: _ImportRun, detection: SchemaDetectionResult, problems: list[str]
    ) -> ImportResult:
        suggestions = [CONFLICT_SUGGESTIONS[a] for a in detection.ambiguities if a in CONFLICT_SUGGESTIONS]
        if any(p.startswith("a description column") for p in problems):
            suggestions.append("Select the column that holds the movement description")
        if detection.overall_confidence < 0.8:
            suggestions.append("Review the detected role of each ambiguous column")
        if not suggestions:
            suggestions.append("Confirm the detected column roles")

        table = run.table
        return ImportResult(
            success=False,
            statistics=run.statistics(overall_confidence=detection.overall_confidence),
            errors=run.errors,
            warnings=run.warnings,
            needs_manual_mapping=True,
            mapping_assistant=MappingAssistantData(
                headers=table.headers,
                sample_rows=table.sample_rows(ASSISTANT_SAMPLE_ROWS),
                detected_mapping=detection.roles(),
                suggestions=suggestions,
                ambiguities=detection.ambiguities,
            ),
        )

    def _parse_row_date(self, text: str, schema: _ResolvedSchema, today: Optional[date]):
        parsed = parse_date_with_format(text, schema.date_format or DEFAULT_DATE_FORMAT)
        if parsed is None:
            parsed = parse_date(text, today)
        return parsed

    def _transform_rows(self, run: _ImportRun, schema: _ResolvedSchema) -> Optional[list[NormalizedMovement]]:
        """Turn data rows into movements; returns None if the caller aborted."""
        table = run.table
        options = run.options
        mapping = schema.mapping
        movements = []

        for offset, row in enumerate(table.data_rows):
            if options.abort is not None and options.abort():
                logger.info("Import of %s aborted after %d rows", run.upload.name, offset)
                return None

            row_number = table.data_start_index + offset + 1
            if not any((cell or "").strip() for cell in row):
                run.skipped_rows += 1
                continue

            date_text = _cell(row, mapping.date_column)
            parsed_date = self._parse_row_date(date_text, schema, options.today)
            if parsed_date is None:
                run.errors.append(row_error(row_number, f"invalid date '{date_text}'"))
                run.skipped_rows += 1
                continue

            sign = derive_signed_amount(
                {
                    "debit": _cell(row, mapping.debit_column),
                    "credit": _cell(row, mapping.credit_column),
                    "amount": _cell(row, mapping.amount_column),
                },
                schema.locale,
            )
            if sign.confidence < MIN_AMOUNT_CONFIDENCE:
                run.errors.append(row_error(row_number, "could not determine the amount"))
                run.skipped_rows += 1
                continue
            if sign.amount == 0:
                run.warnings.append(row_error(row_number, "zero amount"))

            balance = None
            balance_text = _cell(row, mapping.balance_column)
            if balance_text:
                parsed_balance = parse_with_locale(balance_text, schema.locale)
                if parsed_balance.confidence > MIN_BALANCE_CONFIDENCE:
                    balance = parsed_balance.value
                else:
                    run.warnings.append(row_error(row_number, f"unreadable balance '{balance_text}'"))

            value_date = None
            value_date_text = _cell(row, mapping.value_date_column)
            if value_date_text:
                parsed_value_date = self._parse_row_date(value_date_text, schema, options.today)
                value_date = parsed_value_date.date if parsed_value_date else None

            description = _cell(row, mapping.description_column) or DEFAULT_DESCRIPTION
            reference = _cell(row, mapping.reference_column) or None
            movement_hash = generate_movement_hash(
                MovementForDeduplication(
                    account_id=options.account_id,
                    date=parsed_date.date,
                    amount=sign.amount,
                    description=description,
                    reference=reference,
                )
            )
            movements.append(
                NormalizedMovement(
                    date=parsed_date.date,
                    amount=sign.amount,
                    description=description,
                    counterparty=_cell(row, mapping.counterparty_column) or None,
                    balance=balance,
                    reference=reference,
                    value_date=value_date,
                    source_row_index=table.data_start_index + offset,
                    confidence=min(sign.confidence, parsed_date.confidence),
                    deduplication_hash=movement_hash,
                )
            )
        return movements

    def _validate_ledger(self, run: _ImportRun, movements: list[NormalizedMovement]):
        options = run.options
        if any(m.balance is not None for m in movements):
            validation = validate_ledger(movements, options.tolerance)
            if not validation.is_consistent:
                run.warnings.append(
                    f"Balance progression broken in {validation.total_inconsistencies} rows "
                    f"(recommendation: {validation.recommendation})"
                )
            if validation.recommendation == RECONSTRUCT:
                run.warnings.append("Balance column looks unreliable; balances should be reconstructed")

        summary = calculate_ledger_summary(movements, options.opening_balance)
        is_valid, error = validate_ledger_summary(summary, options.tolerance)
        if not is_valid:
            run.warnings.append(error)
        return summary

    def _save_profile(self, run: _ImportRun, schema: _ResolvedSchema) -> bool:
        table = run.table
        try:
            self.profile_service.learn_profile(
                headers=table.headers,
                sample_rows=table.sample_rows(PROFILE_SAMPLE_ROWS),
                mapping=ProfileMapping(columns=schema.mapping, locale=schema.locale, date_format=schema.date_format),
                name=run.options.profile_name,
                file_pattern=run.upload.name,
            )
        except STORE_ERRORS as e:
            run.warnings.append(f"Could not save bank profile: {e}")
            return False
        return True

    def _log_telemetry(self, run: _ImportRun, result: ImportResult) -> None:
        statistics = result.statistics
        if run.mapping is not None:
            roles = run.mapping.roles().values()
        elif result.mapping_assistant is not None:
            roles = result.mapping_assistant.detected_mapping.values()
        else:
            roles = []
        logger.info(
            "import file=%s format=%s bank_guess=%s rows_total=%d rows_imported=%d rows_skipped=%d "
            "duplicates=%d roles=%s locale=%s success=%s manual_mapping=%s time_ms=%.1f",
            run.upload.name,
            statistics.file_format,
            guess_bank(run.upload, run.table),
            statistics.data_rows,
            len(result.movements),
            statistics.skipped_rows,
            statistics.duplicates_detected,
            ",".join(sorted(role.value for role in roles)) or "-",
            statistics.locale.family if statistics.locale else "-",
            result.success,
            result.needs_manual_mapping,
            statistics.processing_time_ms,
        )

