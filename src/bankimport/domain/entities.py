"""Domain model entities for bankimport.

These are pure data classes describing what the importer reads and
produces, independent of the file formats and of the storage backend.
"""

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

Cell = Union[str, int, float, None]


def cell_text(cell: Any) -> str:
    """Convert a raw reader cell into the text form the pipeline works on."""
    if cell is None:
        return ""
    if isinstance(cell, bool):
        return str(cell)
    if isinstance(cell, datetime):
        return cell.date().isoformat()
    if isinstance(cell, date):
        return cell.isoformat()
    if isinstance(cell, float):
        if cell.is_integer():
            return str(int(cell))
        return repr(cell)
    return str(cell).strip()


@dataclass(frozen=True)
class UploadedFile:
    """A file handed to the importer: name, raw bytes and declared MIME type."""

    name: str
    content: bytes
    mime_type: str = ""

    @classmethod
    def from_path(cls, path: str, mime_type: str = "") -> "UploadedFile":
        from pathlib import Path

        file_path = Path(path)
        return cls(name=file_path.name, content=file_path.read_bytes(), mime_type=mime_type)

    @property
    def extension(self) -> str:
        if "." not in self.name:
            return ""
        return self.name.rsplit(".", 1)[-1].lower()


@dataclass(frozen=True)
class RawTable:
    """Rows of cell text read from a CSV or spreadsheet file."""

    rows: list[list[str]]
    header_row_index: Optional[int] = None

    @property
    def headers(self) -> list[str]:
        if self.header_row_index is None or self.header_row_index >= len(self.rows):
            return [""] * self.width
        header = list(self.rows[self.header_row_index])
        return header + [""] * (self.width - len(header))

    @property
    def data_rows(self) -> list[list[str]]:
        start = 0 if self.header_row_index is None else self.header_row_index + 1
        return self.rows[start:]

    @property
    def data_start_index(self) -> int:
        return 0 if self.header_row_index is None else self.header_row_index + 1

    @property
    def width(self) -> int:
        return max((len(row) for row in self.rows), default=0)

    def sample_rows(self, count: int = 5) -> list[list[str]]:
        return self.data_rows[:count]


@dataclass(frozen=True)
class NumberLocale:
    """Decimal and thousands separator convention of one file."""

    decimal_sep: str
    thousand_sep: str
    confidence: float
    samples: tuple[str, ...] = ()

    @property
    def family(self) -> str:
        return "EU" if self.decimal_sep == "," else "EN"


@dataclass(frozen=True)
class ParsedAmount:
    """Result of parsing one amount cell under a fixed locale."""

    value: Decimal
    confidence: float
    original_text: str


class ColumnRole(str, Enum):
    """Semantic role of a statement column."""

    DATE = "date"
    VALUE_DATE = "value_date"
    DESCRIPTION = "description"
    COUNTERPARTY = "counterparty"
    DEBIT = "debit"
    CREDIT = "credit"
    AMOUNT = "amount"
    BALANCE = "balance"
    REFERENCE = "reference"
    UNKNOWN = "unknown"


# ColumnMapping field name for each mappable role
ROLE_FIELDS = {
    ColumnRole.DATE: "date_column",
    ColumnRole.VALUE_DATE: "value_date_column",
    ColumnRole.DESCRIPTION: "description_column",
    ColumnRole.COUNTERPARTY: "counterparty_column",
    ColumnRole.DEBIT: "debit_column",
    ColumnRole.CREDIT: "credit_column",
    ColumnRole.AMOUNT: "amount_column",
    ColumnRole.BALANCE: "balance_column",
    ColumnRole.REFERENCE: "reference_column",
}


@dataclass(frozen=True)
class ColumnMapping:
    """Column indexes for each role used to build movements."""

    date_column: int
    description_column: int
    amount_column: Optional[int] = None
    debit_column: Optional[int] = None
    credit_column: Optional[int] = None
    balance_column: Optional[int] = None
    counterparty_column: Optional[int] = None
    reference_column: Optional[int] = None
    value_date_column: Optional[int] = None

    def validate(self) -> list[str]:
        """Return the list of broken invariants (empty when valid)."""
        problems = []
        if self.date_column is None or self.date_column < 0:
            problems.append("a date column is required")
        if self.description_column is None or self.description_column < 0:
            problems.append("a description column is required")
        if self.amount_column is None and self.debit_column is None and self.credit_column is None:
            problems.append("an amount column or a debit/credit column is required")
        used = [
            getattr(self, field_name)
            for field_name in ROLE_FIELDS.values()
            if getattr(self, field_name) is not None and getattr(self, field_name) >= 0
        ]
        if len(used) != len(set(used)):
            problems.append("a column is assigned to more than one role")
        return problems

    def roles(self) -> dict[int, ColumnRole]:
        """Return ``{column_index: role}`` for every mapped column."""
        result: dict[int, ColumnRole] = {}
        for role, field_name in ROLE_FIELDS.items():
            index = getattr(self, field_name)
            if index is not None and index >= 0:
                result.setdefault(index, role)
        return result

    @classmethod
    def from_roles(cls, roles: dict[int, ColumnRole]) -> "ColumnMapping":
        """Build a mapping from detected roles, first column wins per role.

        Missing required roles are encoded as -1 so that ``validate`` can
        report them.
        """
        values: dict[str, int] = {}
        for index in sorted(roles):
            field_name = ROLE_FIELDS.get(ColumnRole(roles[index]))
            if field_name is not None and field_name not in values:
                values[field_name] = index
        values.setdefault("date_column", -1)
        values.setdefault("description_column", -1)
        return cls(**values)

    def to_dict(self) -> dict[str, Optional[int]]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class NormalizedMovement:
    """One canonical, signed bank movement."""

    date: date
    amount: Decimal
    description: str
    counterparty: Optional[str] = None
    balance: Optional[Decimal] = None
    reference: Optional[str] = None
    value_date: Optional[date] = None
    source_row_index: int = 0
    confidence: float = 1.0
    deduplication_hash: str = ""


@dataclass(frozen=True)
class StoredMovement:
    """A movement as persisted by the ledger store."""

    id: int
    account_id: str
    date: date
    amount: Decimal
    description: str
    counterparty: Optional[str]
    reference: Optional[str]
    balance: Optional[Decimal]
    deduplication_hash: str
    imported_at: datetime


@dataclass(frozen=True)
class LedgerSummary:
    """Totals and balances derived from a list of movements."""

    total_inflows: Decimal
    total_outflows: Decimal
    net_movement: Decimal
    movement_count: int
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    opening_balance: Optional[Decimal] = None
    closing_balance: Optional[Decimal] = None


@dataclass(frozen=True)
class ProfileSignature:
    """What a bank layout looks like: normalized headers and a sample hash."""

    headers_ordered: tuple[str, ...]
    sample_hash: str


@dataclass(frozen=True)
class ProfileMapping:
    """Column mapping learned for a bank layout, with its parse settings."""

    columns: ColumnMapping
    locale: NumberLocale
    date_format: str


@dataclass(frozen=True)
class ProfileMetadata:
    """Usage bookkeeping for a bank profile."""

    created_at: datetime
    updated_at: datetime
    last_used: datetime
    usage_count: int = 1
    confidence: float = 0.8
    file_patterns: tuple[str, ...] = ()


@dataclass(frozen=True)
class BankMappingProfile:
    """A saved bank layout used to skip detection on repeat imports."""

    id: str
    signature: ProfileSignature
    mapping: ProfileMapping
    metadata: ProfileMetadata
    name: Optional[str] = None


@dataclass(frozen=True)
class ImportStatistics:
    """Per-import counters reported with every result."""

    file_format: str
    total_rows: int = 0
    data_rows: int = 0
    successful_parsed: int = 0
    skipped_rows: int = 0
    duplicates_detected: int = 0
    processing_time_ms: float = 0.0
    locale: Optional[NumberLocale] = None
    date_format: str = "DD/MM/YYYY"
    overall_confidence: float = 0.0
    header_row_index: Optional[int] = None
    stage_timings_ms: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class MappingAssistantData:
    """What an external mapping assistant needs to resolve a low-confidence schema."""

    headers: list[str]
    sample_rows: list[list[str]]
    detected_mapping: dict[int, ColumnRole]
    suggestions: list[str]
    ambiguities: list[str]


@dataclass(frozen=True)
class ImportResult:
    """Outcome of one import call; never raised, always returned."""

    success: bool
    statistics: ImportStatistics
    movements: list[NormalizedMovement] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    needs_manual_mapping: bool = False
    mapping_assistant: Optional[MappingAssistantData] = None
    ledger_summary: Optional[LedgerSummary] = None
    profile_used: Optional[str] = None
    profile_saved: bool = False
