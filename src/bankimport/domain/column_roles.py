"""Column role detection.

Each column of a statement is classified twice, once from its header text
and once from the shape of its contents, and the two opinions are combined.
The result tells the importer which column holds the date, the amounts, the
description and so on, and whether the guess is good enough to use without
asking the user.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional
import re
import unicodedata

from bankimport.domain.entities import ColumnMapping, ColumnRole, RawTable
from bankimport.domain.locale import detect_number_locale, parse_with_locale
from bankimport.utils.amount_parser import parse_amount_to_cents
from bankimport.utils.date_parser import clean_date_string, is_date_like, parse_date

HEADER_MATCH_CONFIDENCE = 0.9
UNKNOWN_HEADER_CONFIDENCE = 0.2
NO_DATA_CONFIDENCE = 0.1
AMBIGUOUS_BELOW = 0.8
MANUAL_MAPPING_BELOW = 0.8
WEAK_CONTENT_CONFIDENCE = 0.5

SCHEMA_SAMPLE_ROWS = 20
DATE_SAMPLES = 10
REFERENCE_SAMPLES = 10
NUMBER_SAMPLES = 15
MIN_DETECTION_RATE = 0.6
BALANCE_TOLERANCE = Decimal("0.1")
HEADER_SCAN_ROWS = 15

HEADER_KEYWORDS: dict[ColumnRole, tuple[str, ...]] = {
    ColumnRole.DATE: (
        "fecha", "fecha operacion", "fecha operación", "f operacion", "f operación",
        "fecha mov", "fecha movimiento", "date", "operation date", "fecha de operacion",
        "fec.", "booking date", "valor", "postdate", "transaction date",
    ),
    ColumnRole.VALUE_DATE: (
        "fecha valor", "f valor", "value date", "f. valor", "fecha de valor",
    ),
    ColumnRole.DESCRIPTION: (
        "concepto", "descripcion", "descripción", "detalle", "descripcion ampliada",
        "detalle operacion", "detalle operación", "description", "observaciones",
        "motivo", "concepto operacion", "concepto operación", "details", "concept",
    ),
    ColumnRole.COUNTERPARTY: (
        "contraparte", "beneficiario", "ordenante", "entidad", "empresa",
        "contrapartida", "tercero", "counterparty", "payee", "payer", "proveedor",
    ),
    ColumnRole.DEBIT: (
        "cargo", "cargos", "debito", "débito", "debe", "debit", "paid out",
        "salida", "adeudo", "cargo en cuenta",
    ),
    ColumnRole.CREDIT: (
        "abono", "abonos", "credito", "crédito", "haber", "credit", "paid in",
        "ingreso", "entrada", "abono en cuenta",
    ),
    ColumnRole.AMOUNT: (
        "importe", "importe (€)", "importe eur", "cantidad", "monto", "valor",
        "euros", "eur", "movimiento", "amount", "saldo movimiento", "import",
    ),
    ColumnRole.BALANCE: (
        "saldo", "saldo disponible", "saldo tras", "saldo después", "balance",
        "saldo final", "saldo resultante", "saldo actual", "saldo posterior",
    ),
    ColumnRole.REFERENCE: (
        "referencia", "ref", "numero operacion", "número operación", "reference",
        "num operacion", "núm operación", "id operacion", "id operación",
        "numero", "número", "id", "ticket",
    ),
}

ROLE_FAMILIES = {
    ColumnRole.DATE: "date",
    ColumnRole.VALUE_DATE: "date",
    ColumnRole.AMOUNT: "numeric",
    ColumnRole.DEBIT: "numeric",
    ColumnRole.CREDIT: "numeric",
    ColumnRole.BALANCE: "numeric",
    ColumnRole.DESCRIPTION: "text",
    ColumnRole.COUNTERPARTY: "text",
    ColumnRole.REFERENCE: "text",
}

# Content evidence overrides a header of another family only for these roles
CONTENT_PREFERRED_ROLES = {
    ColumnRole.AMOUNT,
    ColumnRole.DEBIT,
    ColumnRole.CREDIT,
    ColumnRole.BALANCE,
    ColumnRole.DATE,
}

IBAN = re.compile(r"^[A-Z]{2}\d{2}[A-Z0-9]{10,30}$")
ALPHANUMERIC_ID = re.compile(r"^[A-Z0-9]{6,20}$")
LONG_DIGITS = re.compile(r"^\d{10,}$")


@dataclass(frozen=True)
class ColumnDetection:
    """Role guess for one column."""

    role: ColumnRole
    confidence: float
    reason: str
    samples: tuple[str, ...] = ()


@dataclass(frozen=True)
class SchemaDetectionResult:
    """Role guesses for all columns of a table."""

    columns: dict[int, ColumnDetection]
    overall_confidence: float
    needs_manual_mapping: bool
    ambiguities: list[str] = field(default_factory=list)

    def roles(self) -> dict[int, ColumnRole]:
        return {
            index: detection.role
            for index, detection in self.columns.items()
            if detection.role != ColumnRole.UNKNOWN
        }

    def to_mapping(self) -> ColumnMapping:
        return ColumnMapping.from_roles(self.roles())


def normalize_header(header: str) -> str:
    """Lowercase, drop parentheses and accents, and collapse whitespace."""
    text = str(header or "").lower().strip()
    text = text.replace("(", "").replace(")", "")
    text = re.sub(r"\s+", " ", text)
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).strip()


def _keyword_matches(keyword: str, header: str) -> bool:
    if keyword == header:
        return True
    if len(keyword) <= 3:
        return re.search(rf"(?<!\w){re.escape(keyword)}(?!\w)", header) is not None
    return keyword in header


_NORMALIZED_KEYWORDS: list[tuple[ColumnRole, str]] = [
    (role, normalize_header(keyword))
    for role, keywords in HEADER_KEYWORDS.items()
    for keyword in keywords
]


def match_header(header: str) -> Optional[tuple[ColumnRole, str]]:
    """Return the role of the longest keyword found in a header, if any."""
    normalized = normalize_header(header)
    if not normalized:
        return None
    best: Optional[tuple[ColumnRole, str]] = None
    for role, keyword in _NORMALIZED_KEYWORDS:
        if not keyword or not _keyword_matches(keyword, normalized):
            continue
        if best is None or len(keyword) > len(best[1]):
            best = (role, keyword)
    return best


def detect_from_header(header: str) -> ColumnDetection:
    match = match_header(header)
    if match is None:
        return ColumnDetection(ColumnRole.UNKNOWN, UNKNOWN_HEADER_CONFIDENCE, "Header not recognized")
    role, keyword = match
    return ColumnDetection(role, HEADER_MATCH_CONFIDENCE, f"Header matches '{keyword}'")


def _detect_dates(samples: list[str], today: Optional[date]) -> Optional[ColumnDetection]:
    checked = samples[:DATE_SAMPLES]
    parsed = sum(1 for sample in checked if parse_date(sample, today) is not None)
    rate = parsed / len(checked)
    if rate < MIN_DETECTION_RATE:
        return None
    return ColumnDetection(ColumnRole.DATE, min(rate, 0.95), f"{parsed}/{len(checked)} values parse as dates")


def _reference_score(sample: str) -> int:
    compact = sample.replace(" ", "").upper()
    if IBAN.match(compact):
        return 2
    if ALPHANUMERIC_ID.match(compact) and re.search(r"[A-Z]", compact) and re.search(r"\d", compact):
        return 1
    if LONG_DIGITS.match(compact):
        return 1
    return 0


def _detect_references(samples: list[str]) -> Optional[ColumnDetection]:
    checked = samples[:REFERENCE_SAMPLES]
    rate = sum(_reference_score(sample) for sample in checked) / len(checked)
    if rate < MIN_DETECTION_RATE:
        return None
    return ColumnDetection(ColumnRole.REFERENCE, min(rate, 0.9), "Values look like account or operation identifiers")


def _is_balance_progression(values: list[Decimal]) -> bool:
    if len(values) < 3:
        return False
    consistent = 0
    triples = 0
    for i in range(2, len(values)):
        triples += 1
        expected = values[i - 2] + (values[i - 1] - values[i - 2])
        if abs(values[i] - expected) <= abs(values[i]) * BALANCE_TOLERANCE:
            consistent += 1
    return consistent / triples >= MIN_DETECTION_RATE


def _detect_numbers(samples: list[str]) -> Optional[ColumnDetection]:
    checked = samples[:NUMBER_SAMPLES]
    locale = detect_number_locale(checked)
    values = []
    for sample in checked:
        parsed = parse_with_locale(sample, locale)
        if parsed.confidence > WEAK_CONTENT_CONFIDENCE:
            values.append(parsed.value)
    rate = len(values) / len(checked)
    if rate < MIN_DETECTION_RATE:
        return None

    if _is_balance_progression(values):
        return ColumnDetection(ColumnRole.BALANCE, min(rate + 0.2, 0.95), "Values progress like a running balance")

    negatives = sum(1 for value in values if value < 0)
    if 0 < negatives < 0.9 * len(values):
        return ColumnDetection(ColumnRole.AMOUNT, min(rate, 0.9), "Numeric values with mixed signs")
    if negatives == 0:
        return ColumnDetection(ColumnRole.CREDIT, min(rate, 0.8), "Numeric values, all positive")
    return ColumnDetection(ColumnRole.AMOUNT, min(rate, 0.8), "Numeric values")


def _detect_text(samples: list[str]) -> ColumnDetection:
    average_length = sum(len(sample) for sample in samples) / len(samples)
    uniqueness = len(set(samples)) / len(samples)
    if average_length > 20 and uniqueness > 0.7:
        return ColumnDetection(ColumnRole.DESCRIPTION, 0.8, "Long, mostly unique text")
    if average_length > 5 and uniqueness > 0.5:
        return ColumnDetection(ColumnRole.COUNTERPARTY, 0.7, "Short, varied text")
    return ColumnDetection(ColumnRole.DESCRIPTION, 0.5, "Text values")


def detect_from_content(samples: list[str], today: Optional[date] = None) -> ColumnDetection:
    """Guess a column's role from its non-empty sample values."""
    if not samples:
        return ColumnDetection(ColumnRole.UNKNOWN, NO_DATA_CONFIDENCE, "No data")
    detection = _detect_dates(samples, today) or _detect_references(samples) or _detect_numbers(samples)
    if detection is None:
        detection = _detect_text(samples)
    return ColumnDetection(detection.role, detection.confidence, detection.reason, tuple(samples[:5]))


def combine_detections(header: ColumnDetection, content: ColumnDetection) -> ColumnDetection:
    """Merge the header and content opinions about one column."""
    samples = content.samples
    if header.role == ColumnRole.UNKNOWN:
        return content
    if content.role == ColumnRole.UNKNOWN or content.confidence <= WEAK_CONTENT_CONFIDENCE:
        return ColumnDetection(header.role, header.confidence, header.reason, samples)
    if header.role == content.role:
        confidence = min((header.confidence + content.confidence) / 2 + 0.1, 0.95)
        return ColumnDetection(header.role, confidence, f"{header.reason}; content agrees", samples)
    if ROLE_FAMILIES.get(header.role) == ROLE_FAMILIES.get(content.role):
        return ColumnDetection(header.role, header.confidence, f"{header.reason}; content suggests {content.role.value}", samples)
    if content.role in CONTENT_PREFERRED_ROLES:
        return ColumnDetection(content.role, content.confidence, f"{content.reason}; header suggested {header.role.value}", samples)
    return ColumnDetection(header.role, header.confidence, f"{header.reason}; content suggested {content.role.value}", samples)


def validate_schema(columns: dict[int, ColumnDetection]) -> list[str]:
    """Return the schema-level conflicts of a set of detections."""
    counts: dict[ColumnRole, int] = {}
    for detection in columns.values():
        counts[detection.role] = counts.get(detection.role, 0) + 1

    conflicts = []
    if not counts.get(ColumnRole.DATE):
        conflicts.append("No date column detected")
    if not any(counts.get(role) for role in (ColumnRole.AMOUNT, ColumnRole.DEBIT, ColumnRole.CREDIT)):
        conflicts.append("No amount column detected")
    if counts.get(ColumnRole.DATE, 0) > 1:
        conflicts.append("Multiple date columns detected")
    if counts.get(ColumnRole.BALANCE, 0) > 1:
        conflicts.append("Multiple balance columns detected")
    return conflicts


def detect_schema(table: RawTable, today: Optional[date] = None) -> SchemaDetectionResult:
    """Detect the role of every column of a table.

    Args:
        table: Table with its header row located (or None when headerless)
        today: Reference day for date plausibility checks

    Returns:
        SchemaDetectionResult; ``needs_manual_mapping`` is set when the mean
        confidence is below 0.8 or the roles conflict
    """
    sample_rows = table.data_rows[:SCHEMA_SAMPLE_ROWS]
    if not sample_rows:
        return SchemaDetectionResult(
            columns={},
            overall_confidence=0.0,
            needs_manual_mapping=True,
            ambiguities=["No data available for analysis"],
        )

    headers = table.headers
    width = max(table.width, len(headers))
    columns: dict[int, ColumnDetection] = {}
    ambiguities: list[str] = []
    for index in range(width):
        header = headers[index] if index < len(headers) else ""
        samples = [
            row[index].strip()
            for row in sample_rows
            if index < len(row) and row[index] is not None and row[index].strip()
        ]
        if not header.strip() and not samples:
            continue

        detection = combine_detections(detect_from_header(header), detect_from_content(samples, today))
        columns[index] = detection
        if detection.confidence < AMBIGUOUS_BELOW:
            ambiguities.append(f"Column {index} ({header or 'unnamed'}): {detection.reason}")

    conflicts = validate_schema(columns)
    overall = sum(d.confidence for d in columns.values()) / len(columns) if columns else 0.0
    return SchemaDetectionResult(
        columns=columns,
        overall_confidence=overall,
        needs_manual_mapping=overall < MANUAL_MAPPING_BELOW or bool(conflicts),
        ambiguities=ambiguities + conflicts,
    )


def _is_data_cell(cell: str) -> bool:
    return parse_amount_to_cents(cell).ok or is_date_like(clean_date_string(cell))


def detect_header_row(rows: list[list[str]]) -> Optional[int]:
    """Find the header row among the first rows of a table.

    Bank exports often start with account details before the column
    headers. Every row above the first data row that has at least two text
    cells is a candidate, and the one naming the most distinct column roles
    wins (the earliest on a tie). Preamble lines such as ``Entidad;Banco
    Santander`` name one role at most, so the real header outranks them.

    Returns:
        The header row index, or None when the table starts with data
    """
    best: Optional[int] = None
    best_roles = 0
    for index, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        cells = [cell.strip() for cell in row if cell and cell.strip()]
        data_cells = sum(1 for cell in cells if _is_data_cell(cell))
        if data_cells >= 2:
            break
        if len(cells) < 2 or data_cells:
            continue
        roles = {match[0] for match in map(match_header, cells) if match is not None}
        if len(roles) > best_roles:
            best, best_roles = index, len(roles)
    return best
