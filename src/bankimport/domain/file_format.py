"""File format detection for uploaded bank statements."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import csv
import io

from bankimport.domain.entities import UploadedFile

CSV_DELIMITERS = (";", ",", "\t", "|")
MIN_CSV_COLUMNS = 3
MIN_CSV_CONSISTENCY = 0.8
SNIFF_LINES = 30
EARLY_RETURN_CONFIDENCE = 0.9
TEXT_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")

ZIP_MAGIC = b"PK\x03\x04"
OLE_MAGIC = b"\xd0\xcf\x11\xe0"
OFX_SIGNATURES = ("OFXHEADER", "<OFX>")
QIF_SIGNATURES = ("!Type:", "!Account", "!Option:")

XLSX_MIME_TYPES = {"application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"}
XLS_MIME_TYPES = {"application/vnd.ms-excel", "application/msexcel", "application/x-msexcel"}
CSV_MIME_TYPES = {"text/csv", "application/csv", "text/comma-separated-values"}
OFX_MIME_TYPES = {"application/x-ofx", "application/ofx"}
QIF_MIME_TYPES = {"application/qif", "application/x-qif"}


class FileFormat(str, Enum):
    CSV = "CSV"
    XLSX = "XLSX"
    XLS = "XLS"
    OFX = "OFX"
    QIF = "QIF"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class FileFormatResult:
    """Detected format with its confidence and the text decoding details."""

    format: FileFormat
    confidence: float
    reason: str
    encoding: Optional[str] = None
    csv_delimiter: Optional[str] = None


def decode_text(content: bytes) -> tuple[str, str]:
    """Decode file bytes, trying UTF-8 first and falling back to Windows encodings.

    Returns:
        Tuple of (text, encoding name)
    """
    for encoding in TEXT_ENCODINGS:
        try:
            return content.decode(encoding), encoding
        except UnicodeDecodeError:
            continue
    # latin-1 decodes any byte sequence, so this is unreachable
    return content.decode("latin-1", errors="replace"), "latin-1"


def _delimiter_score(lines: list[str], delimiter: str) -> Optional[tuple[int, float, float]]:
    """Score a delimiter by the column count of the table at the end of the sample.

    Preamble lines above the table usually have fewer columns, so the modal
    count is taken from the second half of the sample and consistency is
    measured from the first line that reaches it.
    """
    counts = [len(row) for row in csv.reader(lines, delimiter=delimiter)]
    body = counts[len(counts) // 2:]
    mode = max(set(body), key=lambda count: (body.count(count), count))
    if mode < MIN_CSV_COLUMNS:
        return None
    table = counts[counts.index(mode):]
    consistency = table.count(mode) / len(table)
    if consistency < MIN_CSV_CONSISTENCY:
        return None
    return mode, consistency, counts.count(mode) / len(counts)


def detect_csv_delimiter(text: str) -> Optional[str]:
    """Pick the delimiter that splits the table under any preamble into consistent columns."""
    lines = [line for line in text.splitlines() if line.strip()][:SNIFF_LINES]
    if not lines:
        return None

    best: Optional[str] = None
    best_score: Optional[tuple[int, float, float]] = None
    for delimiter in CSV_DELIMITERS:
        score = _delimiter_score(lines, delimiter)
        if score is not None and (best_score is None or score > best_score):
            best = delimiter
            best_score = score
    return best


def fallback_csv_delimiter(text: str) -> str:
    """Return the delimiter found on the most lines, for files no scoring could settle."""
    lines = [line for line in text.splitlines() if line.strip()][:SNIFF_LINES]
    best, best_lines = ",", 0
    for delimiter in CSV_DELIMITERS:
        present = sum(1 for line in lines if delimiter in line)
        if present > best_lines:
            best, best_lines = delimiter, present
    return best


def _detect_by_declaration(upload: UploadedFile) -> FileFormatResult:
    mime_type = (upload.mime_type or "").lower().split(";")[0].strip()
    extension = upload.extension

    if mime_type in XLSX_MIME_TYPES or extension == "xlsx":
        return FileFormatResult(FileFormat.XLSX, 0.95, "Excel 2007+ extension or MIME type")
    if mime_type in XLS_MIME_TYPES or extension == "xls":
        return FileFormatResult(FileFormat.XLS, 0.95, "Legacy Excel extension or MIME type")
    if mime_type in CSV_MIME_TYPES or extension == "csv":
        return FileFormatResult(FileFormat.CSV, 0.90, "CSV extension or MIME type")
    if mime_type in OFX_MIME_TYPES or extension == "ofx":
        return FileFormatResult(FileFormat.OFX, 0.90, "OFX extension or MIME type")
    if mime_type in QIF_MIME_TYPES or extension == "qif":
        return FileFormatResult(FileFormat.QIF, 0.90, "QIF extension or MIME type")
    if mime_type.startswith("text/"):
        return FileFormatResult(FileFormat.CSV, 0.60, "Generic text MIME type")
    return FileFormatResult(FileFormat.UNKNOWN, 0.30, "No recognizable extension or MIME type")


def _detect_by_content(content: bytes) -> FileFormatResult:
    if content.startswith(ZIP_MAGIC):
        return FileFormatResult(FileFormat.XLSX, 0.85, "ZIP container signature")
    if content.startswith(OLE_MAGIC):
        return FileFormatResult(FileFormat.XLS, 0.85, "OLE compound document signature")

    text, encoding = decode_text(content)
    head = text[:2048]
    if any(signature in head for signature in OFX_SIGNATURES):
        return FileFormatResult(FileFormat.OFX, 0.95, "OFX header found", encoding=encoding)
    stripped = head.lstrip()
    if any(stripped.startswith(signature) for signature in QIF_SIGNATURES):
        return FileFormatResult(FileFormat.QIF, 0.95, "QIF header found", encoding=encoding)

    delimiter = detect_csv_delimiter(text)
    if delimiter is not None:
        return FileFormatResult(
            FileFormat.CSV, 0.80, f"Consistent '{delimiter}' separated columns",
            encoding=encoding, csv_delimiter=delimiter,
        )
    return FileFormatResult(FileFormat.CSV, 0.40, "Plain text without a clear delimiter", encoding=encoding)


def detect_file_format(upload: UploadedFile) -> FileFormatResult:
    """Detect the format of an uploaded statement.

    The declared MIME type and extension are trusted when they are specific
    (confidence >= 0.9); otherwise the content is sniffed and the more
    confident of the two answers wins. Text formats always carry their
    encoding and, for CSV, the detected delimiter.

    Args:
        upload: Uploaded file

    Returns:
        FileFormatResult
    """
    if not upload.content:
        return FileFormatResult(FileFormat.UNKNOWN, 0.0, "Empty file")

    declared = _detect_by_declaration(upload)
    if declared.confidence >= EARLY_RETURN_CONFIDENCE:
        if declared.format in (FileFormat.CSV, FileFormat.OFX, FileFormat.QIF):
            text, encoding = decode_text(upload.content)
            delimiter = detect_csv_delimiter(text) if declared.format == FileFormat.CSV else None
            return FileFormatResult(
                declared.format, declared.confidence, declared.reason,
                encoding=encoding, csv_delimiter=delimiter,
            )
        return declared

    sniffed = _detect_by_content(upload.content)
    return sniffed if sniffed.confidence >= declared.confidence else declared
