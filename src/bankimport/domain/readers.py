"""Tabular readers turning CSV and spreadsheet uploads into ``RawTable``."""

from typing import Any, Iterable
import csv
import io
import logging

import openpyxl
import xlrd

from bankimport.domain.entities import RawTable, UploadedFile, cell_text
from bankimport.domain.errors import FileParseError, UnsupportedFormatError, not_implemented_format
from bankimport.domain.file_format import (
    FileFormat,
    FileFormatResult,
    decode_text,
    detect_csv_delimiter,
    fallback_csv_delimiter,
)
from bankimport.domain.column_roles import detect_header_row

logger = logging.getLogger(__name__)

SNIFF_SAMPLE_SIZE = 4096


def _to_rows(raw_rows: Iterable[Iterable[Any]]) -> list[list[str]]:
    rows = [[cell_text(cell) for cell in raw_row] for raw_row in raw_rows]
    # Spreadsheets often report trailing blank rows
    while rows and not any(rows[-1]):
        rows.pop()
    return rows


def read_csv(content: bytes, delimiter: str | None = None, encoding: str | None = None) -> list[list[str]]:
    """Read CSV bytes into rows of stripped cell text."""
    if encoding is None:
        text, encoding = decode_text(content)
    else:
        text = content.decode(encoding)

    if delimiter is None:
        delimiter = detect_csv_delimiter(text)
    if delimiter is None:
        try:
            delimiter = csv.Sniffer().sniff(text[:SNIFF_SAMPLE_SIZE], delimiters=";,\t|").delimiter
        except csv.Error:
            delimiter = fallback_csv_delimiter(text)
            logger.debug("Could not sniff a CSV delimiter, using %r", delimiter)

    try:
        return _to_rows(csv.reader(io.StringIO(text), delimiter=delimiter))
    except csv.Error as e:
        raise FileParseError(f"Could not read CSV file: {e}") from e


def read_xlsx(content: bytes) -> list[list[str]]:
    """Read the active sheet of an XLSX workbook."""
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise FileParseError(f"Could not open XLSX workbook: {e}") from e
    try:
        sheet = workbook.active
        return _to_rows(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()


def read_xls(content: bytes) -> list[list[str]]:
    """Read the first sheet of a legacy XLS workbook."""
    try:
        book = xlrd.open_workbook(file_contents=content)
    except Exception as e:
        raise FileParseError(f"Could not open XLS workbook: {e}") from e

    sheet = book.sheet_by_index(0)
    raw_rows = []
    for row_index in range(sheet.nrows):
        row = []
        for cell in sheet.row(row_index):
            if cell.ctype == xlrd.XL_CELL_DATE:
                row.append(xlrd.xldate_as_datetime(cell.value, book.datemode))
            else:
                row.append(cell.value)
        raw_rows.append(row)
    return _to_rows(raw_rows)


def read_table(upload: UploadedFile, detected: FileFormatResult) -> RawTable:
    """Read an upload into a ``RawTable`` with its header row located.

    Args:
        upload: Uploaded file
        detected: Result of format detection for the same file

    Returns:
        RawTable of cell text

    Raises:
        FileParseError: If the file cannot be decoded
        UnsupportedFormatError: If the format has no tabular reader
    """
    if detected.format == FileFormat.CSV:
        rows = read_csv(upload.content, delimiter=detected.csv_delimiter, encoding=detected.encoding)
    elif detected.format == FileFormat.XLSX:
        rows = read_xlsx(upload.content)
    elif detected.format == FileFormat.XLS:
        rows = read_xls(upload.content)
    else:
        raise UnsupportedFormatError(not_implemented_format(detected.format.value))

    header_row_index = detect_header_row(rows)
    logger.debug(
        "Read %d rows from %s (%s), header row %s",
        len(rows), upload.name, detected.format.value, header_row_index,
    )
    return RawTable(rows=rows, header_row_index=header_row_index)
