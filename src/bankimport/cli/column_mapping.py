"""CLI helpers for explicit column mappings (``--map role=column``)."""

from __future__ import annotations

import click

from bankimport.domain.column_roles import normalize_header
from bankimport.domain.entities import ROLE_FIELDS, ColumnMapping, ColumnRole, UploadedFile
from bankimport.domain.errors import DomainError, ValidationError, invalid_column_mapping
from bankimport.domain.file_format import detect_file_format
from bankimport.domain.readers import read_table


def _resolve_column(column: str, headers: list[str]) -> int:
    if column.isdigit():
        return int(column)
    wanted = normalize_header(column)
    for index, header in enumerate(headers):
        if normalize_header(header) == wanted:
            return index
    raise ValidationError(f"Column '{column}' not found in file headers")


def parse_column_mapping(pairs: tuple[str, ...] | list[str], headers: list[str]) -> ColumnMapping:
    """Build a ColumnMapping from ``role=column`` pairs.

    A column is a 0-based index or a header name (compared after
    normalization, so case and accents do not matter).

    Raises:
        ValidationError: If a pair is malformed, names an unknown role or
            column, or the resulting mapping is invalid
    """
    values: dict[str, int] = {}
    for pair in pairs:
        role_name, separator, column = pair.partition("=")
        if not separator or not column.strip():
            raise ValidationError(f"Invalid mapping '{pair}', expected ROLE=COLUMN")
        try:
            role = ColumnRole(role_name.strip().lower())
        except ValueError:
            roles = ", ".join(r.value for r in ROLE_FIELDS)
            raise ValidationError(f"Unknown role '{role_name}' (expected one of: {roles})") from None
        if role not in ROLE_FIELDS:
            raise ValidationError(f"Role '{role.value}' cannot be mapped")
        values[ROLE_FIELDS[role]] = _resolve_column(column.strip(), headers)

    values.setdefault("date_column", -1)
    values.setdefault("description_column", -1)
    mapping = ColumnMapping(**values)
    problems = mapping.validate()
    if problems:
        raise ValidationError(invalid_column_mapping(problems))
    return mapping


def resolve_column_mapping_or_exit(
    ctx: click.Context, pairs: tuple[str, ...], upload: UploadedFile
) -> ColumnMapping | None:
    """Resolve ``--map`` options against the file's headers, or exit with a CLI error."""
    if not pairs:
        return None
    try:
        headers = []
        if any(not pair.partition("=")[2].strip().isdigit() for pair in pairs):
            headers = read_table(upload, detect_file_format(upload)).headers
        return parse_column_mapping(pairs, headers)
    except DomainError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)
