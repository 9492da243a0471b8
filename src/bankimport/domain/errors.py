"""Shared domain error messages and error types."""


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity or path does not exist."""


class UnsupportedFormatError(DomainError):
    """The uploaded file is not a format the importer can read."""


class FileParseError(DomainError):
    """The uploaded file could not be decoded into a table."""


class StorageError(DomainError):
    """A profile or ledger store could not be read or written."""


class ProfileStoreError(StorageError):
    """Reading or writing the bank profile store failed."""


class LedgerStoreError(StorageError):
    """Reading or writing stored movements failed."""


def profile_not_found(profile_id: str) -> str:
    """Return message for missing bank profile."""
    return f"Bank profile '{profile_id}' not found"


def unsupported_format(reason: str) -> str:
    """Return message for files below the format confidence threshold."""
    return f"Unsupported file format: {reason}"


def not_implemented_format(file_format: str) -> str:
    """Return message for formats that are detected but not parsed."""
    return f"{file_format} parsing not yet implemented"


def invalid_column_mapping(problems: list[str]) -> str:
    """Return message for a column mapping that breaks its invariants."""
    return f"Invalid column mapping: {'; '.join(problems)}"


def row_error(row_number: int, message: str) -> str:
    """Return a row-level error message (1-based row numbers)."""
    return f"Row {row_number}: {message}"
