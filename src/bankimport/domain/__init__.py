"""Domain layer for bankimport application.

Services live in their own modules (``bankimport.domain.importer``,
``bankimport.domain.bank_profile`` and so on); only entities and errors are
re-exported here so that the database layer can import them without pulling
in the services.
"""

from bankimport.domain.entities import (
    BankMappingProfile,
    ColumnMapping,
    ColumnRole,
    ImportResult,
    NormalizedMovement,
    UploadedFile,
)
from bankimport.domain.errors import DomainError

__all__ = [
    "BankMappingProfile",
    "ColumnMapping",
    "ColumnRole",
    "DomainError",
    "ImportResult",
    "NormalizedMovement",
    "UploadedFile",
]
