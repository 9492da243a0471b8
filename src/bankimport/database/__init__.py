"""Database layer for bankimport application."""

from bankimport.database.base import Database, LedgerStore, ProfileStore
from bankimport.database.factories import create_sqlite_database
from bankimport.database.memory import InMemoryLedgerStore, InMemoryProfileStore

__all__ = [
    "Database",
    "LedgerStore",
    "ProfileStore",
    "InMemoryLedgerStore",
    "InMemoryProfileStore",
    "create_sqlite_database",
]
