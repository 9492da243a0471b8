"""Database factory functions for creating database instances."""

import logging
import os
from pathlib import Path
from typing import Optional

from bankimport.database.sqlalchemy_db import SQLAlchemyDatabase

logger = logging.getLogger(__name__)

DB_PATH_ENV_VAR = "BANKIMPORT_DB_PATH"
MEMORY_PATH = ":memory:"


def default_database_path() -> Path:
    """Return ~/.bankimport/bankimport.db, creating its directory if needed."""
    db_dir = Path.home() / ".bankimport"
    db_dir.mkdir(exist_ok=True)
    return db_dir / "bankimport.db"


def create_sqlite_database(database_path: Optional[str] = None) -> SQLAlchemyDatabase:
    """Create a SQLite-backed store for bank profiles and movements.

    Args:
        database_path: SQLite file, or ``:memory:`` for a throwaway database.
            Falls back to BANKIMPORT_DB_PATH and then to
            ``default_database_path()``.

    Returns:
        SQLAlchemyDatabase instance configured for SQLite
    """
    database_path = database_path or os.environ.get(DB_PATH_ENV_VAR)
    if database_path == MEMORY_PATH:
        return SQLAlchemyDatabase("sqlite://")
    if database_path is None:
        database_path = str(default_database_path())

    logger.debug("Using SQLite database at %s", database_path)
    return SQLAlchemyDatabase(f"sqlite:///{database_path}")
