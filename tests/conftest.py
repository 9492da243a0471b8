"""Shared pytest fixtures for bankimport tests."""

import tempfile
import os
from datetime import date, datetime, UTC
from pathlib import Path
import pytest

from bankimport.database.factories import create_sqlite_database
from bankimport.database.memory import InMemoryLedgerStore, InMemoryProfileStore
from bankimport.domain.bank_profile import BankProfileService
from bankimport.domain.entities import UploadedFile


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create database
    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    # Cleanup
    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def today():
    """Fixed reference day so date plausibility checks do not drift."""
    return date(2024, 6, 30)


class FakeClock:
    """Settable clock for profile scoring tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 30, 12, 0, tzinfo=UTC))


@pytest.fixture
def profile_store():
    """Create an in-memory profile store."""
    return InMemoryProfileStore()


@pytest.fixture
def ledger_store():
    """Create an in-memory ledger store."""
    return InMemoryLedgerStore()


@pytest.fixture
def profile_service(profile_store, clock):
    """Create a BankProfileService over the in-memory store."""
    return BankProfileService(profile_store, clock=clock)


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def make_csv():
    """Build an UploadedFile from CSV lines."""

    def _make(lines, name="statement.csv", encoding="utf-8"):
        return UploadedFile(name=name, content="\n".join(lines).encode(encoding) + b"\n")

    return _make


@pytest.fixture
def make_xlsx(tmp_path):
    """Write rows to an XLSX workbook in tmp_path and return its path."""
    import openpyxl

    def _make(rows, name="statement.xlsx"):
        workbook = openpyxl.Workbook()
        sheet = workbook.active
        for row in rows:
            sheet.append(list(row))
        path = tmp_path / name
        workbook.save(path)
        return path

    return _make
