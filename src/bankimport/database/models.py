"""SQLAlchemy models for bankimport database."""

from datetime import datetime, UTC
from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session

Base = declarative_base()


class BankProfileRecord(Base):
    """Saved bank mapping profile, stored as its JSON document."""

    __tablename__ = "bank_profiles"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=True)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class Movement(Base):
    """Imported movement model."""

    __tablename__ = "movements"

    id = Column(Integer, primary_key=True)
    account_id = Column(String, nullable=False, index=True)
    date = Column(Date, nullable=False)
    value_date = Column(Date, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String, nullable=False)
    counterparty = Column(String, nullable=True)
    reference = Column(String, nullable=True)
    balance = Column(Numeric(12, 2), nullable=True)
    deduplication_hash = Column(String, nullable=False)
    imported_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Unique constraint on account_id + deduplication_hash
    __table_args__ = (
        UniqueConstraint("account_id", "deduplication_hash", name="uq_account_dedup_hash"),
    )


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
