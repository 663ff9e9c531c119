"""DB engine, session factory and ORM tables for the Statement Ingestion service."""

import uuid
from collections.abc import Generator
from functools import lru_cache

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from statement_ingest.core.models import MatchStatus, StatementStatus
from statement_ingest.core.utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class Statement(Base):
    """One uploaded bank statement and its parsed summary fields."""

    __tablename__ = "bank_statements"
    id = Column(String, primary_key=True, default=_uuid)
    company_id = Column(String, nullable=False, index=True)
    file_key = Column(String, nullable=True)
    file_name = Column(String, nullable=True)
    account_name = Column(String, nullable=True)
    account_number = Column(String, nullable=True)
    bank_name = Column(String, nullable=True)
    period_start = Column(Date, nullable=True)
    period_end = Column(Date, nullable=True)
    beginning_balance = Column(Float, nullable=True)
    ending_balance = Column(Float, nullable=True)
    status = Column(String, nullable=False, default=StatementStatus.UPLOADED.value)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    parsed_at = Column(DateTime, nullable=True)

    transactions = relationship(
        "BankTransaction",
        back_populates="statement",
        cascade="all, delete-orphan",
        order_by="BankTransaction.transaction_date",
    )


class BankTransaction(Base):
    """A single statement line item, owned by exactly one statement."""

    __tablename__ = "bank_transactions"
    id = Column(String, primary_key=True, default=_uuid)
    statement_id = Column(String, ForeignKey("bank_statements.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(String, nullable=True, index=True)
    transaction_date = Column(Date, nullable=False)
    description = Column(Text, nullable=False, default="")
    amount = Column(Float, nullable=False)
    type = Column(String, nullable=False)
    check_number = Column(String, nullable=True)
    match_status = Column(String, nullable=False, default=MatchStatus.UNMATCHED.value)
    category = Column(String, nullable=True)
    category_source = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    statement = relationship("Statement", back_populates="transactions")


class AiUsage(Base):
    """Append-only record of one pipeline invocation's consumption."""

    __tablename__ = "ai_usage"
    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=True)
    task_type = Column(String, nullable=False)
    model = Column(String, nullable=True)
    input_tokens = Column(Integer, nullable=False, default=0)
    output_tokens = Column(Integer, nullable=False, default=0)
    credits_used = Column(Integer, nullable=False, default=0)
    usage_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class CreditLedger(Base):
    """Per-company, per-month credit counter used for atomic reservations."""

    __tablename__ = "credit_ledger"
    __table_args__ = (UniqueConstraint("company_id", "period", name="uq_credit_ledger_company_period"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(String, nullable=False)
    period = Column(String, nullable=False)
    reserved = Column(Integer, nullable=False, default=0)


class CompanyPlan(Base):
    """Plan tier a company is subscribed to."""

    __tablename__ = "company_plans"
    company_id = Column(String, primary_key=True)
    plan_tier = Column(String, nullable=False)


def create_db_engine(url: str) -> Engine:
    """Create a SQLAlchemy engine, allowing SQLite connections to cross request threads."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


@lru_cache
def get_engine() -> Engine:
    """Create a SQLAlchemy engine using the configured database URL."""
    from statement_ingest.core.settings import get_settings

    return create_db_engine(get_settings().database_url)


SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    """Yield a request-scoped session bound to the configured engine."""
    session = SessionLocal(bind=get_engine())
    try:
        yield session
    finally:
        session.close()
