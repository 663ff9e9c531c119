"""Pydantic models and enums for the Statement Ingestion service.

This module defines the schema the extraction output is validated against, the normalized
statement handed to persistence, and the request/response models of the HTTP API.
"""

import enum
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StatementStatus(str, enum.Enum):
    """Lifecycle of a statement record."""

    UPLOADED = "uploaded"
    PARSED = "parsed"
    ERROR = "error"


class TransactionType(str, enum.Enum):
    """Direction of money movement, derived from the amount sign."""

    CREDIT = "credit"
    DEBIT = "debit"

    @classmethod
    def from_amount(cls, amount: float) -> "TransactionType":
        """Non-negative amounts are credits, negative amounts are debits."""
        return cls.CREDIT if amount >= 0 else cls.DEBIT


class MatchStatus(str, enum.Enum):
    """Reconciliation match state of a transaction."""

    UNMATCHED = "unmatched"
    MATCHED = "matched"
    IGNORED = "ignored"


class CategorySource(str, enum.Enum):
    """Who assigned a transaction's category."""

    AUTO = "auto"
    MANUAL = "manual"


# --- Extraction output schema ---


class ExtractedTransaction(BaseModel):
    """One transaction as returned by the extraction call."""

    model_config = ConfigDict(extra="ignore")

    date: date
    description: str = ""
    amount: float
    check_number: str | None = None

    @field_validator("description", mode="before")
    @classmethod
    def _description_default(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("check_number", mode="before")
    @classmethod
    def _check_number_text(cls, value: object) -> object:
        if value in (None, ""):
            return None
        if isinstance(value, int | float):
            return str(int(value))
        return value


class ExtractedStatement(BaseModel):
    """Top-level statement object as returned by the extraction call."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    account_name: str | None = Field(None, alias="accountName")
    account_number: str | None = Field(None, alias="accountNumber")
    bank_name: str | None = Field(None, alias="bankName")
    period_start: date | None = Field(None, alias="periodStart")
    period_end: date | None = Field(None, alias="periodEnd")
    beginning_balance: float | None = Field(None, alias="beginningBalance")
    ending_balance: float | None = Field(None, alias="endingBalance")
    transactions: list[ExtractedTransaction] = Field(default_factory=list)

    @field_validator("account_number", mode="before")
    @classmethod
    def _account_number_text(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("transactions", mode="before")
    @classmethod
    def _transactions_default(cls, value: object) -> object:
        return [] if value is None else value


# --- Normalized pipeline output ---


class CategorizedTransaction(BaseModel):
    """A normalized transaction with its derived type and rule-engine category."""

    date: date
    description: str
    amount: float
    type: TransactionType
    check_number: str | None = None
    category: str | None = None
    category_source: CategorySource | None = None


class NormalizedStatement(BaseModel):
    """Statement summary fields plus categorized transactions, ready to persist."""

    model_config = ConfigDict(populate_by_name=True)

    account_name: str = Field(alias="accountName")
    account_number: str = Field(alias="accountNumber")
    bank_name: str | None = Field(None, alias="bankName")
    period_start: date | None = Field(None, alias="periodStart")
    period_end: date | None = Field(None, alias="periodEnd")
    beginning_balance: float = Field(0.0, alias="beginningBalance")
    ending_balance: float = Field(0.0, alias="endingBalance")
    transactions: list[CategorizedTransaction] = Field(default_factory=list)

    @property
    def auto_categorized_count(self) -> int:
        """Number of transactions the rule engine matched."""
        return sum(1 for txn in self.transactions if txn.category_source == CategorySource.AUTO)


class ParseResult(BaseModel):
    """Outcome of one statement parse, including caller-visible metrics."""

    statement: NormalizedStatement
    statement_id: str | None = None
    saved: bool = False
    transaction_count: int = 0
    auto_categorized_count: int = 0
    input_tokens: int = 0
    output_tokens: int = 0

    def to_payload(self) -> dict[str, Any]:
        """Serialize for the response envelope's ``data`` field."""
        data = self.statement.model_dump(mode="json", by_alias=True)
        data["_saved"] = self.saved
        data["_transactionCount"] = self.transaction_count
        data["_autoCategorizedCount"] = self.auto_categorized_count
        return data


class ReconcileResult(BaseModel):
    """Rows written by one replace-all reconciliation."""

    written: int
    auto_categorized: int


# --- API models ---


class AiRequest(BaseModel):
    """Task-dispatch request body."""

    task: str | None = None
    company_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class UsageInfo(BaseModel):
    """Token and credit consumption of one request."""

    input_tokens: int
    output_tokens: int
    credits_used: int


class AiResponse(BaseModel):
    """Response envelope of the task-dispatch endpoint."""

    success: bool
    data: Any | None = None
    error: str | None = None
    usage: UsageInfo | None = None


class StatementOut(BaseModel):
    """Statement record as exposed by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    company_id: str
    file_name: str | None = None
    account_name: str | None = None
    account_number: str | None = None
    bank_name: str | None = None
    period_start: date | None = None
    period_end: date | None = None
    beginning_balance: float | None = None
    ending_balance: float | None = None
    status: StatementStatus
    created_at: datetime
    parsed_at: datetime | None = None


class TransactionOut(BaseModel):
    """Stored transaction as exposed by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    statement_id: str
    transaction_date: date
    description: str
    amount: float
    type: TransactionType
    check_number: str | None = None
    match_status: MatchStatus
    category: str | None = None
    category_source: CategorySource | None = None


class StatementSummary(BaseModel):
    """Totals over a statement's stored transactions."""

    statement_id: str
    status: StatementStatus
    total_transactions: int
    unmatched: int
    matched: int
    ignored: int
    auto_categorized: int
    uncategorized: int
    total_deposits: float
    total_withdrawals: float
    beginning_balance: float | None = None
    ending_balance: float | None = None


class UsageSnapshot(BaseModel):
    """Monthly credit consumption for one company."""

    company_id: str
    plan_tier: str
    limit: int
    used: int
    remaining: int
