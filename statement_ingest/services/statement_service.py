"""Statement records: creation on upload, lookups, totals and CSV export."""

import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session

from statement_ingest.core.db import BankTransaction, Statement
from statement_ingest.core.errors import StatementNotFoundError
from statement_ingest.core.models import CategorySource, MatchStatus, StatementStatus, StatementSummary, TransactionOut

EXPORT_COLUMNS = [
    "transaction_date",
    "description",
    "amount",
    "type",
    "check_number",
    "category",
    "category_source",
    "match_status",
]


def create_statement(
    session: Session,
    company_id: str,
    statement_id: str | None = None,
    file_name: str | None = None,
    file_key: str | None = None,
) -> Statement:
    """Create a statement in ``uploaded`` status."""
    record = Statement(
        company_id=company_id, file_name=file_name, file_key=file_key, status=StatementStatus.UPLOADED.value
    )
    if statement_id:
        record.id = statement_id
    session.add(record)
    session.commit()
    return record


def get_statement(session: Session, statement_id: str) -> Statement:
    """Fetch a statement or raise ``StatementNotFoundError``."""
    record = session.get(Statement, statement_id)
    if record is None:
        msg = f"Statement {statement_id} not found"
        raise StatementNotFoundError(msg)
    return record


def list_transactions(session: Session, statement_id: str) -> list[BankTransaction]:
    """Stored transactions of a statement in date order."""
    get_statement(session, statement_id)
    stmt = (
        select(BankTransaction)
        .where(BankTransaction.statement_id == statement_id)
        .order_by(BankTransaction.transaction_date, BankTransaction.created_at)
    )
    return list(session.execute(stmt).scalars())


def summarize_statement(session: Session, statement_id: str) -> StatementSummary:
    """Totals over a statement's stored transactions."""
    record = get_statement(session, statement_id)
    transactions = list_transactions(session, statement_id)
    by_status = {status: 0 for status in MatchStatus}
    for txn in transactions:
        by_status[MatchStatus(txn.match_status)] += 1
    auto = sum(1 for txn in transactions if txn.category_source == CategorySource.AUTO.value)
    return StatementSummary(
        statement_id=statement_id,
        status=StatementStatus(record.status),
        total_transactions=len(transactions),
        unmatched=by_status[MatchStatus.UNMATCHED],
        matched=by_status[MatchStatus.MATCHED],
        ignored=by_status[MatchStatus.IGNORED],
        auto_categorized=auto,
        uncategorized=sum(1 for txn in transactions if not txn.category),
        total_deposits=round(sum(txn.amount for txn in transactions if txn.amount > 0), 2),
        total_withdrawals=round(sum(abs(txn.amount) for txn in transactions if txn.amount < 0), 2),
        beginning_balance=record.beginning_balance,
        ending_balance=record.ending_balance,
    )


def export_transactions_csv(session: Session, statement_id: str) -> str:
    """Render a statement's transactions as CSV text."""
    transactions = list_transactions(session, statement_id)
    rows = [TransactionOut.model_validate(txn).model_dump(mode="json") for txn in transactions]
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS).to_csv(index=False)
