"""Replace-all persistence of a statement's transactions.

Re-parsing a statement must neither leave stale rows behind nor duplicate them, so the
reconciler deletes every stored transaction of the statement and inserts the new batch.
Delete, insert and the summary update share one database transaction: readers never see a
partial overwrite, and ``parsed`` status always describes the transaction set stored with it.
The statement row is locked and its ``version`` checked so two concurrent re-parses of the
same statement cannot interleave.
"""

import uuid

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from statement_ingest.core.db import BankTransaction, Statement
from statement_ingest.core.errors import ConcurrentReparseError, PersistenceFailureError, StatementNotFoundError
from statement_ingest.core.models import (
    CategorizedTransaction,
    CategorySource,
    MatchStatus,
    NormalizedStatement,
    ReconcileResult,
    StatementStatus,
    TransactionType,
)
from statement_ingest.core.utils import get_logger, utcnow

logger = get_logger("statement-ingest.reconciler")


def build_transaction_row(statement_id: str, company_id: str | None, txn: CategorizedTransaction) -> dict:
    """Turn a normalized transaction into a ``bank_transactions`` row, keeping its assigned category."""
    return {
        "id": str(uuid.uuid4()),
        "statement_id": statement_id,
        "company_id": company_id,
        "transaction_date": txn.date,
        "description": txn.description or "",
        "amount": txn.amount,
        "type": TransactionType.from_amount(txn.amount).value,
        "check_number": txn.check_number or None,
        "match_status": MatchStatus.UNMATCHED.value,
        "category": txn.category,
        "category_source": txn.category_source.value if txn.category_source else None,
    }


class TransactionReconciler:
    """Keeps a statement's stored transactions in sync with its latest parse."""

    def __init__(self, session: Session) -> None:
        """Initialize the reconciler with a SQLAlchemy session."""
        self.session = session

    def reconcile(self, statement_id: str, statement: NormalizedStatement) -> ReconcileResult:
        """Replace all transactions of ``statement_id`` and update its summary fields."""
        record = self._lock_statement(statement_id)
        read_version = record.version
        company_id = record.company_id

        deleted = self.session.execute(delete(BankTransaction).where(BankTransaction.statement_id == statement_id))
        logger.info(f"Statement {statement_id}: cleared {deleted.rowcount} existing transactions")

        rows = [build_transaction_row(statement_id, company_id, txn) for txn in statement.transactions]
        auto_categorized = sum(1 for row in rows if row["category_source"] == CategorySource.AUTO.value)
        try:
            self._insert_transactions(rows)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception(f"Statement {statement_id}: transaction insert failed")
            self._mark_error(statement_id)
            msg = f"Failed to save transactions: {exc.__class__.__name__}"
            raise PersistenceFailureError(msg) from exc

        result = self.session.execute(
            update(Statement)
            .where(Statement.id == statement_id, Statement.version == read_version)
            .values(
                account_name=statement.account_name,
                account_number=statement.account_number,
                bank_name=statement.bank_name,
                period_start=statement.period_start,
                period_end=statement.period_end,
                beginning_balance=statement.beginning_balance,
                ending_balance=statement.ending_balance,
                status=StatementStatus.PARSED.value,
                parsed_at=utcnow(),
                version=read_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.rollback()
            logger.warning(f"Statement {statement_id}: version {read_version} superseded by a concurrent re-parse")
            msg = "Statement was re-parsed concurrently; retry the upload"
            raise ConcurrentReparseError(msg)
        self.session.commit()
        logger.info(f"Statement {statement_id}: wrote {len(rows)} transactions ({auto_categorized} auto-categorized)")
        return ReconcileResult(written=len(rows), auto_categorized=auto_categorized)

    def _lock_statement(self, statement_id: str) -> Statement:
        stmt = (
            select(Statement)
            .where(Statement.id == statement_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        record = self.session.execute(stmt).scalar_one_or_none()
        if record is None:
            msg = f"Statement {statement_id} not found"
            raise StatementNotFoundError(msg)
        return record

    def _insert_transactions(self, rows: list[dict]) -> None:
        """Insert the whole batch in one statement."""
        if rows:
            self.session.execute(insert(BankTransaction), rows)
            self.session.flush()

    def _mark_error(self, statement_id: str) -> None:
        """Flag the statement for re-parse without touching its summary fields."""
        try:
            self.session.execute(
                update(Statement)
                .where(Statement.id == statement_id)
                .values(status=StatementStatus.ERROR.value)
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception(f"Statement {statement_id}: could not set error status")
