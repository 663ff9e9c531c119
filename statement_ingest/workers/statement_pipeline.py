"""Statement parse orchestration: extraction call, validation, categorization, persistence."""

import json

from pydantic import ValidationError
from sqlalchemy.orm import Session

from statement_ingest.agents.base import BaseAgent, ContentBlock, ExtractionRequest
from statement_ingest.agents.prompts import STATEMENT_PROMPT, SYSTEM_PROMPT
from statement_ingest.core.categorizer import categorize
from statement_ingest.core.db import Statement
from statement_ingest.core.errors import MalformedExtractionError, MissingInputError, StatementNotFoundError
from statement_ingest.core.models import (
    CategorizedTransaction,
    ExtractedStatement,
    NormalizedStatement,
    ParseResult,
    TransactionType,
)
from statement_ingest.core.settings import Settings
from statement_ingest.core.utils import get_logger, mask_account_number, strip_code_fences
from statement_ingest.services.reconciler import TransactionReconciler

logger = get_logger("statement-ingest.pipeline")

DEFAULT_ACCOUNT_NAME = "Bank Account"
DEFAULT_IMAGE_MIME = "image/jpeg"
PDF_MIME = "application/pdf"
MAX_RESPONSE_LOG_LEN = 500


def build_extraction_request(file_bytes: bytes, mime_type: str | None, settings: Settings) -> ExtractionRequest:
    """Package the file as a document block (PDF) or image block alongside the extraction prompt."""
    if "pdf" in (mime_type or "").lower():
        file_block = ContentBlock(type="document", media_type=PDF_MIME, data=file_bytes)
    else:
        file_block = ContentBlock(type="image", media_type=mime_type or DEFAULT_IMAGE_MIME, data=file_bytes)
    return ExtractionRequest(
        system=SYSTEM_PROMPT,
        blocks=[ContentBlock(type="text", text=STATEMENT_PROMPT), file_block],
        max_tokens=settings.extraction_max_tokens,
        temperature=settings.extraction_temperature,
    )


def parse_extraction(text: str) -> ExtractedStatement:
    """Validate the raw extraction text against the statement schema.

    Raises:
        MalformedExtractionError: the text is not JSON after fence-stripping, or does not
            match the schema. Nothing is partially accepted.

    """
    cleaned = strip_code_fences(text)
    try:
        raw = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.error(f"Failed to parse extraction response as JSON: {text[:MAX_RESPONSE_LOG_LEN]}")  # noqa: TRY400
        msg = "Failed to parse AI response as JSON"
        raise MalformedExtractionError(msg) from exc
    if not isinstance(raw, dict):
        msg = "AI response is not a statement object"
        raise MalformedExtractionError(msg)
    try:
        return ExtractedStatement.model_validate(raw)
    except ValidationError as exc:
        logger.error(f"Extraction response failed schema validation: {exc.errors()}")  # noqa: TRY400
        msg = "AI response does not match the statement schema"
        raise MalformedExtractionError(msg) from exc


def normalize_statement(extracted: ExtractedStatement) -> NormalizedStatement:
    """Apply defaults, mask the account number, derive types and auto-categorize."""
    transactions = []
    for txn in extracted.transactions:
        match = categorize(txn.description)
        transactions.append(
            CategorizedTransaction(
                date=txn.date,
                description=txn.description,
                amount=txn.amount,
                type=TransactionType.from_amount(txn.amount),
                check_number=txn.check_number,
                category=match.category if match else None,
                category_source=match.source if match else None,
            )
        )
    return NormalizedStatement(
        account_name=extracted.account_name or DEFAULT_ACCOUNT_NAME,
        account_number=mask_account_number(extracted.account_number),
        bank_name=extracted.bank_name or None,
        period_start=extracted.period_start,
        period_end=extracted.period_end,
        beginning_balance=extracted.beginning_balance or 0.0,
        ending_balance=extracted.ending_balance or 0.0,
        transactions=transactions,
    )


class StatementPipeline:
    """Runs one statement upload through extraction and, optionally, persistence."""

    def __init__(self, agent: BaseAgent, session: Session, settings: Settings) -> None:
        """Initialize the pipeline with an extraction agent, a session and settings."""
        self.agent = agent
        self.session = session
        self.settings = settings

    def parse_statement(
        self, file_bytes: bytes | None, mime_type: str | None, statement_id: str | None = None
    ) -> ParseResult:
        """Extract, normalize and (when ``statement_id`` is given) persist a bank statement."""
        if not file_bytes:
            msg = "Missing file_base64"
            raise MissingInputError(msg)
        if statement_id and self.session.get(Statement, statement_id) is None:
            msg = f"Statement {statement_id} not found"
            raise StatementNotFoundError(msg)

        request = build_extraction_request(file_bytes, mime_type, self.settings)
        logger.info(
            f"Extracting statement: bytes={len(file_bytes)} mime={mime_type} statement_id={statement_id or 'preview'}"
        )
        extraction = self.agent.complete(request)
        normalized = normalize_statement(parse_extraction(extraction.text))
        logger.info(
            f"Extracted {len(normalized.transactions)} transactions, "
            f"{normalized.auto_categorized_count} auto-categorized"
        )

        saved = False
        auto_categorized = normalized.auto_categorized_count
        if statement_id:
            reconciled = TransactionReconciler(self.session).reconcile(statement_id, normalized)
            auto_categorized = reconciled.auto_categorized
            saved = True

        return ParseResult(
            statement=normalized,
            statement_id=statement_id,
            saved=saved,
            transaction_count=len(normalized.transactions),
            auto_categorized_count=auto_categorized,
            input_tokens=extraction.input_tokens,
            output_tokens=extraction.output_tokens,
        )
