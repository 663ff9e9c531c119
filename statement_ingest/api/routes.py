"""FastAPI endpoints for the Statement Ingestion service.

This module defines the task-dispatch endpoint that runs bank statement parsing behind the
monthly credit gate, plus statement upload, lookup, summary, export and usage endpoints.
"""

import io
import uuid

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile as StarletteUploadFile

from statement_ingest.agents.base import BaseAgent
from statement_ingest.api.dependencies import get_agent, get_auth, get_db, get_file_service, get_settings
from statement_ingest.core.errors import (
    InvalidRequestError,
    MissingInputError,
    QuotaExceededError,
    UnsupportedTaskError,
)
from statement_ingest.core.models import (
    AiRequest,
    AiResponse,
    StatementOut,
    StatementSummary,
    TransactionOut,
    UsageInfo,
    UsageSnapshot,
)
from statement_ingest.core.settings import Settings
from statement_ingest.core.utils import get_logger
from statement_ingest.services import statement_service
from statement_ingest.services.auth import AuthContext
from statement_ingest.services.file_service import FileService, decode_base64_file, read_upload
from statement_ingest.services.usage_gate import UsageGate, credit_cost
from statement_ingest.workers.statement_pipeline import StatementPipeline

router = APIRouter()
logger = get_logger("statement-ingest.api")

PARSE_STATEMENT_TASK = "parse_statement"
SUPPORTED_TASKS = {PARSE_STATEMENT_TASK}
RESERVED_FORM_FIELDS = {"task", "company_id", "file"}
TEXT_PAYLOAD_FIELDS = ("file_base64", "mime_type", "statement_id")


def check_payload_fields(payload: dict) -> None:
    """Reject payload fields the pipeline reads as text when they arrive as another JSON type."""
    for field in TEXT_PAYLOAD_FIELDS:
        value = payload.get(field)
        if value is not None and not isinstance(value, str):
            msg = f"payload.{field} must be a string"
            raise InvalidRequestError(msg)


async def read_ai_request(request: Request) -> tuple[AiRequest, bytes]:
    """Read a dispatch request from JSON or multipart form data.

    Returns the request and the decoded file bytes (empty when no file was sent).
    """
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" in content_type:
        form = await request.form()
        payload: dict = {}
        file_bytes = b""
        upload = form.get("file")
        if isinstance(upload, StarletteUploadFile):
            file_bytes, mime_type = await read_upload(upload)
            payload["mime_type"] = mime_type
            payload["filename"] = upload.filename
        for key, value in form.multi_items():
            if key not in RESERVED_FORM_FIELDS and isinstance(value, str):
                payload[key] = value
        task = form.get("task")
        company_id = form.get("company_id")
        return AiRequest(
            task=task if isinstance(task, str) else None,
            company_id=company_id if isinstance(company_id, str) else None,
            payload=payload,
        ), file_bytes

    try:
        body = AiRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as exc:
        msg = "Request body must be a JSON object with task, company_id and payload"
        raise InvalidRequestError(msg) from exc
    check_payload_fields(body.payload)
    return body, decode_base64_file(body.payload.get("file_base64"))


@router.post(
    "/ai-agent",
    response_model=AiResponse,
    response_model_exclude_none=True,
    summary="Dispatch an AI task (bank statement parsing)",
    description=(
        "Accepts JSON `{task, company_id, payload}` or multipart form data (`task`, `company_id`, `file`, "
        "extra fields). For `parse_statement` the payload carries `file_base64`, `mime_type` and an optional "
        "`statement_id`; with a `statement_id` the parsed transactions replace the statement's stored ones.\n\n"
        "**Response:** `{success, data, usage}` or `{success: false, error}`.\n"
        "- 400: missing task/company_id/file, or unsupported task.\n"
        "- 401: caller could not be verified.\n"
        "- 404: `statement_id` does not exist.\n"
        "- 429: monthly AI credit limit reached.\n"
        "- 502: the extraction call failed or returned malformed JSON."
    ),
    responses={
        429: {
            "description": "Monthly credit limit reached.",
            "content": {
                "application/json": {"example": {"success": False, "error": "AI credit limit reached for this month."}}
            },
        },
    },
)
async def ai_agent(
    request: Request,
    auth: AuthContext = Depends(get_auth),
    session: Session = Depends(get_db),
    agent: BaseAgent = Depends(get_agent),
    settings: Settings = Depends(get_settings),
) -> AiResponse:
    """Run a dispatched task behind the monthly credit gate."""
    body, file_bytes = await read_ai_request(request)
    if not body.task or not body.company_id:
        msg = "Missing task or company_id"
        raise InvalidRequestError(msg)
    if body.task not in SUPPORTED_TASKS:
        msg = f"Unsupported task: {body.task}"
        raise UnsupportedTaskError(msg)
    if not file_bytes:
        msg = "Missing file_base64"
        raise MissingInputError(msg)

    task, company_id = body.task, body.company_id
    statement_id = body.payload.get("statement_id") or None
    logger.info(f"Task {task} for company {company_id} by {auth.user_id} (statement_id={statement_id})")

    gate = UsageGate(session, settings)
    period = gate.check_and_reserve(company_id, task)
    if period is None:
        msg = "AI credit limit reached for this month."
        raise QuotaExceededError(msg)
    credits = credit_cost(task)

    pipeline = StatementPipeline(agent, session, settings)
    try:
        result = await run_in_threadpool(
            pipeline.parse_statement, file_bytes, body.payload.get("mime_type"), statement_id
        )
    except Exception:
        session.rollback()
        gate.release(company_id, task, period)
        raise

    gate.record_usage(
        company_id,
        task,
        result.input_tokens,
        result.output_tokens,
        credits,
        user_id=auth.user_id,
        model=settings.groq_model,
        metadata={"statement_id": statement_id} if statement_id else {},
    )
    return AiResponse(
        success=True,
        data=result.to_payload(),
        usage=UsageInfo(input_tokens=result.input_tokens, output_tokens=result.output_tokens, credits_used=credits),
    )


@router.post(
    "/statements",
    response_model=StatementOut,
    status_code=201,
    summary="Upload a bank statement file",
    description="Stores the file and creates a statement in `uploaded` status. Parse it with `POST /ai-agent`.",
)
async def upload_statement(
    company_id: str = Form(...),
    file: UploadFile | None = File(default=None),
    auth: AuthContext = Depends(get_auth),
    session: Session = Depends(get_db),
    file_service: FileService = Depends(get_file_service),
) -> StatementOut:
    """Store an uploaded statement file and create its statement record."""
    if file is None:
        msg = "Missing file"
        raise MissingInputError(msg)
    data, mime_type = await read_upload(file)
    if not data:
        msg = "Uploaded file is empty"
        raise MissingInputError(msg)
    statement_id = str(uuid.uuid4())
    filename = file.filename or "statement"
    key = await run_in_threadpool(file_service.save_statement_file, company_id, statement_id, filename, data, mime_type)
    record = statement_service.create_statement(
        session, company_id, statement_id=statement_id, file_name=filename, file_key=key
    )
    logger.info(f"Statement {statement_id} uploaded by {auth.user_id} for company {company_id}")
    return StatementOut.model_validate(record)


@router.get("/statements/{statement_id}", response_model=StatementOut, summary="Get a statement")
def get_statement(
    statement_id: str,
    _auth: AuthContext = Depends(get_auth),
    session: Session = Depends(get_db),
) -> StatementOut:
    """Return a statement record and its summary fields."""
    return StatementOut.model_validate(statement_service.get_statement(session, statement_id))


@router.get(
    "/statements/{statement_id}/transactions",
    response_model=list[TransactionOut],
    summary="List a statement's transactions",
)
def list_statement_transactions(
    statement_id: str,
    _auth: AuthContext = Depends(get_auth),
    session: Session = Depends(get_db),
) -> list[TransactionOut]:
    """Return the stored transactions of a statement in date order."""
    return [TransactionOut.model_validate(txn) for txn in statement_service.list_transactions(session, statement_id)]


@router.get(
    "/statements/{statement_id}/summary",
    response_model=StatementSummary,
    summary="Totals for a statement's transactions",
)
def get_statement_summary(
    statement_id: str,
    _auth: AuthContext = Depends(get_auth),
    session: Session = Depends(get_db),
) -> StatementSummary:
    """Return deposit/withdrawal totals and match/category counts."""
    return statement_service.summarize_statement(session, statement_id)


@router.get(
    "/statements/{statement_id}/export",
    response_class=StreamingResponse,
    summary="Download a statement's transactions as CSV",
    responses={200: {"description": "CSV file download."}},
)
def export_statement(
    statement_id: str,
    _auth: AuthContext = Depends(get_auth),
    session: Session = Depends(get_db),
) -> StreamingResponse:
    """Stream the statement's transactions as a CSV attachment."""
    csv_text = statement_service.export_transactions_csv(session, statement_id)
    return StreamingResponse(
        io.BytesIO(csv_text.encode("utf-8")),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=statement_{statement_id}.csv"},
    )


@router.get("/usage/{company_id}", response_model=UsageSnapshot, summary="Monthly AI credit usage")
def get_usage(
    company_id: str,
    _auth: AuthContext = Depends(get_auth),
    session: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> UsageSnapshot:
    """Return the company's plan limit and credits used this month."""
    return UsageGate(session, settings).usage_snapshot(company_id)


@router.get(
    "/health",
    summary="Health check",
    description="Simple health check endpoint. Returns status ok.",
    response_description="Status ok.",
    responses={200: {"description": "API is healthy.", "content": {"application/json": {"example": {"status": "ok"}}}}},
)
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
