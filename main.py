"""Main entrypoint and application factory for the Statement Ingestion API.

This module initializes the FastAPI application, configures logging, creates the database tables,
maps ingestion errors onto the response envelope, and exposes the Scalar API reference endpoint for
interactive OpenAPI documentation. It also includes the main entrypoint for running the app with Uvicorn.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from scalar_fastapi import get_scalar_api_reference
from sqlalchemy.exc import SQLAlchemyError

from statement_ingest.api.routes import router
from statement_ingest.core.db import Base, get_engine
from statement_ingest.core.errors import IngestError
from statement_ingest.core.settings import get_settings
from statement_ingest.core.utils import ROOT_LOGGER_NAME, get_logger

logger = get_logger("statement-ingest.app")


# --- Logging Setup ---
def setup_logging() -> None:
    """Add a plain file handler next to the colorized console handler."""
    log_path = Path(get_settings().log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not any(isinstance(h, logging.FileHandler) for h in root.handlers):
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        root.addHandler(file_handler)


setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the statement, transaction and usage tables on startup."""
    _ = app  # Silence unused argument warning
    try:
        Base.metadata.create_all(get_engine())
    except SQLAlchemyError:
        logger.exception("Failed to create database tables")
        raise
    yield


app = FastAPI(
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    title="Statement Ingestion API",
    description="""
    The Statement Ingestion API parses uploaded bank statements with an LLM, auto-categorizes the extracted
    transactions with deterministic keyword rules, and stores them against their statement record.

    **Endpoints:**
    - `POST /ai-agent`: Task dispatch; `parse_statement` extracts (and optionally stores) a statement.
    - `POST /statements`: Upload a statement file.
    - `GET /statements/{{statement_id}}`: Statement record and summary fields.
    - `GET /statements/{{statement_id}}/transactions`: Stored transactions.
    - `GET /statements/{{statement_id}}/summary`: Deposit/withdrawal totals.
    - `GET /statements/{{statement_id}}/export`: CSV download.
    - `GET /usage/{{company_id}}`: Monthly AI credit usage.
    - `GET /health`: Health check endpoint.
    - `GET /scalar`: Interactive Scalar OpenAPI documentation.
    """,
    version="1.0.0",
)
app.include_router(router)


@app.exception_handler(IngestError)
async def ingest_error_handler(request: Request, exc: IngestError) -> JSONResponse:
    """Render ingestion errors as ``{"success": false, "error": ...}`` with their HTTP status."""
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.__class__.__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Keep database failures inside the response envelope; detail stays in the server log."""
    logger.error(f"{request.method} {request.url.path} -> database error: {exc}")
    return JSONResponse(status_code=500, content={"success": False, "error": "Database error"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Keep any other failure inside the response envelope with a 500 status."""
    logger.exception(f"{request.method} {request.url.path} -> unhandled {exc.__class__.__name__}", exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


@app.get("/scalar", include_in_schema=False)
async def scalar_docs() -> HTMLResponse:
    """Return Scalar API reference."""
    return get_scalar_api_reference(openapi_url=app.openapi_url, title=app.title)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("main:app", host=settings.server_host, port=settings.server_port, reload=True)
