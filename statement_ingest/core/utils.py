"""Shared utility functions for the Statement Ingestion service."""

import logging
import re
from datetime import UTC, datetime

import colorlog

CODE_FENCE_RE = re.compile(r"```(?:json)?\n?|\n?```")
ROOT_LOGGER_NAME = "statement-ingest"


def get_logger(name: str) -> logging.Logger:
    """Get a project logger; the colorized console handler lives on the ``statement-ingest`` root."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not root.handlers:
        handler = logging.StreamHandler()
        formatter = colorlog.ColoredFormatter(
            "%(log_color)s%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            },
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    root.propagate = False
    return logging.getLogger(name)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database."""
    return datetime.now(UTC).replace(tzinfo=None)


def start_of_month(now: datetime | None = None) -> datetime:
    """Return the first of the current month at 00:00:00 server-local time, as naive UTC.

    Usage rows store naive UTC timestamps, so the local boundary is converted before comparing.
    """
    local_now = (now or datetime.now()).astimezone()
    local_start = local_now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return local_start.astimezone(UTC).replace(tzinfo=None)


def month_key(now: datetime | None = None) -> str:
    """Return the server-local calendar month as ``YYYY-MM``."""
    return (now or datetime.now()).astimezone().strftime("%Y-%m")


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences an LLM may wrap around JSON output."""
    return CODE_FENCE_RE.sub("", text).strip()


def mask_account_number(value: str | None) -> str:
    """Reduce an account number to its last four characters."""
    if not value:
        return ""
    cleaned = value.strip().replace(" ", "")
    if len(cleaned) <= 4:  # noqa: PLR2004
        return cleaned
    return f"****{cleaned[-4:]}"
