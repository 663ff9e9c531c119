"""FastAPI dependencies for DI (settings, DB session, auth, agent, file storage).

This module provides dependency injection helpers so endpoints stay thin and tests can swap
any collaborator through ``app.dependency_overrides``.
"""

from fastapi import Depends, Header

from statement_ingest.agents.base import BaseAgent
from statement_ingest.agents.registry import AgentRegistry
from statement_ingest.core.db import get_db
from statement_ingest.core.settings import Settings, get_settings
from statement_ingest.services.auth import AuthContext, verify_bearer
from statement_ingest.services.file_service import FileService


def get_agent(settings: Settings = Depends(get_settings)) -> BaseAgent:
    """Provide the configured extraction agent for dependency injection."""
    return AgentRegistry.get(settings.extraction_agent).from_settings(settings)


def get_file_service(settings: Settings = Depends(get_settings)) -> FileService:
    """Provide the S3-backed file service for dependency injection."""
    return FileService(settings)


def get_auth(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> AuthContext:
    """Verify the caller's bearer token."""
    return verify_bearer(authorization, settings)


__all__ = ["get_agent", "get_auth", "get_db", "get_file_service", "get_settings"]
