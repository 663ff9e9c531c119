"""API package: provides FastAPI dependencies and route definitions for the service."""

from .dependencies import get_agent, get_auth, get_db, get_file_service, get_settings  # noqa: F401
from .routes import router  # noqa: F401
