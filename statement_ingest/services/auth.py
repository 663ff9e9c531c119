"""Caller verification against the platform session endpoint."""

import secrets
from typing import NamedTuple

import requests

from statement_ingest.core.errors import UnauthorizedError
from statement_ingest.core.settings import Settings
from statement_ingest.core.utils import get_logger

AUTH_TIMEOUT_SECONDS = 10
SERVICE_USER_ID = "service"

logger = get_logger("statement-ingest.auth")


class AuthContext(NamedTuple):
    """Identity of a verified caller."""

    user_id: str
    email: str | None = None
    is_service: bool = False


def verify_bearer(authorization: str | None, settings: Settings) -> AuthContext:
    """Verify an ``Authorization: Bearer <token>`` header.

    The service role key is accepted directly; any other token is checked by asking the
    platform's auth endpoint for the user it belongs to.
    """
    if not authorization:
        msg = "Missing Authorization header"
        raise UnauthorizedError(msg)
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        msg = "Invalid Authorization format"
        raise UnauthorizedError(msg)

    if settings.service_role_key and secrets.compare_digest(token, settings.service_role_key):
        return AuthContext(user_id=SERVICE_USER_ID, is_service=True)

    headers = {"Authorization": f"Bearer {token}"}
    if settings.auth_api_key:
        headers["apikey"] = settings.auth_api_key
    try:
        response = requests.get(settings.auth_user_url, headers=headers, timeout=AUTH_TIMEOUT_SECONDS)
        response.raise_for_status()
        user = response.json()
    except (requests.exceptions.RequestException, ValueError) as exc:
        logger.warning(f"Token verification failed: {exc}")
        msg = "Token verification failed"
        raise UnauthorizedError(msg) from exc

    user_id = user.get("id") if isinstance(user, dict) else None
    if not user_id:
        msg = "Invalid token"
        raise UnauthorizedError(msg)
    return AuthContext(user_id=str(user_id), email=user.get("email"))
