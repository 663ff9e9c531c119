"""Tests for bearer token verification."""

import pytest
import requests

from conftest import SERVICE_KEY
from statement_ingest.core.errors import UnauthorizedError
from statement_ingest.core.settings import Settings
from statement_ingest.services import auth
from statement_ingest.services.auth import verify_bearer


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code: int = 200, body: object = None) -> None:
        """Store the status code and JSON body."""
        self.status_code = status_code
        self.body = body

    def raise_for_status(self) -> None:
        """Raise like requests does for error statuses."""
        if self.status_code >= 400:  # noqa: PLR2004
            msg = f"{self.status_code} Client Error"
            raise requests.exceptions.HTTPError(msg)

    def json(self) -> object:
        """Return the body."""
        return self.body


def test_service_key_bypasses_lookup(settings: Settings, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that the service role key is accepted without calling the auth endpoint."""

    def fail_get(*args: object, **kwargs: object) -> FakeResponse:
        _ = args, kwargs
        msg = "auth endpoint should not be called"
        raise AssertionError(msg)

    monkeypatch.setattr(auth.requests, "get", fail_get)
    context = verify_bearer(f"Bearer {SERVICE_KEY}", settings)
    if not context.is_service or context.user_id != "service":
        msg = f"Expected service context, got {context}"
        raise AssertionError(msg)


def test_user_token_is_verified(settings: Settings, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that a user token resolves to the user returned by the auth endpoint."""
    calls = []

    def fake_get(url: str, headers: dict, timeout: int) -> FakeResponse:
        calls.append((url, headers, timeout))
        return FakeResponse(body={"id": "user-42", "email": "owner@example.com"})

    monkeypatch.setattr(auth.requests, "get", fake_get)
    context = verify_bearer("Bearer user-jwt", settings)
    if context.user_id != "user-42" or context.email != "owner@example.com" or context.is_service:
        msg = f"Unexpected context: {context}"
        raise AssertionError(msg)
    if calls[0][1]["Authorization"] != "Bearer user-jwt":
        msg = f"Expected the token to be forwarded, got {calls[0][1]}"
        raise AssertionError(msg)


@pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer ", "Basic dXNlcjpwYXNz"])
def test_malformed_headers_rejected(settings: Settings, header: str | None) -> None:
    """Test that absent or non-bearer headers are rejected."""
    with pytest.raises(UnauthorizedError):
        verify_bearer(header, settings)


@pytest.mark.parametrize(
    "response",
    [FakeResponse(status_code=401, body={"msg": "invalid JWT"}), FakeResponse(body={"email": "no-id@example.com"})],
)
def test_rejected_tokens(settings: Settings, monkeypatch: pytest.MonkeyPatch, response: FakeResponse) -> None:
    """Test that an auth endpoint error or a user without id is unauthorized."""
    monkeypatch.setattr(auth.requests, "get", lambda *args, **kwargs: response)
    with pytest.raises(UnauthorizedError):
        verify_bearer("Bearer user-jwt", settings)


def test_auth_endpoint_unreachable(settings: Settings, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that a connection failure is reported as unauthorized."""

    def unreachable(*args: object, **kwargs: object) -> FakeResponse:
        _ = args, kwargs
        msg = "connection refused"
        raise requests.exceptions.ConnectionError(msg)

    monkeypatch.setattr(auth.requests, "get", unreachable)
    with pytest.raises(UnauthorizedError):
        verify_bearer("Bearer user-jwt", settings)
