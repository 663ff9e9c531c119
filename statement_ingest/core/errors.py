"""Exception taxonomy for statement ingestion.

Every error carries the HTTP status it maps to; the API layer turns them into the
``{"success": false, "error": ...}`` envelope.
"""


class IngestError(Exception):
    """Base exception for statement ingestion errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        """Store the client-facing message."""
        super().__init__(message)
        self.message = message


class MissingInputError(IngestError):
    """Required file bytes were not supplied."""

    status_code = 400


class InvalidRequestError(IngestError):
    """The request body is missing required fields or cannot be read."""

    status_code = 400


class UnsupportedTaskError(IngestError):
    """The dispatch endpoint received a task this service does not run."""

    status_code = 400


class UnauthorizedError(IngestError):
    """Caller identity could not be verified."""

    status_code = 401


class StatementNotFoundError(IngestError):
    """The referenced statement does not exist."""

    status_code = 404


class ConcurrentReparseError(IngestError):
    """Another re-parse of the same statement committed first."""

    status_code = 409


class QuotaExceededError(IngestError):
    """The monthly credit ceiling would be exceeded."""

    status_code = 429


class PersistenceFailureError(IngestError):
    """Transaction rows could not be written; the statement was marked as error."""

    status_code = 500


class MalformedExtractionError(IngestError):
    """The extraction response was not valid statement JSON."""

    status_code = 502


class ExtractionServiceError(IngestError):
    """The external extraction call itself failed."""

    status_code = 502
