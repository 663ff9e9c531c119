"""Shared fixtures: in-memory database, fake extraction agent, fake S3 client and API client."""

import io
import json
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from main import app
from statement_ingest.agents.base import BaseAgent, ExtractionRequest, ExtractionResult
from statement_ingest.api.dependencies import get_agent, get_db, get_file_service, get_settings
from statement_ingest.core.db import Base, SessionLocal, Statement
from statement_ingest.core.settings import Settings
from statement_ingest.services.file_service import FileService

SERVICE_KEY = "test-service-key"
AUTH_HEADERS = {"Authorization": f"Bearer {SERVICE_KEY}"}
COMPANY_ID = "company-1"

STATEMENT_JSON = {
    "accountName": "ACME PLUMBING LLC",
    "accountNumber": "000123456789",
    "bankName": "First National",
    "periodStart": "2024-03-01",
    "periodEnd": "2024-03-31",
    "beginningBalance": 5000.00,
    "endingBalance": 5854.80,
    "transactions": [
        {"date": "2024-03-01", "description": "SHELL OIL 1234", "amount": -45.20, "check_number": None},
        {"date": "2024-03-02", "description": "DEPOSIT FROM CLIENT", "amount": 1200.00, "check_number": None},
        {"date": "2024-03-03", "description": "ZELLE PAYMENT TO JOHN SMITH", "amount": -300.00, "check_number": None},
    ],
}


class FakeAgent(BaseAgent):
    """Extraction agent returning canned text and recording every request."""

    def __init__(self, text: str = "", error: Exception | None = None) -> None:
        """Store the canned response or error."""
        self.text = text
        self.error = error
        self.requests: list[ExtractionRequest] = []

    @classmethod
    def from_settings(cls, settings: Settings) -> "FakeAgent":
        """Build an agent with an empty response."""
        _ = settings
        return cls()

    def complete(self, request: ExtractionRequest) -> ExtractionResult:
        """Return the canned text, or raise the configured error."""
        self.requests.append(request)
        if self.error:
            raise self.error
        return ExtractionResult(text=self.text, input_tokens=1200, output_tokens=300, model="fake-model")


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client methods FileService uses."""

    def __init__(self) -> None:
        """Start with no buckets and no objects."""
        self.buckets: set[str] = set()
        self.objects: dict[tuple[str, str], bytes] = {}

    def head_bucket(self, Bucket: str) -> None:  # noqa: N803
        """Raise like botocore when the bucket is missing."""
        from botocore.exceptions import ClientError

        if Bucket not in self.buckets:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadBucket")

    def create_bucket(self, Bucket: str) -> None:  # noqa: N803
        """Create a bucket."""
        self.buckets.add(Bucket)

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str) -> None:  # noqa: N803
        """Store an object."""
        _ = ContentType
        self.objects[(Bucket, Key)] = Body

    def get_object(self, Bucket: str, Key: str) -> dict:  # noqa: N803
        """Return an object with a readable body."""
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory SQLite database shared across threads."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine: Engine) -> Generator[Session, None, None]:
    """Session bound to the in-memory database."""
    session = SessionLocal(bind=engine)
    yield session
    session.close()


@pytest.fixture
def settings() -> Settings:
    """Settings with a known service key and the default plan tier."""
    return Settings(
        groq_api_key="test",
        service_role_key=SERVICE_KEY,
        database_url="sqlite://",
        default_plan_tier="professional",
    )


@pytest.fixture
def fake_agent() -> FakeAgent:
    """Agent answering with the three-transaction statement."""
    return FakeAgent(text=json.dumps(STATEMENT_JSON))


@pytest.fixture
def s3_client() -> FakeS3Client:
    """In-memory S3 client."""
    return FakeS3Client()


@pytest.fixture
def client(
    engine: Engine, settings: Settings, fake_agent: FakeAgent, s3_client: FakeS3Client
) -> Generator[TestClient, None, None]:
    """API client with database, settings, agent and storage overridden."""

    def override_db() -> Generator[Session, None, None]:
        db = SessionLocal(bind=engine)
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_agent] = lambda: fake_agent
    app.dependency_overrides[get_file_service] = lambda: FileService(settings, client=s3_client)
    yield TestClient(app)
    app.dependency_overrides.clear()


def add_statement(session: Session, statement_id: str = "stmt-1", **fields: object) -> Statement:
    """Insert a statement in ``uploaded`` status."""
    record = Statement(id=statement_id, company_id=COMPANY_ID, status="uploaded", **fields)
    session.add(record)
    session.commit()
    return record
