"""Statement file handling: S3-backed storage of uploads and decoding of inline files."""

import base64
import binascii
import mimetypes

import boto3
from botocore.exceptions import ClientError
from fastapi import UploadFile

from statement_ingest.core.errors import InvalidRequestError
from statement_ingest.core.settings import Settings
from statement_ingest.core.utils import get_logger

DEFAULT_MIME = "application/octet-stream"

logger = get_logger("statement-ingest.files")


class FileService:
    """Stores original statement files in an S3-compatible bucket."""

    def __init__(self, settings: Settings, client: object | None = None) -> None:
        """Initialize the service with an S3 client built from settings unless one is given."""
        self.bucket = settings.S3_BUCKET
        self.s3 = client or boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            aws_access_key_id=settings.S3_ACCESS_KEY,
            aws_secret_access_key=settings.S3_SECRET_KEY,
        )
        self._bucket_ready = False

    def ensure_bucket(self) -> None:
        """Ensure the bucket exists, create it if not present."""
        if self._bucket_ready:
            return
        try:
            self.s3.head_bucket(Bucket=self.bucket)
        except ClientError:
            logger.info(f"Creating bucket {self.bucket}")
            self.s3.create_bucket(Bucket=self.bucket)
        self._bucket_ready = True

    def save_statement_file(
        self, company_id: str, statement_id: str, filename: str, data: bytes, mime_type: str
    ) -> str:
        """Upload a statement file and return its object key."""
        self.ensure_bucket()
        key = f"statements/{company_id}/{statement_id}/{filename}"
        self.s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=mime_type or DEFAULT_MIME)
        logger.info(f"Stored statement file {key} ({len(data)} bytes)")
        return key

    def get_file(self, key: str) -> bytes:
        """Download a stored file by key."""
        obj = self.s3.get_object(Bucket=self.bucket, Key=key)
        return obj["Body"].read()


def guess_mime_type(filename: str | None, declared: str | None) -> str:
    """Prefer the declared content type, otherwise guess from the file name."""
    if declared and declared != DEFAULT_MIME:
        return declared
    guessed, _ = mimetypes.guess_type(filename or "")
    return guessed or declared or DEFAULT_MIME


async def read_upload(file: UploadFile) -> tuple[bytes, str]:
    """Read an uploaded file, returning its bytes and MIME type."""
    data = await file.read()
    return data, guess_mime_type(file.filename, file.content_type)


def decode_base64_file(encoded: str | None) -> bytes:
    """Decode a ``file_base64`` payload field; empty input decodes to empty bytes.

    Line breaks and other whitespace from wrapped encoders are ignored.
    """
    if not encoded:
        return b""
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]
    encoded = "".join(encoded.split())
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        msg = "file_base64 is not valid base64"
        raise InvalidRequestError(msg) from exc
