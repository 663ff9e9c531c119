"""Configuration and environment settings for the Statement Ingestion service."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings for the Statement Ingestion service."""

    groq_api_key: str = ""
    groq_model: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    extraction_agent: str = "groq"
    extraction_max_tokens: int = 8192
    extraction_temperature: float = 0.0
    max_pdf_page_images: int = 5
    category_rules_file: str | None = None
    database_url: str = "sqlite:///statements.db"
    default_plan_tier: str = "professional"
    service_role_key: str | None = None
    auth_user_url: str = "http://localhost:54321/auth/v1/user"
    auth_api_key: str | None = None
    S3_ENDPOINT_URL: str | None = None
    S3_ACCESS_KEY: str | None = None
    S3_SECRET_KEY: str | None = None
    S3_BUCKET: str = "bank-statements"
    log_file: str = "logs/statement_ingest.log"
    server_host: str = "127.0.0.1"
    server_port: int = 8000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache
def get_settings() -> "Settings":
    """Return the cached application settings."""
    return Settings()
