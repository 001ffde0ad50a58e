"""
Application configuration management using Pydantic settings.
"""
import json
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    APP_NAME: str = "Backfill Import Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "local"  # local, staging, production
    IS_CLOUD: bool = False  # Quotas and historical windows only apply to the hosted service

    # API
    API_V1_PREFIX: str = "/api/v1"
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:3001"]

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from environment variable.

        Supports:
        - JSON array: '["https://example.com","https://app.example.com"]'
        - Comma-separated: 'https://example.com,https://app.example.com'
        - Single string: 'https://example.com'
        """
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
            except json.JSONDecodeError:
                pass

            if ',' in v:
                return [origin.strip() for origin in v.split(',') if origin.strip()]

            return [v.strip()] if v.strip() else []

        return v

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://postgres:postgres@db:5432/analytics_db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 30

    # Redis (Celery broker and result backend)
    REDIS_URL: str = "redis://redis:6379/0"

    # Import file storage - AWS S3 (or any S3-compatible endpoint such as R2)
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION: str = "us-east-1"
    S3_BUCKET_NAME: Optional[str] = None
    S3_ENDPOINT_URL: Optional[str] = None

    # Import file storage - Local
    LOCAL_STORAGE_PATH: str = "/app/storage"

    # Import file storage provider (s3 or local)
    CLOUD_STORAGE_PROVIDER: str = "local"

    # Queues
    IMPORT_PARSE_QUEUE: str = "csv-parse"
    IMPORT_INSERT_QUEUE: str = "data-insert"
    IMPORT_INSERT_TASK: str = "backfill.tasks.imports.insert_import_chunk"

    # Import limits
    MAX_CONCURRENT_IMPORTS_PER_ORG: int = 1
    IMPORT_CHUNK_SIZE: int = 5000
    IMPORT_MAX_ROWS: int = 10_000_000
    IMPORT_TIMEOUT_SECONDS: int = 30 * 60
    IMPORT_CSV_BLOCK_SIZE: int = 10_000  # Rows pulled from storage per read
    IMPORT_MAX_FILE_SIZE: int = 500 * 1024 * 1024
    IMPORT_REJECT_WHEN_QUOTA_EXHAUSTED: bool = False
    IMPORT_STALE_AFTER_MINUTES: int = 60  # Startup cleanup threshold for stuck imports

    # Subscriptions
    DEFAULT_EVENT_LIMIT: int = 3_000
    LEGACY_SITE_ID_CUTOFF: int = 2000  # Sites below this id are billed on pageviews only

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    # Monitoring and Observability
    SENTRY_DSN: Optional[str] = None
    ENABLE_METRICS: bool = True


settings = Settings()
