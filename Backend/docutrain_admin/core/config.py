from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "DocuTrain Admin Console"
    DOCUTRAIN_API_URL: str = "http://localhost:3458"  # Remote DocuTrain REST API (no trailing slash)
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    REDIS_URL: str = "redis://localhost:6379/0"  # Realtime change feed + rate limiter storage
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "120/minute"
    MAX_UPLOAD_SIZE_MB: int = 200

    # ⚠ SECURITY WARNING: These defaults are for local development ONLY.
    # In production, you MUST override CORS_ORIGINS via environment variable to restrict access.
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # ─── Processing Workflow ─────────────────────────────────────────────
    RETRAIN_POLL_INTERVAL_SECONDS: float = 2.0
    DOCUMENTS_POLL_INTERVAL_SECONDS: float = 5.0
    STUCK_THRESHOLD_MINUTES: float = 5.0
    DEFAULT_RETRY_AFTER_SECONDS: float = 30.0
    TEXT_MIN_CHARS: int = 10
    TEXT_MAX_CHARS: int = 5_000_000
    TEXT_MIN_WORDS: int = 5

    # ─── Attachment Storage ──────────────────────────────────────────────
    STORAGE_TYPE: str = "local"  # "local" or "s3" (Supabase storage speaks the S3 protocol)
    STORAGE_ENDPOINT_URL: str = ""
    STORAGE_ACCESS_KEY_ID: str = ""
    STORAGE_SECRET_ACCESS_KEY: str = ""
    STORAGE_REGION: str = "us-east-1"
    STORAGE_PUBLIC_URL: str = ""  # e.g. https://<project>.supabase.co/storage/v1/object/public
    DOWNLOADS_BUCKET: str = "downloads"
    LOCAL_STORAGE_DIR: str = "temp_downloads"

    # ─── Realtime Bridge ─────────────────────────────────────────────────
    WEBHOOK_SECRET: str = ""  # Shared secret sent by the database webhook

    class Config:
        env_file = ".env"

settings = Settings()
