"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.03.00"

    # Database (sqlite for local dev, postgresql in production)
    DATABASE_URL: str = "sqlite:///./sampark_forms.db"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_SUBMIT: int = 10  # Public form submissions
    RATE_LIMIT_PUBLIC_READ: int = 120  # Public form schema reads
    RATE_LIMIT_API: int = 0  # Default limit for all routes (0 disables)

    # Bulk import uploads (temporary files, removed after the job finishes)
    UPLOAD_DIR: str = "/tmp/sampark-uploads"
    MAX_UPLOAD_BYTES: int = 20 * 1024 * 1024
    IMPORT_PROGRESS_INTERVAL: int = 10  # Persist counters every N records
    IMPORT_ERROR_LOG_LIMIT: int = 50  # Keep the last N record errors

    # AI column mapping (optional; import falls back to heuristics)
    AI_PROVIDER: str = "gemini"  # gemini | openai
    AI_MODEL: str = ""
    GEMINI_API_KEY: str = ""
    OPENAI_API_KEY: str = ""
    AI_MAPPING_TIMEOUT_SECONDS: float = 15.0
    AI_SAMPLE_ROWS: int = 5

    # Worker
    WORKER_POLL_INTERVAL: int = 5
    WORKER_BATCH_SIZE: int = 10

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def ai_api_key(self) -> str:
        """API key for the selected AI provider (empty when unconfigured)."""
        if self.AI_PROVIDER == "openai":
            return self.OPENAI_API_KEY
        if self.AI_PROVIDER == "gemini":
            return self.GEMINI_API_KEY
        return ""

    @property
    def ai_configured(self) -> bool:
        return bool(self.ai_api_key)


settings = Settings()
