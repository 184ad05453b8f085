"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values come from two sources, in priority order:
#
#   1. Environment variables  e.g. RCA_API_BASE_URL=http://rca:8080/api
#   2. .env file in the working directory (local development)
#
# Field ``poll_interval_seconds`` maps to env var ``POLL_INTERVAL_SECONDS``.
# Defaults below apply when neither source sets a value.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """RCA dashboard settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Backend ===
    # Base URL of the RCA analyzer API; endpoint paths (/v1/...) are appended.
    rca_api_base_url: str = "http://localhost:8080/api"
    # Per-request timeout for every backend call.  Bounds a hung poll.
    request_timeout_seconds: float = 30.0

    # === Sync job polling ===
    # Fixed cadence between status polls for one job.
    poll_interval_seconds: float = 2.0
    # Extra attempts after a transport failure before a job is marked stalled.
    # 0 = freeze on the first failed poll.
    poll_max_retries: int = 2
    # Base delay for exponential backoff between those attempts.
    poll_retry_backoff_seconds: float = 1.0

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8001
    app_env: str = "development"
    log_level: str = "INFO"
    # Comma-separated list; empty = allow all origins (development).
    cors_allowed_origins: str = ""

    @field_validator("poll_interval_seconds", "request_timeout_seconds")
    @classmethod
    def _must_be_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("poll_max_retries")
    @classmethod
    def _must_not_be_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator("poll_retry_backoff_seconds")
    @classmethod
    def _backoff_not_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    def get_cors_origins(self) -> list[str]:
        """Return configured CORS origins, or ``["*"]`` when none are set."""
        origins = [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]
        return origins or ["*"]
