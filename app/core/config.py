"""
Configuration system with environment-based settings.
Uses pydantic-settings for validation and type safety.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Application
    APP_VERSION: str = "1.0.0"
    ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False
    SECRET_KEY: str = Field(..., min_length=32)

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Database: plain str to avoid pydantic MultiHostUrl mangling the username
    POSTGRES_DSN: str = Field(..., description="PostgreSQL connection string")
    POSTGRES_POOL_SIZE: int = 10
    POSTGRES_MAX_OVERFLOW: int = 20
    POSTGRES_POOL_TIMEOUT: int = 30
    POSTGRES_ECHO: bool = False

    # Redis
    REDIS_DSN: RedisDsn = Field(..., description="Redis connection string")
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_SOCKET_TIMEOUT: float = 5.0

    # Celery
    CELERY_BROKER_URL: str = Field(..., description="Celery broker URL (Redis)")
    CELERY_RESULT_BACKEND: str = Field(..., description="Celery result backend")
    CELERY_TASK_SOFT_TIME_LIMIT: int = 300
    CELERY_TASK_TIME_LIMIT: int = 420
    CELERY_MAX_RETRIES: int = 2

    # AI visibility analyzer
    ANALYZER_USER_AGENT: str = "Mozilla/5.0 (compatible; ProAuditBot/1.0)"
    ANALYZER_PROBE_USER_AGENTS: list[str] = ["GPTBot/1.0", "OAI-SearchBot/1.0"]
    ANALYZER_HOMEPAGE_TIMEOUT: float = 20.0
    ANALYZER_FETCH_TIMEOUT: float = 15.0      # robots, sitemap candidates, sampled pages
    ANALYZER_PROBE_TIMEOUT: float = 10.0
    ANALYZER_GUIDANCE_TIMEOUT: float = 8.0
    ANALYZER_PAGE_MAX_CHARS: int = 500_000
    ANALYZER_PROBE_MAX_CHARS: int = 50_000
    ANALYZER_MAX_SAMPLE_PAGES: int = 8
    ANALYZER_MAX_PROBE_PAGES: int = 4
    ANALYZER_CONCURRENCY: int = 4

    # Sibling signal fetchers
    SIGNAL_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    )
    SIGNAL_MAX_ATTEMPTS: int = 2              # one automatic retry on transport failure
    SIGNAL_ERROR_MAX_LENGTH: int = 500

    W3C_VALIDATOR_URL: str = "https://validator.w3.org/nu/"
    W3C_TIMEOUT: float = 15.0

    PSI_API_URL: str = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
    PSI_API_KEY: str = ""
    PSI_TIMEOUT: float = 55.0

    WAVE_API_URL: str = "https://wave.webaim.org/api/request"
    WAVE_API_KEY: str = ""
    WAVE_TIMEOUT: float = 25.0

    # Default scoring settings, used to seed the active row (weights must sum to 1.0)
    DEFAULT_WEIGHT_W3C: float = 0.27
    DEFAULT_WEIGHT_PSI_MOBILE: float = 0.27
    DEFAULT_WEIGHT_ACCESSIBILITY: float = 0.18
    DEFAULT_WEIGHT_DESIGN: float = 0.18
    DEFAULT_WEIGHT_AI: float = 0.10
    DEFAULT_W3C_ISSUE_PENALTY: float = 0.5
    DEFAULT_GRADE_A_MIN: int = 90
    DEFAULT_GRADE_B_MIN: int = 80
    DEFAULT_GRADE_C_MIN: int = 70
    DEFAULT_GRADE_D_MIN: int = 60
    SCORING_SETTINGS_CACHE_TTL: int = 300

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"

    @field_validator("CORS_ORIGINS", "ANALYZER_PROBE_USER_AGENTS", mode="before")
    @classmethod
    def parse_csv(cls, v: str | list) -> list:
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @property
    def postgres_url(self) -> str:
        """Async URL for SQLAlchemy + asyncpg."""
        url = self.POSTGRES_DSN
        for scheme in ("postgresql+asyncpg://", "postgresql+psycopg2://", "postgresql://", "postgres://"):
            if url.startswith(scheme):
                return "postgresql+asyncpg://" + url[len(scheme):]
        return url

    @property
    def postgres_sync_url(self) -> str:
        """Sync URL for SQLAlchemy + psycopg2."""
        url = self.POSTGRES_DSN
        for scheme in ("postgresql+asyncpg://", "postgresql+psycopg2://", "postgresql://", "postgres://"):
            if url.startswith(scheme):
                return "postgresql+psycopg2://" + url[len(scheme):]
        return url


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance - created once per process."""
    return Settings()
