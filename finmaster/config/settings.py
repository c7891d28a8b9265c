import os
from functools import lru_cache
from typing import Any, Literal

from pydantic import BaseModel, field_validator

DEFAULT_API_BASE_URL = "https://finmaster-api.vercel.app"
DEFAULT_API_TIMEOUT_MS = 15000
DEFAULT_RETRY_ATTEMPTS = 2
DEFAULT_CORS_MODE = "cors"


class Settings(BaseModel):
    FINMASTER_UPSTREAM_BASE_URL: str
    FINMASTER_UPSTREAM_TIMEOUT_SEC: float
    FINMASTER_HEALTH_CHECK_SYMBOL: str
    FINMASTER_API_BASE_URL: str
    FINMASTER_API_TIMEOUT_MS: int
    FINMASTER_API_RETRY_ATTEMPTS: int
    FINMASTER_MAX_WORKERS: int

    @classmethod
    def from_env(cls) -> "Settings":
        return cls.model_validate(
            {
                "FINMASTER_UPSTREAM_BASE_URL": os.getenv(
                    "FINMASTER_UPSTREAM_BASE_URL", "https://query1.finance.yahoo.com"
                ),
                "FINMASTER_UPSTREAM_TIMEOUT_SEC": os.getenv("FINMASTER_UPSTREAM_TIMEOUT_SEC", "10"),
                "FINMASTER_HEALTH_CHECK_SYMBOL": os.getenv("FINMASTER_HEALTH_CHECK_SYMBOL", "AAPL"),
                "FINMASTER_API_BASE_URL": os.getenv("FINMASTER_API_BASE_URL", DEFAULT_API_BASE_URL),
                "FINMASTER_API_TIMEOUT_MS": os.getenv("FINMASTER_API_TIMEOUT_MS", str(DEFAULT_API_TIMEOUT_MS)),
                "FINMASTER_API_RETRY_ATTEMPTS": os.getenv(
                    "FINMASTER_API_RETRY_ATTEMPTS", str(DEFAULT_RETRY_ATTEMPTS)
                ),
                "FINMASTER_MAX_WORKERS": os.getenv("FINMASTER_MAX_WORKERS", "8"),
            }
        )

    def api_config(self) -> "ApiConfig":
        return ApiConfig(
            base_url=self.FINMASTER_API_BASE_URL,
            timeout=self.FINMASTER_API_TIMEOUT_MS,
            retry_attempts=self.FINMASTER_API_RETRY_ATTEMPTS,
        )


def _positive_int_or(value: Any, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


class ApiConfig(BaseModel):
    """User-editable client settings; bad values fall back to defaults instead of failing."""

    base_url: str = DEFAULT_API_BASE_URL
    timeout: int = DEFAULT_API_TIMEOUT_MS
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    cors_mode: Literal["cors", "no-cors", "same-origin"] = DEFAULT_CORS_MODE

    @field_validator("base_url", mode="before")
    @classmethod
    def _coerce_base_url(cls, value: Any) -> str:
        text = str(value or "").strip().rstrip("/")
        return text or DEFAULT_API_BASE_URL

    @field_validator("timeout", mode="before")
    @classmethod
    def _coerce_timeout(cls, value: Any) -> int:
        return _positive_int_or(value, DEFAULT_API_TIMEOUT_MS)

    @field_validator("retry_attempts", mode="before")
    @classmethod
    def _coerce_retry_attempts(cls, value: Any) -> int:
        return _positive_int_or(value, DEFAULT_RETRY_ATTEMPTS)

    @field_validator("cors_mode", mode="before")
    @classmethod
    def _coerce_cors_mode(cls, value: Any) -> str:
        text = str(value or "").strip().lower()
        if text in {"cors", "no-cors", "same-origin"}:
            return text
        return DEFAULT_CORS_MODE

    @property
    def timeout_sec(self) -> float:
        return self.timeout / 1000.0


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
