"""Application settings and CORS configuration."""

import json
import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "DB Advisor"
    ENVIRONMENT: str = "development"  # development | production | test

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:1420",
        "http://127.0.0.1:1420",
    ]
    ALLOW_CREDENTIALS: bool = True

    # Mistral-compatible chat completions endpoint.
    # The key is optional here because callers may supply one per request.
    MISTRAL_API_KEY: str | None = None
    MISTRAL_API_URL: str = "https://api.mistral.ai/v1/chat/completions"
    MISTRAL_MODEL: str = "mistral-medium"
    MISTRAL_TEMPERATURE: float = 0.7
    MISTRAL_MAX_TOKENS: int = 2000
    MISTRAL_STREAM_MAX_TOKENS: int = 3000

    # Timeouts in seconds: headers/connection, one-shot request, full stream
    MISTRAL_CONNECT_TIMEOUT_SECONDS: float = 15.0
    MISTRAL_REQUEST_TIMEOUT_SECONDS: float = 120.0
    MISTRAL_STREAM_TIMEOUT_SECONDS: float = 300.0

    # Database context collection
    MAX_TABLES_TO_ANALYZE: int = 20

    # Number of raw response characters kept in a synthesized fallback document
    FALLBACK_PREVIEW_CHARS: int = 1000

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for CORS origins."""
        if isinstance(v, list):
            return [str(i).strip() for i in v]
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        "CORS_ORIGINS must be a CSV list or JSON array string"
                    ) from e
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON must be a list")
                return [str(i).strip() for i in parsed]
            # CSV fallback
            return [i.strip() for i in s.split(",") if i.strip()]
        raise ValueError("Invalid CORS_ORIGINS type; expected str or list[str]")

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Ensure wildcard origins are not used when credentials are allowed."""
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = self.assemble_cors_origins(self.CORS_ORIGINS)
        if self.ALLOW_CREDENTIALS and any(
            o.strip() == "*" for o in (self.CORS_ORIGINS or [])
        ):
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. Use explicit origins when credentials "
                "are allowed."
            )
        return self

    @model_validator(mode="after")
    def _validate_timeouts(self) -> "Settings":
        """The header phase must fit inside the full stream budget."""
        if self.MISTRAL_CONNECT_TIMEOUT_SECONDS <= 0:
            raise ValueError("MISTRAL_CONNECT_TIMEOUT_SECONDS must be positive")
        if self.MISTRAL_STREAM_TIMEOUT_SECONDS < self.MISTRAL_CONNECT_TIMEOUT_SECONDS:
            raise ValueError(
                "MISTRAL_STREAM_TIMEOUT_SECONDS must be >= "
                "MISTRAL_CONNECT_TIMEOUT_SECONDS"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""

    # The Settings initializer accepts a runtime-only `_env_file` kwarg used by
    # pydantic-settings; mypy's stub doesn't allow this call argument.
    return Settings(_env_file=env_file or None)  # type: ignore[call-arg]
