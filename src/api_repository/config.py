"""Settings for repositories backed by the HTTP session.

Values come from environment variables prefixed with `API_REPOSITORY_` and
from a local `.env` file, if present.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RepositorySettings(BaseSettings):
    """Configuration for the HTTP transport and logging."""

    base_url: str = Field(
        default="",
        description="Base URL requests are resolved against",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout passed to requests",
    )
    max_workers: int = Field(
        default=4,
        gt=0,
        description="Threads available for blocking HTTP calls",
    )
    user_agent: str = Field(
        default="api-repository",
        description="User-Agent header sent with every request",
    )
    log_level: str = Field(
        default="INFO",
        description="Root logging level",
    )

    model_config = SettingsConfigDict(
        env_prefix="API_REPOSITORY_",
        env_file=".env",
        extra="ignore",
    )
