"""Autopilot server configuration via environment variables."""

import json
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

from market.autopilot.monitor import DEFAULT_CLEANUP_INTERVAL_SECONDS, DEFAULT_RETENTION_DAYS
from market.autopilot.scheduler import DEFAULT_TICK_INTERVAL_SECONDS


class AutopilotSettings(BaseSettings):
    model_config = {"env_prefix": "AUTOPILOT_"}

    tick_interval_seconds: float = Field(default=DEFAULT_TICK_INTERVAL_SECONDS, ge=1)
    cleanup_interval_seconds: float = Field(default=DEFAULT_CLEANUP_INTERVAL_SECONDS, ge=60)
    log_retention_days: int = Field(default=DEFAULT_RETENTION_DAYS, ge=1)
    # Set to false to serve the RPC endpoints without driving games (e.g. a second replica).
    scheduler_enabled: bool = True
    database_path: str = Field(default="backend/storage.db", min_length=1)
    log_dir: str = Field(default="backend/logs/autopilot", min_length=1)
    cors_origins: Annotated[list[str], NoDecode] = []

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Accept a JSON array or a comma-separated string."""
        if not isinstance(v, str):
            return v
        stripped = v.strip()
        if stripped.startswith("["):
            try:
                parsed = json.loads(stripped)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON array: {e}") from e
            if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
                raise ValueError("JSON value must be an array of strings")
            return parsed
        return [origin.strip() for origin in stripped.split(",") if origin.strip()]
