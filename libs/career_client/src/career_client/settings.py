from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field

DEFAULT_API_URL = "http://localhost:3000/api"

ENV_VARS = {
    "api_url": "CAREER_API_URL",
    "timeout_seconds": "CAREER_API_TIMEOUT_SECONDS",
    "credentials_file": "CAREER_CREDENTIALS_FILE",
    "credentials_poll_seconds": "CAREER_CREDENTIALS_POLL_SECONDS",
    "workspace_summary_ttl_seconds": "WORKSPACE_SUMMARY_CACHE_TTL_SEC",
    "run_diagnostics_ttl_seconds": "RUN_DIAGNOSTICS_CACHE_TTL_SEC",
}


class ClientSettings(BaseModel):
    api_url: str = Field(default=DEFAULT_API_URL, pattern=r"^https?://")
    timeout_seconds: float = Field(default=15, gt=0)
    credentials_file: str | None = None
    credentials_poll_seconds: float = Field(default=1.0, ge=0)
    workspace_summary_ttl_seconds: int = Field(default=0, ge=0, le=300)
    run_diagnostics_ttl_seconds: int = Field(default=0, ge=0, le=300)


def load_settings(**overrides: Any) -> ClientSettings:
    """Build settings from the environment; explicit keyword overrides win."""
    values: dict[str, Any] = {}
    for field_name, env_name in ENV_VARS.items():
        raw = os.getenv(env_name, "").strip()
        if raw:
            values[field_name] = raw
    values.update({key: value for key, value in overrides.items() if value is not None})
    return ClientSettings.model_validate(values)
