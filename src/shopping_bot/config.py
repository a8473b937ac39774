"""
Configuration helpers and defaults.

Centralize tunables to avoid magic numbers in code/tests.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_TABLE_NAME = "shopping-list"


def _env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    return v if v is not None else default


@dataclass(frozen=True)
class Settings:
    access_token: str | None
    notify_id: str | None
    channel_secret: str | None
    table_name: str
    line_api_base_url: str
    line_timeout_seconds: int
    table_wait_delay_seconds: int
    table_wait_max_attempts: int


def load_settings() -> Settings:
    """Load settings from environment with safe defaults for local tests."""

    return Settings(
        access_token=_env("ACCESS_TOKEN"),
        notify_id=_env("NOTIFY_ID") or None,
        channel_secret=_env("CHANNEL_SECRET") or None,
        table_name=_env("TABLE_NAME", DEFAULT_TABLE_NAME) or DEFAULT_TABLE_NAME,
        line_api_base_url=_env("LINE_API_BASE_URL", "https://api.line.me")
        or "https://api.line.me",
        line_timeout_seconds=int(_env("LINE_TIMEOUT_SECONDS", "8") or 8),
        # delete-all waits at most delay * attempts for the old table to go away
        table_wait_delay_seconds=int(_env("TABLE_WAIT_DELAY_SECONDS", "5") or 5),
        table_wait_max_attempts=int(_env("TABLE_WAIT_MAX_ATTEMPTS", "24") or 24),
    )
