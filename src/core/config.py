"""Core configuration.

Why here:
- Centralizes environment variables (pydantic-settings) without leaking into the CLI.
- Lets adapters (HTTP, rail clients) and services read the same tuned values.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_user_config_dir() -> Path:
    """Per-user configuration directory (cross-platform, no extra dependencies).

    Lets an operator store the API token once instead of editing a project `.env`.
    """

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "bulkpayout"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "bulkpayout"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "bulkpayout"
    return Path.home() / ".config" / "bulkpayout"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str], *, env_path: Path | None = None) -> Path:
    """Write/update variables in the user's global .env."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# BulkPayout user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Central application configuration.

    Why pydantic-settings:
    - Typed, validated values at the edge (env vars) without polluting the Core.
    - One configuration contract shared by CLI, adapters and services.
    """

    model_config = SettingsConfigDict(
        env_prefix="BULKPAYOUT_",
        extra="ignore",
        case_sensitive=False,
        # Order: project first (dev), then the user's global config.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    api_base_url: str = Field(
        default="http://localhost:5000/api",
        description="Base URL of the payout backend (all rails hang off it).",
    )
    api_token: str | None = Field(
        default=None,
        description="Bearer token sent on every call. Obtained outside this tool.",
    )
    environment: Literal["sandbox", "production"] = Field(
        default="sandbox",
        description="Provider environment forwarded to the backend on every call.",
    )
    user_agent: str = Field(
        default="bulkpayout/0.1",
        min_length=1,
        description="User-Agent for backend requests.",
    )

    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout per request (seconds).",
    )
    stream_read_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Max wait between two stream reads. None waits indefinitely.",
    )

    bulk_max_batch_size: int = Field(
        default=25,
        ge=1,
        le=1000,
        description="Ids per chunk when a bulk run is split to respect provider rate limits.",
    )
    bulk_chunk_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Pause between chunks of a bulk run.",
    )
    bulk_max_concurrency: int = Field(
        default=1,
        ge=1,
        le=50,
        description="In-flight item calls within one bulk run (1 = strictly sequential).",
    )
    bulk_item_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout wrapped around each bulk item call.",
    )

    gift_card_denomination: int = Field(
        default=5,
        ge=1,
        description="Denomination step gift-card amounts are rounded to.",
    )
    timer_tick_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Interval of the expiry countdown tick.",
    )

    log_level: str = Field(
        default="INFO",
        description="Root log level for the CLI.",
    )
