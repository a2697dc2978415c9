"""
Runtime configuration.

Values come from the environment; a `.env` file at the project root is loaded
first so local development does not need exported variables.

Environment variables:
- SUPABASE_URL: Supabase project URL (required to connect)
- SUPABASE_KEY: Supabase API key, server-side key only (required to connect)
- LEAD_PIPELINE_STORAGE_TIMEOUT: seconds allowed per storage call (default 10)
- LEAD_PIPELINE_ERROR_REPORT_LIMIT: row errors returned by a reconciliation report (default 10)
- LEAD_PIPELINE_PROGRESS_INTERVAL: rows between reconciliation progress reports (default 100)
- LEAD_PIPELINE_SYNTHETIC_ID_ATTEMPTS: attempts to generate an unused synthetic MBI (default 10)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PATH = Path(__file__).resolve().parent.parent / ".env"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise RuntimeError(f"Environment variable {name} must be positive, got {raw!r}")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise RuntimeError(f"Environment variable {name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    supabase_url: Optional[str]
    supabase_key: Optional[str]
    storage_timeout_seconds: float = 10.0
    error_report_limit: int = 10
    progress_interval: int = 100
    synthetic_id_attempts: int = 10

    def __post_init__(self) -> None:
        if self.storage_timeout_seconds <= 0:
            raise ValueError("storage_timeout_seconds must be positive")
        for name in ("error_report_limit", "progress_interval", "synthetic_id_attempts"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    def require_credentials(self) -> tuple[str, str]:
        """Return (url, key) or raise RuntimeError naming the missing variable."""

        if not self.supabase_url:
            raise RuntimeError(
                "Missing environment variable: SUPABASE_URL. "
                "Set SUPABASE_URL to your Supabase project URL."
            )
        if not self.supabase_key:
            raise RuntimeError(
                "Missing environment variable: SUPABASE_KEY. "
                "Set SUPABASE_KEY to your Supabase API key."
            )
        return self.supabase_url, self.supabase_key


def load_settings(env_path: Optional[Path] = None) -> Settings:
    load_dotenv(dotenv_path=env_path or ENV_PATH)
    return Settings(
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_KEY"),
        storage_timeout_seconds=_env_float("LEAD_PIPELINE_STORAGE_TIMEOUT", 10.0),
        error_report_limit=_env_int("LEAD_PIPELINE_ERROR_REPORT_LIMIT", 10),
        progress_interval=_env_int("LEAD_PIPELINE_PROGRESS_INTERVAL", 100),
        synthetic_id_attempts=_env_int("LEAD_PIPELINE_SYNTHETIC_ID_ATTEMPTS", 10),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


__all__ = ["Settings", "load_settings", "get_settings"]
