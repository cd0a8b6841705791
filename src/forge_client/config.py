# src/forge_client/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole library.
- No secrets required at import time.
- Nothing is read until get_settings() is first called.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "FORGE"

DEFAULT_BASE_URL = "https://api.curseforge.com"
DEFAULT_PAGE_SIZE = 50


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_optional(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path | None) -> Path | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- API ----
    base_url: str
    api_key: str | None

    # ---- Pagination / workers ----
    page_size: int
    worker_threads: int

    # ---- HTTP timeouts (seconds) ----
    connect_timeout: float
    read_timeout: float

    # ---- Logging ----
    log_level: str
    log_dir: Path | None
    log_to_file: bool

    @staticmethod
    def from_env(*, load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv(override=False)

        base_url = _env(_k("BASE_URL"), DEFAULT_BASE_URL).strip().rstrip("/") or DEFAULT_BASE_URL
        api_key = _env_optional(_k("API_KEY"))

        page_size = max(1, _env_int(_k("PAGE_SIZE"), DEFAULT_PAGE_SIZE))
        worker_threads = max(1, _env_int(_k("WORKER_THREADS"), 4))

        connect_timeout = max(0.1, _env_float(_k("CONNECT_TIMEOUT_SECONDS"), 5.0))
        # keep read >= connect as a sane baseline
        read_timeout = max(connect_timeout, _env_float(_k("READ_TIMEOUT_SECONDS"), 25.0))

        log_level = _env(_k("LOG_LEVEL"), "INFO").strip().upper() or "INFO"
        log_dir = _env_path(_k("LOG_DIR"), None)
        log_to_file = _env_bool(_k("LOG_TO_FILE"), log_dir is not None)

        return Settings(
            base_url=base_url,
            api_key=api_key,
            page_size=page_size,
            worker_threads=worker_threads,
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            log_level=log_level,
            log_dir=log_dir,
            log_to_file=log_to_file,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS


def reset_settings() -> None:
    """Forget the cached Settings; the next get_settings() re-reads the environment."""
    global _SETTINGS
    _SETTINGS = None
