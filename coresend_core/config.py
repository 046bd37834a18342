"""
TOML-based configuration for the CoreSend client.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from coresend_core.config import load_config
    cfg = load_config("coresend.toml")
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from coresend_core.errors import InputValidationError

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[import,no-redef]

# Hard ceiling on inboxes held by one session
MAX_INBOXES = 10


@dataclass
class APIConfig:
    """Server endpoints and HTTP client settings."""
    base_url: str = "http://127.0.0.1:8080"
    timeout_seconds: float = 10.0
    register_path: str = "/api/register"
    health_path: str = "/api/health"


@dataclass
class SessionConfig:
    """Inbox session limits."""
    max_inboxes: int = MAX_INBOXES
    entropy_bits: int = 128          # 128 -> 12 words, 256 -> 24 words
    # Upper bound on one registration call during add-inbox (None = wait forever)
    registration_timeout: float | None = 15.0


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class CoreSendConfig:
    """Top-level configuration container."""
    api: APIConfig = field(default_factory=APIConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def load_config(path: str | None = None) -> CoreSendConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        CORESEND_API_URL              -> api.base_url
        CORESEND_TIMEOUT              -> api.timeout_seconds
        CORESEND_MAX_INBOXES          -> session.max_inboxes
        CORESEND_REGISTRATION_TIMEOUT -> session.registration_timeout
        CORESEND_LOG_LEVEL            -> logging.level
        CORESEND_LOG_FMT              -> logging.format
        CORESEND_LOG_FILE             -> logging.file

    Raises ``InputValidationError`` when session limits are out of range.
    """
    cfg = CoreSendConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("api", cfg.api),
                ("session", cfg.session),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("CORESEND_API_URL"):
        cfg.api.base_url = v.rstrip("/")
    if v := os.environ.get("CORESEND_TIMEOUT"):
        cfg.api.timeout_seconds = float(v)
    if v := os.environ.get("CORESEND_MAX_INBOXES"):
        cfg.session.max_inboxes = int(v)
    if v := os.environ.get("CORESEND_REGISTRATION_TIMEOUT"):
        cfg.session.registration_timeout = None if v.lower() == "none" else float(v)
    if v := os.environ.get("CORESEND_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("CORESEND_LOG_FMT"):
        cfg.logging.format = v
    if v := os.environ.get("CORESEND_LOG_FILE"):
        cfg.logging.file = v

    _check_session(cfg.session)
    return cfg


def _check_session(session: SessionConfig) -> None:
    n = session.max_inboxes
    if isinstance(n, bool) or not isinstance(n, int) or not 1 <= n <= MAX_INBOXES:
        raise InputValidationError(
            f"session.max_inboxes must be between 1 and {MAX_INBOXES}, got {n!r}"
        )
    t = session.registration_timeout
    if t is not None and (isinstance(t, bool) or not isinstance(t, (int, float)) or t <= 0):
        raise InputValidationError(
            f"session.registration_timeout must be positive or none, got {t!r}"
        )
