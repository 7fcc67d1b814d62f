"""Configuration loader.

Reads environment variables and `.env` to configure the monitor.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load variables from a .env file if present (project root).
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")


class ConfigError(RuntimeError):
    """Raised when required configuration is missing."""


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def _get_list(name: str) -> List[str]:
    raw = _get_env(name, "") or ""
    return [s.strip() for s in raw.split(",") if s.strip()]


def _parse_positive_int(value: Optional[str], default: int) -> int:
    """Parse a strictly positive integer; anything else yields `default`."""
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


# ---- Account -----------------------------------------------------------------

USERNAME: str = (_get_env("QFNU_USERNAME", "") or "").strip()
PASSWORD: str = _get_env("QFNU_PASSWORD", "") or ""

# ---- Portal endpoints --------------------------------------------------------

PORTAL_BASE_URL: str = (_get_env("PORTAL_BASE_URL", "http://zhjw.qfnu.edu.cn") or "").rstrip("/")
CAS_LOGIN_URL: str = _get_env("CAS_LOGIN_URL", "http://ids.qfnu.edu.cn/authserver/login") or ""

# ---- Notification ------------------------------------------------------------

ONEBOT_URL: str = (_get_env("ONEBOT_URL", "") or "").strip().rstrip("/")
ONEBOT_TOKEN: str = (_get_env("ONEBOT_TOKEN", "") or "").strip()
GROUP_LIST: List[str] = _get_list("GROUP_LIST")

# ---- Monitoring --------------------------------------------------------------

COURSE_LIST: List[str] = _get_list("COURSE_LIST")

DEFAULT_POLL_INTERVAL = 2
# Seconds between cycles; non-numeric or non-positive values fall back to the default.
POLL_INTERVAL: int = _parse_positive_int(_get_env("POLL_INTERVAL"), DEFAULT_POLL_INTERVAL)

DEFAULT_REQUEST_TIMEOUT = 30
REQUEST_TIMEOUT: int = _parse_positive_int(_get_env("REQUEST_TIMEOUT"), DEFAULT_REQUEST_TIMEOUT)

SNAPSHOT_PATH: str = _get_env("SNAPSHOT_PATH", "data/last_result.json") or "data/last_result.json"

# Logging level: DEBUG, INFO, WARNING, ERROR.
LOG_LEVEL: str = _get_env("LOG_LEVEL", "INFO") or "INFO"

# ---- Validation --------------------------------------------------------------


def missing_settings() -> List[str]:
    """Return the names of required settings that are not configured."""
    missing: List[str] = []
    if not USERNAME:
        missing.append("QFNU_USERNAME")
    if not PASSWORD:
        missing.append("QFNU_PASSWORD")
    if not ONEBOT_URL:
        missing.append("ONEBOT_URL")
    if not GROUP_LIST:
        missing.append("GROUP_LIST")
    if not COURSE_LIST:
        missing.append("COURSE_LIST")
    return missing


def validate() -> None:
    """Validate required configuration parameters."""
    missing = missing_settings()
    if missing:
        raise ConfigError(
            "Missing required configuration: %s. See .env.example for details." % ", ".join(missing)
        )


__all__ = [
    "USERNAME",
    "PASSWORD",
    "PORTAL_BASE_URL",
    "CAS_LOGIN_URL",
    "ONEBOT_URL",
    "ONEBOT_TOKEN",
    "GROUP_LIST",
    "COURSE_LIST",
    "DEFAULT_POLL_INTERVAL",
    "POLL_INTERVAL",
    "DEFAULT_REQUEST_TIMEOUT",
    "REQUEST_TIMEOUT",
    "SNAPSHOT_PATH",
    "LOG_LEVEL",
    "ConfigError",
    "missing_settings",
    "validate",
]
