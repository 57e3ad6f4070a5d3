"""
Onul configuration: centralized defaults and environment handling.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from rich.logging import RichHandler

# ── Entity Store ──────────────────────────────────────────────────────────────

DEFAULT_TABLE_PREFIX = "onul_"
HTTP_TIMEOUT_SECONDS = 15
FETCH_MAX_WORKERS = 6
UNREAD_COUNT_RPC = "get_unread_message_count"

# ── Dashboard ─────────────────────────────────────────────────────────────────

ADMIN_LIST_LIMIT = 10
DASHBOARD_CARD_LIMIT = 3
UNNAMED_PROFILE = "이름 없음"
UNTITLED_PROJECT = "프로젝트"

# ── Client subscription plan (monthly quota) ─────────────────────────────────

DEFAULT_PLAN = {
    "plan_name": "스탠다드",
    "monthly_pickups": 2,
    "monthly_cleaning": 1,
}

LOGGER_NAME = "onul"


def get_supabase_url() -> str | None:
    """Get the PostgREST base URL of the Supabase project from environment."""
    value = os.environ.get("ONUL_SUPABASE_URL", "").strip()
    return value.rstrip("/") or None


def get_supabase_key() -> str | None:
    """Get the Supabase API key from environment."""
    value = os.environ.get("ONUL_SUPABASE_KEY", "").strip()
    return value or None


def get_table_prefix() -> str:
    raw = os.environ.get("ONUL_TABLE_PREFIX")
    if raw is None:
        return DEFAULT_TABLE_PREFIX
    return raw.strip()


def get_snapshot_path(override: str | Path | None = None) -> Path | None:
    """Resolve a JSON snapshot fixture path from override or environment."""
    if override:
        return Path(override)
    env = os.environ.get("ONUL_SNAPSHOT", "").strip()
    if env:
        return Path(env)
    return None


def get_log_level(override: str | None = None) -> str:
    raw = (override or os.environ.get("ONUL_LOG_LEVEL") or "WARNING").strip().upper()
    return raw if isinstance(logging.getLevelName(raw), int) else "WARNING"


def configure_logging(level: str | None = None) -> logging.Logger:
    """Route the ``onul`` logger hierarchy to a rich console handler.

    Sub-query failures during aggregation are reported only here.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(get_log_level(level))
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
    logger.propagate = False
    return logger


def load_dotenv(workspace: Path | None = None):
    """Load .env file from workspace or cwd."""
    candidates = []
    if workspace:
        candidates.append(workspace / ".env")
    candidates.append(Path(".env"))

    for env_path in candidates:
        if env_path.exists():
            with env_path.open() as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and "=" in line:
                        k, v = line.split("=", 1)
                        os.environ.setdefault(k.strip(), v.strip())
            return
