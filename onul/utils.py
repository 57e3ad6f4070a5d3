"""
Onul shared utilities: row coercion, date parsing and JSON file helpers.

Entity rows arrive as loosely typed dicts from the store; these helpers are
the single place that decides how missing or malformed fields read.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any


# ── Row Coercion ──────────────────────────────────────────────────────────────

def text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def non_negative_int(value: Any) -> int:
    return max(0, safe_int(value, 0))


def row_id(row: Any) -> str:
    if not isinstance(row, dict):
        return ""
    return text(row.get("id"))


def dict_rows(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


# ── Dates ─────────────────────────────────────────────────────────────────────

def parse_dt(value: Any) -> datetime | None:
    """Parse the ISO variants the store emits (date-only, ``Z`` suffix, offsets)."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not value or not isinstance(value, str):
        return None
    v = value.strip()
    if not v:
        return None

    for candidate in (v, v.replace("Z", "+00:00"), f"{v}T00:00:00"):
        try:
            return datetime.fromisoformat(candidate)
        except ValueError:
            continue
    return None


def local_date(value: Any) -> date | None:
    """Truncate a date or timestamp to its local calendar date.

    Aware timestamps are converted to local time first; naive values and
    date-only strings are already local.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    dt = parse_dt(value)
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone()
    return dt.date()


def iso_date(value: Any) -> str:
    day = local_date(value)
    return day.isoformat() if day else ""


def local_now(now: datetime | None = None) -> datetime:
    """Return ``now`` as a naive local timestamp (defaults to the clock)."""
    if now is None:
        return datetime.now()
    if now.tzinfo is not None:
        return now.astimezone().replace(tzinfo=None)
    return now


def as_local_naive(value: Any) -> datetime | None:
    dt = parse_dt(value)
    if dt is None:
        return None
    if dt.tzinfo is not None:
        return dt.astimezone().replace(tzinfo=None)
    return dt


def month_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Local [start, end) of the calendar month containing ``now``."""
    start = datetime(now.year, now.month, 1)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1)
    else:
        end = datetime(now.year, now.month + 1, 1)
    return start, end


def sort_key_desc(value: Any) -> tuple[int, float]:
    """Sort key putting the newest timestamp first and missing ones last."""
    dt = as_local_naive(value)
    if dt is None:
        return (1, 0.0)
    return (0, -dt.timestamp())


# ── File Helpers ──────────────────────────────────────────────────────────────

def load_json(path: Path, default: Any = None) -> Any:
    """Safely load a JSON file, returning default on failure."""
    if default is None:
        default = {}
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return default


def dump_payload(payload: Any) -> str:
    """Stable JSON rendering of a dashboard payload."""
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=2, default=str)
