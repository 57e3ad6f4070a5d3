"""Status derivation: presentation labels, badges and relative-date strings."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from .utils import as_local_naive, local_date, local_now, text

STYLE_PRIMARY = "primary"
STYLE_INFO = "info"
STYLE_WARNING = "warning"
STYLE_MUTED = "muted"
STYLE_NEUTRAL = "neutral"

STATUS_LABELS = {
    "draft": ("준비중", STYLE_NEUTRAL),
    "recruiting": ("모집중", STYLE_INFO),
    "in_progress": ("진행중", STYLE_PRIMARY),
    "review": ("검토 대기", STYLE_WARNING),
    "completed": ("완료", STYLE_MUTED),
}
NEAR_CAPACITY_LABEL = ("마감임박", STYLE_WARNING)

ROLE_LABELS = {
    "super_admin": "최고 관리자",
    "project_manager": "프로젝트 책임자",
    "master": "마스터",
    "client": "클라이언트",
}

SCHEDULE_STATUS_LABELS = {
    "scheduled": ("예정", STYLE_INFO),
    "in_progress": ("진행중", STYLE_PRIMARY),
    "completed": ("완료", STYLE_MUTED),
    "review": ("검토", STYLE_WARNING),
}

PARTICIPATION_LABELS = {
    "cancel": "신청 취소",
    "confirmed": "참가 확정",
    "closed": "마감",
    "apply": "신청",
}

WEEKDAY_NAMES = ("월", "화", "수", "목", "금", "토", "일")


def status_badge(status: Any, applied_count: int = 0, required_count: int = 0) -> dict[str, str]:
    """Badge for a raw project status.

    ``recruiting`` flips to 마감임박 only when ``required_count > 0`` and the
    applied count has reached it; 0/0 is never treated as full.
    """
    raw = text(status)
    if raw == "recruiting" and required_count > 0 and applied_count >= required_count:
        label, style = NEAR_CAPACITY_LABEL
    elif raw in STATUS_LABELS:
        label, style = STATUS_LABELS[raw]
    else:
        label, style = raw, STYLE_MUTED
    return {"label": label, "style": style}


def raises_review_alert(status: Any) -> bool:
    return text(status) == "review"


def day_difference(target: Any, today: date | datetime | None = None) -> int | None:
    """Whole days from ``today`` to ``target``, both truncated to local midnight."""
    target_day = local_date(target)
    if target_day is None:
        return None
    if today is None:
        today_day = local_now().date()
    elif isinstance(today, datetime):
        today_day = local_date(today)
    else:
        today_day = today
    return (target_day - today_day).days


def d_day_label(target: Any, today: date | datetime | None = None) -> str | None:
    diff = day_difference(target, today)
    if diff is None:
        return None
    if diff == 0:
        return "오늘"
    if diff == 1:
        return "내일"
    if diff == -1:
        return "어제"
    if diff > 1:
        return f"D-{diff}"
    return f"D+{abs(diff)}"


def role_label(role: Any) -> str:
    return ROLE_LABELS.get(text(role), "")


def schedule_status_label(status: Any) -> dict[str, str]:
    raw = text(status)
    label, style = SCHEDULE_STATUS_LABELS.get(raw, (raw, STYLE_MUTED))
    return {"label": label, "style": style}


def participation_label(action: str | None) -> str | None:
    if action is None:
        return None
    return PARTICIPATION_LABELS.get(action)


def chat_time_label(value: Any, now: datetime | None = None) -> str:
    """Chat list timestamp: time today, 어제, weekday within a week, else M/D."""
    moment = as_local_naive(value)
    if moment is None:
        return ""
    current = local_now(now)
    days = int((current - moment).total_seconds() // 86400)
    if days <= 0:
        return moment.strftime("%H:%M")
    if days == 1:
        return "어제"
    if days < 7:
        return f"{WEEKDAY_NAMES[moment.weekday()]}요일"
    return f"{moment.month}. {moment.day}."
