"""Calendar / schedule aggregation.

Schedule items are derived view records rebuilt on every pass. They are keyed
by ISO date for calendar rendering; an item without a date is left out of the
calendar rather than pinned to today.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable

from .config import DEFAULT_PLAN
from .hierarchy import ADMIN_ROLES, HierarchyIndex, index_snapshot, visible_major_projects, visible_minor_projects
from .status import schedule_status_label
from .utils import dict_rows, iso_date, local_date, local_now, row_id, text

SCHEDULE_ITEM_TYPES = ("pickup", "cleaning", "visit", "other")
SCHEDULE_ITEM_STATUSES = ("scheduled", "in_progress", "completed", "review")

DOT_MUTED = "muted"
DOT_PRIMARY = "primary"
DOT_SECONDARY = "secondary"

LEGACY_CLEANING_KEYWORD = "청소"


def resolve_service_type(major: dict[str, Any] | None, default: str) -> str:
    """Explicit ``service_type`` on the major project, else ``default``."""
    raw = text((major or {}).get("service_type")).lower()
    return raw if raw in SCHEDULE_ITEM_TYPES else default


def legacy_service_type(title: Any) -> str:
    """Title-keyword classification kept for rows without ``service_type``.

    Compatibility shim only: a title containing 청소 reads as cleaning,
    anything else as pickup.
    """
    return "cleaning" if LEGACY_CLEANING_KEYWORD in text(title) else "pickup"


def schedule_item(
    *,
    item_id: str,
    scheduled_date: Any,
    title: str,
    location: Any,
    status: str,
    item_type: str,
) -> dict[str, Any]:
    return {
        "id": item_id,
        "date": iso_date(scheduled_date),
        "title": title,
        "location": text(location) or None,
        "status": status if status in SCHEDULE_ITEM_STATUSES else "scheduled",
        "type": item_type if item_type in SCHEDULE_ITEM_TYPES else "other",
    }


def _minor_schedule_status(status: str) -> str:
    if status == "completed":
        return "completed"
    if status == "review":
        return "review"
    return "scheduled"


def _major_schedule_status(major: dict[str, Any], children: list[dict[str, Any]]) -> str:
    if text(major.get("status")) == "completed":
        return "completed"
    if any(text(child.get("status")) == "review" for child in children):
        return "review"
    return "scheduled"


def schedule_items_for_role(role: Any, identity: Any, snapshot: dict[str, Any] | HierarchyIndex) -> list[dict[str, Any]]:
    """ScheduleItems for everything the role can see that carries a date."""
    index = snapshot if isinstance(snapshot, HierarchyIndex) else index_snapshot(snapshot)
    role_name = text(role)
    items: list[dict[str, Any]] = []

    if role_name == "master":
        for record in visible_minor_projects("master", identity, index):
            parent = record.get("major_project") or {}
            if not parent.get("scheduled_date"):
                continue
            items.append(schedule_item(
                item_id=record["id"],
                scheduled_date=parent.get("scheduled_date"),
                title=record["title"],
                location=parent.get("location"),
                status=_minor_schedule_status(record["status"]),
                item_type=resolve_service_type(parent, "cleaning"),
            ))
        return [item for item in items if item["date"]]

    if role_name == "client" or role_name in ADMIN_ROLES:
        default_type = "pickup" if role_name == "client" else "other"
        for major in visible_major_projects(role_name, identity, index):
            if not major.get("scheduled_date"):
                continue
            items.append(schedule_item(
                item_id=row_id(major),
                scheduled_date=major.get("scheduled_date"),
                title=text(major.get("title")),
                location=major.get("location"),
                status=_major_schedule_status(major, index.children_of(row_id(major))),
                item_type=resolve_service_type(major, default_type),
            ))
    return [item for item in items if item["date"]]


def group_by_date(items: Iterable[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    """Date → items map, dates ascending, item order preserved within a date."""
    grouped: dict[str, list[dict[str, Any]]] = {}
    for item in dict_rows(list(items)):
        key = iso_date(item.get("date"))
        if not key:
            continue
        grouped.setdefault(key, []).append(item)
    return {key: grouped[key] for key in sorted(grouped)}


def dot_color(items: list[dict[str, Any]]) -> str:
    if items and all(text(item.get("status")) == "completed" for item in items):
        return DOT_MUTED
    if any(text(item.get("type")) == "pickup" for item in items):
        return DOT_PRIMARY
    return DOT_SECONDARY


def marked_dates(
    grouped: dict[str, list[dict[str, Any]]],
    selected: Any = None,
    today: date | datetime | None = None,
) -> dict[str, dict[str, Any]]:
    """Calendar marks per date.

    Selected styling replaces today styling when both land on the same day.
    """
    today_key = (local_date(today) if today is not None else local_now().date()).isoformat()
    selected_key = iso_date(selected) or today_key
    marks: dict[str, dict[str, Any]] = {}
    for key, items in grouped.items():
        marks[key] = {"marked": True, "dot": dot_color(items), "count": len(items)}

    marks.setdefault(selected_key, {})
    marks[selected_key]["selected"] = True
    if selected_key != today_key:
        marks.setdefault(today_key, {})
        marks[today_key]["today"] = True
    return {key: marks[key] for key in sorted(marks)}


def calendar_view(
    items: Iterable[dict[str, Any]],
    selected: Any = None,
    today: date | datetime | None = None,
) -> dict[str, Any]:
    grouped = group_by_date(items)
    today_key = (local_date(today) if today is not None else local_now().date()).isoformat()
    selected_key = iso_date(selected) or today_key
    selected_items = [
        {**item, "status_label": schedule_status_label(item.get("status"))["label"]}
        for item in grouped.get(selected_key, [])
    ]
    return {
        "by_date": grouped,
        "marks": marked_dates(grouped, selected_key, today),
        "selected_date": selected_key,
        "selected_items": selected_items,
    }


def monthly_plan_usage(
    majors: Iterable[dict[str, Any]],
    *,
    plan: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """A client's completed pickups/cleanings this month against the plan quota."""
    active_plan = {**DEFAULT_PLAN, **(plan or {})}
    current = local_now(now)
    completed = {"pickup": 0, "cleaning": 0}
    items: list[dict[str, Any]] = []
    for major in dict_rows(list(majors)):
        day = local_date(major.get("scheduled_date"))
        if day is None or (day.year, day.month) != (current.year, current.month):
            continue
        service_type = text(major.get("service_type")).lower()
        if service_type not in ("pickup", "cleaning"):
            service_type = legacy_service_type(major.get("title"))
        status = text(major.get("status"))
        if status == "completed":
            completed[service_type] += 1
        items.append({
            "id": row_id(major),
            "date": day.isoformat(),
            "title": text(major.get("title")),
            "type": service_type,
            "status": status,
        })
    items.sort(key=lambda item: (item["date"], item["id"]))
    monthly_pickups = max(0, int(active_plan.get("monthly_pickups") or 0))
    monthly_cleaning = max(0, int(active_plan.get("monthly_cleaning") or 0))
    return {
        "plan_name": text(active_plan.get("plan_name")),
        "month": f"{current.year:04d}-{current.month:02d}",
        "items": items,
        "completed_pickups": completed["pickup"],
        "completed_cleaning": completed["cleaning"],
        "remaining_pickups": max(0, monthly_pickups - completed["pickup"]),
        "remaining_cleaning": max(0, monthly_cleaning - completed["cleaning"]),
    }
