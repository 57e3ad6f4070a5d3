"""Project board: major project cards with capacity rollups and list filters."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from .assignment import major_rollup, minor_capacity, participation_action
from .hierarchy import HierarchyIndex, index_snapshot
from .status import d_day_label, status_badge
from .utils import local_now, row_id, sort_key_desc, text

BOARD_FILTERS = ("all", "recruiting", "my_applications")


class BoardFilterError(ValueError):
    """Unknown project board filter name."""


def _my_major_ids(index: HierarchyIndex, master_id: str) -> set[str]:
    """Majors holding a minor the master has any participant row for."""
    ids: set[str] = set()
    if not master_id:
        return ids
    for minor_id, rows in index.participants_by_minor.items():
        if any(text(p.get("master_id")) == master_id for p in rows):
            ids.add(text(index.minors[minor_id].get("major_project_id")))
    return ids


def project_card(major: dict[str, Any], index: HierarchyIndex, now: datetime | None = None) -> dict[str, Any]:
    rollup = major_rollup(major, index.children_of(row_id(major)), index.participants_by_minor)
    return {
        "id": row_id(major),
        "title": text(major.get("title")),
        "description": text(major.get("description")) or None,
        "location": text(major.get("location")) or None,
        "status": text(major.get("status")),
        "scheduled_date": major.get("scheduled_date") or None,
        "d_day": d_day_label(major.get("scheduled_date"), local_now(now)),
        "minor_projects_count": rollup["minor_projects_count"],
        "required_count": rollup["required_count"],
        "applied_count": rollup["applied_count"],
        "near_capacity": rollup["near_capacity"],
        "badge": rollup["badge"],
    }


def build_project_cards(
    snapshot: dict[str, Any] | HierarchyIndex,
    *,
    filter: str = "all",
    is_admin: bool = False,
    identity: Any = None,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Major project cards, newest first.

    ``recruiting`` narrows the list for non-admins only; admins always see
    every project. ``my_applications`` keeps majors containing a minor the
    viewer has applied to in any status.
    """
    if filter not in BOARD_FILTERS:
        raise BoardFilterError(f"Unknown filter '{filter}'. Valid filters: {', '.join(BOARD_FILTERS)}")
    index = snapshot if isinstance(snapshot, HierarchyIndex) else index_snapshot(snapshot)
    majors = sorted(index.majors.values(), key=lambda m: sort_key_desc(m.get("created_at")))

    if filter == "recruiting" and not is_admin:
        majors = [m for m in majors if text(m.get("status")) == "recruiting"]
    elif filter == "my_applications":
        mine = _my_major_ids(index, text(identity))
        majors = [m for m in majors if row_id(m) in mine]

    return [project_card(major, index, now) for major in majors]


def minor_project_detail(
    snapshot: dict[str, Any] | HierarchyIndex,
    minor_id: Any,
    master_id: Any = None,
) -> dict[str, Any] | None:
    """One minor project with its capacity and the viewer's participation control."""
    index = snapshot if isinstance(snapshot, HierarchyIndex) else index_snapshot(snapshot)
    minor = index.minors.get(text(minor_id))
    if minor is None:
        return None
    parent = index.parent_of(minor)
    participants = index.participants_of(row_id(minor))
    capacity = minor_capacity(minor, participants)
    return {
        "id": row_id(minor),
        "title": text(minor.get("title")),
        "status": text(minor.get("status")),
        "badge": status_badge(minor.get("status"), capacity["applied_count"], capacity["required_count"]),
        "major_project_id": text(minor.get("major_project_id")),
        "major_project_title": text((parent or {}).get("title")) or None,
        "capacity": capacity,
        "participation": participation_action(minor, parent, participants, master_id),
    }
