"""Role-scoped dashboard assembly.

``build_dashboard`` fetches a snapshot for the effective role and hands it to
``assemble_dashboard``, which is pure: the same snapshot and ``now`` always
produce the same payload. Exactly one payload kind is produced per call:
``admin``, ``master``, ``client`` or ``empty``.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable

from .assignment import major_rollup
from .calendar import calendar_view, monthly_plan_usage, schedule_items_for_role
from .config import ADMIN_LIST_LIMIT, DASHBOARD_CARD_LIMIT, UNNAMED_PROFILE
from .hierarchy import ADMIN_ROLES, HierarchyIndex, effective_role, index_snapshot, visible_major_projects, visible_minor_projects
from .lifecycle import audit_snapshot
from .snapshot import empty_snapshot, fetch_snapshot
from .status import d_day_label, raises_review_alert, role_label, status_badge
from .store import EntityStore
from .utils import as_local_naive, dict_rows, local_date, local_now, month_bounds, row_id, safe_int, sort_key_desc, text

logger = logging.getLogger(__name__)

DashboardBuilder = Callable[..., dict[str, Any]]


# ── Admin ─────────────────────────────────────────────────────────────────────

def _admin_masters(snapshot: dict[str, Any]) -> list[dict[str, Any]]:
    if "masters" in snapshot:
        return dict_rows(snapshot.get("masters"))[:ADMIN_LIST_LIMIT]
    profiles = dict_rows(snapshot.get("profiles"))
    return [p for p in profiles if text(p.get("role")) == "master"][:ADMIN_LIST_LIMIT]


def _admin_stats(snapshot: dict[str, Any]) -> dict[str, int]:
    counts = snapshot.get("counts") or {}
    stores = dict_rows(snapshot.get("stores"))
    profiles = dict_rows(snapshot.get("profiles"))

    def pick(key: str, fallback: int) -> int:
        return safe_int(counts[key]) if key in counts else fallback

    return {
        "total_masters": pick("total_masters", sum(1 for p in profiles if text(p.get("role")) == "master")),
        "total_stores": pick("total_stores", len(stores)),
        "active_stores": pick("active_stores", sum(1 for s in stores if s.get("is_active") is True)),
        "total_projects": pick("total_projects", len(dict_rows(snapshot.get("major_projects")))),
    }


def assemble_admin(snapshot: dict[str, Any]) -> dict[str, Any]:
    counts = snapshot.get("counts") or {}
    participants = dict_rows(snapshot.get("participants"))
    stores = dict_rows(snapshot.get("stores"))
    names = {row_id(p): text(p.get("name")) for p in dict_rows(snapshot.get("profiles"))}

    stores_by_master = counts.get("stores_by_master")
    if not isinstance(stores_by_master, dict):
        stores_by_master = {}
        for store_row in stores:
            key = text(store_row.get("assigned_master_id"))
            stores_by_master[key] = stores_by_master.get(key, 0) + 1

    masters = []
    for master in _admin_masters(snapshot):
        master_id = row_id(master)
        minor_ids = {
            text(p.get("minor_project_id")) for p in participants
            if text(p.get("master_id")) == master_id and text(p.get("minor_project_id"))
        }
        masters.append({
            "id": master_id,
            "name": text(master.get("name")) or UNNAMED_PROFILE,
            "phone": text(master.get("phone")) or None,
            "project_count": len(minor_ids),
            "store_count": safe_int(stores_by_master.get(master_id, 0)),
        })

    store_cards = []
    for store_row in stores[:ADMIN_LIST_LIMIT]:
        assigned = text(store_row.get("assigned_master_id"))
        store_cards.append({
            "id": row_id(store_row),
            "name": text(store_row.get("name")),
            "address": text(store_row.get("address")) or None,
            "contact_name": text(store_row.get("contact_name")) or None,
            "contact_phone": text(store_row.get("contact_phone")) or None,
            "is_active": store_row.get("is_active") is True,
            "assigned_master_name": (names.get(assigned) or None) if assigned else None,
        })

    return {"stats": _admin_stats(snapshot), "masters": masters, "stores": store_cards}


# ── Master ────────────────────────────────────────────────────────────────────

def _scheduled_first(record: dict[str, Any]) -> tuple[int, str]:
    parent = record.get("major_project") or {}
    day = local_date(parent.get("scheduled_date"))
    return (0, day.isoformat()) if day else (1, "")


def _master_card(record: dict[str, Any], now: datetime) -> dict[str, Any]:
    parent = record.get("major_project") or {}
    return {
        **record,
        "badge": status_badge(record.get("status")),
        "d_day": d_day_label(parent.get("scheduled_date"), now),
    }


def assemble_master(index: HierarchyIndex, identity: str, snapshot: dict[str, Any], now: datetime) -> dict[str, Any]:
    records = visible_minor_projects("master", identity, index)
    start, end = month_bounds(now)
    completed = [r for r in records if r["status"] == "completed"]
    active = [r for r in records if r["status"] != "completed"]

    completed_this_month = 0
    for record in completed:
        started = as_local_naive(record.get("started_at"))
        if started is not None and start <= started < end:
            completed_this_month += 1

    counts = snapshot.get("counts") or {}
    available = counts.get("available_projects")
    if available is None:
        available = sum(1 for major in index.majors.values() if text(major.get("status")) == "recruiting")

    active.sort(key=_scheduled_first)
    completed.sort(key=lambda r: sort_key_desc(r.get("started_at")))
    return {
        "stats": {
            "total_projects": len(records),
            "completed_this_month": completed_this_month,
            "assigned_stores": safe_int(counts.get("assigned_stores", 0)),
            "available_projects": safe_int(available),
        },
        "in_progress": [_master_card(r, now) for r in active[:DASHBOARD_CARD_LIMIT]],
        "completed": [_master_card(r, now) for r in completed[:DASHBOARD_CARD_LIMIT]],
    }


# ── Client ────────────────────────────────────────────────────────────────────

def _client_card(major: dict[str, Any], index: HierarchyIndex, now: datetime) -> dict[str, Any]:
    children = index.children_of(row_id(major))
    rollup = major_rollup(major, children, index.participants_by_minor)
    return {
        "id": row_id(major),
        "title": text(major.get("title")),
        "status": text(major.get("status")),
        "badge": rollup["badge"],
        "location": text(major.get("location")) or None,
        "scheduled_date": major.get("scheduled_date") or None,
        "d_day": d_day_label(major.get("scheduled_date"), now),
        "minor_projects_count": len(children),
        "required_count": rollup["required_count"],
        "applied_count": rollup["applied_count"],
        "completed_count": sum(1 for c in children if text(c.get("status")) == "completed"),
        "review_count": sum(1 for c in children if raises_review_alert(c.get("status"))),
    }


def assemble_client(index: HierarchyIndex, identity: str, now: datetime) -> dict[str, Any]:
    majors = visible_major_projects("client", identity, index)
    majors.sort(key=lambda m: sort_key_desc(m.get("created_at")))
    today = now.date()

    cards = [_client_card(major, index, now) for major in majors]
    total = sum(card["minor_projects_count"] for card in cards)
    done = sum(card["completed_count"] for card in cards)
    pending = sum(card["review_count"] for card in cards)

    next_pickup = None
    for major in majors:
        if text(major.get("status")) == "completed":
            continue
        day = local_date(major.get("scheduled_date"))
        if day is None or day < today:
            continue
        if next_pickup is None or day < next_pickup:
            next_pickup = day

    alert = None
    if pending > 0:
        first = next((card for card in cards if card["review_count"] > 0), None)
        alert = {"pending_reviews": pending, "project_id": first["id"] if first else None}

    active = [card for card in cards if card["status"] != "completed"]
    finished = [card for card in cards if card["status"] == "completed"]
    return {
        "stats": {
            "total_pickups": total,
            "completed_pickups": done,
            "pending_reviews": pending,
            "next_pickup_date": next_pickup.isoformat() if next_pickup else None,
            "next_pickup_label": d_day_label(next_pickup, now) if next_pickup else None,
        },
        "alert": alert,
        "projects": active[:DASHBOARD_CARD_LIMIT],
        "completed_projects": finished[:DASHBOARD_CARD_LIMIT],
        "plan": monthly_plan_usage(majors, now=now),
    }


# ── Assembly ──────────────────────────────────────────────────────────────────

def _payload_kind(role: str | None, identity: str) -> str:
    if not role or not identity:
        return "empty"
    if role in ADMIN_ROLES:
        return "admin"
    if role in ("master", "client"):
        return role
    return "empty"


def assemble_dashboard(
    role: Any,
    identity: Any,
    snapshot: dict[str, Any],
    now: datetime | None = None,
    *,
    actual_role: Any = None,
) -> dict[str, Any]:
    """Pure dashboard assembly over an already fetched snapshot."""
    role_name = text(role) or None
    ident = text(identity)
    current = local_now(now)
    kind = _payload_kind(role_name, ident)

    payload: dict[str, Any] = {
        "kind": kind,
        "role": role_name,
        "role_label": role_label(role_name),
        "actual_role": text(actual_role) or role_name,
        "identity": ident or None,
        "schedules": [],
        "anomalies": [],
    }
    if kind == "empty":
        return payload

    index = index_snapshot(snapshot)
    schedules = schedule_items_for_role(role_name, ident, index)
    payload["schedules"] = schedules
    payload["calendar"] = calendar_view(schedules, today=current)
    payload["anomalies"] = audit_snapshot(snapshot)

    if kind == "admin":
        payload.update(assemble_admin(snapshot))
    elif kind == "master":
        payload.update(assemble_master(index, ident, snapshot, current))
    else:
        payload.update(assemble_client(index, ident, current))
    return payload


def build_dashboard(
    store: EntityStore,
    actual_role: Any,
    override_role: Any,
    identity: Any,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Fetch and assemble one dashboard. Never raises on store failures."""
    role = effective_role(actual_role, override_role)
    ident = text(identity)
    if role is None or not ident:
        return assemble_dashboard(role, ident, empty_snapshot(), now, actual_role=actual_role)

    try:
        snapshot = fetch_snapshot(store, role, ident)
    except Exception:
        logger.exception("Snapshot fetch failed for %s/%s", role, ident)
        snapshot = empty_snapshot()

    payload = assemble_dashboard(role, ident, snapshot, now, actual_role=actual_role)
    for anomaly in payload["anomalies"]:
        logger.warning(
            "Lifecycle anomaly %s on %s %s: %s",
            anomaly["kind"], anomaly["entity"], anomaly["id"], anomaly["detail"],
        )
    return payload


class DashboardRefresher:
    """Serializes dashboard refreshes for one viewer.

    A refresh requested while another is still running is dropped and
    returns None; ``last_result`` keeps the most recent completed payload.
    """

    def __init__(
        self,
        store: EntityStore,
        actual_role: Any,
        identity: Any,
        *,
        override_role: Any = None,
        builder: DashboardBuilder = build_dashboard,
    ):
        self.store = store
        self.actual_role = actual_role
        self.identity = identity
        self.override_role = override_role
        self._builder = builder
        self._lock = threading.Lock()
        self.last_result: dict[str, Any] | None = None

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    def refresh(self, *, now: datetime | None = None) -> dict[str, Any] | None:
        if not self._lock.acquire(blocking=False):
            logger.debug("Refresh already in flight for %s, ignoring", self.identity)
            return None
        try:
            result = self._builder(self.store, self.actual_role, self.override_role, self.identity, now=now)
            self.last_result = result
            return result
        finally:
            self._lock.release()
