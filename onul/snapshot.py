"""Role-scoped snapshot fetching.

A dashboard pass reads the store in waves: queries inside a wave are
independent and run on a thread pool, later waves need ids from earlier ones.
Every sub-query goes through ``safe_select``/``safe_count``: a failure is
logged and reads as an empty slice so the rest of the snapshot still builds.

The resulting snapshot is a plain dict consumed by the pure aggregation layer::

    {
      "major_projects": [...], "minor_projects": [...], "participants": [...],
      "profiles": [...], "stores": [...], "counts": {...}
    }
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from .config import ADMIN_LIST_LIMIT, FETCH_MAX_WORKERS
from .hierarchy import ADMIN_ROLES
from .store import EntityStore, Filter, StoreError
from .utils import row_id, text

logger = logging.getLogger(__name__)

Task = Callable[[], Any]

SNAPSHOT_KEYS = ("major_projects", "minor_projects", "participants", "profiles", "stores")


def empty_snapshot() -> dict[str, Any]:
    snapshot: dict[str, Any] = {key: [] for key in SNAPSHOT_KEYS}
    snapshot["counts"] = {}
    return snapshot


# ── Failure-isolated reads ────────────────────────────────────────────────────

def safe_select(store: EntityStore, table: str, **query: Any) -> list[dict[str, Any]]:
    try:
        return store.select(table, **query)
    except StoreError as exc:
        logger.warning("Query on %s failed, treating as empty: %s", table, exc)
    except Exception:
        logger.exception("Unexpected error querying %s", table)
    return []


def safe_count(store: EntityStore, table: str, filters: list[Filter] | None = None) -> int:
    try:
        return store.count(table, filters=filters or [])
    except StoreError as exc:
        logger.warning("Count on %s failed, treating as 0: %s", table, exc)
    except Exception:
        logger.exception("Unexpected error counting %s", table)
    return 0


def run_wave(tasks: dict[str, Task], max_workers: int = FETCH_MAX_WORKERS) -> dict[str, Any]:
    """Run independent tasks concurrently; results keyed like ``tasks``."""
    if not tasks:
        return {}
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(tasks)))) as pool:
        futures = {name: pool.submit(task) for name, task in tasks.items()}
        return {name: future.result() for name, future in futures.items()}


def _merge_by_id(*groups: list[dict[str, Any]]) -> list[dict[str, Any]]:
    merged: dict[str, dict[str, Any]] = {}
    for rows in groups:
        for row in rows:
            rid = row_id(row)
            if rid and rid not in merged:
                merged[rid] = row
    return list(merged.values())


def _ids(rows: list[dict[str, Any]], column: str = "id") -> list[str]:
    seen: list[str] = []
    for row in rows:
        value = text(row.get(column))
        if value and value not in seen:
            seen.append(value)
    return seen


# ── Fetch plans ───────────────────────────────────────────────────────────────

def fetch_master_snapshot(store: EntityStore, master_id: str, *, max_workers: int = FETCH_MAX_WORKERS) -> dict[str, Any]:
    snapshot = empty_snapshot()
    first = run_wave({
        "participants": lambda: safe_select(store, "project_participants", filters=[("master_id", "eq", master_id)]),
        "managed": lambda: safe_select(store, "major_projects", filters=[("manager_id", "eq", master_id)]),
        "assigned_stores": lambda: safe_count(store, "stores", [("assigned_master_id", "eq", master_id)]),
        "available_projects": lambda: safe_count(store, "major_projects", [("status", "eq", "recruiting")]),
    }, max_workers)

    participants = first["participants"]
    managed = first["managed"]
    participated_ids = _ids(participants, "minor_project_id")
    managed_ids = _ids(managed)

    second_tasks: dict[str, Task] = {}
    if participated_ids:
        second_tasks["participated"] = lambda: safe_select(store, "minor_projects", filters=[("id", "in", participated_ids)])
    if managed_ids:
        second_tasks["managed_children"] = lambda: safe_select(
            store, "minor_projects", filters=[("major_project_id", "in", managed_ids)]
        )
    second = run_wave(second_tasks, max_workers)
    minors = _merge_by_id(second.get("participated", []), second.get("managed_children", []))

    missing_parents = [pid for pid in _ids(minors, "major_project_id") if pid not in managed_ids]
    parents: list[dict[str, Any]] = []
    if missing_parents:
        parents = safe_select(store, "major_projects", filters=[("id", "in", missing_parents)])

    snapshot["major_projects"] = _merge_by_id(managed, parents)
    snapshot["minor_projects"] = minors
    snapshot["participants"] = participants
    snapshot["counts"] = {
        "assigned_stores": first["assigned_stores"],
        "available_projects": first["available_projects"],
    }
    return snapshot


def fetch_client_snapshot(store: EntityStore, client_id: str) -> dict[str, Any]:
    snapshot = empty_snapshot()
    majors = safe_select(
        store, "major_projects", filters=[("client_id", "eq", client_id)], order="created_at", descending=True
    )
    major_ids = _ids(majors)
    minors = safe_select(store, "minor_projects", filters=[("major_project_id", "in", major_ids)]) if major_ids else []
    minor_ids = _ids(minors)
    if minor_ids:
        snapshot["participants"] = safe_select(
            store, "project_participants", filters=[("minor_project_id", "in", minor_ids)]
        )
    snapshot["major_projects"] = majors
    snapshot["minor_projects"] = minors
    return snapshot


def fetch_admin_snapshot(store: EntityStore, *, max_workers: int = FETCH_MAX_WORKERS) -> dict[str, Any]:
    snapshot = empty_snapshot()
    first = run_wave({
        "masters": lambda: safe_select(
            store, "profiles", filters=[("role", "eq", "master")], limit=ADMIN_LIST_LIMIT
        ),
        "stores": lambda: safe_select(store, "stores", order="created_at", descending=True, limit=ADMIN_LIST_LIMIT),
        "majors": lambda: safe_select(store, "major_projects", order="created_at", descending=True),
        "minors": lambda: safe_select(store, "minor_projects"),
        "total_masters": lambda: safe_count(store, "profiles", [("role", "eq", "master")]),
        "total_stores": lambda: safe_count(store, "stores"),
        "active_stores": lambda: safe_count(store, "stores", [("is_active", "eq", True)]),
        "total_projects": lambda: safe_count(store, "major_projects"),
    }, max_workers)

    masters = first["masters"]
    stores = first["stores"]
    master_ids = _ids(masters)
    assigned_ids = [mid for mid in _ids(stores, "assigned_master_id") if mid not in master_ids]

    second_tasks: dict[str, Task] = {}
    if master_ids:
        second_tasks["participants"] = lambda: safe_select(
            store, "project_participants", filters=[("master_id", "in", master_ids)]
        )
        second_tasks["master_stores"] = lambda: safe_select(
            store, "stores", filters=[("assigned_master_id", "in", master_ids)], columns="id,assigned_master_id"
        )
    if assigned_ids:
        second_tasks["assigned_profiles"] = lambda: safe_select(
            store, "profiles", filters=[("id", "in", assigned_ids)], columns="id,name"
        )
    second = run_wave(second_tasks, max_workers)

    store_counts: dict[str, int] = {}
    for row in second.get("master_stores", []):
        key = text(row.get("assigned_master_id"))
        store_counts[key] = store_counts.get(key, 0) + 1

    snapshot["major_projects"] = first["majors"]
    snapshot["minor_projects"] = first["minors"]
    snapshot["participants"] = second.get("participants", [])
    snapshot["profiles"] = _merge_by_id(masters, second.get("assigned_profiles", []))
    snapshot["masters"] = masters
    snapshot["stores"] = stores
    snapshot["counts"] = {
        "total_masters": first["total_masters"],
        "total_stores": first["total_stores"],
        "active_stores": first["active_stores"],
        "total_projects": first["total_projects"],
        "stores_by_master": store_counts,
    }
    return snapshot


def fetch_snapshot(
    store: EntityStore,
    role: Any,
    identity: Any,
    *,
    max_workers: int = FETCH_MAX_WORKERS,
) -> dict[str, Any]:
    """Fetch the rows one role needs; an unknown role or identity yields an empty snapshot."""
    role_name = text(role)
    ident = text(identity)
    if not ident:
        return empty_snapshot()
    if role_name in ADMIN_ROLES:
        return fetch_admin_snapshot(store, max_workers=max_workers)
    if role_name == "master":
        return fetch_master_snapshot(store, ident, max_workers=max_workers)
    if role_name == "client":
        return fetch_client_snapshot(store, ident)
    return empty_snapshot()


def fetch_board_snapshot(store: EntityStore, *, max_workers: int = FETCH_MAX_WORKERS) -> dict[str, Any]:
    """All majors, minors and participants, for the project board."""
    snapshot = empty_snapshot()
    wave = run_wave({
        "majors": lambda: safe_select(store, "major_projects", order="created_at", descending=True),
        "minors": lambda: safe_select(store, "minor_projects"),
        "participants": lambda: safe_select(store, "project_participants"),
    }, max_workers)
    snapshot["major_projects"] = wave["majors"]
    snapshot["minor_projects"] = wave["minors"]
    snapshot["participants"] = wave["participants"]
    return snapshot
