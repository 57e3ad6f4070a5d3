"""Project hierarchy model: ownership, traversal and role-based visibility.

Everything here is a pure filter/join over a fetched snapshot dict with the
keys ``major_projects``, ``minor_projects`` and ``participants``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .assignment import dedupe_participants
from .utils import dict_rows, row_id, text

logger = logging.getLogger(__name__)

ADMIN_ROLES = frozenset({"super_admin", "project_manager"})
ROLES = frozenset({"super_admin", "project_manager", "master", "client"})
VIEW_AS_ROLES = frozenset({"client", "master"})

SOURCE_PARTICIPATION = "participation"
SOURCE_MANAGER = "manager"
SOURCE_OWNER = "owner"
SOURCE_ADMIN = "admin"


def is_admin(role: Any) -> bool:
    return text(role) in ADMIN_ROLES


def effective_role(actual_role: Any, override_role: Any = None) -> str | None:
    """Resolve the role a dashboard is built for.

    ``override_role`` is the admin-only "view as" switch: it applies only
    when the actual role is an admin role and names ``client`` or ``master``.
    """
    actual = text(actual_role)
    override = text(override_role)
    if actual not in ROLES:
        return None
    if override and actual in ADMIN_ROLES and override in VIEW_AS_ROLES:
        return override
    return actual


@dataclass
class HierarchyIndex:
    majors: dict[str, dict[str, Any]] = field(default_factory=dict)
    minors: dict[str, dict[str, Any]] = field(default_factory=dict)
    children: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    participants_by_minor: dict[str, list[dict[str, Any]]] = field(default_factory=dict)

    def parent_of(self, minor: dict[str, Any]) -> dict[str, Any] | None:
        return self.majors.get(text(minor.get("major_project_id")))

    def children_of(self, major_id: str) -> list[dict[str, Any]]:
        return self.children.get(major_id, [])

    def participants_of(self, minor_id: str) -> list[dict[str, Any]]:
        return self.participants_by_minor.get(minor_id, [])


def index_snapshot(snapshot: dict[str, Any]) -> HierarchyIndex:
    """Index a snapshot by id, dropping minors whose parent is missing."""
    index = HierarchyIndex()
    for major in dict_rows(snapshot.get("major_projects")):
        major_id = row_id(major)
        if major_id and major_id not in index.majors:
            index.majors[major_id] = major
            index.children[major_id] = []

    dropped = 0
    for minor in dict_rows(snapshot.get("minor_projects")):
        minor_id = row_id(minor)
        if not minor_id or minor_id in index.minors:
            continue
        parent_id = text(minor.get("major_project_id"))
        if parent_id not in index.majors:
            dropped += 1
            continue
        index.minors[minor_id] = minor
        index.children[parent_id].append(minor)
    if dropped:
        logger.debug("Dropped %d minor project(s) with a missing parent", dropped)

    for participant in dedupe_participants(dict_rows(snapshot.get("participants"))):
        minor_id = text(participant.get("minor_project_id"))
        if minor_id not in index.minors:
            continue
        index.participants_by_minor.setdefault(minor_id, []).append(participant)
    return index


def _parent_summary(major: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row_id(major),
        "title": text(major.get("title")),
        "status": text(major.get("status")),
        "scheduled_date": major.get("scheduled_date") or None,
        "location": major.get("location") or None,
        "service_type": major.get("service_type") or None,
    }


def minor_record(minor: dict[str, Any], parent: dict[str, Any] | None, source: str) -> dict[str, Any]:
    return {
        "id": row_id(minor),
        "title": text(minor.get("title")),
        "status": text(minor.get("status")),
        "started_at": minor.get("started_at") or None,
        "required_masters": minor.get("required_masters"),
        "major_project_id": text(minor.get("major_project_id")),
        "major_project": _parent_summary(parent) if parent else None,
        "source": source,
    }


def master_visible_minors(master_id: str, index: HierarchyIndex) -> dict[str, dict[str, Any]]:
    """Minor projects a master sees, keyed by minor id.

    Participation-derived records are inserted first and never replaced by
    the manager-derived record for the same id.
    """
    visible: dict[str, dict[str, Any]] = {}
    for minor_id, minor in index.minors.items():
        for participant in index.participants_of(minor_id):
            if text(participant.get("master_id")) == master_id and text(participant.get("status")) == "approved":
                visible[minor_id] = minor_record(minor, index.parent_of(minor), SOURCE_PARTICIPATION)
                break

    for major_id, major in index.majors.items():
        if text(major.get("manager_id")) != master_id:
            continue
        for minor in index.children_of(major_id):
            minor_id = row_id(minor)
            if minor_id in visible:
                continue
            visible[minor_id] = minor_record(minor, major, SOURCE_MANAGER)
    return visible


def visible_major_projects(role: Any, identity: Any, snapshot: dict[str, Any] | HierarchyIndex) -> list[dict[str, Any]]:
    index = snapshot if isinstance(snapshot, HierarchyIndex) else index_snapshot(snapshot)
    role_name = text(role)
    ident = text(identity)
    if role_name in ADMIN_ROLES:
        return list(index.majors.values())
    if role_name == "client":
        return [major for major in index.majors.values() if ident and text(major.get("client_id")) == ident]
    if role_name == "master":
        parent_ids = {record["major_project_id"] for record in master_visible_minors(ident, index).values()}
        return [major for major_id, major in index.majors.items() if major_id in parent_ids]
    return []


def visible_minor_projects(role: Any, identity: Any, snapshot: dict[str, Any] | HierarchyIndex) -> list[dict[str, Any]]:
    index = snapshot if isinstance(snapshot, HierarchyIndex) else index_snapshot(snapshot)
    role_name = text(role)
    ident = text(identity)
    if role_name in ADMIN_ROLES:
        return [minor_record(minor, index.parent_of(minor), SOURCE_ADMIN) for minor in index.minors.values()]
    if role_name == "client":
        records: list[dict[str, Any]] = []
        for major in visible_major_projects("client", ident, index):
            for minor in index.children_of(row_id(major)):
                records.append(minor_record(minor, major, SOURCE_OWNER))
        return records
    if role_name == "master":
        if not ident:
            return []
        return list(master_visible_minors(ident, index).values())
    return []
