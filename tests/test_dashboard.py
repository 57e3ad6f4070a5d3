"""Tests for role-scoped dashboard assembly."""

from __future__ import annotations

import threading
from datetime import datetime

from onul.dashboard import DashboardRefresher, assemble_dashboard, build_dashboard
from onul.store import SnapshotStore, StoreError
from onul.utils import dump_payload

NOW = datetime(2025, 6, 10, 12, 0)


class BrokenStore(SnapshotStore):
    def select(self, table, **query):
        raise StoreError("offline", table=table)

    def count(self, table, *, filters=()):
        raise StoreError("offline", table=table)


class TestClientDashboard:
    def test_stats_alert_and_cards(self, store):
        payload = build_dashboard(store, "client", None, "client-1", now=NOW)
        assert payload["kind"] == "client"
        assert payload["stats"] == {
            "total_pickups": 5,
            "completed_pickups": 2,
            "pending_reviews": 1,
            "next_pickup_date": "2025-06-12",
            "next_pickup_label": "D-2",
        }
        assert payload["alert"] == {"pending_reviews": 1, "project_id": "major-2"}
        assert [card["id"] for card in payload["projects"]] == ["major-1", "major-2"]
        assert [card["id"] for card in payload["completed_projects"]] == ["major-3"]
        review_card = payload["projects"][1]
        assert (review_card["review_count"], review_card["completed_count"], review_card["minor_projects_count"]) == (1, 1, 2)
        assert review_card["d_day"] == "D+5"

    def test_schedules_and_plan(self, store):
        payload = build_dashboard(store, "client", None, "client-1", now=NOW)
        assert {item["id"] for item in payload["schedules"]} == {"major-1", "major-2", "major-3"}
        assert payload["calendar"]["marks"]["2025-06-10"] == {"selected": True}
        assert payload["plan"]["remaining_pickups"] == 2
        assert payload["plan"]["remaining_cleaning"] == 1

    def test_no_alert_without_reviews(self, tables):
        tables["minor_projects"][2]["status"] = "completed"
        payload = build_dashboard(SnapshotStore(tables), "client", None, "client-1", now=NOW)
        assert payload["alert"] is None
        assert payload["stats"]["pending_reviews"] == 0

    def test_next_pickup_skips_past_and_completed(self, tables):
        tables["major_projects"][0]["scheduled_date"] = "2025-06-01"
        payload = build_dashboard(SnapshotStore(tables), "client", None, "client-1", now=NOW)
        assert payload["stats"]["next_pickup_date"] is None
        assert payload["stats"]["next_pickup_label"] is None


class TestMasterDashboard:
    def test_stats_and_ordering(self, store):
        payload = build_dashboard(store, "master", None, "master-2", now=NOW)
        assert payload["kind"] == "master"
        assert payload["stats"] == {
            "total_projects": 4,
            "completed_this_month": 1,
            "assigned_stores": 0,
            "available_projects": 2,
        }
        assert [r["id"] for r in payload["in_progress"]] == ["minor-2a", "minor-1a", "minor-1b"]
        assert [r["d_day"] for r in payload["in_progress"]] == ["D+5", "D-2", "D-2"]
        assert [r["id"] for r in payload["completed"]] == ["minor-2b"]

    def test_manager_only_master(self, store):
        payload = build_dashboard(store, "master", None, "master-1", now=NOW)
        assert payload["stats"]["total_projects"] == 2
        assert payload["stats"]["assigned_stores"] == 1
        assert {r["source"] for r in payload["in_progress"] + payload["completed"]} == {"manager"}

    def test_duplicate_participants_counted_once(self, tables):
        tables["project_participants"].append(
            {"id": "p-dup", "minor_project_id": "minor-2a", "master_id": "master-2", "status": "approved",
             "created_at": "2025-05-22T10:00:00"}
        )
        payload = build_dashboard(SnapshotStore(tables), "master", None, "master-2", now=NOW)
        assert payload["stats"]["total_projects"] == 4
        assert {a["kind"] for a in payload["anomalies"]} == {"duplicate_participant"}


class TestAdminDashboard:
    def test_stats_masters_and_stores(self, store):
        payload = build_dashboard(store, "super_admin", None, "admin-1", now=NOW)
        assert payload["kind"] == "admin"
        assert payload["stats"] == {"total_masters": 3, "total_stores": 2, "active_stores": 1, "total_projects": 4}
        masters = {m["id"]: m for m in payload["masters"]}
        assert masters["master-1"]["project_count"] == 1
        assert masters["master-1"]["store_count"] == 1
        assert masters["master-2"]["project_count"] == 3
        assert masters["master-3"]["name"] == "이름 없음"
        assert [s["id"] for s in payload["stores"]] == ["store-2", "store-1"]
        assert payload["stores"][1]["assigned_master_name"] == "김마스터"
        assert payload["stores"][0]["assigned_master_name"] is None
        assert len(payload["schedules"]) == 4

    def test_view_as_client_is_explicit(self, store):
        payload = build_dashboard(store, "super_admin", "client", "client-1", now=NOW)
        assert payload["kind"] == "client"
        assert payload["role"] == "client"
        assert payload["actual_role"] == "super_admin"

    def test_override_ignored_for_non_admin(self, store):
        payload = build_dashboard(store, "master", "client", "master-2", now=NOW)
        assert payload["kind"] == "master"


def test_unknown_role_yields_empty_payload(store):
    payload = build_dashboard(store, "guest", None, "client-1", now=NOW)
    assert payload["kind"] == "empty"
    assert payload["schedules"] == []
    assert payload["anomalies"] == []
    assert build_dashboard(store, "client", None, "", now=NOW)["kind"] == "empty"


def test_store_failure_never_propagates(tables):
    payload = build_dashboard(BrokenStore(tables), "super_admin", None, "admin-1", now=NOW)
    assert payload["kind"] == "admin"
    assert payload["stats"] == {"total_masters": 0, "total_stores": 0, "active_stores": 0, "total_projects": 0}
    assert payload["masters"] == []


def test_assembly_is_idempotent(snapshot):
    first = dump_payload(assemble_dashboard("client", "client-1", snapshot, NOW))
    second = dump_payload(assemble_dashboard("client", "client-1", snapshot, NOW))
    assert first == second


def test_near_capacity_end_to_end(tables):
    # 강남 A매장: 3 masters required, 2 applied -> 모집중; a third application -> 마감임박.
    card = build_dashboard(SnapshotStore(tables), "client", None, "client-1", now=NOW)["projects"][0]
    assert card["id"] == "major-1"
    assert (card["applied_count"], card["required_count"]) == (2, 3)
    assert card["badge"] == {"label": "모집중", "style": "info"}

    tables["project_participants"].append(
        {"id": "p-5", "minor_project_id": "minor-1b", "master_id": "master-3", "status": "applied",
         "created_at": "2025-06-10T09:00:00"}
    )
    payload = build_dashboard(SnapshotStore(tables), "client", None, "client-1", now=NOW)
    card = payload["projects"][0]
    assert (card["applied_count"], card["required_count"]) == (3, 3)
    assert card["badge"] == {"label": "마감임박", "style": "warning"}
    assert payload["alert"]["project_id"] == "major-2"


def test_near_capacity_matches_pure_assembly(tables):
    tables["project_participants"].append(
        {"id": "p-5", "minor_project_id": "minor-1b", "master_id": "master-3", "status": "applied",
         "created_at": "2025-06-10T09:00:00"}
    )
    built = build_dashboard(SnapshotStore(tables), "client", None, "client-1", now=NOW)
    assembled = assemble_dashboard("client", "client-1", {
        "major_projects": tables["major_projects"],
        "minor_projects": tables["minor_projects"],
        "participants": tables["project_participants"],
    }, NOW)
    assert built["projects"] == assembled["projects"]


class TestDashboardRefresher:
    def test_keeps_last_result(self, store):
        refresher = DashboardRefresher(store, "client", "client-1")
        result = refresher.refresh(now=NOW)
        assert result["kind"] == "client"
        assert refresher.last_result is result
        assert not refresher.in_flight

    def test_overlapping_refresh_is_ignored(self, store):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def slow_builder(store, actual_role, override_role, identity, *, now=None):
            calls.append(identity)
            started.set()
            release.wait(timeout=5)
            return {"kind": "client"}

        refresher = DashboardRefresher(store, "client", "client-1", builder=slow_builder)
        worker = threading.Thread(target=refresher.refresh)
        worker.start()
        assert started.wait(timeout=5)

        assert refresher.in_flight
        assert refresher.refresh() is None

        release.set()
        worker.join(timeout=5)
        assert calls == ["client-1"]
        assert refresher.last_result == {"kind": "client"}
