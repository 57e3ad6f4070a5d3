"""Tests for schedule items, date grouping and calendar marks."""

from __future__ import annotations

from datetime import date, datetime

from onul.calendar import (
    calendar_view,
    group_by_date,
    legacy_service_type,
    marked_dates,
    monthly_plan_usage,
    resolve_service_type,
    schedule_items_for_role,
)

TODAY = date(2025, 6, 10)


def _item(item_id, day, status="scheduled", item_type="pickup"):
    return {"id": item_id, "date": day, "title": item_id, "location": None, "status": status, "type": item_type}


def test_service_type_explicit_field_wins():
    assert resolve_service_type({"service_type": "visit", "title": "청소"}, "pickup") == "visit"
    assert resolve_service_type({"title": "주방 청소"}, "pickup") == "pickup"
    assert resolve_service_type({"service_type": "bogus"}, "cleaning") == "cleaning"
    assert legacy_service_type("주방 청소") == "cleaning"
    assert legacy_service_type("정기 수거") == "pickup"


def test_client_schedule_items(snapshot):
    items = schedule_items_for_role("client", "client-1", snapshot)
    by_id = {item["id"]: item for item in items}
    assert set(by_id) == {"major-1", "major-2", "major-3"}
    assert by_id["major-1"] == {
        "id": "major-1",
        "date": "2025-06-12",
        "title": "강남 A매장 정기 수거",
        "location": "서울 강남구",
        "status": "scheduled",
        "type": "pickup",
    }
    # No service_type on the row: the client default applies, not the title.
    assert by_id["major-2"]["type"] == "pickup"
    assert by_id["major-2"]["status"] == "review"
    assert by_id["major-3"]["status"] == "completed"


def test_master_schedule_items_dated_by_parent(snapshot):
    items = schedule_items_for_role("master", "master-2", snapshot)
    by_id = {item["id"]: item for item in items}
    assert by_id["minor-2a"]["date"] == "2025-06-05"
    assert by_id["minor-2a"]["type"] == "cleaning"
    assert by_id["minor-2a"]["status"] == "review"
    assert by_id["minor-1b"]["type"] == "pickup"
    assert by_id["minor-2b"]["status"] == "completed"


def test_admin_schedule_items_cover_all_majors(snapshot):
    items = schedule_items_for_role("super_admin", "admin-1", snapshot)
    assert len(items) == 4
    assert {item["type"] for item in items} == {"pickup", "other", "visit"}


def test_undated_projects_are_left_out(snapshot):
    snapshot["major_projects"][0]["scheduled_date"] = None
    items = schedule_items_for_role("client", "client-1", snapshot)
    assert "major-1" not in {item["id"] for item in items}


def test_group_by_date_excludes_missing_dates():
    grouped = group_by_date([
        _item("b", "2025-06-12"),
        _item("a", "2025-06-05"),
        _item("c", "2025-06-12"),
        _item("d", None),
        _item("e", ""),
    ])
    assert list(grouped) == ["2025-06-05", "2025-06-12"]
    assert [item["id"] for item in grouped["2025-06-12"]] == ["b", "c"]


def test_marked_dates_dot_colors():
    grouped = group_by_date([
        _item("a", "2025-06-05", status="completed"),
        _item("b", "2025-06-12", item_type="cleaning"),
        _item("c", "2025-06-12", item_type="pickup"),
        _item("d", "2025-06-20", item_type="visit"),
    ])
    marks = marked_dates(grouped, None, TODAY)
    assert marks["2025-06-05"]["dot"] == "muted"
    assert marks["2025-06-12"]["dot"] == "primary"
    assert marks["2025-06-20"]["dot"] == "secondary"


def test_selected_overrides_today_when_they_coincide():
    grouped = group_by_date([_item("a", "2025-06-10")])
    marks = marked_dates(grouped, "2025-06-10", TODAY)
    assert marks["2025-06-10"]["selected"] is True
    assert "today" not in marks["2025-06-10"]


def test_today_marked_separately_from_selection():
    marks = marked_dates({}, "2025-06-12", TODAY)
    assert marks["2025-06-12"] == {"selected": True}
    assert marks["2025-06-10"] == {"today": True}


def test_calendar_view_lists_selected_day():
    view = calendar_view([_item("a", "2025-06-12", status="review")], selected="2025-06-12", today=TODAY)
    assert view["selected_date"] == "2025-06-12"
    assert view["selected_items"][0]["status_label"] == "검토"


def test_monthly_plan_usage(snapshot):
    majors = [m for m in snapshot["major_projects"] if m["client_id"] == "client-1"]
    majors.append({"id": "extra", "title": "6월 수거", "status": "completed", "scheduled_date": "2025-06-02"})
    majors.append({"id": "extra-2", "title": "6월 추가 수거", "status": "completed", "scheduled_date": "2025-06-03"})
    majors.append({"id": "extra-3", "title": "6월 재수거", "status": "completed", "scheduled_date": "2025-06-04"})

    usage = monthly_plan_usage(majors, now=datetime(2025, 6, 10, 12, 0))
    assert usage["plan_name"] == "스탠다드"
    assert usage["month"] == "2025-06"
    assert usage["completed_pickups"] == 3
    assert usage["remaining_pickups"] == 0
    assert usage["completed_cleaning"] == 0
    assert usage["remaining_cleaning"] == 1
    assert [item["id"] for item in usage["items"]] == ["extra", "extra-2", "extra-3", "major-2", "major-1"]
    assert {item["id"]: item["type"] for item in usage["items"]}["major-2"] == "cleaning"
