"""Shared fixtures: a small 강남 A매장 dispatch scenario as of 2025-06-10."""

from __future__ import annotations

import copy
from datetime import datetime

import pytest

from onul.store import SnapshotStore

NOW = datetime(2025, 6, 10, 12, 0)

SCENARIO_TABLES = {
    "profiles": [
        {"id": "admin-1", "role": "super_admin", "name": "관리자", "phone": "010-0000-0000"},
        {"id": "master-1", "role": "master", "name": "김마스터", "phone": "010-1111-1111"},
        {"id": "master-2", "role": "master", "name": "이마스터", "phone": None},
        {"id": "master-3", "role": "master", "name": None, "phone": "010-3333-3333"},
        {"id": "client-1", "role": "client", "name": "강남 A매장", "phone": "02-555-0101"},
        {"id": "client-2", "role": "client", "name": "역삼 B매장", "phone": None},
    ],
    "major_projects": [
        {
            "id": "major-1",
            "title": "강남 A매장 정기 수거",
            "location": "서울 강남구",
            "status": "recruiting",
            "scheduled_date": "2025-06-12",
            "client_id": "client-1",
            "manager_id": "master-2",
            "service_type": "pickup",
            "created_at": "2025-06-01T09:00:00",
        },
        {
            "id": "major-2",
            "title": "강남 A매장 주방 청소",
            "location": "서울 강남구",
            "status": "in_progress",
            "scheduled_date": "2025-06-05",
            "client_id": "client-1",
            "manager_id": "master-1",
            "created_at": "2025-05-20T09:00:00",
        },
        {
            "id": "major-3",
            "title": "강남 A매장 5월 수거",
            "location": "서울 강남구",
            "status": "completed",
            "scheduled_date": "2025-05-15",
            "client_id": "client-1",
            "manager_id": None,
            "service_type": "pickup",
            "created_at": "2025-05-01T09:00:00",
        },
        {
            "id": "major-4",
            "title": "역삼 B매장 방문",
            "location": "서울 역삼동",
            "status": "recruiting",
            "scheduled_date": "2025-06-20",
            "client_id": "client-2",
            "manager_id": None,
            "service_type": "visit",
            "created_at": "2025-06-05T09:00:00",
        },
    ],
    "minor_projects": [
        {"id": "minor-1a", "major_project_id": "major-1", "title": "1구역 수거", "status": "recruiting",
         "required_masters": 2, "started_at": None, "created_at": "2025-06-01T09:10:00"},
        {"id": "minor-1b", "major_project_id": "major-1", "title": "2구역 수거", "status": "recruiting",
         "required_masters": 1, "started_at": None, "created_at": "2025-06-01T09:20:00"},
        {"id": "minor-2a", "major_project_id": "major-2", "title": "1차 청소", "status": "review",
         "required_masters": 1, "started_at": "2025-06-05T10:00:00", "created_at": "2025-05-20T09:10:00"},
        {"id": "minor-2b", "major_project_id": "major-2", "title": "2차 청소", "status": "completed",
         "required_masters": 1, "started_at": "2025-06-03T09:00:00", "created_at": "2025-05-20T09:20:00"},
        {"id": "minor-3a", "major_project_id": "major-3", "title": "5월 수거", "status": "completed",
         "required_masters": 1, "started_at": "2025-05-15T09:00:00", "created_at": "2025-05-01T09:10:00"},
        {"id": "minor-4a", "major_project_id": "major-4", "title": "현장 방문", "status": "recruiting",
         "required_masters": 0, "started_at": None, "created_at": "2025-06-05T09:10:00"},
    ],
    "project_participants": [
        {"id": "p-1", "minor_project_id": "minor-1a", "master_id": "master-1", "status": "applied",
         "created_at": "2025-06-02T10:00:00"},
        {"id": "p-2", "minor_project_id": "minor-1a", "master_id": "master-2", "status": "approved",
         "created_at": "2025-06-02T11:00:00"},
        {"id": "p-3", "minor_project_id": "minor-2a", "master_id": "master-2", "status": "approved",
         "created_at": "2025-05-21T10:00:00"},
        {"id": "p-4", "minor_project_id": "minor-2b", "master_id": "master-2", "status": "approved",
         "created_at": "2025-05-21T10:05:00"},
    ],
    "stores": [
        {"id": "store-1", "name": "강남 A매장", "address": "서울 강남구 테헤란로 1", "contact_name": "최점장",
         "contact_phone": "02-555-0101", "is_active": True, "assigned_master_id": "master-1",
         "created_at": "2025-05-01T09:00:00"},
        {"id": "store-2", "name": "역삼 B매장", "address": None, "contact_name": None,
         "contact_phone": None, "is_active": False, "assigned_master_id": None,
         "created_at": "2025-05-10T09:00:00"},
    ],
    "chat_messages": [
        {"id": "m-1", "minor_project_id": "minor-1a", "sender_id": "master-2", "message": "안녕하세요",
         "created_at": "2025-06-09T15:00:00"},
        {"id": "m-2", "minor_project_id": "minor-2a", "sender_id": "client-1", "message": "사진 확인 부탁드려요",
         "created_at": "2025-06-10T08:50:00"},
        {"id": "m-3", "minor_project_id": "minor-2a", "sender_id": "master-2", "message": "확인했습니다",
         "created_at": "2025-06-10T09:00:00"},
        {"id": "m-4", "minor_project_id": "minor-2b", "sender_id": "client-1", "message": "",
         "image_url": "photo.jpg", "message_type": "image", "created_at": "2025-06-08T10:00:00"},
    ],
    "chat_read_status": [
        {"minor_project_id": "minor-2a", "user_id": "master-2", "last_read_at": "2025-06-10T08:45:00",
         "last_read_message_id": None},
    ],
}


def scenario_tables() -> dict:
    return copy.deepcopy(SCENARIO_TABLES)


def as_snapshot(tables: dict) -> dict:
    return {
        "major_projects": tables["major_projects"],
        "minor_projects": tables["minor_projects"],
        "participants": tables["project_participants"],
        "profiles": tables["profiles"],
        "stores": tables["stores"],
    }


@pytest.fixture
def tables() -> dict:
    return scenario_tables()


@pytest.fixture
def snapshot(tables) -> dict:
    return as_snapshot(tables)


@pytest.fixture
def store(tables) -> SnapshotStore:
    return SnapshotStore(tables)
