"""Chat room list: one room per visible minor project with its unread count.

Each room needs two independent reads (last message, unread RPC); rooms are
fetched concurrently and then ordered newest message first.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Iterable

from .config import FETCH_MAX_WORKERS, UNREAD_COUNT_RPC, UNTITLED_PROJECT
from .status import chat_time_label
from .store import EntityStore, StoreError
from .utils import dict_rows, non_negative_int, sort_key_desc, text

logger = logging.getLogger(__name__)

IMAGE_PREVIEW = "사진"


def message_preview(message: dict[str, Any] | None) -> str | None:
    if not message:
        return None
    body = text(message.get("message"))
    if body:
        return body
    if message.get("image_url") or text(message.get("message_type")) == "image":
        return IMAGE_PREVIEW
    return None


def fetch_last_message(store: EntityStore, minor_id: str) -> dict[str, Any] | None:
    try:
        rows = store.select(
            "chat_messages",
            filters=[("minor_project_id", "eq", minor_id)],
            order="created_at",
            descending=True,
            limit=1,
        )
    except StoreError as exc:
        logger.error("Last message lookup failed for %s: %s", minor_id, exc)
        return None
    except Exception:
        logger.exception("Unexpected error fetching last message for %s", minor_id)
        return None
    return rows[0] if rows else None


def fetch_unread_count(store: EntityStore, minor_id: str, user_id: str) -> int:
    """Unread messages for ``user_id`` in one thread; any failure reads as 0."""
    try:
        result = store.rpc(UNREAD_COUNT_RPC, {"p_minor_project_id": minor_id, "p_user_id": user_id})
    except Exception as exc:
        logger.error("Unread count RPC failed for %s: %s", minor_id, exc)
        return 0
    return non_negative_int(result)


def _sender_names(store: EntityStore, sender_ids: set[str]) -> dict[str, str]:
    if not sender_ids:
        return {}
    try:
        rows = store.select("profiles", filters=[("id", "in", sorted(sender_ids))], columns="id,name")
    except StoreError as exc:
        logger.warning("Sender profile lookup failed: %s", exc)
        return {}
    return {text(row.get("id")): text(row.get("name")) for row in rows if text(row.get("name"))}


def chat_room(
    minor: dict[str, Any],
    last_message: dict[str, Any] | None,
    unread: int,
    sender_names: dict[str, str],
    now: datetime | None = None,
) -> dict[str, Any]:
    parent = minor.get("major_project") or {}
    sent_at = last_message.get("created_at") if last_message else None
    sender_id = text(last_message.get("sender_id")) if last_message else ""
    return {
        "minor_project_id": text(minor.get("id")),
        "project_title": text(minor.get("title")) or UNTITLED_PROJECT,
        "major_project_title": text(parent.get("title")) or None,
        "project_status": text(minor.get("status")) or None,
        "last_message": message_preview(last_message),
        "last_message_sender": sender_names.get(sender_id) if sender_id else None,
        "last_message_time": sent_at or None,
        "time_label": chat_time_label(sent_at, now) if sent_at else "",
        "unread_count": unread,
    }


def sort_chat_rooms(rooms: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Newest message first; rooms without messages last; ties keep input order."""
    return sorted(rooms, key=lambda room: sort_key_desc(room.get("last_message_time")))


def build_chat_rooms(
    store: EntityStore,
    minors: Iterable[dict[str, Any]],
    user_id: Any,
    *,
    now: datetime | None = None,
    max_workers: int = FETCH_MAX_WORKERS,
) -> list[dict[str, Any]]:
    """Chat rooms for the given minor project records (see ``hierarchy``)."""
    ident = text(user_id)
    records = [minor for minor in dict_rows(list(minors)) if text(minor.get("id"))]
    if not records or not ident:
        return []

    def fetch(minor: dict[str, Any]) -> tuple[dict[str, Any] | None, int]:
        minor_id = text(minor.get("id"))
        return fetch_last_message(store, minor_id), fetch_unread_count(store, minor_id, ident)

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        fetched = list(pool.map(fetch, records))

    sender_ids = {text(last.get("sender_id")) for last, _ in fetched if last and text(last.get("sender_id"))}
    names = _sender_names(store, sender_ids)
    rooms = [
        chat_room(minor, last, unread, names, now)
        for minor, (last, unread) in zip(records, fetched)
    ]
    return sort_chat_rooms(rooms)
