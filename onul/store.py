"""Entity store adapters.

The engine only ever reads. Two adapters share one small query surface:

* ``RestStore`` talks to a Supabase project through its PostgREST endpoint.
* ``SnapshotStore`` answers the same queries from in-memory rows (a JSON
  fixture on disk, or dicts built in tests).

Filters are ``(column, op, value)`` triples with ``op`` in ``eq``, ``neq``
and ``in``.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Callable, Iterable

import httpx

from .config import (
    DEFAULT_TABLE_PREFIX,
    HTTP_TIMEOUT_SECONDS,
    UNREAD_COUNT_RPC,
    get_supabase_key,
    get_supabase_url,
    get_table_prefix,
)
from .utils import as_local_naive, dict_rows, load_json, text

logger = logging.getLogger(__name__)

Filter = tuple[str, str, Any]
RpcFn = Callable[["SnapshotStore", dict[str, Any]], Any]

TABLES = (
    "major_projects",
    "minor_projects",
    "project_participants",
    "profiles",
    "stores",
    "chat_messages",
    "chat_read_status",
)
FILTER_OPS = {"eq", "neq", "in"}
_CONTENT_RANGE_TOTAL = re.compile(r"/(\d+)\s*$")


class StoreError(Exception):
    """A read against the entity store failed (network, HTTP status, payload)."""

    def __init__(self, message: str, *, table: str = "", status_code: int | None = None):
        super().__init__(message)
        self.table = table
        self.status_code = status_code


def _check_filters(filters: Iterable[Filter]) -> list[Filter]:
    checked: list[Filter] = []
    for column, op, value in filters:
        if op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter op '{op}'. Valid ops: {', '.join(sorted(FILTER_OPS))}")
        checked.append((column, op, value))
    return checked


class EntityStore:
    """Read-only query surface shared by all adapters."""

    def __init__(self, table_prefix: str = DEFAULT_TABLE_PREFIX):
        self.table_prefix = table_prefix

    def table_name(self, table: str) -> str:
        return f"{self.table_prefix}{table}"

    def select(
        self,
        table: str,
        *,
        filters: Iterable[Filter] = (),
        order: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        raise NotImplementedError

    def count(self, table: str, *, filters: Iterable[Filter] = ()) -> int:
        raise NotImplementedError

    def rpc(self, name: str, params: dict[str, Any]) -> Any:
        raise NotImplementedError

    def close(self):
        return None


# ── Supabase / PostgREST ──────────────────────────────────────────────────────

def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _format_in(values: Any) -> str:
    items = [_format_value(v) for v in (values or [])]
    quoted = [f'"{item}"' if ("," in item or "(" in item or ")" in item) else item for item in items]
    return f"in.({','.join(quoted)})"


def postgrest_params(
    *,
    filters: Iterable[Filter] = (),
    order: str | None = None,
    descending: bool = False,
    limit: int | None = None,
    columns: str = "*",
) -> list[tuple[str, str]]:
    """Translate a query into PostgREST query-string pairs."""
    params: list[tuple[str, str]] = [("select", columns)]
    for column, op, value in _check_filters(filters):
        if op == "in":
            params.append((column, _format_in(value)))
        elif op == "eq" and value is None:
            params.append((column, "is.null"))
        elif op == "neq" and value is None:
            params.append((column, "not.is.null"))
        else:
            params.append((column, f"{op}.{_format_value(value)}"))
    if order:
        params.append(("order", f"{order}.{'desc' if descending else 'asc'}.nullslast"))
    if limit is not None:
        params.append(("limit", str(int(limit))))
    return params


class RestStore(EntityStore):
    """Supabase PostgREST adapter over a shared ``httpx.Client``."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        access_token: str | None = None,
        table_prefix: str = DEFAULT_TABLE_PREFIX,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ):
        super().__init__(table_prefix)
        self.base_url = base_url.rstrip("/")
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Accept": "application/json",
        }
        self._client = httpx.Client(
            base_url=f"{self.base_url}/rest/v1",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_env(cls, access_token: str | None = None) -> "RestStore":
        url = get_supabase_url()
        key = get_supabase_key()
        if not url or not key:
            raise StoreError("ONUL_SUPABASE_URL and ONUL_SUPABASE_KEY must be set")
        return cls(url, key, access_token=access_token, table_prefix=get_table_prefix())

    def _get(self, table: str, params: list[tuple[str, str]], headers: dict[str, str] | None = None) -> httpx.Response:
        name = self.table_name(table)
        try:
            response = self._client.get(f"/{name}", params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise StoreError(f"GET {name} failed: {exc}", table=table) from exc
        if response.status_code >= 300:
            raise StoreError(
                f"GET {name} returned HTTP {response.status_code}: {response.text[:200]}",
                table=table,
                status_code=response.status_code,
            )
        return response

    def select(
        self,
        table: str,
        *,
        filters: Iterable[Filter] = (),
        order: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        params = postgrest_params(filters=filters, order=order, descending=descending, limit=limit, columns=columns)
        response = self._get(table, params)
        try:
            data = response.json()
        except ValueError as exc:
            raise StoreError(f"Invalid JSON from {self.table_name(table)}", table=table) from exc
        if not isinstance(data, list):
            raise StoreError(f"Expected a row list from {self.table_name(table)}", table=table)
        return dict_rows(data)

    def count(self, table: str, *, filters: Iterable[Filter] = ()) -> int:
        params = postgrest_params(filters=filters, limit=1, columns="id")
        response = self._get(table, params, headers={"Prefer": "count=exact"})
        content_range = response.headers.get("content-range", "")
        match = _CONTENT_RANGE_TOTAL.search(content_range)
        if not match:
            raise StoreError(f"Missing exact count for {self.table_name(table)}", table=table)
        return int(match.group(1))

    def rpc(self, name: str, params: dict[str, Any]) -> Any:
        try:
            response = self._client.post(f"/rpc/{name}", json=params)
        except httpx.HTTPError as exc:
            raise StoreError(f"RPC {name} failed: {exc}") from exc
        if response.status_code >= 300:
            raise StoreError(
                f"RPC {name} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise StoreError(f"Invalid JSON from RPC {name}") from exc

    def close(self):
        self._client.close()


# ── In-memory snapshot ────────────────────────────────────────────────────────

def _matches(row: dict[str, Any], filters: list[Filter]) -> bool:
    for column, op, value in filters:
        actual = row.get(column)
        if op == "eq" and actual != value:
            return False
        if op == "neq" and actual == value:
            return False
        if op == "in" and actual not in set(value or []):
            return False
    return True


def _order_key(column: str) -> Callable[[dict[str, Any]], tuple[int, Any]]:
    def key(row: dict[str, Any]) -> tuple[int, Any]:
        value = row.get(column)
        if value is None:
            return (1, "")
        dt = as_local_naive(value) if isinstance(value, str) else None
        if dt is not None:
            return (0, dt.isoformat())
        return (0, value)
    return key


def unread_message_count(store: "SnapshotStore", params: dict[str, Any]) -> int:
    """Snapshot twin of the ``get_unread_message_count`` database function.

    Counts messages in the thread sent by someone else after the user's
    ``last_read_at`` marker (all of them when no marker exists).
    """
    minor_id = params.get("p_minor_project_id")
    user_id = params.get("p_user_id")
    markers = store.select(
        "chat_read_status",
        filters=[("minor_project_id", "eq", minor_id), ("user_id", "eq", user_id)],
    )
    last_read = as_local_naive(markers[0].get("last_read_at")) if markers else None
    total = 0
    for message in store.select("chat_messages", filters=[("minor_project_id", "eq", minor_id)]):
        if message.get("sender_id") == user_id:
            continue
        created = as_local_naive(message.get("created_at"))
        if last_read is not None and (created is None or created <= last_read):
            continue
        total += 1
    return total


class SnapshotStore(EntityStore):
    """Answers store queries from rows held in memory.

    ``tables`` is keyed by unprefixed table name (``major_projects`` …).
    """

    def __init__(
        self,
        tables: dict[str, list[dict[str, Any]]] | None = None,
        *,
        rpcs: dict[str, RpcFn] | None = None,
        table_prefix: str = DEFAULT_TABLE_PREFIX,
    ):
        super().__init__(table_prefix)
        self.tables: dict[str, list[dict[str, Any]]] = {name: [] for name in TABLES}
        for name, rows in (tables or {}).items():
            self.tables[name] = dict_rows(rows)
        self.rpcs: dict[str, RpcFn] = {UNREAD_COUNT_RPC: unread_message_count}
        self.rpcs.update(rpcs or {})

    @classmethod
    def from_file(cls, path: Path) -> "SnapshotStore":
        """Load a fixture shaped ``{"major_projects": [...], ...}``.

        Prefixed keys (``onul_major_projects``) are accepted as well.
        """
        if not Path(path).exists():
            raise StoreError(f"Snapshot file not found: {path}")
        payload = load_json(Path(path), default=None)
        if not isinstance(payload, dict):
            raise StoreError(f"Snapshot file is not a JSON object: {path}")
        tables: dict[str, list[dict[str, Any]]] = {}
        for key, rows in payload.items():
            name = text(key)
            if name.startswith(DEFAULT_TABLE_PREFIX):
                name = name[len(DEFAULT_TABLE_PREFIX):]
            tables[name] = dict_rows(rows)
        return cls(tables)

    def _rows(self, table: str) -> list[dict[str, Any]]:
        if table not in self.tables:
            raise StoreError(f"Unknown table '{self.table_name(table)}'", table=table)
        return self.tables[table]

    def select(
        self,
        table: str,
        *,
        filters: Iterable[Filter] = (),
        order: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        checked = _check_filters(filters)
        rows = [dict(row) for row in self._rows(table) if _matches(row, checked)]
        if order:
            present = [row for row in rows if row.get(order) is not None]
            missing = [row for row in rows if row.get(order) is None]
            present.sort(key=_order_key(order), reverse=descending)
            rows = present + missing
        if limit is not None:
            rows = rows[: max(0, int(limit))]
        return rows

    def count(self, table: str, *, filters: Iterable[Filter] = ()) -> int:
        checked = _check_filters(filters)
        return sum(1 for row in self._rows(table) if _matches(row, checked))

    def rpc(self, name: str, params: dict[str, Any]) -> Any:
        fn = self.rpcs.get(name)
        if fn is None:
            raise StoreError(f"Unknown RPC '{name}'")
        return fn(self, params)


def open_store(snapshot_path: Path | None = None, access_token: str | None = None) -> EntityStore:
    """Pick the snapshot fixture when one is configured, else Supabase."""
    if snapshot_path is not None:
        logger.info("Using snapshot store at %s", snapshot_path)
        return SnapshotStore.from_file(snapshot_path)
    return RestStore.from_env(access_token=access_token)
