"""Read-only dispatch API.

Routes are built from an explicit ``DispatchRouterContext`` so tests and the
CLI can hand in whichever entity store they want.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from fastapi import APIRouter, FastAPI
from fastapi.responses import JSONResponse

from . import __version__
from .calendar import calendar_view, schedule_items_for_role
from .chat_rooms import build_chat_rooms
from .dashboard import build_dashboard
from .hierarchy import ROLES, effective_role, is_admin, visible_minor_projects
from .projects import BOARD_FILTERS, build_project_cards, minor_project_detail
from .snapshot import fetch_board_snapshot, fetch_snapshot
from .store import EntityStore, StoreError
from .utils import text

logger = logging.getLogger(__name__)

StoreFactory = Callable[[], EntityStore]
Clock = Callable[[], datetime | None]


class ApiError(Exception):
    """Structured error returned to API callers as ``{"error": ...}``."""

    def __init__(self, status_code: int, payload: dict[str, Any]):
        super().__init__(payload.get("error", "Request failed"))
        self.status_code = int(status_code)
        self.payload = payload


def _no_clock() -> datetime | None:
    return None


@dataclass(frozen=True)
class DispatchRouterContext:
    """Dependencies required to serve dispatch routes."""

    open_store: StoreFactory
    clock: Clock = _no_clock


def _require_viewer(user_id: str, role: str) -> tuple[str, str]:
    ident = text(user_id)
    role_name = text(role)
    if not ident:
        raise ApiError(400, {"error": "user_id is required"})
    if role_name not in ROLES:
        raise ApiError(400, {"error": f"Unknown role '{role_name}'. Valid roles: {', '.join(sorted(ROLES))}"})
    return ident, role_name


def create_dispatch_router(ctx: DispatchRouterContext) -> APIRouter:
    """Build an APIRouter containing the dispatch read endpoints."""
    router = APIRouter()

    def _with_store(fn: Callable[[EntityStore], Any]) -> Any:
        store: EntityStore | None = None
        try:
            store = ctx.open_store()
            return fn(store)
        except ApiError as exc:
            return JSONResponse(exc.payload, status_code=exc.status_code)
        except StoreError as exc:
            logger.error("Store unavailable: %s", exc)
            return JSONResponse({"error": f"Store unavailable: {exc}"}, status_code=503)
        except Exception as exc:
            logger.exception("Request failed")
            return JSONResponse({"error": f"Request failed: {exc}"}, status_code=500)
        finally:
            if store is not None:
                store.close()

    @router.get("/api/health")
    def api_health():
        return {"ok": True, "version": __version__}

    @router.get("/api/dashboard")
    def api_dashboard(user_id: str = "", role: str = "", view_as: str | None = None):
        def run(store: EntityStore) -> dict[str, Any]:
            ident, role_name = _require_viewer(user_id, role)
            return build_dashboard(store, role_name, view_as, ident, now=ctx.clock())
        return _with_store(run)

    @router.get("/api/projects")
    def api_projects(filter: str = "all", user_id: str = "", role: str = ""):
        def run(store: EntityStore) -> dict[str, Any]:
            if filter not in BOARD_FILTERS:
                raise ApiError(400, {"error": f"Unknown filter '{filter}'. Valid filters: {', '.join(BOARD_FILTERS)}"})
            snapshot = fetch_board_snapshot(store)
            cards = build_project_cards(
                snapshot, filter=filter, is_admin=is_admin(role), identity=user_id, now=ctx.clock()
            )
            return {"filter": filter, "projects": cards}
        return _with_store(run)

    @router.get("/api/projects/minor/{minor_id}")
    def api_minor_project(minor_id: str, user_id: str = ""):
        def run(store: EntityStore) -> dict[str, Any]:
            detail = minor_project_detail(fetch_board_snapshot(store), minor_id, user_id)
            if detail is None:
                raise ApiError(404, {"error": f"Minor project '{minor_id}' not found"})
            return detail
        return _with_store(run)

    @router.get("/api/chat/rooms")
    def api_chat_rooms(user_id: str = "", role: str = ""):
        def run(store: EntityStore) -> dict[str, Any]:
            ident, role_name = _require_viewer(user_id, role)
            snapshot = fetch_snapshot(store, role_name, ident)
            minors = visible_minor_projects(role_name, ident, snapshot)
            return {"rooms": build_chat_rooms(store, minors, ident, now=ctx.clock())}
        return _with_store(run)

    @router.get("/api/calendar")
    def api_calendar(user_id: str = "", role: str = "", view_as: str | None = None, selected: str | None = None):
        def run(store: EntityStore) -> dict[str, Any]:
            ident, role_name = _require_viewer(user_id, role)
            viewing = effective_role(role_name, view_as)
            snapshot = fetch_snapshot(store, viewing, ident)
            items = schedule_items_for_role(viewing, ident, snapshot)
            return calendar_view(items, selected=selected, today=ctx.clock())
        return _with_store(run)

    return router


def create_app(open_store: StoreFactory, *, clock: Clock = _no_clock) -> FastAPI:
    app = FastAPI(title="Onul Dispatch", docs_url=None, redoc_url=None)
    app.include_router(create_dispatch_router(DispatchRouterContext(open_store=open_store, clock=clock)))
    return app
