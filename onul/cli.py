"""
Onul CLI: inspect dispatch dashboards from a terminal.

Usage:
    onul dashboard --user <id> --role <role> [--view-as client|master] [options]
    onul projects [--filter all|recruiting|my_applications] [options]
    onul chat --user <id> --role <role> [options]
    onul serve [--host 0.0.0.0] [--port 8000] [options]

Reads go to Supabase (ONUL_SUPABASE_URL / ONUL_SUPABASE_KEY) unless
``--snapshot`` or ONUL_SNAPSHOT points at a JSON fixture.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .chat_rooms import build_chat_rooms
from .config import configure_logging, get_snapshot_path, load_dotenv
from .dashboard import build_dashboard
from .hierarchy import ROLES, VIEW_AS_ROLES, is_admin, visible_minor_projects
from .projects import BOARD_FILTERS, build_project_cards
from .snapshot import fetch_board_snapshot, fetch_snapshot
from .store import EntityStore, StoreError, open_store
from .utils import dump_payload

console = Console()


def _add_common_arguments(parser: argparse.ArgumentParser, *, viewer_required: bool = True):
    parser.add_argument("--snapshot", help="Read from a JSON snapshot fixture instead of Supabase")
    parser.add_argument("--user", required=viewer_required, default="", help="Viewer profile id")
    parser.add_argument("--role", required=viewer_required, default="", choices=sorted(ROLES) if viewer_required else None,
                        help="Viewer's actual role")
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON output")
    parser.add_argument("--log-level", default=None, help="Log level for the onul logger (default: WARNING)")


def _add_dashboard_parser(subparsers: argparse._SubParsersAction):
    parser = subparsers.add_parser("dashboard", help="Show the role-scoped dashboard")
    _add_common_arguments(parser)
    parser.add_argument("--view-as", choices=sorted(VIEW_AS_ROLES), default=None,
                        help="Admin only: render the dashboard as this role")


def _add_projects_parser(subparsers: argparse._SubParsersAction):
    parser = subparsers.add_parser("projects", help="List major projects with capacity badges")
    _add_common_arguments(parser, viewer_required=False)
    parser.add_argument("--filter", choices=BOARD_FILTERS, default="all")


def _add_chat_parser(subparsers: argparse._SubParsersAction):
    parser = subparsers.add_parser("chat", help="List chat rooms with unread counts")
    _add_common_arguments(parser)


def _add_serve_parser(subparsers: argparse._SubParsersAction):
    parser = subparsers.add_parser("serve", help="Start the read-only dispatch API")
    parser.add_argument("--snapshot", help="Serve from a JSON snapshot fixture instead of Supabase")
    parser.add_argument("--host", type=str, default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--log-level", default=None, help="Log level for the onul logger (default: WARNING)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="onul",
        description="Onul: dispatch dashboards for field service projects",
    )
    subparsers = parser.add_subparsers(dest="mode", required=True)

    _add_dashboard_parser(subparsers)
    _add_projects_parser(subparsers)
    _add_chat_parser(subparsers)
    _add_serve_parser(subparsers)
    return parser


def _open(args: argparse.Namespace) -> EntityStore:
    try:
        return open_store(get_snapshot_path(args.snapshot))
    except StoreError as exc:
        console.print(f"[red]{escape(str(exc))}[/]")
        sys.exit(1)


def _emit_json(payload: Any):
    print(dump_payload(payload))


# ── Rendering ─────────────────────────────────────────────────────────────────

def _cell(value: Any) -> str:
    return escape(str(value)) if value not in (None, "") else "-"


def _stats_panel(title: str, stats: dict[str, Any]) -> Panel:
    lines = [f"[bold]{key}[/]: {value if value is not None else '-'}" for key, value in stats.items()]
    return Panel("\n".join(lines), title=title, expand=False)


def _render_dashboard(payload: dict[str, Any]):
    kind = payload["kind"]
    if kind == "empty":
        console.print("[yellow]No dashboard for this viewer.[/]")
        return

    heading = payload.get("role_label") or payload.get("role")
    if payload.get("actual_role") != payload.get("role"):
        heading = f"{heading} (viewing as, actual: {payload.get('actual_role')})"
    console.print(_stats_panel(str(heading), payload.get("stats", {})))

    if kind == "admin":
        table = Table(title="Masters")
        for col in ("Name", "Phone", "Projects", "Stores"):
            table.add_column(col)
        for master in payload["masters"]:
            table.add_row(_cell(master["name"]), _cell(master["phone"]), str(master["project_count"]), str(master["store_count"]))
        console.print(table)

        table = Table(title="Stores")
        for col in ("Name", "Address", "Master", "Active"):
            table.add_column(col)
        for store in payload["stores"]:
            table.add_row(_cell(store["name"]), _cell(store["address"]), _cell(store["assigned_master_name"]),
                          "yes" if store["is_active"] else "no")
        console.print(table)
    elif kind == "master":
        for key, title in (("in_progress", "In progress"), ("completed", "Completed")):
            table = Table(title=title)
            for col in ("Project", "Parent", "Status", "D-Day"):
                table.add_column(col)
            for record in payload[key]:
                parent = record.get("major_project") or {}
                table.add_row(_cell(record["title"]), _cell(parent.get("title")), _cell(record["badge"]["label"]), record["d_day"] or "-")
            console.print(table)
    else:
        alert = payload.get("alert")
        if alert:
            console.print(f"[yellow]검토 대기 {alert['pending_reviews']}건[/] (project {alert['project_id']})")
        table = Table(title="Projects")
        for col in ("Title", "Status", "Date", "D-Day", "Done"):
            table.add_column(col)
        for card in payload["projects"] + payload["completed_projects"]:
            table.add_row(_cell(card["title"]), _cell(card["badge"]["label"]), card["scheduled_date"] or "-", card["d_day"] or "-",
                          f"{card['completed_count']}/{card['minor_projects_count']}")
        console.print(table)

    if payload["anomalies"]:
        console.print(f"[red]{len(payload['anomalies'])} lifecycle anomal{'y' if len(payload['anomalies']) == 1 else 'ies'}[/]")


def _render_projects(cards: list[dict[str, Any]]):
    table = Table(title="Projects")
    for col in ("Title", "Status", "Applied", "Minors", "Date"):
        table.add_column(col)
    for card in cards:
        table.add_row(_cell(card["title"]), _cell(card["badge"]["label"]), f"{card['applied_count']}/{card['required_count']}",
                      str(card["minor_projects_count"]), card["scheduled_date"] or "-")
    console.print(table)


def _render_chat(rooms: list[dict[str, Any]]):
    table = Table(title="Chat rooms")
    for col in ("Room", "Parent", "Last message", "When", "Unread"):
        table.add_column(col)
    for room in rooms:
        table.add_row(_cell(room["project_title"]), _cell(room["major_project_title"]), _cell(room["last_message"]),
                      room["time_label"] or "-", str(room["unread_count"]) if room["unread_count"] else "")
    console.print(table)


# ── Handlers ──────────────────────────────────────────────────────────────────

def _handle_dashboard(args: argparse.Namespace):
    store = _open(args)
    try:
        payload = build_dashboard(store, args.role, args.view_as, args.user)
    finally:
        store.close()
    if args.json:
        _emit_json(payload)
        return
    _render_dashboard(payload)


def _handle_projects(args: argparse.Namespace):
    store = _open(args)
    try:
        cards = build_project_cards(
            fetch_board_snapshot(store), filter=args.filter, is_admin=is_admin(args.role), identity=args.user
        )
    finally:
        store.close()
    if args.json:
        _emit_json(cards)
        return
    _render_projects(cards)


def _handle_chat(args: argparse.Namespace):
    store = _open(args)
    try:
        snapshot = fetch_snapshot(store, args.role, args.user)
        rooms = build_chat_rooms(store, visible_minor_projects(args.role, args.user, snapshot), args.user)
    finally:
        store.close()
    if args.json:
        _emit_json(rooms)
        return
    _render_chat(rooms)


def _handle_serve(args: argparse.Namespace):
    import uvicorn

    from .server import create_app

    snapshot_path = get_snapshot_path(args.snapshot)

    def factory() -> EntityStore:
        return open_store(snapshot_path)

    console.print(f"Onul dispatch API starting on http://{args.host}:{args.port}")
    if snapshot_path:
        console.print(f"Snapshot: {snapshot_path}")
    uvicorn.run(create_app(factory), host=args.host, port=int(args.port), log_level="info")


def main(argv: list[str] | None = None):
    parsed_argv = list(argv) if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(parsed_argv)

    load_dotenv(Path.cwd())
    configure_logging(args.log_level)

    handlers = {
        "dashboard": _handle_dashboard,
        "projects": _handle_projects,
        "chat": _handle_chat,
        "serve": _handle_serve,
    }
    handlers[args.mode](args)


if __name__ == "__main__":
    main()
