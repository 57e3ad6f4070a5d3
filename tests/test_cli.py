"""Tests for Onul CLI parser wiring and JSON output."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from rich.console import Console

from onul import cli
from onul.cli import build_parser

from conftest import scenario_tables


def test_dashboard_parser():
    args = build_parser().parse_args(
        ["dashboard", "--user", "admin-1", "--role", "super_admin", "--view-as", "client", "--json"]
    )
    assert args.mode == "dashboard"
    assert args.view_as == "client"
    assert args.json is True


def test_dashboard_parser_rejects_unknown_role():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["dashboard", "--user", "u", "--role", "guest"])


def test_projects_parser_defaults():
    args = build_parser().parse_args(["projects"])
    assert args.filter == "all"
    assert args.user == ""


def test_serve_parser():
    args = build_parser().parse_args(["serve", "--port", "9000", "--snapshot", "fixture.json"])
    assert args.mode == "serve"
    assert args.port == 9000
    assert args.snapshot == "fixture.json"


def test_dashboard_json_output(tmp_path: Path, monkeypatch, capsys):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(scenario_tables(), ensure_ascii=False), encoding="utf-8")
    monkeypatch.setattr(cli, "configure_logging", lambda level=None: None)
    monkeypatch.setattr(cli, "load_dotenv", lambda workspace=None: None)

    cli.main(["dashboard", "--snapshot", str(path), "--user", "master-2", "--role", "master", "--json"])

    payload = json.loads(capsys.readouterr().out)
    assert payload["kind"] == "master"
    assert payload["stats"]["total_projects"] == 4


def test_projects_json_output(tmp_path: Path, monkeypatch, capsys):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(scenario_tables(), ensure_ascii=False), encoding="utf-8")
    monkeypatch.setattr(cli, "configure_logging", lambda level=None: None)
    monkeypatch.setattr(cli, "load_dotenv", lambda workspace=None: None)

    cli.main(["projects", "--snapshot", str(path), "--filter", "my_applications", "--user", "master-1", "--json"])

    cards = json.loads(capsys.readouterr().out)
    assert [card["id"] for card in cards] == ["major-1"]


def test_chat_table_prints_message_brackets_literally(tmp_path: Path, monkeypatch):
    tables = scenario_tables()
    tables["chat_messages"].append(
        {"id": "m-9", "minor_project_id": "minor-2a", "sender_id": "client-1", "message": "[bold]주의[/] 확인",
         "created_at": "2025-06-10T11:00:00"}
    )
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(tables, ensure_ascii=False), encoding="utf-8")
    output = io.StringIO()
    monkeypatch.setattr(cli, "console", Console(file=output, width=200))
    monkeypatch.setattr(cli, "configure_logging", lambda level=None: None)
    monkeypatch.setattr(cli, "load_dotenv", lambda workspace=None: None)

    cli.main(["chat", "--snapshot", str(path), "--user", "master-2", "--role", "master"])

    assert "[bold]주의[/] 확인" in output.getvalue()
