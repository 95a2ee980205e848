"""Test CLI commands."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import pytest
from typer.testing import CliRunner

from articyflow import __version__
from articyflow.cli import app
from articyflow.observability import close_file_logging
from articyflow.script import ScriptActions, register_script_function
from tests.fixtures.flow_fixtures import make_gate_export

if TYPE_CHECKING:
    from pathlib import Path

runner = CliRunner()


@pytest.fixture
def export_file(tmp_path: Path) -> Path:
    path = tmp_path / "export.json"
    path.write_text(json.dumps(make_gate_export()), encoding="utf-8")
    return path


def test_version_command() -> None:
    """Test articyflow version command."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert f"v{__version__}" in result.stdout


def test_no_args_shows_help() -> None:
    """Test that no arguments shows help."""
    result = runner.invoke(app, [])
    assert result.exit_code != 0
    assert "Usage" in result.output


def test_verbose_flag_accepted() -> None:
    """Verbosity flags are global options."""
    result = runner.invoke(app, ["-vv", "version"])
    assert result.exit_code == 0


# --- Inspect Command Tests ---


def test_inspect_summarizes_export(export_file: Path) -> None:
    """Test inspect lists project, types, variables and missing methods."""
    result = runner.invoke(app, ["inspect", str(export_file)])

    assert result.exit_code == 0
    assert "Test Project" in result.stdout
    assert "DialogueFragment" in result.stdout
    assert "Game" in result.stdout
    assert "give_item" in result.stdout


def test_inspect_registered_methods_not_reported(export_file: Path) -> None:
    """Registered script methods are not listed as missing."""
    register_script_function("give_item", lambda invocation, item: None)

    result = runner.invoke(app, ["inspect", str(export_file)])

    assert result.exit_code == 0
    assert "not registered" not in result.stdout


def test_inspect_missing_file(tmp_path: Path) -> None:
    """Test inspect fails cleanly on a missing export."""
    result = runner.invoke(app, ["inspect", str(tmp_path / "nope.json")])

    assert result.exit_code == 1
    assert "Error" in result.stdout


# --- Branches Command Tests ---


def test_branches_lists_choices(export_file: Path) -> None:
    """Test branches shows the choices available at the start."""
    result = runner.invoke(app, ["branches", str(export_file), "0x01"])

    assert result.exit_code == 0
    assert "Halt!" in result.stdout
    assert "Ask about the gate" in result.stdout
    assert "Leave" in result.stdout
    assert "Bribe" not in result.stdout


def test_branches_custom_stop_types(export_file: Path) -> None:
    """Test --stop-at changes where branches end."""
    result = runner.invoke(app, ["branches", str(export_file), "0x01", "--stop-at", "Hub"])

    assert result.exit_code == 0
    assert "Choices" in result.stdout
    assert "No branches available" in result.stdout


def test_branches_stop_types_from_env(export_file: Path) -> None:
    """Test ARTICYFLOW_STOP_AT sets the stop types when --stop-at is absent."""
    result = runner.invoke(
        app, ["branches", str(export_file), "0x01"], env={"ARTICYFLOW_STOP_AT": "Hub"}
    )

    assert result.exit_code == 0
    assert "No branches available" in result.stdout


def test_branches_stop_at_overrides_env(export_file: Path) -> None:
    """Test --stop-at wins over ARTICYFLOW_STOP_AT."""
    result = runner.invoke(
        app,
        ["branches", str(export_file), "0x01", "--stop-at", "DialogueFragment"],
        env={"ARTICYFLOW_STOP_AT": "Hub"},
    )

    assert result.exit_code == 0
    assert "Ask about the gate" in result.stdout
    assert "No branches available" not in result.stdout


def test_branches_unknown_start(export_file: Path) -> None:
    """Test branches rejects an unknown start id."""
    result = runner.invoke(app, ["branches", str(export_file), "0xdead"])

    assert result.exit_code == 1
    assert "Unknown start node" in result.stdout


# --- Play Command Tests ---


def test_play_with_choices(export_file: Path) -> None:
    """Test play follows --choose through the conversation."""
    result = runner.invoke(app, ["play", str(export_file), "0x01", "--choose", "1"])

    assert result.exit_code == 0
    assert "Guard:" in result.stdout
    assert "Halt!" in result.stdout
    assert "Goodbye." in result.stdout
    assert "End of flow" in result.stdout


def test_play_stops_without_choice(export_file: Path) -> None:
    """Test play stops at a fork when no choice is available."""
    result = runner.invoke(app, ["play", str(export_file), "0x01"])

    assert result.exit_code == 0
    assert "Ask about the gate" in result.stdout
    assert "No choice given" in result.stdout


def test_play_invalid_choice(export_file: Path) -> None:
    """Test play rejects a branch index that does not exist."""
    result = runner.invoke(app, ["play", str(export_file), "0x01", "--choose", "7"])

    assert result.exit_code == 1
    assert "No branch 7" in result.stdout


def test_play_dispatches_actions(tmp_path: Path) -> None:
    """Test actions from committed instructions are dispatched, previews are not."""
    export = make_gate_export()
    instruction = export["Packages"][0]["Models"][2]
    instruction["Properties"]["Expression"] = "Game.visits += 1; give_item('key')"
    path = tmp_path / "export.json"
    path.write_text(json.dumps(export), encoding="utf-8")

    calls: list[bool] = []

    def give_item(invocation: Any, item: str) -> ScriptActions:
        calls.append(invocation.shadowing)
        return ScriptActions(actions=[{"type": "inventory/add", "item": item}])

    register_script_function("give_item", give_item)

    result = runner.invoke(app, ["play", str(path), "0x01", "--choose", "0"])

    assert result.exit_code == 0
    assert result.stdout.count("inventory/add") == 1
    assert False in calls
    assert True in calls


def test_play_from_config(export_file: Path) -> None:
    """Test play reads export and start from flow.yaml."""
    (export_file.parent / "flow.yaml").write_text("export: export.json\nstart: '0x01'\n")

    result = runner.invoke(app, ["play", "--config", str(export_file.parent), "--choose", "1"])

    assert result.exit_code == 0
    assert "Goodbye." in result.stdout


def test_play_requires_export_and_start() -> None:
    """Test play without arguments or config fails."""
    result = runner.invoke(app, ["play"])

    assert result.exit_code == 1
    assert "required" in result.stdout


def test_play_bad_config(tmp_path: Path) -> None:
    """Test play reports unreadable settings."""
    result = runner.invoke(app, ["play", "--config", str(tmp_path)])

    assert result.exit_code == 1
    assert "File not found" in result.stdout


def test_play_script_error(tmp_path: Path) -> None:
    """Test script failures exit with an error."""
    export = make_gate_export()
    export["Packages"][0]["Models"][2]["Properties"]["Expression"] = "Game.visits +="
    path = tmp_path / "export.json"
    path.write_text(json.dumps(export), encoding="utf-8")

    result = runner.invoke(app, ["play", str(path), "0x01"])

    assert result.exit_code == 1
    assert "Invalid script" in result.stdout


# --- Logging Option Tests ---


def test_log_dir_writes_jsonl(export_file: Path, tmp_path: Path) -> None:
    """Test --log-dir writes debug events as JSON lines."""
    log_dir = tmp_path / "logs"

    try:
        result = runner.invoke(app, ["--log-dir", str(log_dir), "inspect", str(export_file)])
    finally:
        close_file_logging()

    assert result.exit_code == 0
    lines = (log_dir / "debug.jsonl").read_text().splitlines()
    events = [json.loads(line)["message"] for line in lines]
    assert "flow_database_loaded" in events


def test_play_log_entries_carry_session(export_file: Path, tmp_path: Path) -> None:
    """Test play binds the export and start node to its log events."""
    log_dir = tmp_path / "logs"

    try:
        result = runner.invoke(
            app, ["--log-dir", str(log_dir), "play", str(export_file), "0x01", "--choose", "1"]
        )
    finally:
        close_file_logging()

    assert result.exit_code == 0
    entries = [json.loads(line) for line in (log_dir / "debug.jsonl").read_text().splitlines()]
    committed = [e for e in entries if e["message"] == "branch_committed"]
    assert committed
    assert all(e["start"] == "0x01" for e in committed)
    assert all(e["export"] == str(export_file) for e in committed)
    assert all("start" not in e for e in entries if e["message"] == "flow_database_loaded")
