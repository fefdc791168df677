"""Tests for the gridcalc command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from gridcalc import __version__
from gridcalc.cli import main
from gridcalc.project import scaffold_project


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    return scaffold_project(tmp_path / "proj")


def _run(runner: CliRunner, *args: str):
    return runner.invoke(main, [str(a) for a in args])


class TestInit:
    def test_init(self, runner, tmp_path):
        result = _run(runner, "init", tmp_path / "new")
        assert result.exit_code == 0
        assert (tmp_path / "new" / "gridcalc.yaml").exists()

    def test_init_twice_fails(self, runner, project):
        result = _run(runner, "init", project)
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_version(self, runner):
        result = _run(runner, "--version")
        assert result.exit_code == 0
        assert __version__ in result.output


class TestSetGet:
    def test_set_literal_and_formula(self, runner, project):
        assert _run(runner, "set", project, "A1", "10").exit_code == 0
        result = _run(runner, "set", project, "B1", "=A1*3")
        assert result.exit_code == 0
        assert "B1 = 30" in result.output

        result = _run(runner, "get", project, "B1")
        assert result.output.strip() == "30"

    def test_state_persists_between_invocations(self, runner, project):
        _run(runner, "set", project, "A1", "2")
        _run(runner, "set", project, "B1", "=A1+1")
        _run(runner, "set", project, "A1", "5")

        data = json.loads((project / "sheet.json").read_text())
        assert data["cells"]["B1"]["value"] == 6
        assert data["version"] == 4

    def test_negative_number(self, runner, project):
        result = _run(runner, "set", project, "A1", "--", "-5")
        assert result.exit_code == 0
        assert _run(runner, "get", project, "A1").output.strip() == "-5"

    def test_rejected_write_exits_1(self, runner, project):
        result = _run(runner, "set", project, "A1", "=A1+1")
        assert result.exit_code == 1
        assert "Circular reference detected" in result.output

        # Stored with its error so the user can see and fix it.
        result = _run(runner, "get", project, "A1", "--json")
        cell = json.loads(result.output)
        assert cell["formula"] == "=A1+1"
        assert "Circular reference" in cell["error"]

    def test_invalid_address(self, runner, project):
        result = _run(runner, "set", project, "Z9", "1")
        assert result.exit_code == 1
        assert "Invalid cell address" in result.output
        assert not (project / "sheet.json").exists()

    def test_get_json_missing_cell(self, runner, project):
        result = _run(runner, "get", project, "C3", "--json")
        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "id": "C3", "value": None, "formula": None, "error": None, "dependencies": [],
        }

    def test_get_invalid_address(self, runner, project):
        result = _run(runner, "get", project, "K1")
        assert result.exit_code == 1

    def test_custom_grid_from_config(self, runner, tmp_path):
        proj = tmp_path / "wide"
        proj.mkdir()
        (proj / "gridcalc.yaml").write_text("grid:\n  columns: 26\n  rows: 30\n")
        assert _run(runner, "set", proj, "Z30", "1").exit_code == 0


class TestClear:
    def test_clear_cell(self, runner, project):
        _run(runner, "set", project, "A1", "3")
        _run(runner, "set", project, "B1", "=A1*2")
        result = _run(runner, "clear", project, "A1")
        assert result.exit_code == 0
        assert _run(runner, "get", project, "B1").output.strip() == "0"

    def test_clear_sheet(self, runner, project):
        _run(runner, "set", project, "A1", "3")
        result = _run(runner, "clear", project)
        assert result.exit_code == 0
        assert "Sheet is empty" in _run(runner, "show", project).output

    def test_clear_invalid(self, runner, project):
        assert _run(runner, "clear", project, "Q99").exit_code == 1


class TestShowStats:
    def test_show(self, runner, project):
        _run(runner, "set", project, "B1", "=A1+1")
        _run(runner, "set", project, "A1", "hello")
        out = _run(runner, "show", project).output.splitlines()
        assert out[0].startswith("A1")
        assert "hello" in out[0]
        assert out[1].startswith("B1")
        assert "[=A1+1]" in out[1]

    def test_show_json(self, runner, project):
        _run(runner, "set", project, "A1", "1.5")
        data = json.loads(_run(runner, "show", project, "--json").output)
        assert data["A1"]["value"] == 1.5

    def test_stats(self, runner, project):
        _run(runner, "set", project, "A1", "1")
        _run(runner, "set", project, "B1", "=A1+A1")
        _run(runner, "set", project, "C1", "=SUM(A1:A3)")
        data = json.loads(_run(runner, "stats", project, "--json").output)
        assert data == {
            "version": 4,
            "total_cells": 3,
            "formula_cells": 2,
            "total_dependency_edges": 4,
        }
        text = _run(runner, "stats", project).output
        assert "Formula cells: 2" in text


class TestExportImport:
    def test_round_trip(self, runner, project, tmp_path):
        _run(runner, "set", project, "A1", "4")
        _run(runner, "set", project, "B1", "=A1*A1")
        out = tmp_path / "export.json"
        assert _run(runner, "export", project, out).exit_code == 0

        other = scaffold_project(tmp_path / "other")
        assert _run(runner, "import", other, out).exit_code == 0
        _run(runner, "set", other, "A1", "5")
        assert _run(runner, "get", other, "B1").output.strip() == "25"

    def test_corrupt_snapshot(self, runner, project):
        (project / "sheet.json").write_text('{"cells": 3}')
        result = _run(runner, "show", project)
        assert result.exit_code == 1
        assert "Invalid snapshot" in result.output


class TestEventsCommand:
    def test_no_events(self, runner, project):
        result = _run(runner, "events", project)
        assert result.exit_code == 0
        assert "No events found" in result.output

    def test_events_after_writes(self, runner, project):
        _run(runner, "set", project, "A1", "1")
        _run(runner, "set", project, "B1", "=B1")

        result = _run(runner, "events", project, "--level", "warning")
        assert result.exit_code == 0
        assert "WARNING" in result.output
        assert "cell_rejected" in result.output
        assert "(circular)" in result.output

        result = _run(runner, "events", project, "--type", "snapshot_saved", "--limit", "1")
        assert len(result.output.strip().splitlines()) == 1
