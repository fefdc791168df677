"""Tests for project configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from gridcalc.address import AddressSpace
from gridcalc.project import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG,
    address_space_from_config,
    load_config,
    max_visits_from_config,
    scaffold_project,
    snapshot_path,
)


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path: Path) -> None:
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_flat_keys_override(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text(yaml.dump({"columns": 4, "logging_fsync": True}))
        cfg = load_config(tmp_path)
        assert cfg["columns"] == 4
        assert cfg["rows"] == 5
        assert cfg["logging_fsync"] is True

    def test_grid_block_flattened(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("grid:\n  columns: 8\n  rows: 20\n")
        cfg = load_config(tmp_path)
        assert cfg["columns"] == 8
        assert cfg["rows"] == 20
        assert "grid" not in cfg

    def test_flat_key_wins_over_block(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("rows: 3\ngrid:\n  rows: 20\n")
        assert load_config(tmp_path)["rows"] == 3

    def test_unknown_keys_kept(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("owner: finance\n")
        assert load_config(tmp_path)["owner"] == "finance"

    def test_empty_file(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("")
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_non_mapping_rejected(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_config(tmp_path)


class TestDerivedSettings:
    def test_address_space(self) -> None:
        space = address_space_from_config({"columns": 3, "rows": 7})
        assert space == AddressSpace(columns=3, rows=7)

    def test_invalid_bounds(self) -> None:
        with pytest.raises(ValueError):
            address_space_from_config({"columns": 30, "rows": 7})

    def test_max_visits_default_is_grid_size(self) -> None:
        assert max_visits_from_config(DEFAULT_CONFIG, AddressSpace()) == 50

    def test_max_visits_explicit(self) -> None:
        assert max_visits_from_config({"max_visits": 12}, AddressSpace()) == 12
        with pytest.raises(ValueError):
            max_visits_from_config({"max_visits": 0}, AddressSpace())

    def test_snapshot_path(self, tmp_path: Path) -> None:
        assert snapshot_path(tmp_path, DEFAULT_CONFIG) == tmp_path / "sheet.json"
        assert snapshot_path(tmp_path, {"snapshot_file": "data/s.json"}) == tmp_path / "data" / "s.json"


class TestScaffold:
    def test_creates_config(self, tmp_path: Path) -> None:
        project = scaffold_project(tmp_path / "proj")
        cfg = load_config(project)
        assert cfg["columns"] == 10
        assert cfg["rows"] == 5
        assert cfg["snapshot_file"] == "sheet.json"

    def test_refuses_existing(self, tmp_path: Path) -> None:
        scaffold_project(tmp_path)
        with pytest.raises(FileExistsError):
            scaffold_project(tmp_path)
