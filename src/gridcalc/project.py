"""Project-level configuration and scaffolding."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from gridcalc.address import AddressSpace

CONFIG_FILENAME = "gridcalc.yaml"

DEFAULT_CONFIG = {
    "columns": 10,
    "rows": 5,
    "max_visits": None,  # default: address space size
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
    "snapshot_file": "sheet.json",
}

DEMO_CONFIG = """\
# gridcalc project config
grid:
  columns: 10
  rows: 5

snapshot_file: sheet.json

logging_fsync: false
"""


def _flatten_grid_block(user_config: dict[str, Any]) -> dict[str, Any]:
    """Flatten a nested ``grid:`` block into flat config keys.

    Supports::

        grid:
          columns: 8
          rows: 20
          max_visits: 160

    Maps to ``columns``, ``rows`` and ``max_visits``.  Flat keys given
    alongside the block win.
    """
    grid = user_config.pop("grid", None)
    if not isinstance(grid, dict):
        return user_config

    for key in ("columns", "rows", "max_visits"):
        if key in grid:
            user_config.setdefault(key, grid[key])
    return user_config


def load_config(project_dir: Path) -> dict[str, Any]:
    """Load project configuration from ``gridcalc.yaml``, with defaults.

    Args:
        project_dir: Root of the gridcalc project.

    Returns:
        Merged configuration dict.  Unknown keys are kept.

    Raises:
        ValueError: If the file is not a YAML mapping.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = Path(project_dir) / CONFIG_FILENAME
    if config_path.exists():
        user_config = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(user_config, dict):
            raise ValueError(f"{config_path} must contain a mapping")
        config.update(_flatten_grid_block(user_config))
    return config


def address_space_from_config(config: dict[str, Any]) -> AddressSpace:
    """Build the address space described by *config*.

    Raises:
        ValueError: If ``columns`` or ``rows`` are out of bounds.
    """
    return AddressSpace(columns=int(config["columns"]), rows=int(config["rows"]))


def max_visits_from_config(config: dict[str, Any], space: AddressSpace) -> int:
    """Traversal cap: the configured ``max_visits`` or the grid size."""
    value = config.get("max_visits")
    if value is None:
        return space.size
    value = int(value)
    if value < 1:
        raise ValueError(f"max_visits must be at least 1, got {value}")
    return value


def snapshot_path(project_dir: Path, config: dict[str, Any]) -> Path:
    """Location of the project's snapshot file."""
    return Path(project_dir) / str(config.get("snapshot_file") or DEFAULT_CONFIG["snapshot_file"])


def scaffold_project(target_dir: Path) -> Path:
    """Create a project directory with a default ``gridcalc.yaml``.

    Raises:
        FileExistsError: If the directory already holds a config file.
    """
    target_dir = Path(target_dir)
    config_path = target_dir / CONFIG_FILENAME
    if config_path.exists():
        raise FileExistsError(f"{CONFIG_FILENAME} already exists in {target_dir}")
    target_dir.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEMO_CONFIG)
    return target_dir
