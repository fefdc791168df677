"""Snapshot persistence as JSON files.

Writes are atomic (write-to-tmp then ``os.replace``) so readers never
observe a partially written snapshot.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from gridcalc.logging import EventType, emit_info
from gridcalc.models import Snapshot


def _atomic_json_write(path: Path, data: Any) -> None:
    """Write JSON to a file atomically via write-to-tmp then os.replace."""
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True))
    os.replace(str(tmp_path), str(path))


def snapshot_to_json(snapshot: Snapshot) -> dict[str, Any]:
    """JSON-ready dict for *snapshot*."""
    return snapshot.model_dump(mode="json")


def snapshot_from_json(data: dict[str, Any] | str) -> Snapshot:
    """Build a snapshot from a decoded dict or raw JSON text.

    Raises:
        pydantic.ValidationError: If the content is not a valid snapshot.
    """
    if isinstance(data, str):
        return Snapshot.model_validate_json(data)
    return Snapshot.model_validate(data)


def save_snapshot(path: Path, snapshot: Snapshot) -> Path:
    """Persist *snapshot* to *path*, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    _atomic_json_write(path, snapshot_to_json(snapshot))
    emit_info(
        EventType.snapshot_saved,
        f"Saved snapshot v{snapshot.version}",
        {"path": str(path), "version": snapshot.version, "cells": len(snapshot.cells)},
    )
    return path


def load_snapshot(path: Path) -> Snapshot:
    """Read a snapshot written by :func:`save_snapshot`.

    Raises:
        FileNotFoundError: If *path* does not exist.
        pydantic.ValidationError: If the file content is not a valid snapshot.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Snapshot not found: {path}")
    snapshot = snapshot_from_json(path.read_text())
    emit_info(
        EventType.snapshot_loaded,
        f"Loaded snapshot v{snapshot.version}",
        {"path": str(path), "version": snapshot.version, "cells": len(snapshot.cells)},
    )
    return snapshot
