"""Command-line interface for gridcalc.

Every command works on a project directory holding an optional
``gridcalc.yaml`` and the sheet snapshot (``sheet.json`` by default).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError

from gridcalc import __version__
from gridcalc.engine import SpreadsheetEngine
from gridcalc.formulas.errors import CellAddressError
from gridcalc.logging import EventType, emit_error, set_log_dir
from gridcalc.models import Cell
from gridcalc.project import load_config, scaffold_project, snapshot_path
from gridcalc.storage import load_snapshot, save_snapshot

_DIR = click.Path(exists=True, file_okay=False)


@click.group()
@click.version_option(version=__version__, prog_name="gridcalc")
def main() -> None:
    """gridcalc -- reactive cell calculator over a bounded grid."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _open(directory: str) -> tuple[SpreadsheetEngine, Path]:
    """Load config and snapshot for *directory*; attach the event log."""
    project_dir = Path(directory)
    try:
        config = load_config(project_dir)
    except (ValueError, OSError) as e:
        raise click.ClickException(str(e))
    set_log_dir(project_dir)

    path = snapshot_path(project_dir, config)
    snapshot = None
    if path.exists():
        try:
            snapshot = load_snapshot(path)
        except (ValidationError, ValueError) as e:
            emit_error(
                EventType.snapshot_loaded,
                f"Unreadable snapshot {path.name}",
                {"path": str(path)},
                error_code="invalid_snapshot",
            )
            raise click.ClickException(f"Invalid snapshot {path}: {e}")

    try:
        engine = SpreadsheetEngine(snapshot, config=config)
    except ValueError as e:
        raise click.ClickException(str(e))
    return engine, path


def _cell_json(cell_id: str, cell: Cell | None) -> dict[str, Any]:
    if cell is None:
        return Cell(id=cell_id).model_dump(mode="json")
    return cell.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Init
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path(file_okay=False))
def init(directory: str) -> None:
    """Create a project with a default gridcalc.yaml at DIRECTORY."""
    try:
        result = scaffold_project(Path(directory))
    except FileExistsError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created project at {result}")


# ---------------------------------------------------------------------------
# Cell commands
# ---------------------------------------------------------------------------


@main.command("set")
@click.argument("directory", type=_DIR)
@click.argument("cell")
@click.argument("text")
def set_cmd(directory: str, cell: str, text: str) -> None:
    """Write TEXT into CELL.  TEXT starting with '=' is a formula.

    Use ``--`` before negative numbers: ``gridcalc set DIR A1 -- -5``.
    """
    engine, path = _open(directory)
    ok = engine.set_input(cell, text)
    stored = engine.get(cell)
    if stored is not None:
        save_snapshot(path, engine.export_data())
    if not ok:
        reason = stored.error if stored is not None else str(CellAddressError(cell))
        raise click.ClickException(f"{cell}: {reason}")
    click.echo(f"{cell} = {engine.get_display_value(cell)}")


@main.command("get")
@click.argument("directory", type=_DIR)
@click.argument("cell")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def get_cmd(directory: str, cell: str, as_json: bool) -> None:
    """Show the value of CELL."""
    engine, _ = _open(directory)
    if not engine.space.contains(cell):
        raise click.ClickException(str(CellAddressError(cell)))
    if as_json:
        click.echo(json.dumps(_cell_json(cell, engine.get(cell)), indent=2))
        return
    click.echo(engine.get_display_value(cell))


@main.command("clear")
@click.argument("directory", type=_DIR)
@click.argument("cell", required=False)
def clear_cmd(directory: str, cell: str | None) -> None:
    """Clear CELL, or the whole sheet when CELL is omitted."""
    engine, path = _open(directory)
    if cell is None:
        engine.clear()
        save_snapshot(path, engine.export_data())
        click.echo("Sheet cleared")
        return
    if not engine.clear_cell(cell):
        raise click.ClickException(str(CellAddressError(cell)))
    save_snapshot(path, engine.export_data())
    click.echo(f"{cell} cleared")


# ---------------------------------------------------------------------------
# Sheet commands
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=_DIR)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def show(directory: str, as_json: bool) -> None:
    """List non-empty cells with their display values."""
    engine, _ = _open(directory)
    cells = engine.get_all_cells()
    ordered = [cid for cid in engine.space.iter_ids() if cid in cells]

    if as_json:
        out = {cid: cells[cid].model_dump(mode="json") for cid in ordered}
        click.echo(json.dumps(out, indent=2))
        return

    if not ordered:
        click.echo("Sheet is empty.")
        return
    for cid in ordered:
        line = f"{cid:4s} {engine.get_display_value(cid)}"
        formula = cells[cid].formula
        if formula:
            line += f"  [{formula}]"
        click.echo(line)


@main.command()
@click.argument("directory", type=_DIR)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def stats(directory: str, as_json: bool) -> None:
    """Show cell and dependency counts."""
    engine, _ = _open(directory)
    result = engine.get_stats()
    if as_json:
        out = {"version": engine.version, **result.model_dump()}
        click.echo(json.dumps(out, indent=2))
        return
    click.echo(f"Version: {engine.version}")
    click.echo(f"Cells: {result.total_cells}")
    click.echo(f"Formula cells: {result.formula_cells}")
    click.echo(f"Dependency edges: {result.total_dependency_edges}")


@main.command("export")
@click.argument("directory", type=_DIR)
@click.argument("output", type=click.Path(dir_okay=False))
def export_cmd(directory: str, output: str) -> None:
    """Write the sheet snapshot to OUTPUT."""
    engine, _ = _open(directory)
    dest = save_snapshot(Path(output), engine.export_data())
    click.echo(f"Exported {len(engine.get_all_cells())} cells to {dest}")


@main.command("import")
@click.argument("directory", type=_DIR)
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
def import_cmd(directory: str, source: str) -> None:
    """Replace the sheet with the snapshot in SOURCE."""
    engine, path = _open(directory)
    try:
        snapshot = load_snapshot(Path(source))
    except (ValidationError, ValueError) as e:
        raise click.ClickException(f"Invalid snapshot {source}: {e}")
    engine.import_data(snapshot)
    save_snapshot(path, engine.export_data())
    click.echo(f"Imported {len(engine.get_all_cells())} cells")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("directory", type=_DIR)
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--cell", default=None, help="Filter by cell.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    cell: str | None,
    limit: int,
) -> None:
    """Show structured event log for DIRECTORY."""
    from gridcalc.logging.sink import EventSink

    project_dir = Path(directory)
    tail_bytes = load_config(project_dir).get("logging_tail_bytes")
    sink = EventSink(project_dir, tail_bytes=int(tail_bytes) if tail_bytes else None)
    events = sink.read(level=level, event_type=event_type, cell=cell, limit=limit)

    if not events:
        click.echo("No events found.")
        return

    for evt in events:
        ts = evt.get("ts", "")
        lvl = evt.get("level", "").upper()
        etype = evt.get("event_type", "")
        msg = evt.get("message", "")
        err = evt.get("error_code")
        line = f"[{ts}] {lvl:7s} {etype}: {msg}"
        if err:
            line += f"  ({err})"
        click.echo(line)
