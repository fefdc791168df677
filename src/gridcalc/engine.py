"""Reactive spreadsheet engine.

Owns the cell store and the dependency graph.  Every write validates the
input, checks for cycles, evaluates, and eagerly recomputes the cells
downstream of the one that changed.  Observers registered with
:meth:`SpreadsheetEngine.on_change` are called synchronously once the
sheet is consistent again.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from gridcalc.address import DEFAULT_SPACE, AddressSpace
from gridcalc.dependency_graph import DependencyGraph
from gridcalc.formulas.errors import CellAddressError, is_sentinel
from gridcalc.formulas.evaluator import evaluate
from gridcalc.formulas.parser import FORMULA_MARKER, extract_references, is_formula, validate
from gridcalc.logging import EventType, emit_info, emit_warning
from gridcalc.models import Cell, CellValue, SheetStats, Snapshot
from gridcalc.project import address_space_from_config, max_visits_from_config

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_literal(text: str) -> CellValue:
    """Convert typed text to a cell literal (int, float or string)."""
    try:
        num = float(text)
    except (ValueError, TypeError):
        return text
    if not math.isfinite(num):
        return text
    if num == int(num) and "." not in text and "e" not in text.lower():
        return int(num)
    return num


def _display(value: CellValue) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class SpreadsheetEngine:
    """Cell store plus dependency graph for one bounded sheet.

    Args:
        snapshot: Initial state; imported (graph rebuilt) on construction.
        space: Address space cells must fall within.
        config: Project config (see :func:`gridcalc.project.load_config`).
            When given, its ``columns``/``rows`` replace *space* and its
            ``max_visits`` caps dependent traversal.
    """

    def __init__(
        self,
        snapshot: Snapshot | Mapping[str, Any] | None = None,
        *,
        space: AddressSpace = DEFAULT_SPACE,
        config: Mapping[str, Any] | None = None,
    ) -> None:
        if config is not None:
            space = address_space_from_config(dict(config))
            max_visits = max_visits_from_config(dict(config), space)
        else:
            max_visits = space.size

        self.space = space
        self._graph = DependencyGraph(max_visits=max_visits)
        self._cells: dict[str, Cell] = {}
        self._version = 1
        self._last_modified = _utc_now()
        self._listeners: list[ChangeCallback] = []
        self._notifying = False

        if snapshot is not None:
            self._load(snapshot)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def version(self) -> int:
        return self._version

    @property
    def last_modified(self) -> datetime:
        return self._last_modified

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, cell_id: str, value: CellValue = None, formula: str | None = None) -> bool:
        """Write a literal *value* or a *formula* into *cell_id*.

        Returns True if the write was accepted.  False means either the
        identifier is invalid (nothing changes) or the cell was stored
        with an error: a malformed formula, a cycle, or an evaluation
        failure.  Only evaluation failures keep the formula's edges.
        """
        self._check_not_notifying()

        if not self.space.contains(cell_id):
            err = CellAddressError(cell_id)
            emit_warning(
                EventType.cell_rejected,
                str(err),
                {"cell": str(cell_id)},
                error_code=err.kind,
            )
            return False

        old = self._cells.get(cell_id)
        if old is not None and old.formula:
            self._graph.remove_all_dependencies(cell_id)

        if not formula:
            self._cells[cell_id] = Cell(id=cell_id, value=value)
            self._commit(cell_id)
            emit_info(EventType.cell_set, f"{cell_id} set", {"cell": cell_id, "value": value})
            return True

        if not is_formula(formula):
            formula = FORMULA_MARKER + formula

        problem = validate(formula, self.space)
        if problem is None:
            dependencies = extract_references(formula)
            problem = self._graph.check_circular_reference(cell_id, dependencies)

        if problem is not None:
            self._cells[cell_id] = Cell(id=cell_id, formula=formula, error=str(problem))
            self._notify()
            emit_warning(
                EventType.cell_rejected,
                str(problem),
                {"cell": cell_id, "formula": formula},
                error_code=problem.kind,
            )
            return False

        self._graph.add_dependencies(cell_id, dependencies)
        result = evaluate(formula, self.get_raw_value, self.space)
        self._cells[cell_id] = Cell(
            id=cell_id,
            formula=formula,
            value=result.value,
            error=result.error,
            dependencies=dependencies,
        )
        self._commit(cell_id)

        if not result.ok:
            emit_warning(
                EventType.cell_rejected,
                result.error or "",
                {"cell": cell_id, "formula": formula},
                error_code=str(result.value),
            )
            return False

        emit_info(
            EventType.cell_set,
            f"{cell_id} set",
            {"cell": cell_id, "formula": formula, "value": result.value},
        )
        return True

    def set_input(self, cell_id: str, text: str) -> bool:
        """Write user-typed *text*: ``=...`` is a formula, else a literal."""
        if is_formula(text):
            return self.set(cell_id, formula=text)
        return self.set(cell_id, parse_literal(text))

    def clear(self) -> None:
        """Remove every cell and reset the graph."""
        self._check_not_notifying()
        removed = len(self._cells)
        self._cells.clear()
        self._graph.clear()
        self._touch()
        self._notify()
        emit_info(EventType.sheet_cleared, "Sheet cleared", {"cells_removed": removed})

    def clear_cell(self, cell_id: str) -> bool:
        """Delete *cell_id*; True for any valid identifier, present or not."""
        self._check_not_notifying()
        if not self.space.contains(cell_id):
            return False
        if cell_id not in self._cells:
            return True

        self._graph.remove_all_dependencies(cell_id)
        del self._cells[cell_id]
        self._commit(cell_id)
        emit_info(EventType.cell_cleared, f"{cell_id} cleared", {"cell": cell_id})
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, cell_id: str) -> Cell | None:
        """A copy of the stored cell, or None."""
        cell = self._cells.get(cell_id)
        return cell.model_copy(deep=True) if cell is not None else None

    def get_raw_value(self, cell_id: str) -> CellValue:
        """Value as seen by formulas reading *cell_id*.

        A stored error sentinel wins; otherwise an error message shadows
        the value; missing cells read as None.
        """
        cell = self._cells.get(cell_id)
        if cell is None:
            return None
        if cell.error and is_sentinel(cell.value):
            return cell.value
        if cell.error:
            return cell.error
        return cell.value

    def get_display_value(self, cell_id: str) -> str:
        cell = self._cells.get(cell_id)
        if cell is None:
            return ""
        if cell.error:
            return cell.error
        return _display(cell.value)

    def get_formula(self, cell_id: str) -> str | None:
        cell = self._cells.get(cell_id)
        return cell.formula if cell is not None else None

    def get_all_cells(self) -> dict[str, Cell]:
        return {cid: cell.model_copy(deep=True) for cid, cell in self._cells.items()}

    def get_stats(self) -> SheetStats:
        return SheetStats(
            total_cells=len(self._cells),
            formula_cells=sum(1 for c in self._cells.values() if c.formula),
            total_dependency_edges=self._graph.get_stats().total_dependencies,
        )

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def export_data(self) -> Snapshot:
        """Deep copy of the current state."""
        return Snapshot(
            cells=self.get_all_cells(),
            version=self._version,
            last_modified=self._last_modified,
        )

    def import_data(self, snapshot: Snapshot | Mapping[str, Any]) -> None:
        """Replace the whole sheet with *snapshot* and rebuild the graph.

        Raises:
            pydantic.ValidationError: If a mapping does not describe a
                valid snapshot.
        """
        self._check_not_notifying()
        self._load(snapshot)
        self._notify()
        emit_info(
            EventType.snapshot_imported,
            f"Imported {len(self._cells)} cells",
            {"cells": len(self._cells), "version": self._version},
        )

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def on_change(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _check_not_notifying(self) -> None:
        if self._notifying:
            raise RuntimeError("Cannot modify the sheet from a change callback")

    def _notify(self) -> None:
        self._notifying = True
        try:
            for callback in list(self._listeners):
                callback()
        finally:
            self._notifying = False

    def _touch(self) -> None:
        self._version += 1
        self._last_modified = _utc_now()

    def _commit(self, cell_id: str) -> None:
        """Bump the version, recompute downstream cells, then notify."""
        self._touch()
        self._recalculate_dependents(cell_id)
        self._notify()

    def _recalculate_dependents(self, cell_id: str) -> None:
        order = self._graph.recalculation_order(cell_id)
        for dependent in order:
            cell = self._cells.get(dependent)
            if cell is None or not cell.formula:
                continue
            result = evaluate(cell.formula, self.get_raw_value, self.space)
            cell.value = result.value
            cell.error = result.error
        if order:
            logger.debug("Recalculated %d dependents of %s", len(order), cell_id)

    def _load(self, snapshot: Snapshot | Mapping[str, Any]) -> None:
        """Install a deep copy of *snapshot* and rebuild the graph.

        Formulas are replayed in cell order: each must validate and must
        not close a cycle with those already registered, otherwise it is
        kept with an error and no edges.  Stored values are not
        recomputed.
        """
        if not isinstance(snapshot, Snapshot):
            snapshot = Snapshot.model_validate(snapshot)
        snapshot = snapshot.model_copy(deep=True)

        self._graph.clear()
        self._cells = {}
        for cell_id, cell in snapshot.cells.items():
            if not self.space.contains(cell_id):
                logger.warning("Dropping imported cell outside the grid: %s", cell_id)
                continue
            self._cells[cell_id] = cell

        for cell_id, cell in self._cells.items():
            if not cell.formula:
                cell.dependencies = []
                continue
            if not is_formula(cell.formula):
                cell.formula = FORMULA_MARKER + cell.formula
            problem = validate(cell.formula, self.space)
            if problem is None:
                dependencies = extract_references(cell.formula)
                problem = self._graph.check_circular_reference(cell_id, dependencies)
            if problem is not None:
                cell.dependencies = []
                cell.value = None
                cell.error = str(problem)
                continue
            self._graph.add_dependencies(cell_id, dependencies)
            cell.dependencies = dependencies

        self._version = snapshot.version
        self._last_modified = snapshot.last_modified
