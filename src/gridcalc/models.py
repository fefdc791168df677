"""Cell and snapshot records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

CellValue = Union[int, float, str, None]


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


class Cell(BaseModel):
    """One addressable cell.

    ``value`` holds the literal for plain cells and the computed result
    (a number or an error sentinel such as ``#VALUE!``) for formula cells.
    ``dependencies`` is always the reference list of ``formula`` and is
    empty for literals and for formulas that failed validation.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(frozen=True)
    value: CellValue = None
    formula: str | None = None
    error: str | None = None
    dependencies: list[str] = Field(default_factory=list)

    @property
    def raw_input(self) -> CellValue:
        """What the user typed: the formula text if any, else the literal."""
        return self.formula if self.formula is not None else self.value

    @property
    def is_formula(self) -> bool:
        return bool(self.formula)


class Snapshot(BaseModel):
    """Full exportable sheet state.

    The dependency graph is never part of a snapshot; importing one
    rebuilds it from the cells' formulas.
    """

    cells: dict[str, Cell] = Field(default_factory=dict)
    version: int = Field(default=1, ge=1)
    last_modified: datetime = Field(default_factory=_utc_now)

    @model_validator(mode="before")
    @classmethod
    def _fill_ids(cls, data: Any) -> Any:
        """Let plain mappings omit ``id``; the cell key supplies it."""
        if not isinstance(data, dict) or not isinstance(data.get("cells"), dict):
            return data
        cells = {}
        for key, cell in data["cells"].items():
            if isinstance(cell, dict) and "id" not in cell:
                cell = {**cell, "id": key}
            cells[key] = cell
        return {**data, "cells": cells}

    @field_validator("last_modified")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @model_validator(mode="after")
    def _keys_match_ids(self) -> Snapshot:
        for key, cell in self.cells.items():
            if key != cell.id:
                raise ValueError(f"cell key {key!r} does not match cell id {cell.id!r}")
        return self


class SheetStats(BaseModel):
    """Counts reported by :meth:`SpreadsheetEngine.get_stats`."""

    model_config = ConfigDict(frozen=True)

    total_cells: int
    formula_cells: int
    total_dependency_edges: int
