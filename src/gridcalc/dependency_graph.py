"""Bidirectional dependency graph for formula cells.

Two maps are kept side by side:

- ``dependencies``: cell -> cells its formula reads
- ``dependents``: cell -> cells whose formulas read it (reverse edges)

Both are ordered sets (dicts with ``None`` values) so neighbours come back
in insertion order.  Only :func:`link` and :func:`unlink` mutate them.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Iterable

from gridcalc.formulas.errors import CircularReferenceError

logger = logging.getLogger(__name__)

_Adjacency = dict[str, dict[str, None]]


@dataclass(frozen=True)
class GraphStats:
    """Size of the graph: cells owning dependencies and total forward edges."""

    total_cells: int
    total_dependencies: int


# ---------------------------------------------------------------------------
# Paired mutation
# ---------------------------------------------------------------------------


def link(dependencies: _Adjacency, dependents: _Adjacency, dependent: str, dependency: str) -> None:
    """Add the edge ``dependent -> dependency`` to both maps (idempotent)."""
    dependencies.setdefault(dependent, {})[dependency] = None
    dependents.setdefault(dependency, {})[dependent] = None


def unlink(dependencies: _Adjacency, dependents: _Adjacency, dependent: str) -> None:
    """Remove every forward edge of *dependent* and the matching reverse edges."""
    for dependency in dependencies.pop(dependent, {}):
        back = dependents.get(dependency)
        if back is None:
            continue
        back.pop(dependent, None)
        if not back:
            del dependents[dependency]


# ---------------------------------------------------------------------------
# DependencyGraph
# ---------------------------------------------------------------------------


class DependencyGraph:
    """Tracks which formula cells read which cells.

    Parameters
    ----------
    max_visits : int | None
        Upper bound on cells visited by one transitive traversal.  A
        correct graph never reaches it; it stops runaway propagation if a
        cycle was ever registered.
    """

    __slots__ = ("_dependencies", "_dependents", "max_visits")

    def __init__(self, max_visits: int | None = None) -> None:
        self._dependencies: _Adjacency = {}
        self._dependents: _Adjacency = {}
        self.max_visits = max_visits

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_dependency(self, dependent: str, dependency: str) -> None:
        """Register that *dependent*'s formula reads *dependency*."""
        link(self._dependencies, self._dependents, dependent, dependency)

    def add_dependencies(self, dependent: str, dependencies: Iterable[str]) -> None:
        for dependency in dependencies:
            link(self._dependencies, self._dependents, dependent, dependency)

    def remove_all_dependencies(self, cell: str) -> None:
        """Detach *cell* from everything it reads."""
        unlink(self._dependencies, self._dependents, cell)

    def clear(self) -> None:
        self._dependencies.clear()
        self._dependents.clear()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_dependencies(self, cell: str) -> list[str]:
        """Cells *cell* reads directly, in insertion order."""
        return list(self._dependencies.get(cell, ()))

    def get_dependents(self, cell: str) -> list[str]:
        """Cells that read *cell* directly, in insertion order."""
        return list(self._dependents.get(cell, ()))

    def get_all_dependents(self, cell: str) -> list[str]:
        """All cells downstream of *cell*, in depth-first discovery order.

        Each cell appears once; *cell* itself is never included.
        """
        limit = self.max_visits
        result: list[str] = []
        seen: set[str] = {cell}
        stack = [iter(self.get_dependents(cell))]

        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                continue
            if nxt in seen:
                continue
            seen.add(nxt)
            result.append(nxt)
            if limit is not None and len(result) >= limit:
                logger.warning(
                    "Dependent traversal from %s stopped after %d cells", cell, limit
                )
                break
            stack.append(iter(self.get_dependents(nxt)))

        return result

    def recalculation_order(self, cell: str) -> list[str]:
        """Transitive dependents of *cell* ordered so inputs precede readers.

        Kahn's algorithm restricted to the affected cells; ties keep
        discovery order.  Cells left over (only possible if a cycle was
        registered) are appended in discovery order.
        """
        affected = self.get_all_dependents(cell)
        members = set(affected)
        in_degree = {
            c: sum(1 for d in self._dependencies.get(c, ()) if d in members)
            for c in affected
        }

        queue: deque[str] = deque(c for c in affected if in_degree[c] == 0)
        order: list[str] = []
        while queue:
            current = queue.popleft()
            order.append(current)
            for dep in self._dependents.get(current, ()):
                if dep in members:
                    in_degree[dep] -= 1
                    if in_degree[dep] == 0:
                        queue.append(dep)

        if len(order) != len(affected):
            placed = set(order)
            order.extend(c for c in affected if c not in placed)
        return order

    def check_circular_reference(
        self, cell: str, dependencies: Iterable[str]
    ) -> CircularReferenceError | None:
        """Would making *cell* read *dependencies* close a cycle?

        The candidate edges are overlaid on the current graph for the
        duration of the check; the graph itself is never modified.
        Returns the error with the cycle path, or ``None``.
        """
        candidate = list(dict.fromkeys(dependencies))

        def deps_of(node: str) -> list[str]:
            if node == cell:
                return candidate
            return list(self._dependencies.get(node, ()))

        visited: set[str] = {cell}
        on_stack: set[str] = {cell}
        path: list[str] = [cell]
        stack = [iter(deps_of(cell))]

        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                on_stack.discard(path.pop())
                continue
            if nxt in on_stack:
                start = path.index(nxt)
                return CircularReferenceError(path[start:] + [nxt])
            if nxt in visited:
                continue
            visited.add(nxt)
            on_stack.add(nxt)
            path.append(nxt)
            stack.append(iter(deps_of(nxt)))

        return None

    def get_stats(self) -> GraphStats:
        return GraphStats(
            total_cells=sum(1 for deps in self._dependencies.values() if deps),
            total_dependencies=sum(len(deps) for deps in self._dependencies.values()),
        )
