"""Cell address space: identifier parsing, formatting and range expansion.

Identifiers are a single upper-case column letter followed by a 1-based
row number (``A1`` .. ``J5`` for the default 10 x 5 grid).
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_ADDR_RE = re.compile(r"^([A-Z])([1-9]\d*)$")

MAX_COLUMNS = 26


# ---------------------------------------------------------------------------
# Column / address helpers
# ---------------------------------------------------------------------------


def col_letter_to_index(letter: str) -> int:
    """Convert a column letter to a 0-based index.  A=0, B=1, ..., Z=25."""
    return ord(letter) - ord("A")


def index_to_col_letter(idx: int) -> str:
    """Convert a 0-based column index to its letter.  0=A, 25=Z."""
    return chr(ord("A") + idx)


def parse_addr(addr: str) -> tuple[int, int]:
    """Parse 'A1' -> (row_0based, col_0based).

    Raises ValueError on a malformed address.  Bounds are not checked here;
    use :meth:`AddressSpace.contains` for that.
    """
    m = _ADDR_RE.match(addr)
    if not m:
        raise ValueError(f"Invalid cell address: {addr!r}")
    return int(m.group(2)) - 1, col_letter_to_index(m.group(1))


def make_addr(row: int, col: int) -> str:
    """Build a cell address from 0-based row/col."""
    return f"{index_to_col_letter(col)}{row + 1}"


def expand_range(start: str, end: str) -> list[str]:
    """Expand ``start:end`` into its member addresses.

    Same column -> vertical span over the inclusive row range, same row ->
    horizontal span over the inclusive column range.  The direction of the
    endpoints does not matter.  Rectangular (neither same-column nor
    same-row) ranges are not supported and expand to nothing, as do
    malformed endpoints.

    Examples:
        ``expand_range("A3", "A1")`` -> ``["A1", "A2", "A3"]``
        ``expand_range("A1", "C1")`` -> ``["A1", "B1", "C1"]``
    """
    try:
        r0, c0 = parse_addr(start)
        r1, c1 = parse_addr(end)
    except ValueError:
        return []

    if c0 == c1:
        return [make_addr(r, c0) for r in range(min(r0, r1), max(r0, r1) + 1)]
    if r0 == r1:
        return [make_addr(r0, c) for c in range(min(c0, c1), max(c0, c1) + 1)]
    return []


# ---------------------------------------------------------------------------
# AddressSpace
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AddressSpace:
    """A bounded grid of ``columns`` x ``rows`` addressable cells."""

    columns: int = 10
    rows: int = 5

    def __post_init__(self) -> None:
        if not 1 <= self.columns <= MAX_COLUMNS:
            raise ValueError(
                f"columns must be between 1 and {MAX_COLUMNS}, got {self.columns}"
            )
        if self.rows < 1:
            raise ValueError(f"rows must be at least 1, got {self.rows}")

    @property
    def size(self) -> int:
        """Total number of addressable cells."""
        return self.columns * self.rows

    @property
    def column_letters(self) -> list[str]:
        return [index_to_col_letter(i) for i in range(self.columns)]

    def contains(self, addr: object) -> bool:
        """True iff *addr* is a well-formed identifier inside the grid."""
        if not isinstance(addr, str):
            return False
        try:
            row, col = parse_addr(addr)
        except ValueError:
            return False
        return 0 <= row < self.rows and 0 <= col < self.columns

    def cell_id(self, row: int, col: int) -> str:
        """Address of the 0-based (row, col) position.

        Raises ValueError when the position is outside the grid.
        """
        if not (0 <= row < self.rows and 0 <= col < self.columns):
            raise ValueError(f"Invalid cell position: row {row}, col {col}")
        return make_addr(row, col)

    def iter_ids(self) -> list[str]:
        """All addresses in row-major order."""
        return [make_addr(r, c) for r in range(self.rows) for c in range(self.columns)]


DEFAULT_SPACE = AddressSpace()
