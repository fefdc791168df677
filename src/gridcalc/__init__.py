"""gridcalc: a reactive calculation engine for a bounded grid of cells."""

__version__ = "0.1.0"

from gridcalc.address import DEFAULT_SPACE, AddressSpace  # noqa: E402
from gridcalc.dependency_graph import DependencyGraph  # noqa: E402
from gridcalc.engine import SpreadsheetEngine  # noqa: E402
from gridcalc.models import Cell, SheetStats, Snapshot  # noqa: E402

__all__ = [
    "AddressSpace",
    "Cell",
    "DEFAULT_SPACE",
    "DependencyGraph",
    "SheetStats",
    "Snapshot",
    "SpreadsheetEngine",
    "__version__",
]
