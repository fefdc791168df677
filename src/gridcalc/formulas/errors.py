"""Error types for formula parsing, validation and evaluation."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Sentinel values stored in place of a failed formula result."""

    NUM = "#NUM!"
    VALUE = "#VALUE!"
    REF = "#REF!"
    NAME = "#NAME!"
    ERROR = "#ERROR!"


SENTINELS = frozenset(code.value for code in ErrorCode)


def is_sentinel(value: object) -> bool:
    """True if *value* is one of the sentinel error strings."""
    return isinstance(value, str) and value in SENTINELS


class FormulaError(Exception):
    """Base class for all formula-related errors."""

    kind = "formula"


class CellAddressError(FormulaError):
    """Cell identifier outside the addressable grid.

    Attributes:
        ref: The rejected identifier.
    """

    kind = "address"

    def __init__(self, ref: object) -> None:
        self.ref = ref
        super().__init__(f"Invalid cell address: {ref!r}")


class FormulaParseError(FormulaError):
    """Structural problem in a formula (e.g. unbalanced parentheses).

    Attributes:
        position: Character position where the error was detected.
    """

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        self.message = message
        super().__init__(message)


class FormulaRefError(FormulaError):
    """Formula references an identifier outside the grid.

    Attributes:
        invalid_ref: The offending reference.
    """

    kind = "reference"

    def __init__(self, invalid_ref: str) -> None:
        self.invalid_ref = invalid_ref
        self.message = f"Invalid cell reference: {invalid_ref}"
        super().__init__(self.message)


class CircularReferenceError(FormulaError):
    """A write would close a dependency cycle.

    Attributes:
        chain: Cycle path from the repeated cell back to itself, inclusive.
    """

    kind = "circular"

    def __init__(self, chain: list[str]) -> None:
        self.chain = list(chain)
        self.message = f"Circular reference detected: {' → '.join(self.chain)}"
        super().__init__(self.message)


class FormulaEvalError(FormulaError):
    """Evaluation failure carrying the sentinel to store.

    Attributes:
        code: The :class:`ErrorCode` for the cell value.
        message: Human-readable diagnostic.
    """

    kind = "evaluation"

    def __init__(self, code: ErrorCode, message: str | None = None) -> None:
        self.code = code
        self.message = message or code.value
        super().__init__(self.message)
