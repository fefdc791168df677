"""Reference extraction, tokenizing and validation for cell formulas.

A formula is any text starting with ``=``.  Supported syntax:

- Cell references: ``A1`` (one upper-case letter + row number)
- Ranges: ``A1:A5`` (same column) or ``A1:E1`` (same row)
- Aggregate calls: ``SUM(...)``, ``AVERAGE(...)``, ``MIN(...)``,
  ``MAX(...)``, ``COUNT(...)``
- Arithmetic: ``+ - * /``, unary minus and parentheses

The arithmetic grammar below is applied only after every reference and
function call has been replaced by a number (see ``evaluator``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from lark import Lark, Tree

from gridcalc.address import DEFAULT_SPACE, AddressSpace, expand_range
from gridcalc.formulas.errors import FormulaError, FormulaParseError, FormulaRefError

FORMULA_MARKER = "="

# A range is matched before a bare reference so its endpoints are not
# picked up twice.
_REF_OR_RANGE_RE = re.compile(r"([A-Z][0-9]+)(?:\s*:\s*([A-Z][0-9]+))?")

_TOKEN_RE = re.compile(r"\s*([-+*/(),]|[^-+*/(),\s]+)")

# Ranges spanning more cells than this are not expanded; only their
# endpoints are reported (which then fail validation).
MAX_RANGE_CELLS = 10_000

# LALR(1) grammar for the substituted arithmetic expression.
# Operator precedence (lowest to highest):
#   1. Addition/subtraction: + -
#   2. Multiplication/division: * /
#   3. Unary minus
#   4. Atoms: number, parenthesized expr
GRAMMAR = r"""
?start: sum

?sum: product
    | sum "+" product   -> add
    | sum "-" product   -> sub

?product: unary
    | product "*" unary -> mul
    | product "/" unary -> div

?unary: atom
    | "-" unary         -> neg

?atom: NUMBER           -> number
    | "(" sum ")"

NUMBER: /\d+(\.\d*)?|\.\d+/

%ignore " "
"""

_parser = Lark(GRAMMAR, parser="lalr", start="start")


@dataclass(frozen=True)
class ParsedFormula:
    """Tokens and dependencies of a cell input."""

    tokens: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)


def is_formula(text: object) -> bool:
    """True if *text* is a string carrying the leading formula marker."""
    return isinstance(text, str) and text.startswith(FORMULA_MARKER)


def _strip_marker(text: str) -> str:
    return text[len(FORMULA_MARKER):] if is_formula(text) else text


# ---------------------------------------------------------------------------
# Reference extraction
# ---------------------------------------------------------------------------


def range_members(start: str, end: str) -> list[str]:
    """Cells named by ``start:end`` as far as reference tracking is concerned."""
    if abs(int(start[1:]) - int(end[1:])) >= MAX_RANGE_CELLS:
        return [start, end]
    members = expand_range(start, end)
    # Unsupported (rectangular) ranges contribute their endpoints only.
    return members or [start, end]


def extract_references(text: str) -> list[str]:
    """Extract every cell reference from *text*, ranges expanded.

    Returns an ordered set: first-occurrence order, duplicates collapsed.
    Range members appear in ascending order at the position of the range.
    A leading formula marker is ignored.  References are not checked
    against the address space here; see :func:`is_valid_reference`.

    Examples:
        ``extract_references("=A1+B2")`` -> ``["A1", "B2"]``
        ``extract_references("=SUM(A1:A3)+A1")`` -> ``["A1", "A2", "A3"]``
    """
    refs: list[str] = []
    seen: set[str] = set()
    for m in _REF_OR_RANGE_RE.finditer(_strip_marker(text)):
        start, end = m.group(1), m.group(2)
        found = range_members(start, end) if end else [start]
        for ref in found:
            if ref not in seen:
                seen.add(ref)
                refs.append(ref)
    return refs


def is_valid_reference(ref: str, space: AddressSpace = DEFAULT_SPACE) -> bool:
    """True iff *ref*'s column and row both fall within *space*."""
    return space.contains(ref)


# ---------------------------------------------------------------------------
# Tokenizing / parsing
# ---------------------------------------------------------------------------


def tokenize(expression: str) -> list[str]:
    """Split an expression into operators ``+ - * / ( ) ,`` and operands.

    Operands are maximal runs of other non-space characters: numbers,
    references, ranges and function names.
    """
    return _TOKEN_RE.findall(expression)


def parse(text: str) -> ParsedFormula:
    """Parse a cell input into tokens and dependencies.

    Non-formula input is returned as a single opaque token with no
    dependencies.
    """
    if not is_formula(text):
        return ParsedFormula(tokens=[text], dependencies=[])
    expression = _strip_marker(text)
    return ParsedFormula(
        tokens=tokenize(expression),
        dependencies=extract_references(expression),
    )


def parse_expression(expression: str) -> Tree:
    """Parse a fully substituted arithmetic expression into a Lark Tree.

    Raises:
        FormulaParseError: If the expression has invalid syntax.
    """
    try:
        return _parser.parse(expression)
    except Exception as exc:
        pos = getattr(exc, "column", None)
        raise FormulaParseError(f"Malformed expression: {expression!r}", position=pos) from exc


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate(text: str, space: AddressSpace = DEFAULT_SPACE) -> FormulaError | None:
    """Check a formula's structure and references.

    Returns the first problem found, or ``None``.  Non-formula input is
    always valid.
    """
    if not is_formula(text):
        return None

    expression = _strip_marker(text)
    depth = 0
    for pos, ch in enumerate(expression):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                return FormulaParseError("Unmatched closing parenthesis", position=pos)
    if depth != 0:
        return FormulaParseError("Unmatched opening parenthesis")

    for ref in extract_references(expression):
        if not is_valid_reference(ref, space):
            return FormulaRefError(ref)

    return None
