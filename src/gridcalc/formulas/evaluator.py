"""Formula evaluation against a cell value accessor.

Evaluation is substitution based: aggregate calls are computed and replaced
by their numeric result, remaining cell references are replaced by their
values, and the resulting arithmetic expression is parsed with the grammar
in ``parser`` and walked.  Every failure is reported as a sentinel value in
the :class:`EvaluationResult`; nothing is raised to the caller.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from lark import Token, Tree

from gridcalc.address import DEFAULT_SPACE, AddressSpace, expand_range
from gridcalc.formulas.errors import (
    ErrorCode,
    FormulaEvalError,
    FormulaParseError,
    FormulaRefError,
)
from gridcalc.formulas.parser import (
    MAX_RANGE_CELLS,
    extract_references,
    is_formula,
    is_valid_reference,
    parse_expression,
)

logger = logging.getLogger(__name__)

CellValue = Any  # int | float | str | None
ValueAccessor = Callable[[str], CellValue]

ROUND_DIGITS = 6

_FUNC_RE = re.compile(r"([A-Za-z]+)\s*\(")
_RANGE_ARG_RE = re.compile(r"^([A-Z][0-9]+)\s*:\s*([A-Z][0-9]+)$")
_CELL_ARG_RE = re.compile(r"^[A-Z][0-9]+$")
_REF_RE = re.compile(r"[A-Z][0-9]+")
_ARITHMETIC_RE = re.compile(r"^[0-9+\-*/.() ]+$")
_NUMERIC_RE = re.compile(r"^\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?\s*$")


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one cell input."""

    value: CellValue
    error: str | None = None
    dependencies: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def to_number(value: CellValue) -> int | float | None:
    """Coerce a cell value to a number, or ``None`` if it is not numeric.

    Numeric strings (``"42"``, ``" 3.5 "``) are accepted; booleans, error
    sentinels and other text are not.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str) and _NUMERIC_RE.match(value):
        num = float(value)
        return num if math.isfinite(num) else None
    return None


def _normalize(result: int | float) -> int | float:
    """Reject non-finite results and round away floating-point noise."""
    try:
        as_float = float(result)
    except OverflowError:
        raise FormulaEvalError(ErrorCode.NUM) from None
    if not math.isfinite(as_float):
        raise FormulaEvalError(ErrorCode.NUM)
    if isinstance(result, int):
        return result
    rounded = round(result, ROUND_DIGITS)
    if rounded.is_integer():
        return int(rounded)
    return rounded


def format_number(value: int | float) -> str:
    """Render a number as arithmetic-expression text (no exponent form)."""
    if isinstance(value, float):
        if not math.isfinite(value):
            raise FormulaEvalError(ErrorCode.NUM)
        text = repr(value)
        if "e" in text or "E" in text:
            text = f"{value:.20f}".rstrip("0").rstrip(".")
    else:
        text = str(value)
    return f"({text})" if text.startswith("-") else text


# ---------------------------------------------------------------------------
# Aggregate functions
# ---------------------------------------------------------------------------


def _fn_sum(args: list[int | float]) -> int | float:
    return sum(args)


def _fn_average(args: list[int | float]) -> int | float:
    return sum(args) / len(args) if args else 0


def _fn_min(args: list[int | float]) -> int | float:
    return min(args) if args else 0


def _fn_max(args: list[int | float]) -> int | float:
    return max(args) if args else 0


def _fn_count(args: list[int | float]) -> int:
    return len(args)


FUNCTIONS: dict[str, Callable[[list[int | float]], int | float]] = {
    "SUM": _fn_sum,
    "AVERAGE": _fn_average,
    "MIN": _fn_min,
    "MAX": _fn_max,
    "COUNT": _fn_count,
}


def _find_matching_paren(expr: str, start: int) -> int:
    """Index of the ``')'`` matching the ``'('`` at *expr[start]*, or -1."""
    depth = 0
    for i in range(start, len(expr)):
        if expr[i] == "(":
            depth += 1
        elif expr[i] == ")":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _split_top_level_args(args_str: str) -> list[str]:
    """Split on commas at paren depth 0."""
    args: list[str] = []
    depth = 0
    current = ""
    for ch in args_str:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "," and depth == 0:
            args.append(current)
            current = ""
            continue
        current += ch
    args.append(current)
    return args


def _aggregate_range(start: str, end: str) -> list[str]:
    """Cells an aggregate reads for ``start:end``.

    Rectangular and oversized ranges read nothing.
    """
    if abs(int(start[1:]) - int(end[1:])) >= MAX_RANGE_CELLS:
        return []
    return expand_range(start, end)


def _collect_numbers(args_str: str, get_value: ValueAccessor) -> list[int | float]:
    """Flatten function arguments into a numeric list.

    Ranges expand to their member cells and single references resolve to
    their values; members that are missing or non-numeric are skipped.
    Any other argument is evaluated as an expression.
    """
    numbers: list[int | float] = []
    for raw in _split_top_level_args(args_str):
        arg = raw.strip()
        if not arg:
            continue
        m = _RANGE_ARG_RE.match(arg)
        if m:
            cells = _aggregate_range(m.group(1), m.group(2))
        elif _CELL_ARG_RE.match(arg):
            cells = [arg]
        else:
            numbers.append(_evaluate_expression(arg, get_value))
            continue
        for cell in cells:
            num = to_number(get_value(cell))
            if num is not None:
                numbers.append(num)
    return numbers


def _reduce_functions(expr: str, get_value: ValueAccessor) -> str:
    """Replace every top-level ``NAME(...)`` call with its numeric result."""
    out: list[str] = []
    pos = 0
    while True:
        m = _FUNC_RE.search(expr, pos)
        if m is None:
            break
        open_idx = m.end() - 1
        close_idx = _find_matching_paren(expr, open_idx)
        if close_idx < 0:
            raise FormulaEvalError(ErrorCode.ERROR, "Unmatched opening parenthesis")
        name = m.group(1).upper()
        fn = FUNCTIONS.get(name)
        if fn is None:
            raise FormulaEvalError(ErrorCode.NAME, f"Unknown function: {name}")
        args = _collect_numbers(expr[open_idx + 1 : close_idx], get_value)
        try:
            result = _normalize(fn(args))
        except OverflowError:
            raise FormulaEvalError(ErrorCode.NUM) from None
        out.append(expr[pos : m.start()])
        out.append(format_number(result))
        pos = close_idx + 1
    out.append(expr[pos:])
    return "".join(out)


# ---------------------------------------------------------------------------
# Reference substitution
# ---------------------------------------------------------------------------


def _substitute_references(expr: str, get_value: ValueAccessor) -> str:
    """Replace every reference occurrence in *expr* with its value.

    Missing cells read as zero.  Text that does not parse as a number,
    including upstream error sentinels, fails with ``#VALUE!``.
    """
    replacements: dict[str, str] = {}
    for ref in extract_references(expr):
        value = get_value(ref)
        if value is None:
            replacements[ref] = "0"
            continue
        num = to_number(value)
        if num is None:
            raise FormulaEvalError(
                ErrorCode.VALUE, f"Non-numeric value in cell {ref}: {value}"
            )
        replacements[ref] = format_number(num)
    if not replacements:
        return expr
    return _REF_RE.sub(lambda m: replacements.get(m.group(0), m.group(0)), expr)


# ---------------------------------------------------------------------------
# Arithmetic evaluation
# ---------------------------------------------------------------------------


def _eval_tree(node: Tree | Token) -> int | float:
    """Recursively evaluate an arithmetic tree node."""
    if isinstance(node, Token):
        return _parse_number(node)

    rule = node.data
    if rule == "number":
        return _parse_number(node.children[0])
    if rule == "neg":
        return -_eval_tree(node.children[0])

    left = _eval_tree(node.children[0])
    right = _eval_tree(node.children[1])
    if rule == "add":
        return left + right
    if rule == "sub":
        return left - right
    if rule == "mul":
        return left * right
    if rule == "div":
        if right == 0:
            raise FormulaEvalError(ErrorCode.NUM, "Division by zero")
        return left / right
    raise FormulaEvalError(ErrorCode.ERROR, f"Unknown node type: {rule}")


def _parse_number(token: Token) -> int | float:
    s = str(token)
    if "." in s:
        return float(s)
    return int(s)


def evaluate_arithmetic(expression: str) -> int | float:
    """Evaluate a substituted expression of numbers, ``+ - * /`` and parens.

    Raises:
        FormulaEvalError: ``#VALUE!`` for disallowed characters, ``#ERROR!``
            for malformed syntax, ``#NUM!`` for non-finite results.
    """
    if not _ARITHMETIC_RE.match(expression):
        raise FormulaEvalError(ErrorCode.VALUE)
    try:
        tree = parse_expression(expression)
    except FormulaParseError as exc:
        raise FormulaEvalError(ErrorCode.ERROR) from exc
    try:
        result = _eval_tree(tree)
    except OverflowError:
        raise FormulaEvalError(ErrorCode.NUM) from None
    return _normalize(result)


def _evaluate_expression(expression: str, get_value: ValueAccessor) -> int | float:
    reduced = _reduce_functions(expression, get_value)
    substituted = _substitute_references(reduced, get_value)
    return evaluate_arithmetic(substituted)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def evaluate(
    text: str,
    get_value: ValueAccessor,
    space: AddressSpace = DEFAULT_SPACE,
) -> EvaluationResult:
    """Evaluate a cell input.

    Args:
        text: Literal text or a formula starting with ``=``.
        get_value: Returns the current value of a referenced cell, or
            ``None`` for cells that hold nothing.
        space: Address space that references must fall within.

    Returns:
        The computed value, or a sentinel value plus a diagnostic in
        ``error``.  ``dependencies`` lists the formula's references.
    """
    if not is_formula(text):
        return EvaluationResult(value=text, dependencies=[])

    expression = text[1:]
    dependencies = extract_references(expression)

    for dep in dependencies:
        if not is_valid_reference(dep, space):
            err = FormulaRefError(dep)
            return EvaluationResult(value=ErrorCode.REF.value, error=err.message, dependencies=[])

    try:
        value = _evaluate_expression(expression, get_value)
    except FormulaEvalError as exc:
        logger.debug("Formula %r evaluated to %s: %s", text, exc.code.value, exc.message)
        return EvaluationResult(value=exc.code.value, error=exc.message, dependencies=dependencies)
    except Exception as exc:
        logger.debug("Unexpected failure evaluating %r", text, exc_info=True)
        return EvaluationResult(
            value=ErrorCode.ERROR.value,
            error=str(exc) or ErrorCode.ERROR.value,
            dependencies=dependencies,
        )

    return EvaluationResult(value=value, dependencies=dependencies)
