"""Cell formula parsing, validation and evaluation.

Public API::

    from gridcalc.formulas import parse, validate, evaluate, extract_references
"""

from gridcalc.formulas.errors import (
    CellAddressError,
    CircularReferenceError,
    ErrorCode,
    FormulaError,
    FormulaEvalError,
    FormulaParseError,
    FormulaRefError,
    is_sentinel,
)
from gridcalc.formulas.evaluator import FUNCTIONS, EvaluationResult, evaluate
from gridcalc.formulas.parser import (
    ParsedFormula,
    extract_references,
    is_formula,
    is_valid_reference,
    parse,
    tokenize,
    validate,
)

__all__ = [
    "CellAddressError",
    "CircularReferenceError",
    "ErrorCode",
    "EvaluationResult",
    "FUNCTIONS",
    "FormulaError",
    "FormulaEvalError",
    "FormulaParseError",
    "FormulaRefError",
    "ParsedFormula",
    "evaluate",
    "extract_references",
    "is_formula",
    "is_sentinel",
    "is_valid_reference",
    "parse",
    "tokenize",
    "validate",
]
