"""Spreadsheet formula parsing and evaluation.

Public API::

    from gridbook.formulas import parse_formula, evaluate_formula
"""

from gridbook.formulas.errors import (
    ENGINE_ERRORS,
    CellCycleError,
    FormulaError,
    FormulaFunctionError,
    FormulaParseError,
    FormulaRefError,
    FormulaValueError,
    NamedExpressionError,
)
from gridbook.formulas.evaluator import evaluate_formula
from gridbook.formulas.parser import (
    extract_functions,
    extract_names,
    extract_references,
    parse_formula,
)

__all__ = [
    "ENGINE_ERRORS",
    "CellCycleError",
    "FormulaError",
    "FormulaFunctionError",
    "FormulaParseError",
    "FormulaRefError",
    "FormulaValueError",
    "NamedExpressionError",
    "evaluate_formula",
    "extract_functions",
    "extract_names",
    "extract_references",
    "parse_formula",
]
