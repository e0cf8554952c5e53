"""Logical formula functions: IF, IFERROR, ISERROR, AND, OR, NOT, ISBLANK, ISNUMBER.

IF, IFERROR and ISERROR are lazy: they receive unevaluated AST nodes and
an ``evaluate`` callback so the branch that is not taken never runs.
"""

from __future__ import annotations

from typing import Any, Callable

from gridbook.formulas.errors import ENGINE_ERRORS, FormulaFunctionError
from gridbook.formulas.evaluator import flatten, scalar, to_bool

Evaluate = Callable[[Any], Any]


def _fn_if(raw_args: list, evaluate: Evaluate) -> Any:
    """IF(condition, then_value [, else_value])."""
    if len(raw_args) < 2 or len(raw_args) > 3:
        raise FormulaFunctionError("IF", "IF requires 2-3 arguments")
    if to_bool(evaluate(raw_args[0])):
        return evaluate(raw_args[1])
    if len(raw_args) == 3:
        return evaluate(raw_args[2])
    return False


def _fn_iferror(raw_args: list, evaluate: Evaluate) -> Any:
    """IFERROR(value, fallback): fallback when the first argument fails."""
    if len(raw_args) != 2:
        raise FormulaFunctionError("IFERROR", "IFERROR requires exactly 2 arguments")
    try:
        return evaluate(raw_args[0])
    except ENGINE_ERRORS:
        return evaluate(raw_args[1])


def _fn_iserror(raw_args: list, evaluate: Evaluate) -> bool:
    if len(raw_args) != 1:
        raise FormulaFunctionError("ISERROR", "ISERROR requires exactly 1 argument")
    try:
        evaluate(raw_args[0])
        return False
    except ENGINE_ERRORS:
        return True


def _fn_and(args: list) -> bool:
    """AND(val1, val2, ...): TRUE if all arguments are truthy."""
    if len(args) < 1:
        raise FormulaFunctionError("AND", "AND requires at least 1 argument")
    return all(to_bool(v) for v in flatten(args) if v is not None)


def _fn_or(args: list) -> bool:
    """OR(val1, val2, ...): TRUE if any argument is truthy."""
    if len(args) < 1:
        raise FormulaFunctionError("OR", "OR requires at least 1 argument")
    return any(to_bool(v) for v in flatten(args) if v is not None)


def _fn_not(args: list) -> bool:
    if len(args) != 1:
        raise FormulaFunctionError("NOT", "NOT requires exactly 1 argument")
    return not to_bool(args[0])


def _fn_isblank(args: list) -> bool:
    if len(args) != 1:
        raise FormulaFunctionError("ISBLANK", "ISBLANK requires exactly 1 argument")
    return scalar(args[0]) is None


def _fn_isnumber(args: list) -> bool:
    if len(args) != 1:
        raise FormulaFunctionError("ISNUMBER", "ISNUMBER requires exactly 1 argument")
    value = scalar(args[0])
    return isinstance(value, (int, float)) and not isinstance(value, bool)


LOGICAL_FUNCTIONS: dict[str, Any] = {
    "AND": _fn_and,
    "OR": _fn_or,
    "NOT": _fn_not,
    "ISBLANK": _fn_isblank,
    "ISNUMBER": _fn_isnumber,
}

LOGICAL_LAZY_FUNCTIONS: dict[str, Any] = {
    "IF": _fn_if,
    "IFERROR": _fn_iferror,
    "ISERROR": _fn_iserror,
}
