"""Aggregate and numeric formula functions: SUM, AVERAGE, COUNTIF, ROUND, ..."""

from __future__ import annotations

import re
from typing import Any, Callable

from gridbook.formulas.errors import FormulaDivisionError, FormulaFunctionError
from gridbook.formulas.evaluator import flatten, scalar, to_number


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _numbers(args: list) -> list[int | float]:
    """Numbers from the arguments.

    Values inside ranges count only when they are numbers; direct
    arguments are coerced (so ``SUM("3", 4)`` is 7).
    """
    out: list[int | float] = []
    for a in args:
        if isinstance(a, list):
            out.extend(v for v in flatten([a]) if _is_number(v))
        else:
            out.append(to_number(a))
    return out


def _fn_sum(args: list) -> float:
    if len(args) < 1:
        raise FormulaFunctionError("SUM", "SUM requires at least 1 argument")
    return sum(_numbers(args))


def _fn_average(args: list) -> float:
    if len(args) < 1:
        raise FormulaFunctionError("AVERAGE", "AVERAGE requires at least 1 argument")
    nums = _numbers(args)
    if not nums:
        raise FormulaDivisionError("AVERAGE of no numbers")
    return sum(nums) / len(nums)


def _fn_min(args: list) -> Any:
    if len(args) < 1:
        raise FormulaFunctionError("MIN", "MIN requires at least 1 argument")
    nums = _numbers(args)
    return min(nums) if nums else 0


def _fn_max(args: list) -> Any:
    if len(args) < 1:
        raise FormulaFunctionError("MAX", "MAX requires at least 1 argument")
    nums = _numbers(args)
    return max(nums) if nums else 0


def _fn_count(args: list) -> int:
    """COUNT(...): number of numeric values."""
    return sum(1 for v in flatten(args) if _is_number(v))


def _fn_counta(args: list) -> int:
    """COUNTA(...): number of non-empty values."""
    return sum(1 for v in flatten(args) if v is not None and v != "")


def _fn_abs(args: list) -> float:
    if len(args) != 1:
        raise FormulaFunctionError("ABS", "ABS requires exactly 1 argument")
    return abs(to_number(args[0]))


def _fn_round(args: list) -> float:
    if len(args) < 1 or len(args) > 2:
        raise FormulaFunctionError("ROUND", "ROUND requires 1-2 arguments")
    digits = int(to_number(args[1])) if len(args) == 2 else 0
    return round(to_number(args[0]), digits)


# ---------- Criteria (COUNTIF / SUMIF) ----------

_CRITERIA_RE = re.compile(r"^(<=|>=|<>|<|>|=)?(.*)$", re.DOTALL)


def make_criteria(criteria: Any) -> Callable[[Any], bool]:
    """Build a predicate from a COUNTIF-style criteria value.

    ``"x"`` matches text case-insensitively, ``">5"`` / ``"<>0"`` compare
    numbers, and a bare number matches equal numbers.
    """
    criteria = scalar(criteria)
    if isinstance(criteria, str):
        m = _CRITERIA_RE.match(criteria)
        op = m.group(1) or "="
        operand: Any = m.group(2)
        try:
            operand = float(operand) if operand.strip() else operand
        except ValueError:
            pass
    else:
        op, operand = "=", criteria

    def _predicate(value: Any) -> bool:
        if isinstance(operand, (int, float)) and not isinstance(operand, bool):
            if _is_number(value):
                num = value
            elif isinstance(value, str):
                try:
                    num = float(value)
                except ValueError:
                    return op == "<>"
            else:
                return op == "<>"
            return {
                "=": num == operand,
                "<>": num != operand,
                "<": num < operand,
                ">": num > operand,
                "<=": num <= operand,
                ">=": num >= operand,
            }[op]
        text = "" if value is None else str(value).lower()
        target = str(operand).lower()
        if op == "=":
            return text == target
        if op == "<>":
            return text != target
        return {
            "<": text < target,
            ">": text > target,
            "<=": text <= target,
            ">=": text >= target,
        }[op]

    return _predicate


def _fn_countif(args: list) -> int:
    """COUNTIF(range, criteria)."""
    if len(args) != 2:
        raise FormulaFunctionError("COUNTIF", "COUNTIF requires exactly 2 arguments (range, criteria)")
    predicate = make_criteria(args[1])
    return sum(1 for v in flatten([args[0]]) if predicate(v))


def _fn_sumif(args: list) -> float:
    """SUMIF(range, criteria [, sum_range])."""
    if len(args) not in (2, 3):
        raise FormulaFunctionError("SUMIF", "SUMIF requires 2-3 arguments (range, criteria [, sum_range])")
    predicate = make_criteria(args[1])
    tested = flatten([args[0]])
    summed = flatten([args[2]]) if len(args) == 3 else tested
    total = 0
    for test_value, sum_value in zip(tested, summed):
        if predicate(test_value) and _is_number(sum_value):
            total += sum_value
    return total


MATH_FUNCTIONS: dict[str, Any] = {
    "SUM": _fn_sum,
    "AVERAGE": _fn_average,
    "MIN": _fn_min,
    "MAX": _fn_max,
    "COUNT": _fn_count,
    "COUNTA": _fn_counta,
    "ABS": _fn_abs,
    "ROUND": _fn_round,
    "COUNTIF": _fn_countif,
    "SUMIF": _fn_sumif,
}
