"""Lookup formula functions over ranges: VLOOKUP, HLOOKUP, INDEX, MATCH."""

from __future__ import annotations

from typing import Any

from gridbook.formulas.errors import (
    FormulaFunctionError,
    FormulaNotFoundError,
    FormulaValueError,
)
from gridbook.formulas.evaluator import scalar, to_bool, to_number


def _as_table(value: Any, func_name: str) -> list[list[Any]]:
    if isinstance(value, list):
        return value
    raise FormulaValueError(f"{func_name}: expected a range")


def _key(value: Any) -> tuple[int, Any]:
    """Sort/compare key: numbers before text, text case-insensitive."""
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (2, value)
    if isinstance(value, (int, float)):
        return (0, value)
    return (1, str(value).lower())


def _find(needle: Any, haystack: list[Any], mode: int, func_name: str) -> int:
    """0-based position of *needle* in *haystack*.

    mode 0: exact match.  mode 1: largest value <= needle (ascending data).
    mode -1: smallest value >= needle (descending data).
    """
    target = _key(scalar(needle))
    if mode == 0:
        for i, v in enumerate(haystack):
            if _key(v) == target:
                return i
        raise FormulaNotFoundError(f"{func_name}: value {needle!r} not found")

    found = -1
    for i, v in enumerate(haystack):
        if v is None:
            continue
        k = _key(v)
        if k[0] != target[0]:
            continue
        if mode > 0:
            if k[1] > target[1]:
                break
            found = i
        else:
            if k[1] < target[1]:
                break
            found = i
    if found < 0:
        raise FormulaNotFoundError(f"{func_name}: no match for {needle!r}")
    return found


def _fn_vlookup(args: list) -> Any:
    """VLOOKUP(key, range, col_index [, approximate]): match in the first column."""
    if len(args) < 3 or len(args) > 4:
        raise FormulaFunctionError("VLOOKUP", "VLOOKUP requires 3-4 arguments")
    table = _as_table(args[1], "VLOOKUP")
    col_index = int(to_number(args[2]))
    if col_index < 1 or col_index > len(table[0]):
        raise FormulaValueError(f"VLOOKUP: column index {col_index} out of range")
    approximate = to_bool(args[3]) if len(args) == 4 else True
    row = _find(args[0], [r[0] for r in table], 1 if approximate else 0, "VLOOKUP")
    return table[row][col_index - 1]


def _fn_hlookup(args: list) -> Any:
    """HLOOKUP(key, range, row_index [, approximate]): match in the first row."""
    if len(args) < 3 or len(args) > 4:
        raise FormulaFunctionError("HLOOKUP", "HLOOKUP requires 3-4 arguments")
    table = _as_table(args[1], "HLOOKUP")
    row_index = int(to_number(args[2]))
    if row_index < 1 or row_index > len(table):
        raise FormulaValueError(f"HLOOKUP: row index {row_index} out of range")
    approximate = to_bool(args[3]) if len(args) == 4 else True
    col = _find(args[0], list(table[0]), 1 if approximate else 0, "HLOOKUP")
    return table[row_index - 1][col]


def _fn_index(args: list) -> Any:
    """INDEX(range, row [, col]): 1-based; a single row or column takes one index."""
    if len(args) < 2 or len(args) > 3:
        raise FormulaFunctionError("INDEX", "INDEX requires 2-3 arguments (range, row [, col])")
    table = _as_table(args[0], "INDEX")
    first = int(to_number(args[1]))
    if len(args) == 3:
        row_num, col_num = first, int(to_number(args[2]))
    elif len(table) == 1:
        row_num, col_num = 1, first
    else:
        row_num, col_num = first, 1
    if not 1 <= row_num <= len(table) or not 1 <= col_num <= len(table[0]):
        raise FormulaValueError(f"INDEX: position ({row_num}, {col_num}) out of range")
    return table[row_num - 1][col_num - 1]


def _fn_match(args: list) -> int:
    """MATCH(value, range [, match_type]): 1-based position in a row or column."""
    if len(args) < 2 or len(args) > 3:
        raise FormulaFunctionError("MATCH", "MATCH requires 2-3 arguments (value, range [, type])")
    table = _as_table(args[1], "MATCH")
    if len(table) == 1:
        values = list(table[0])
    elif all(len(r) == 1 for r in table):
        values = [r[0] for r in table]
    else:
        raise FormulaValueError("MATCH: range must be a single row or column")
    mode = int(to_number(args[2])) if len(args) == 3 else 1
    mode = 0 if mode == 0 else (1 if mode > 0 else -1)
    return _find(args[0], values, mode, "MATCH") + 1


LOOKUP_FUNCTIONS: dict[str, Any] = {
    "VLOOKUP": _fn_vlookup,
    "HLOOKUP": _fn_hlookup,
    "INDEX": _fn_index,
    "MATCH": _fn_match,
}
