"""Tree-walking evaluator for parsed formula expressions.

Cell, range and name references are resolved through a
:class:`CellResolver` so the evaluator itself holds no workbook state.
Ranges evaluate to row-major 2D lists; aggregate functions flatten them.
"""

from __future__ import annotations

from typing import Any, Protocol

from lark import Token, Tree

from gridbook.formulas.errors import (
    FormulaDivisionError,
    FormulaError,
    FormulaFunctionError,
    FormulaValueError,
)
from gridbook.formulas.parser import (
    parse_cell_token,
    parse_range_token,
    split_sheet_ref,
    unquote_string,
)


# ---------------------------------------------------------------------------
# Resolver protocol
# ---------------------------------------------------------------------------


class CellResolver(Protocol):
    """Protocol for resolving cell, range and name references."""

    def resolve_cell(self, sheet: str, row: int, col: int) -> Any:
        """Resolve a cell value (may trigger recursive evaluation)."""
        ...

    def resolve_range(self, sheet: str, r0: int, c0: int, r1: int, c1: int) -> list[list[Any]]:
        """Resolve a rectangular block to a row-major 2D list of values."""
        ...

    def resolve_name(self, name: str, sheet: str) -> Any:
        """Resolve a named expression visible from *sheet*."""
        ...


def evaluate_formula(tree: Tree, resolver: CellResolver, current_sheet: str) -> Any:
    """Evaluate a parsed formula tree.

    Args:
        tree: Parse tree from ``parse_formula()``.
        resolver: Resolver for cell refs, ranges and named expressions.
        current_sheet: Sheet name used for unqualified references.

    Returns:
        A scalar (number, string, bool or None) or a 2D list for ranges.
    """
    return _eval(tree, resolver, current_sheet)


def _eval(node: Tree | Token, resolver: CellResolver, cs: str) -> Any:
    if isinstance(node, Token):
        return str(node)

    rule = node.data

    if rule == "start":
        return _eval(node.children[0], resolver, cs)

    # Arithmetic
    if rule in _BINARY_NUMERIC:
        left = to_number(_eval(node.children[0], resolver, cs))
        right = to_number(_eval(node.children[1], resolver, cs))
        return _BINARY_NUMERIC[rule](left, right)
    if rule == "neg":
        return -to_number(_eval(node.children[0], resolver, cs))
    if rule == "pos":
        return to_number(_eval(node.children[0], resolver, cs))
    if rule == "percent":
        return to_number(_eval(node.children[0], resolver, cs)) / 100
    if rule == "concat":
        left = _eval(node.children[0], resolver, cs)
        right = _eval(node.children[1], resolver, cs)
        return to_text(left) + to_text(right)

    # Comparison
    if rule in _COMPARISONS:
        left = scalar(_eval(node.children[0], resolver, cs))
        right = scalar(_eval(node.children[1], resolver, cs))
        return _COMPARISONS[rule](*_comparable(left, right))

    # Literals
    if rule == "number":
        return _parse_number(node.children[0])
    if rule == "boolean":
        return str(node.children[0]).upper() == "TRUE"
    if rule == "string":
        return unquote_string(str(node.children[0]))

    # References
    if rule == "cell_ref":
        row, col = parse_cell_token(str(node.children[0]))
        return resolver.resolve_cell(cs, row, col)
    if rule == "sheet_cell_ref":
        sheet, ref = split_sheet_ref(str(node.children[0]))
        row, col = parse_cell_token(ref)
        return resolver.resolve_cell(sheet, row, col)
    if rule == "range_ref":
        return resolver.resolve_range(cs, *parse_range_token(str(node.children[0])))
    if rule == "sheet_range_ref":
        sheet, ref = split_sheet_ref(str(node.children[0]))
        return resolver.resolve_range(sheet, *parse_range_token(ref))
    if rule == "name_ref":
        return resolver.resolve_name(str(node.children[0]), cs)

    if rule == "func_call":
        return _eval_func(node, resolver, cs)

    raise FormulaError(f"Unknown node type: {rule}")


def _parse_number(token: Token) -> int | float:
    """Parse a NUMBER token to int or float."""
    s = str(token)
    if "." in s or "e" in s or "E" in s:
        return float(s)
    return int(s)


def _divide(left: float, right: float) -> float:
    if right == 0:
        raise FormulaDivisionError("Division by zero in formula")
    return left / right


def _power(left: float, right: float) -> float:
    try:
        result = left ** right
    except ZeroDivisionError:
        raise FormulaDivisionError("Zero raised to a negative power") from None
    if isinstance(result, complex):
        raise FormulaValueError("Fractional power of a negative number")
    return result


_BINARY_NUMERIC = {
    "add": lambda a, b: a + b,
    "sub": lambda a, b: a - b,
    "mul": lambda a, b: a * b,
    "div": _divide,
    "pow": _power,
}

_COMPARISONS = {
    "gt": lambda a, b: a > b,
    "lt": lambda a, b: a < b,
    "gte": lambda a, b: a >= b,
    "lte": lambda a, b: a <= b,
    "eq": lambda a, b: a == b,
    "neq": lambda a, b: a != b,
}


# ---------------------------------------------------------------------------
# Coercion helpers (shared with the function modules)
# ---------------------------------------------------------------------------


def scalar(value: Any) -> Any:
    """Collapse a 1x1 range to its value; larger ranges are a #VALUE! error."""
    if isinstance(value, list):
        if len(value) == 1 and len(value[0]) == 1:
            return value[0][0]
        raise FormulaValueError("Range used where a single value is expected")
    return value


def to_number(value: Any) -> int | float:
    """Coerce an operand to a number the way spreadsheet arithmetic does."""
    value = scalar(value)
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0
        if "_" in text:
            raise FormulaValueError(f"Cannot use text {value!r} as a number")
        try:
            return float(text) if any(ch in text for ch in ".eE") else int(text)
        except ValueError:
            raise FormulaValueError(f"Cannot use text {value!r} as a number") from None
    raise FormulaValueError(f"Cannot use {type(value).__name__} as a number")


def to_text(value: Any) -> str:
    """Render an operand as text for concatenation and text functions."""
    value = scalar(value)
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return f"{value:.10g}"
    return str(value)


def to_bool(value: Any) -> bool:
    value = scalar(value)
    if isinstance(value, str):
        upper = value.strip().upper()
        if upper in ("TRUE", "FALSE"):
            return upper == "TRUE"
        raise FormulaValueError(f"Cannot use text {value!r} as a boolean")
    return bool(value)


def _comparable(left: Any, right: Any) -> tuple[Any, Any]:
    """Bring two scalars to a comparable pair (text compares case-insensitively)."""
    if left is None:
        left = "" if isinstance(right, str) else 0
    if right is None:
        right = "" if isinstance(left, str) else 0
    if isinstance(left, str) and isinstance(right, str):
        return left.lower(), right.lower()
    if isinstance(left, str) or isinstance(right, str):
        # Text sorts after numbers, as in spreadsheets.
        return (1 if isinstance(left, str) else 0), (1 if isinstance(right, str) else 0)
    return left, right


def flatten(args: list[Any]) -> list[Any]:
    """Flatten range arguments (2D lists) into one list, row-major."""
    out: list[Any] = []
    for a in args:
        if isinstance(a, list):
            for row in a:
                out.extend(row)
        else:
            out.append(a)
    return out


# ---------------------------------------------------------------------------
# Function dispatch
# ---------------------------------------------------------------------------


def _eval_func(node: Tree, resolver: CellResolver, cs: str) -> Any:
    """Evaluate a function call node."""
    from gridbook.formulas.functions import EAGER_FUNCTIONS, LAZY_FUNCTIONS

    func_name = str(node.children[0]).upper()
    args_node = node.children[1]
    raw_args = args_node.children if args_node.children else []

    # Lazy functions receive unevaluated AST nodes plus an evaluate callback
    if func_name in LAZY_FUNCTIONS:
        return LAZY_FUNCTIONS[func_name](raw_args, lambda n: _eval(n, resolver, cs))

    if func_name not in EAGER_FUNCTIONS:
        raise FormulaFunctionError(func_name)

    evaluated_args = [_eval(arg, resolver, cs) for arg in raw_args]
    return EAGER_FUNCTIONS[func_name](evaluated_args)
