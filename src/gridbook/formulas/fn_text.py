"""Text formula functions: CONCAT, LEFT, RIGHT, MID, LEN, UPPER, LOWER, TRIM, TEXT."""

from __future__ import annotations

import re
from typing import Any

from gridbook.formulas.errors import FormulaFunctionError, FormulaValueError
from gridbook.formulas.evaluator import flatten, scalar, to_number, to_text


def _count_arg(value: Any, func_name: str) -> int:
    n = int(to_number(value))
    if n < 0:
        raise FormulaValueError(f"{func_name}: character count must be >= 0")
    return n


def _fn_concat(args: list) -> str:
    """CONCAT(val1, val2, ...): ranges are joined cell by cell."""
    return "".join(to_text(v) for v in flatten(args))


def _fn_left(args: list) -> str:
    if len(args) not in (1, 2):
        raise FormulaFunctionError("LEFT", "LEFT requires 1-2 arguments (text [, n])")
    n = _count_arg(args[1], "LEFT") if len(args) == 2 else 1
    return to_text(args[0])[:n]


def _fn_right(args: list) -> str:
    if len(args) not in (1, 2):
        raise FormulaFunctionError("RIGHT", "RIGHT requires 1-2 arguments (text [, n])")
    n = _count_arg(args[1], "RIGHT") if len(args) == 2 else 1
    text = to_text(args[0])
    return text[len(text) - n:] if n else ""


def _fn_mid(args: list) -> str:
    """MID(text, start, n): start is 1-based."""
    if len(args) != 3:
        raise FormulaFunctionError("MID", "MID requires exactly 3 arguments (text, start, n)")
    start = int(to_number(args[1]))
    if start < 1:
        raise FormulaValueError("MID: start must be >= 1")
    n = _count_arg(args[2], "MID")
    return to_text(args[0])[start - 1:start - 1 + n]


def _fn_len(args: list) -> int:
    if len(args) != 1:
        raise FormulaFunctionError("LEN", "LEN requires exactly 1 argument")
    return len(to_text(args[0]))


def _fn_upper(args: list) -> str:
    if len(args) != 1:
        raise FormulaFunctionError("UPPER", "UPPER requires exactly 1 argument")
    return to_text(args[0]).upper()


def _fn_lower(args: list) -> str:
    if len(args) != 1:
        raise FormulaFunctionError("LOWER", "LOWER requires exactly 1 argument")
    return to_text(args[0]).lower()


def _fn_trim(args: list) -> str:
    """TRIM(text): strip the ends and collapse inner runs of spaces."""
    if len(args) != 1:
        raise FormulaFunctionError("TRIM", "TRIM requires exactly 1 argument")
    return re.sub(r" +", " ", to_text(args[0]).strip())


# ---------- TEXT(value, format) ----------

_NUMBER_FORMAT_RE = re.compile(r"^(#,##)?0(\.(0+))?(%)?$")


def format_number_pattern(value: float, pattern: str) -> str:
    """Apply a spreadsheet number pattern such as ``0.00``, ``#,##0`` or ``0%``.

    Supported: optional ``#,##`` grouping prefix, a ``0`` integer part,
    optional ``.0...`` decimals and an optional trailing ``%``.
    """
    m = _NUMBER_FORMAT_RE.match(pattern.strip())
    if not m:
        raise FormulaValueError(f"TEXT: unsupported format {pattern!r}")
    grouping = "," if m.group(1) else ""
    decimals = len(m.group(3)) if m.group(3) else 0
    if m.group(4):
        value = value * 100
    text = f"{value:{grouping}.{decimals}f}"
    if text.startswith("-") and float(text.replace(",", "")) == 0:
        text = text[1:]
    return text + ("%" if m.group(4) else "")


def _fn_text(args: list) -> str:
    """TEXT(value, format): format a number as text."""
    if len(args) != 2:
        raise FormulaFunctionError("TEXT", "TEXT requires exactly 2 arguments (value, format)")
    pattern = to_text(args[1])
    value = scalar(args[0])
    if isinstance(value, str):
        try:
            value = to_number(value)
        except FormulaValueError:
            return value
    return format_number_pattern(float(to_number(value)), pattern)


TEXT_FUNCTIONS: dict[str, Any] = {
    "CONCAT": _fn_concat,
    "CONCATENATE": _fn_concat,
    "LEFT": _fn_left,
    "RIGHT": _fn_right,
    "MID": _fn_mid,
    "LEN": _fn_len,
    "UPPER": _fn_upper,
    "LOWER": _fn_lower,
    "TRIM": _fn_trim,
    "TEXT": _fn_text,
}
