"""Recompute and formatting pipeline.

Turns engine results into the display strings cached in
``Cell.computed_value``.  Only this module writes that field.
"""

from __future__ import annotations

import math
import re
from typing import Any

from gridbook.engine.protocol import FormulaEngine
from gridbook.engine.values import ArrayResult, EngineValue, ErrorResult, Scalar
from gridbook.model import CellFormat, Sheet

ARRAY_DISPLAY = "#ARRAY"
ERROR_DISPLAY = "#ERR"

DEFAULT_CURRENCY_SYMBOL = "₹"

CURRENCY_SYMBOLS: dict[str, str] = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "¥",
    "AUD": "A$",
    "CAD": "C$",
    "CHF": "CHF ",
}

_NUMERIC_TEXT_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def to_number(value: Any) -> float | None:
    """Numeric reading of a scalar, or ``None`` if it is not numeric.

    Bools read as 1/0, numeric text parses, while blanks, non-finite
    numbers and other text are not numeric.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        num = float(value)
        return num if math.isfinite(num) else None
    if isinstance(value, str):
        text = value.strip()
        if not _NUMERIC_TEXT_RE.match(text):
            return None
        num = float(text)
        return num if math.isfinite(num) else None
    return None


def display_text(value: Any) -> str:
    """Raw display of a scalar: ``None`` -> ``""``, bools as TRUE/FALSE."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return f"{value:.10g}"
    return str(value)


def currency_symbol_for(code: str | None, symbol: str | None = None) -> str:
    """Symbol used for currency cells.

    An explicit *symbol* wins.  Otherwise the ISO 4217 *code* is looked up;
    unknown codes render as the code followed by a space (``"SEK 12.00"``).
    """
    if symbol:
        return symbol
    if not code:
        return DEFAULT_CURRENCY_SYMBOL
    code = code.strip().upper()
    return CURRENCY_SYMBOLS.get(code, f"{code} ")


def _format_number(num: float) -> str:
    text = f"{num:,.3f}".rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


def _format_currency(num: float, symbol: str) -> str:
    text = f"{abs(num):,.2f}"
    if num < 0 and text.strip("0.,") != "":
        return f"-{symbol}{text}"
    return f"{symbol}{text}"


def _format_percent(num: float) -> str:
    text = f"{num * 100:.2f}"
    if text.startswith("-") and text.strip("-0.") == "":
        text = text[1:]
    return f"{text}%"


def format_value(
    value: EngineValue,
    fmt: CellFormat,
    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL,
) -> str:
    """Display string for one engine value under a cell format.

    Arrays show ``#ARRAY`` and errors ``#ERR`` whatever the format.  The
    number, currency and percent formats apply only when the value is
    numeric; anything else shows its raw display.
    """
    if isinstance(value, ArrayResult):
        return ARRAY_DISPLAY
    if isinstance(value, ErrorResult):
        return ERROR_DISPLAY
    if not isinstance(value, Scalar):
        raise TypeError(f"Unexpected engine value: {value!r}")

    raw = value.value
    if fmt.type != "text":
        num = to_number(raw)
        if num is not None:
            if fmt.type == "number":
                return _format_number(num)
            if fmt.type == "currency":
                return _format_currency(num, currency_symbol)
            if fmt.type == "percent":
                return _format_percent(num)
    return display_text(raw)


def recompute_sheet(
    sheet: Sheet,
    engine: FormulaEngine,
    sheet_id: int,
    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL,
) -> Sheet:
    """Return a copy of *sheet* with every ``computed_value`` re-derived.

    Reads each cell's value from the engine and formats it with the
    cell's own format.  Inputs, formats and validation rules are copied
    unchanged; *sheet* itself is not modified.
    """
    grid = []
    for r, row in enumerate(sheet.grid):
        new_row = []
        for c, cell in enumerate(row):
            display = format_value(
                engine.get_computed_value(sheet_id, r, c), cell.fmt, currency_symbol
            )
            new_row.append(cell.model_copy(update={"computed_value": display}, deep=True))
        grid.append(new_row)
    return sheet.model_copy(update={"grid": grid, "names": dict(sheet.names)})
