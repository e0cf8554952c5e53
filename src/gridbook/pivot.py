"""Ad-hoc pivot: group a range's rows by one column, count and sum another."""

from __future__ import annotations

from typing import Literal

import polars as pl
from pydantic import BaseModel

from gridbook.address import find_range
from gridbook.engine.protocol import FormulaEngine
from gridbook.engine.values import Scalar
from gridbook.formatting import display_text, to_number
from gridbook.logging.events import (
    PIVOT_RANGE_INVALID,
    EventType,
    emit_info,
    emit_warning,
)

PivotAgg = Literal["SUM", "COUNT"]

RANGE_ERROR_MESSAGE = "Range must be like A1:C100"


class PivotRequest(BaseModel):
    """``row_col`` and ``value_col`` are 0-based offsets within the range."""

    range: str
    row_col: int = 0
    value_col: int = 1
    agg: PivotAgg = "SUM"


class PivotRow(BaseModel):
    key: str
    count: int
    sum: float

    def value(self, agg: PivotAgg) -> float | int:
        return self.count if agg == "COUNT" else self.sum


class PivotResult(BaseModel):
    kind: Literal["result"] = "result"
    rows: list[PivotRow]
    agg: PivotAgg = "SUM"


class PivotError(BaseModel):
    kind: Literal["error"] = "error"
    message: str


def build_pivot(
    engine: FormulaEngine,
    sheet_id: int,
    request: PivotRequest,
) -> PivotResult | PivotError:
    """Group the rows of ``request.range`` by the key column.

    Keys are the display text of the computed key value and groups come
    out in first-encounter order.  Every row counts; the value column
    adds its numeric reading to the sum (non-numeric adds nothing).
    Array and error results read as empty.  Malformed input is returned
    as a :class:`PivotError`, never raised.
    """
    corners = find_range(request.range)
    if corners is None:
        emit_warning(
            EventType.pivot_failed,
            RANGE_ERROR_MESSAGE,
            {"range": request.range},
            error_code=PIVOT_RANGE_INVALID,
        )
        return PivotError(message=RANGE_ERROR_MESSAGE)

    (r0, c0), (r1, c1) = corners
    width = c1 - c0 + 1
    for label, idx in (("Row", request.row_col), ("Value", request.value_col)):
        if not 0 <= idx < width:
            message = f"{label} column {idx} is outside the range (0..{width - 1})"
            emit_warning(EventType.pivot_failed, message, {"range": request.range})
            return PivotError(message=message)

    keys: list[str] = []
    values: list[float] = []
    for r in range(r0, r1 + 1):
        key = engine.get_computed_value(sheet_id, r, c0 + request.row_col)
        val = engine.get_computed_value(sheet_id, r, c0 + request.value_col)
        keys.append(display_text(key.value) if isinstance(key, Scalar) else "")
        num = to_number(val.value) if isinstance(val, Scalar) else None
        values.append(num if num is not None else 0.0)

    grouped = (
        pl.DataFrame(
            {"key": keys, "value": values},
            schema={"key": pl.Utf8, "value": pl.Float64},
        )
        .group_by("key", maintain_order=True)
        .agg(pl.len().alias("count"), pl.col("value").sum().alias("sum"))
    )
    rows = [
        PivotRow(key=rec["key"], count=rec["count"], sum=rec["sum"])
        for rec in grouped.iter_rows(named=True)
    ]
    emit_info(
        EventType.pivot_built,
        f"Pivot over {request.range} produced {len(rows)} groups",
        {"range": request.range, "groups": len(rows), "agg": request.agg},
    )
    return PivotResult(rows=rows, agg=request.agg)
