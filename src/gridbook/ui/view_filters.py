"""View-only column filters for the grid.

Filters never modify the workbook; they select which row indexes a view
shows.  Each filter keeps the rows whose display text in that column
contains the query, case-insensitively.

Display text is the cell's computed value.  A plain value whose display
has not been derived yet falls back to its input; a formula never does,
so a formula that evaluates to ``""`` is not matched on its own text.
"""

from __future__ import annotations

import polars as pl
from pydantic import BaseModel

from gridbook.model import Cell, Grid

_ROW_IDX_COL = "__view_row_idx__"


class ColumnFilter(BaseModel):
    column: int
    query: str = ""


def _column_name(idx: int) -> str:
    return f"c{idx}"


def _display(cell: Cell) -> str:
    if cell.input.startswith("="):
        return cell.computed_value
    return cell.computed_value or cell.input


def grid_frame(grid: Grid) -> pl.DataFrame:
    """String frame of the grid's display text, one column per grid column."""
    width = len(grid[0]) if grid else 0
    data = {
        _column_name(c): [_display(row[c]) for row in grid]
        for c in range(width)
    }
    return pl.DataFrame(data, schema={_column_name(c): pl.Utf8 for c in range(width)})


def filter_rows(grid: Grid, filters: list[ColumnFilter] | None = None) -> list[int]:
    """Indexes of the rows that pass every active filter, in grid order.

    Empty queries and filters on columns outside the grid are ignored.
    """
    filters = [f for f in (filters or []) if f.query]
    if not grid:
        return []
    width = len(grid[0])
    result = grid_frame(grid).with_row_index(_ROW_IDX_COL)
    for f in filters:
        if not 0 <= f.column < width:
            continue
        col = pl.col(_column_name(f.column)).str.to_lowercase()
        result = result.filter(col.str.contains(f.query.lower(), literal=True))
    return [int(i) for i in result[_ROW_IDX_COL].to_list()]
