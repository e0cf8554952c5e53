"""Workbook, sheet and cell models plus the grid shape operations.

A grid is a list of rows, each a list of :class:`Cell`.  Every row has the
same length and a grid is never smaller than 1x1.  The shape operations
below mutate the grid they are given and report whether anything changed;
callers hand them an isolated copy (see :func:`copy_grid`) so a previous
workbook value is never modified in place.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

Align = Literal["left", "center", "right"]
FormatType = Literal["text", "number", "currency", "percent"]


# ---------------------------------------------------------------------------
# Cells
# ---------------------------------------------------------------------------


class CellFormat(BaseModel):
    bold: bool = False
    italic: bool = False
    align: Align = "left"
    type: FormatType = "text"


class ListValidation(BaseModel):
    """Only the listed values (or a formula) may be committed to the cell."""

    kind: Literal["list"] = "list"
    allowed_values: list[str] = Field(default_factory=list)


class Cell(BaseModel):
    """One grid position.

    ``input`` is what the user typed.  ``computed_value`` is the display
    string derived from the engine result and ``fmt``; it is a cache that
    only the formatting pipeline writes.
    """

    input: str = ""
    computed_value: str = ""
    fmt: CellFormat = Field(default_factory=CellFormat)
    validation: ListValidation | None = None


Grid = list[list[Cell]]


def default_cell() -> Cell:
    return Cell()


def new_grid(rows: int, cols: int) -> Grid:
    """Build a rows x cols grid of default cells (each at least 1)."""
    rows = max(1, rows)
    cols = max(1, cols)
    return [[default_cell() for _ in range(cols)] for _ in range(rows)]


def copy_grid(grid: Grid) -> Grid:
    """Deep copy of every row and cell."""
    return [[cell.model_copy(deep=True) for cell in row] for row in grid]


def grid_width(grid: Grid) -> int:
    return len(grid[0]) if grid else 0


def is_rectangular(grid: Grid) -> bool:
    if not grid:
        return False
    width = len(grid[0])
    return width > 0 and all(len(row) == width for row in grid)


# ---------------------------------------------------------------------------
# Shape operations
# ---------------------------------------------------------------------------


def insert_row(grid: Grid) -> bool:
    """Append a row of default cells as wide as the current grid."""
    width = max(1, grid_width(grid))
    grid.append([default_cell() for _ in range(width)])
    return True


def remove_row(grid: Grid) -> bool:
    """Drop the last row.  Refused when only one row remains."""
    if len(grid) <= 1:
        return False
    grid.pop()
    return True


def insert_column(grid: Grid) -> bool:
    """Append one default cell to every row."""
    if not grid:
        grid.append([])
    for row in grid:
        row.append(default_cell())
    return True


def remove_column(grid: Grid) -> bool:
    """Drop the last column of every row.  Refused when one column remains."""
    if grid_width(grid) <= 1:
        return False
    for row in grid:
        row.pop()
    return True


def expand_grid(grid: Grid, rows: int, cols: int) -> bool:
    """Grow *grid* to at least rows x cols.  Never shrinks."""
    changed = False
    width = grid_width(grid)
    if cols > width:
        for row in grid:
            row.extend(default_cell() for _ in range(cols - width))
        width = cols
        changed = True
    while len(grid) < rows:
        grid.append([default_cell() for _ in range(max(1, width))])
        changed = True
    return changed


# ---------------------------------------------------------------------------
# Sheets and workbook
# ---------------------------------------------------------------------------


class Sheet(BaseModel):
    name: str
    grid: Grid
    names: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_rectangular(self) -> Sheet:
        if not is_rectangular(self.grid):
            raise ValueError(f"Sheet {self.name!r} grid must be a non-empty rectangle")
        return self

    @property
    def n_rows(self) -> int:
        return len(self.grid)

    @property
    def n_cols(self) -> int:
        return grid_width(self.grid)


class Workbook(BaseModel):
    """Ordered sheets plus the active sheet index.

    ``version`` increases by one on every committed mutation.
    """

    sheets: list[Sheet]
    active_index: int = 0
    version: int = 0

    @model_validator(mode="after")
    def _check_active(self) -> Workbook:
        if not self.sheets:
            raise ValueError("Workbook must contain at least one sheet")
        if not 0 <= self.active_index < len(self.sheets):
            raise ValueError(
                f"active_index {self.active_index} out of range [0, {len(self.sheets)})"
            )
        return self

    @property
    def active(self) -> Sheet:
        return self.sheets[self.active_index]


def new_sheet(name: str, rows: int, cols: int) -> Sheet:
    return Sheet(name=name, grid=new_grid(rows, cols), names={})


def new_workbook(rows: int, cols: int) -> Workbook:
    """A fresh workbook with a single empty ``Sheet1``."""
    return Workbook(sheets=[new_sheet("Sheet1", rows, cols)], active_index=0)
