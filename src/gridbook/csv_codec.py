"""CSV export and import of a sheet's raw inputs.

Export writes every field quoted (inner quotes doubled), fields joined
by ``,`` and rows by ``\\n`` with no trailing newline.  Import accepts
``\\r\\n``/``\\r``/``\\n`` line endings and quoted fields that contain
commas, doubled quotes or newlines.
"""

from __future__ import annotations

from gridbook.model import Grid, copy_grid, expand_grid


def export_csv(grid: Grid) -> str:
    lines = []
    for row in grid:
        fields = ['"' + cell.input.replace('"', '""') + '"' for cell in row]
        lines.append(",".join(fields))
    return "\n".join(lines)


def parse_csv(text: str) -> list[list[str]]:
    """Tokenize CSV text into rows of fields.

    Inside quotes, ``""`` is a literal quote and newlines and commas are
    literal.  Outside quotes, ``,`` ends a field and a newline ends the
    row.  Empty input is one row with one empty field, and a trailing
    newline produces a trailing row with one empty field.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    rows: list[list[str]] = []
    row: list[str] = []
    cur: list[str] = []
    in_quotes = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            if in_quotes and i + 1 < n and text[i + 1] == '"':
                cur.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            row.append("".join(cur))
            cur = []
        elif ch == "\n" and not in_quotes:
            row.append("".join(cur))
            rows.append(row)
            row, cur = [], []
        else:
            cur.append(ch)
        i += 1
    row.append("".join(cur))
    rows.append(row)
    return rows


def import_csv(grid: Grid, text: str) -> Grid:
    """Return a copy of *grid* with the CSV values written into ``input``.

    The grid grows (never shrinks) to fit the imported rows and the
    widest imported row.  Cells outside the imported block, and the
    format and validation of every cell, are left as they were.
    """
    rows = parse_csv(text)
    result = copy_grid(grid)
    width = max(len(r) for r in rows)
    expand_grid(result, len(rows), width)
    for r, values in enumerate(rows):
        for c, value in enumerate(values):
            result[r][c].input = value
    return result
