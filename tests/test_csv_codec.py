"""Tests for CSV export/import of raw cell inputs."""

from __future__ import annotations

from gridbook.csv_codec import export_csv, import_csv, parse_csv
from gridbook.model import ListValidation, new_grid


def _inputs(grid) -> list[list[str]]:
    return [[c.input for c in row] for row in grid]


class TestExport:
    def test_quotes_every_field(self) -> None:
        grid = new_grid(2, 2)
        grid[0][0].input = "a"
        grid[0][1].input = 'say "hi"'
        grid[1][0].input = "=SUM(A1:A2)"
        assert export_csv(grid) == '"a","say ""hi"""\n"=SUM(A1:A2)",""'

    def test_exports_input_not_computed_value(self) -> None:
        grid = new_grid(1, 1)
        grid[0][0].input = "=1+1"
        grid[0][0].computed_value = "2"
        assert export_csv(grid) == '"=1+1"'


class TestParse:
    def test_simple_rows(self) -> None:
        assert parse_csv("a,b\nc,d") == [["a", "b"], ["c", "d"]]

    def test_line_endings_normalised(self) -> None:
        assert parse_csv("a\r\nb\rc") == [["a"], ["b"], ["c"]]

    def test_quoted_comma_quote_and_newline(self) -> None:
        assert parse_csv('"x,y","he said ""no""","two\nlines"') == [
            ["x,y", 'he said "no"', "two\nlines"]
        ]

    def test_empty_text(self) -> None:
        assert parse_csv("") == [[""]]

    def test_trailing_newline_adds_row(self) -> None:
        assert parse_csv("a\n") == [["a"], [""]]


class TestImport:
    def test_round_trip(self) -> None:
        grid = new_grid(3, 3)
        values = [
            ["plain", "with,comma", 'with "quotes"'],
            ["multi\nline", "", "=A1&B1"],
            ["1.5", "TRUE", " spaced "],
        ]
        for r, row in enumerate(values):
            for c, v in enumerate(row):
                grid[r][c].input = v
        restored = import_csv(new_grid(3, 3), export_csv(grid))
        assert _inputs(restored) == values

    def test_grows_grid_never_shrinks(self) -> None:
        grid = new_grid(2, 2)
        grown = import_csv(grid, "a,b,c\nd\ne\nf")
        assert len(grown) == 4
        assert all(len(r) == 3 for r in grown)
        assert len(grid) == 2

        big = new_grid(5, 5)
        kept = import_csv(big, "x")
        assert len(kept) == 5 and len(kept[0]) == 5

    def test_leaves_other_cells_and_formats(self) -> None:
        grid = new_grid(3, 3)
        grid[2][2].input = "keep"
        grid[0][0].fmt.bold = True
        grid[0][0].validation = ListValidation(allowed_values=["a"])
        result = import_csv(grid, "new")
        assert result[0][0].input == "new"
        assert result[0][0].fmt.bold is True
        assert result[0][0].validation.allowed_values == ["a"]
        assert result[2][2].input == "keep"

    def test_does_not_touch_computed_value(self) -> None:
        grid = new_grid(1, 1)
        grid[0][0].computed_value = "old"
        result = import_csv(grid, "=1+1")
        assert result[0][0].input == "=1+1"
        assert result[0][0].computed_value == "old"
