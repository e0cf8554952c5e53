"""Tests for engine synchronization and the recompute/formatting pipeline."""

from __future__ import annotations

from gridbook.engine import ArrayResult, ErrorResult, GridEngine, Scalar
from gridbook.formatting import (
    ARRAY_DISPLAY,
    ERROR_DISPLAY,
    currency_symbol_for,
    display_text,
    format_value,
    recompute_sheet,
    to_number,
)
from gridbook.model import CellFormat, Sheet, Workbook, new_grid, new_sheet
from gridbook.sync import WorkbookSynchronizer, engine_sheet_name


def _sheet(name: str, rows: list[list[str]], names: dict[str, str] | None = None) -> Sheet:
    grid = new_grid(len(rows), max(len(r) for r in rows))
    for r, row in enumerate(rows):
        for c, text in enumerate(row):
            grid[r][c].input = text
    return Sheet(name=name, grid=grid, names=names or {})


def _fmt(kind: str) -> CellFormat:
    return CellFormat(type=kind)


# ────────────────────────────────────────────────────────────────
# Formatting
# ────────────────────────────────────────────────────────────────


class TestToNumber:
    def test_readings(self) -> None:
        assert to_number(3) == 3.0
        assert to_number(" 2.5 ") == 2.5
        assert to_number(True) == 1.0
        assert to_number(None) is None
        assert to_number("abc") is None
        assert to_number(float("nan")) is None


class TestFormatValue:
    def test_sentinels_ignore_format(self) -> None:
        array = ArrayResult(values=[[1, 2]])
        error = ErrorResult(code="#DIV/0!")
        for kind in ("text", "number", "currency", "percent"):
            assert format_value(array, _fmt(kind)) == ARRAY_DISPLAY
            assert format_value(error, _fmt(kind)) == ERROR_DISPLAY

    def test_text_passthrough(self) -> None:
        assert format_value(Scalar(value=1234.5), _fmt("text")) == "1234.5"
        assert format_value(Scalar(value=None), _fmt("text")) == ""
        assert format_value(Scalar(value=True), _fmt("text")) == "TRUE"
        assert format_value(Scalar(value=2.0), _fmt("text")) == "2"

    def test_number(self) -> None:
        assert format_value(Scalar(value=1234567.891), _fmt("number")) == "1,234,567.891"
        assert format_value(Scalar(value=1000), _fmt("number")) == "1,000"
        assert format_value(Scalar(value=-0.0001), _fmt("number")) == "0"

    def test_currency(self) -> None:
        assert format_value(Scalar(value=1234.5), _fmt("currency")) == "₹1,234.50"
        assert format_value(Scalar(value=-3), _fmt("currency"), "$") == "-$3.00"

    def test_currency_symbol_from_code(self) -> None:
        assert currency_symbol_for("USD") == "$"
        assert currency_symbol_for("eur") == "€"
        assert currency_symbol_for("INR") == "₹"
        assert currency_symbol_for("SEK") == "SEK "
        assert currency_symbol_for(None) == "₹"
        assert currency_symbol_for("USD", "US$") == "US$"

    def test_percent(self) -> None:
        assert format_value(Scalar(value=0.256), _fmt("percent")) == "25.60%"
        assert format_value(Scalar(value="0.5"), _fmt("percent")) == "50.00%"

    def test_non_numeric_passes_through(self) -> None:
        for kind in ("number", "currency", "percent"):
            assert format_value(Scalar(value="n/a"), _fmt(kind)) == "n/a"

    def test_display_text(self) -> None:
        assert display_text(0.1 + 0.2) == "0.3"
        assert display_text(False) == "FALSE"


class TestRecompute:
    def test_recompute_derives_display(self) -> None:
        sheet = _sheet("S", [["2", "3", "=A1*B1", "=A1:B1", "=1/0"]])
        sheet.grid[0][2].fmt.type = "currency"
        eng = GridEngine()
        sid = eng.add_sheet("S")
        eng.set_sheet_content(sid, [[c.input for c in row] for row in sheet.grid])

        result = recompute_sheet(sheet, eng, sid, "$")
        assert [c.computed_value for c in result.grid[0]] == ["2", "3", "$6.00", "#ARRAY", "#ERR"]
        assert sheet.grid[0][2].computed_value == ""

    def test_recompute_is_idempotent(self) -> None:
        sheet = _sheet("S", [["1", "=A1+1", "=TODAY()"], ["x", "=B1*3", "=A2&B2"]])
        eng = GridEngine()
        sid = eng.add_sheet("S")
        eng.set_sheet_content(sid, [[c.input for c in row] for row in sheet.grid])
        once = recompute_sheet(sheet, eng, sid)
        twice = recompute_sheet(once, eng, sid)
        assert once == twice


# ────────────────────────────────────────────────────────────────
# Synchronization
# ────────────────────────────────────────────────────────────────


class TestSynchronizer:
    def test_rebuild_pushes_all_sheets(self) -> None:
        wb = Workbook(sheets=[_sheet("Inputs", [["5"]]), _sheet("Calc", [["=Inputs!A1*2"]])])
        result = WorkbookSynchronizer().rebuild(wb)
        assert result.ok
        sid = result.sheet_id(1)
        assert result.engine.get_computed_value(sid, 0, 0) == Scalar(value=10)

    def test_names_may_refer_to_later_sheets(self) -> None:
        wb = Workbook(sheets=[
            _sheet("A", [["=SUM(later)"]], {"later": "B!A1:A2"}),
            _sheet("B", [["1"], ["2"]]),
        ])
        result = WorkbookSynchronizer().rebuild(wb)
        assert result.engine.get_computed_value(result.sheet_id(0), 0, 0) == Scalar(value=3)

    def test_name_failures_do_not_abort(self) -> None:
        wb = Workbook(sheets=[_sheet("A", [["1", "=good"]], {"bad name": "A1", "good": "A1"})])
        result = WorkbookSynchronizer().rebuild(wb)
        assert not result.ok
        assert [f.name for f in result.name_failures] == ["bad name"]
        assert result.engine.get_computed_value(result.sheet_id(0), 0, 1) == Scalar(value=1)

    def test_duplicate_sheet_names_share_engine_sheet(self) -> None:
        wb = Workbook(sheets=[_sheet("Dup", [["1"]]), _sheet("dup", [["2"]])])
        result = WorkbookSynchronizer().rebuild(wb)
        assert result.sheet_id(0) == result.sheet_id(1)

    def test_failing_sheet_is_isolated(self) -> None:
        class FlakyEngine(GridEngine):
            def set_sheet_content(self, sheet_id, rows):
                if self._sheets[sheet_id].name == "Broken":
                    raise ValueError("cannot load")
                super().set_sheet_content(sheet_id, rows)

        wb = Workbook(sheets=[_sheet("Broken", [["1"]]), _sheet("Fine", [["2"]])])
        result = WorkbookSynchronizer(FlakyEngine).rebuild(wb)
        assert list(result.sheet_failures) == [0]
        assert result.sheet_id(0) is None
        assert result.engine.get_computed_value(result.sheet_id(1), 0, 0) == Scalar(value=2)

    def test_each_rebuild_uses_fresh_engine(self) -> None:
        wb = Workbook(sheets=[new_sheet("S", 1, 1)])
        sync = WorkbookSynchronizer()
        assert sync.rebuild(wb).engine is not sync.rebuild(wb).engine

    def test_blank_name_fallback(self) -> None:
        assert engine_sheet_name(new_sheet("  ", 1, 1), 2) == "Sheet3"
        assert engine_sheet_name(new_sheet("Data", 1, 1), 0) == "Data"
