"""Tests for formula parsing, evaluation and the built-in functions."""

from __future__ import annotations

import datetime

import pytest

from gridbook.catalog import FUNCTION_CATALOG, find_template, iter_templates
from gridbook.engine import ErrorResult, GridEngine, Scalar
from gridbook.formulas import (
    FormulaParseError,
    extract_functions,
    extract_names,
    parse_formula,
)
from gridbook.formulas.fn_date import date_to_serial
from gridbook.formulas.functions import is_supported_function


def calc(formula: str, rows: list[list[str]] | None = None):
    """Evaluate *formula* in AE1 of a sheet holding *rows* from A1."""
    content = [list(r) for r in (rows or [[]])]
    first = content[0]
    first.extend([""] * (30 - len(first)))
    first.append(formula)
    eng = GridEngine()
    sid = eng.add_sheet("Sheet1")
    eng.set_sheet_content(sid, content)
    result = eng.get_computed_value(sid, 0, 30)
    if isinstance(result, ErrorResult):
        return result.code
    if isinstance(result, Scalar):
        return result.value
    return result


# ────────────────────────────────────────────────────────────────
# Parser
# ────────────────────────────────────────────────────────────────


class TestParser:
    def test_requires_equals(self) -> None:
        with pytest.raises(FormulaParseError):
            parse_formula("1+2")

    def test_syntax_error(self) -> None:
        with pytest.raises(FormulaParseError):
            parse_formula("=SUM(1,")

    def test_extract_functions_and_names(self) -> None:
        tree = parse_formula("=IF(total>0, SUM(A1:A3), rate)")
        assert extract_functions(tree) >= {"IF", "SUM"}
        assert set(extract_names(tree)) == {"total", "rate"}

    def test_sheet_references_parse(self) -> None:
        parse_formula("=Sheet2!A1 + 'My Sheet'!B2 + SUM(Data!A1:B3)")


# ────────────────────────────────────────────────────────────────
# Operators
# ────────────────────────────────────────────────────────────────


class TestOperators:
    def test_arithmetic_precedence(self) -> None:
        assert calc("=1+2*3") == 7
        assert calc("=(1+2)*3") == 9
        assert calc("=2^3^2") == 512
        assert calc("=-2^2") == -4

    def test_percent_and_division(self) -> None:
        assert calc("=50%") == 0.5
        assert calc("=7/2") == 3.5

    def test_concat(self) -> None:
        assert calc('="a"&1&TRUE') == "a1TRUE"

    def test_comparisons(self) -> None:
        assert calc("=2>1") is True
        assert calc('="abc"="ABC"') is True
        assert calc("=1<>1") is False

    def test_cell_references(self) -> None:
        assert calc("=A1+B1", [["2", "3"]]) == 5
        assert calc("=A1*2", [["1.5"]]) == 3.0
        assert calc("=A1+1", [[""]]) == 1

    def test_divide_by_zero(self) -> None:
        assert calc("=1/0") == "#DIV/0!"
        assert calc("=0^-1") == "#DIV/0!"

    def test_text_in_arithmetic(self) -> None:
        assert calc("=A1+1", [["abc"]]) == "#VALUE!"

    def test_negative_fractional_power(self) -> None:
        assert calc("=(-8)^0.5") == "#VALUE!"

    def test_unknown_function_and_name(self) -> None:
        assert calc("=NOPE(1)") == "#NAME?"
        assert calc("=missing_name+1") == "#NAME?"

    def test_unknown_sheet(self) -> None:
        assert calc("=Other!A1") == "#NAME?"

    def test_parse_error_is_error_result(self) -> None:
        assert calc("=1+") == "#ERROR!"


# ────────────────────────────────────────────────────────────────
# Functions
# ────────────────────────────────────────────────────────────────

NUMS = [["1"], ["2"], ["3"], ["text"], [""]]


class TestMathFunctions:
    def test_sum_average_min_max(self) -> None:
        assert calc("=SUM(A1:A5)", NUMS) == 6
        assert calc("=AVERAGE(A1:A5)", NUMS) == 2
        assert calc("=MIN(A1:A3)", NUMS) == 1
        assert calc("=MAX(A1:A3, 10)", NUMS) == 10

    def test_direct_text_arguments_coerced(self) -> None:
        assert calc('=SUM("3", 4)') == 7

    def test_average_of_nothing(self) -> None:
        assert calc("=AVERAGE(A1:A2)", [["x"], ["y"]]) == "#DIV/0!"

    def test_count_counta(self) -> None:
        assert calc("=COUNT(A1:A5)", NUMS) == 3
        assert calc("=COUNTA(A1:A5)", NUMS) == 4

    def test_abs_round(self) -> None:
        assert calc("=ABS(-4)") == 4
        assert calc("=ROUND(3.14159, 2)") == 3.14

    def test_countif_sumif(self) -> None:
        rows = [["x", "10"], ["y", "5"], ["X", "7"]]
        assert calc('=COUNTIF(A1:A3, "x")', rows) == 2
        assert calc('=COUNTIF(B1:B3, ">6")', rows) == 2
        assert calc('=SUMIF(A1:A3, "x", B1:B3)', rows) == 17
        assert calc('=SUMIF(B1:B3, "<>5")', rows) == 17


class TestLogicalFunctions:
    def test_if(self) -> None:
        assert calc('=IF(A1>0, "Yes", "No")', [["5"]]) == "Yes"
        assert calc('=IF(A1>0, "Yes", "No")', [["-1"]]) == "No"

    def test_if_only_evaluates_taken_branch(self) -> None:
        assert calc("=IF(TRUE, 1, 1/0)") == 1

    def test_iferror(self) -> None:
        assert calc('=IFERROR(1/0, "oops")') == "oops"
        assert calc('=IFERROR(2, "oops")') == 2

    def test_iserror_and_predicates(self) -> None:
        assert calc("=ISERROR(1/0)") is True
        assert calc("=ISBLANK(A1)", [[""]]) is True
        assert calc("=ISNUMBER(A1)", [["4"]]) is True
        assert calc("=AND(TRUE, 1>0)") is True
        assert calc("=OR(FALSE, 0)") is False
        assert calc("=NOT(FALSE)") is True


class TestDateFunctions:
    def test_date(self) -> None:
        assert calc("=DATE(2025,9,6)") == 45906
        assert calc("=DATE(2024,13,1)") == date_to_serial(datetime.date(2025, 1, 1))

    def test_parts(self) -> None:
        assert calc("=YEAR(45906)") == 2025
        assert calc("=MONTH(45906)") == 9
        assert calc("=DAY(45906)") == 6
        assert calc('=YEAR("2023-04-05")') == 2023

    def test_eomonth(self) -> None:
        assert calc("=EOMONTH(DATE(2024,1,15),1)") == date_to_serial(datetime.date(2024, 2, 29))

    def test_today(self) -> None:
        assert calc("=TODAY()") == date_to_serial(datetime.date.today())


class TestTextFunctions:
    def test_substrings(self) -> None:
        assert calc('=LEFT("abcdef",3)') == "abc"
        assert calc('=RIGHT("abcdef",3)') == "def"
        assert calc('=MID("abcdef",2,3)') == "bcd"
        assert calc('=LEN("abc")') == 3

    def test_case_and_trim(self) -> None:
        assert calc('=UPPER("ab")') == "AB"
        assert calc('=LOWER("AB")') == "ab"
        assert calc('=TRIM("  a   b ")') == "a b"

    def test_concat(self) -> None:
        assert calc('=CONCAT(A1, " ", B1)', [["Jane", "Doe"]]) == "Jane Doe"
        assert calc("=CONCATENATE(A1:B1)", [["x", "y"]]) == "xy"

    def test_text_patterns(self) -> None:
        assert calc('=TEXT(A1, "0.00")', [["3.14159"]]) == "3.14"
        assert calc('=TEXT(1234567, "#,##0")') == "1,234,567"
        assert calc('=TEXT(0.256, "0.0%")') == "25.6%"
        assert calc('=TEXT("abc", "0.00")') == "abc"


class TestLookupFunctions:
    TABLE = [["apple", "1", "red"], ["banana", "2", "yellow"], ["cherry", "3", "dark red"]]

    def test_vlookup_exact(self) -> None:
        assert calc('=VLOOKUP("banana", A1:C3, 3, FALSE)', self.TABLE) == "yellow"
        assert calc('=VLOOKUP("kiwi", A1:C3, 3, FALSE)', self.TABLE) == "#N/A"

    def test_vlookup_approximate(self) -> None:
        rows = [["0", "F"], ["50", "C"], ["70", "B"], ["90", "A"]]
        assert calc("=VLOOKUP(75, A1:B4, 2)", rows) == "B"
        assert calc("=VLOOKUP(-1, A1:B4, 2)", rows) == "#N/A"

    def test_hlookup(self) -> None:
        rows = [["a", "b", "c"], ["1", "2", "3"]]
        assert calc('=HLOOKUP("b", A1:C2, 2, FALSE)', rows) == 2

    def test_index_match(self) -> None:
        assert calc('=INDEX(C1:C3, MATCH("cherry", A1:A3, 0))', self.TABLE) == "dark red"
        assert calc("=INDEX(A1:C3, 2, 2)", self.TABLE) == 2
        assert calc("=INDEX(A1:C3, 5, 1)", self.TABLE) == "#VALUE!"


class TestCatalog:
    def test_every_template_evaluates(self) -> None:
        rows = [[str(r * 10 + c) for c in range(4)] for r in range(10)]
        for _, tpl in iter_templates():
            value = calc(tpl.template, rows)
            assert value not in ("#NAME?", "#ERROR!"), tpl.template

    def test_catalog_functions_are_supported(self) -> None:
        for _, tpl in iter_templates():
            for fn in extract_functions(parse_formula(tpl.template)):
                assert is_supported_function(fn)

    def test_categories(self) -> None:
        assert list(FUNCTION_CATALOG) == ["Basics", "Lookup", "DateTime", "Text"]

    def test_find_template(self) -> None:
        assert find_template("vlookup").template == "=VLOOKUP(A2, A1:D100, 3, FALSE)"
        assert find_template("nope") is None
