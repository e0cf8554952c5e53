"""Tests for list validation and sheet-scoped named ranges."""

from __future__ import annotations

from gridbook.engine import GridEngine, Scalar
from gridbook.model import Cell, ListValidation
from gridbook.names import delete_name, register_names, set_name
from gridbook.validation import (
    RejectionNotice,
    is_acceptable,
    is_flagged_invalid,
    parse_allowed_values,
)

PRIORITY = ListValidation(allowed_values=["High", "Medium", "Low"])


# ────────────────────────────────────────────────────────────────
# Validation
# ────────────────────────────────────────────────────────────────


class TestIsAcceptable:
    def test_no_rule_accepts_anything(self) -> None:
        assert is_acceptable("anything", None)

    def test_member_accepted(self) -> None:
        assert is_acceptable("High", PRIORITY)

    def test_non_member_rejected(self) -> None:
        assert not is_acceptable("Critical", PRIORITY)

    def test_match_is_case_sensitive(self) -> None:
        assert not is_acceptable("high", PRIORITY)

    def test_formula_always_accepted(self) -> None:
        assert is_acceptable("=A1", PRIORITY)

    def test_empty_input_rejected_unless_listed(self) -> None:
        assert not is_acceptable("", PRIORITY)
        assert is_acceptable("", ListValidation(allowed_values=["", "x"]))


class TestValidationHelpers:
    def test_parse_allowed_values(self) -> None:
        assert parse_allowed_values("High, Medium,,Low ") == ["High", "Medium", "Low"]
        assert parse_allowed_values("") == []

    def test_flagged_invalid(self) -> None:
        assert is_flagged_invalid(Cell(input="Critical", validation=PRIORITY))
        assert not is_flagged_invalid(Cell(input="High", validation=PRIORITY))
        assert not is_flagged_invalid(Cell(input="", validation=PRIORITY))
        assert not is_flagged_invalid(Cell(input="=B2", validation=PRIORITY))
        assert not is_flagged_invalid(Cell(input="Critical"))

    def test_notice_message(self) -> None:
        notice = RejectionNotice(
            sheet="Tasks", row=1, col=2, addr="C2", attempted="Critical",
            allowed_values=["High"],
        )
        assert notice.message == "Value 'Critical' not allowed in Tasks!C2"


# ────────────────────────────────────────────────────────────────
# Named ranges
# ────────────────────────────────────────────────────────────────


class TestNameMapping:
    def test_set_name_returns_copy(self) -> None:
        names = {"a": "A1"}
        updated = set_name(names, " total ", " A1:A3 ")
        assert updated == {"a": "A1", "total": "A1:A3"}
        assert names == {"a": "A1"}

    def test_blank_set_is_noop(self) -> None:
        assert set_name({"a": "A1"}, " ", "B1") == {"a": "A1"}
        assert set_name({"a": "A1"}, "b", "") == {"a": "A1"}

    def test_delete_name(self) -> None:
        assert delete_name({"a": "A1", "b": "B1"}, "a") == {"b": "B1"}
        assert delete_name({"a": "A1"}, "zzz") == {"a": "A1"}


class TestRegisterNames:
    def test_registers_and_resolves(self, sheet_engine) -> None:
        eng, sid = sheet_engine([["1"], ["2"], ["3"], ["=SUM(total)"]])
        failures = register_names(eng, sid, {"total": "A1:A3"}, "Sheet1")
        assert failures == []
        assert eng.get_computed_value(sid, 3, 0) == Scalar(value=6)

    def test_failures_are_reported_not_raised(self, sheet_engine) -> None:
        eng, sid = sheet_engine([["5"]])
        failures = register_names(
            eng, sid,
            {"A1": "B2", "good": "A1", "bad ref": "A1", "broken": "=SUM("},
            "Sheet1",
        )
        assert sorted(f.name for f in failures) == ["A1", "bad ref", "broken"]
        assert all(f.sheet == "Sheet1" for f in failures)

    def test_duplicate_registration_fails_second_time(self) -> None:
        eng = GridEngine()
        sid = eng.add_sheet("S")
        assert register_names(eng, sid, {"x": "A1"}) == []
        failures = register_names(eng, sid, {"X": "B1"})
        assert len(failures) == 1 and failures[0].name == "X"
