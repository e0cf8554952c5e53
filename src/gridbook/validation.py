"""Per-cell list validation.

A list rule gates commits: formulas always pass, anything else must be
one of the allowed values (exact, case-sensitive match).  A rejected
commit leaves the workbook untouched and produces a
:class:`RejectionNotice` for whoever is listening.
"""

from __future__ import annotations

from pydantic import BaseModel

from gridbook.model import Cell, ListValidation


class RejectionNotice(BaseModel):
    """Delivered to subscribers when a commit is refused by validation."""

    sheet: str
    row: int
    col: int
    addr: str
    attempted: str
    allowed_values: list[str]

    @property
    def message(self) -> str:
        return f"Value {self.attempted!r} not allowed in {self.sheet}!{self.addr}"


def is_acceptable(text: str, rule: ListValidation | None) -> bool:
    if rule is None:
        return True
    if text.startswith("="):
        return True
    return text in rule.allowed_values


def parse_allowed_values(text: str) -> list[str]:
    """Split a comma-separated list, trimming items and dropping empties.

    ``"High, Medium,,Low "`` -> ``["High", "Medium", "Low"]``.
    """
    return [item.strip() for item in text.split(",") if item.strip()]


def is_flagged_invalid(cell: Cell) -> bool:
    """Whether the grid should mark *cell* as holding a disallowed value.

    Only a non-empty, non-formula input outside a non-empty list is
    flagged; the value may predate the rule, which is never re-checked.
    """
    rule = cell.validation
    if rule is None or not rule.allowed_values:
        return False
    if not cell.input or cell.input.startswith("="):
        return False
    return cell.input not in rule.allowed_values
