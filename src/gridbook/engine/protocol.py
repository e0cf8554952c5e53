"""The narrow boundary the workbook uses to talk to a formula engine."""

from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from gridbook.engine.values import EngineValue


@runtime_checkable
class FormulaEngine(Protocol):
    """Operations the synchronizer, formatter and pivot need from an engine.

    Sheet ids are opaque to callers; they are only ever obtained from
    :meth:`get_sheet_id` or :meth:`add_sheet`.
    """

    def get_sheet_id(self, name: str) -> int:
        """Return the id of the sheet called *name*.

        Raises:
            KeyError: If no such sheet exists.
        """
        ...

    def add_sheet(self, name: str) -> int:
        ...

    def set_sheet_content(self, sheet_id: int, rows: list[list[str]]) -> None:
        """Replace the whole content of a sheet with raw input strings."""
        ...

    def add_named_expression(self, name: str, ref: str, sheet_id: int) -> None:
        """Register a sheet-scoped named expression.  May raise."""
        ...

    def get_computed_value(self, sheet_id: int, row: int, col: int) -> EngineValue:
        ...


EngineFactory = Callable[[], FormulaEngine]
