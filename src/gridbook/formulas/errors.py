"""Error types for formula parsing and evaluation.

Every error carries the spreadsheet-style ``code`` that the engine
reports for the failing cell (``#DIV/0!``, ``#NAME?`` and so on).
"""

from __future__ import annotations


class FormulaError(Exception):
    """Base class for all formula-related errors."""

    code = "#ERROR!"


class FormulaParseError(FormulaError):
    """Syntax error in a formula expression.

    Attributes:
        position: Character position where the error was detected.
    """

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        full = f"Formula parse error: {message}"
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)


class FormulaRefError(FormulaError):
    """Reference to an unknown name or sheet.

    Attributes:
        ref_name: The unresolved reference.
        available: Names that are currently available.
    """

    code = "#NAME?"

    def __init__(self, ref_name: str, available: list[str] | None = None) -> None:
        self.ref_name = ref_name
        self.available = available or []
        msg = f"Unknown reference: {ref_name!r}"
        if self.available:
            msg += f". Available: {self.available}"
        super().__init__(msg)


class FormulaFunctionError(FormulaError):
    """Unknown function or wrong number of arguments.

    Attributes:
        func_name: The function that caused the error.
    """

    def __init__(self, func_name: str, message: str | None = None) -> None:
        self.func_name = func_name
        if message is None:
            self.code = "#NAME?"
            message = f"Unknown function: {func_name!r}"
        else:
            self.code = "#VALUE!"
        super().__init__(message)


class FormulaValueError(FormulaError):
    """An operand has the wrong type (e.g. text in arithmetic)."""

    code = "#VALUE!"


class FormulaDivisionError(FormulaError):
    code = "#DIV/0!"


class FormulaNotFoundError(FormulaError):
    """A lookup found no match."""

    code = "#N/A"


class CellCycleError(FormulaError):
    """Raised when a cycle is detected during cell evaluation.

    Attributes:
        cycle_path: List of reference labels showing the cycle.
    """

    code = "#CYCLE!"

    def __init__(self, cycle_path: list[str]) -> None:
        self.cycle_path = cycle_path
        super().__init__(f"Circular reference: {' -> '.join(cycle_path)}")


class NamedExpressionError(FormulaError):
    """A named expression could not be registered."""

    code = "#NAME?"


ENGINE_ERRORS = (FormulaError, ArithmeticError, ValueError, TypeError)
