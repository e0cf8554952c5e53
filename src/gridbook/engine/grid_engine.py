"""On-demand memoized formula engine over raw grid content.

Cells are evaluated lazily: a cell is computed only when asked for or
referenced, and the result (or the error it raised) is cached until the
sheet content or the named expressions change.  Before a cell is
evaluated its precedents are settled bottom-up from an explicit work
stack, so long reference chains never deepen the Python call stack.  Cycles across cells,
sheets and named expressions are detected and reported as ``#CYCLE!``
showing the cycle path.
"""

from __future__ import annotations

import re
from typing import Any

from lark import Tree

from gridbook.address import make_addr
from gridbook.engine.values import ArrayResult, EngineValue, ErrorResult, Scalar
from gridbook.formulas.errors import (
    ENGINE_ERRORS,
    CellCycleError,
    FormulaError,
    FormulaParseError,
    FormulaRefError,
    NamedExpressionError,
)
from gridbook.formulas.evaluator import evaluate_formula
from gridbook.formulas.parser import extract_names, extract_references, parse_formula

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")
_CELL_LIKE_RE = re.compile(r"^\$?[A-Za-z]{1,3}\$?[0-9]+$")


def literal_value(text: str) -> Any:
    """Interpret non-formula cell input.

    ``""`` is an empty cell, numeric text (optionally with a trailing
    ``%``) is a number, ``TRUE``/``FALSE`` are booleans (any case) and
    everything else is text, kept verbatim.
    """
    if text == "":
        return None
    stripped = text.strip()
    percent = stripped.endswith("%")
    candidate = stripped[:-1].rstrip() if percent else stripped
    if _NUMBER_RE.match(candidate):
        number: int | float
        if any(ch in candidate for ch in ".eE") or percent:
            number = float(candidate)
        else:
            number = int(candidate)
        return number / 100 if percent else number
    upper = stripped.upper()
    if upper in ("TRUE", "FALSE"):
        return upper == "TRUE"
    return text


def is_valid_name(name: str) -> bool:
    """Whether *name* can be used as a named expression identifier."""
    if not _NAME_RE.match(name):
        return False
    if _CELL_LIKE_RE.match(name):
        return False
    return name.upper() not in ("TRUE", "FALSE")


class _Sheet:
    __slots__ = ("name", "rows")

    def __init__(self, name: str) -> None:
        self.name = name
        self.rows: list[list[str]] = []


class GridEngine:
    """Formula engine implementing :class:`~gridbook.engine.FormulaEngine`.

    Usage::

        engine = GridEngine()
        sid = engine.add_sheet("Sheet1")
        engine.set_sheet_content(sid, [["1", "2", "=A1+B1"]])
        engine.get_computed_value(sid, 0, 2)   # Scalar(value=3)

    Sheet names are matched case-insensitively.  Named expressions are
    scoped to the sheet they are registered on.
    """

    def __init__(self) -> None:
        self._sheets: list[_Sheet] = []
        self._by_name: dict[str, int] = {}
        # (sheet_id, NAME) -> parsed formula tree, or a literal value
        self._names: dict[tuple[int, str], Any] = {}
        self._trees: dict[str, Tree] = {}
        self._cache: dict[tuple, Any] = {}
        self._errors: dict[tuple, Exception] = {}
        self._in_progress: set[tuple] = set()
        self._eval_stack: list[tuple] = []

    # ------------------------------------------------------------------
    # FormulaEngine protocol
    # ------------------------------------------------------------------

    def get_sheet_id(self, name: str) -> int:
        return self._by_name[name.upper()]

    def add_sheet(self, name: str) -> int:
        key = name.upper()
        if not name or key in self._by_name:
            raise ValueError(f"Sheet {name!r} already exists or is blank")
        self._sheets.append(_Sheet(name))
        sheet_id = len(self._sheets) - 1
        self._by_name[key] = sheet_id
        return sheet_id

    def set_sheet_content(self, sheet_id: int, rows: list[list[str]]) -> None:
        self._sheet(sheet_id).rows = [[str(v) for v in row] for row in rows]
        self.invalidate()

    def add_named_expression(self, name: str, ref: str, sheet_id: int) -> None:
        """Register *name* on *sheet_id*.

        *ref* is a formula (with or without the leading ``=``), e.g.
        ``A1:A10``, ``Sheet2!B3`` or ``=SUM(A1:A3)*2``.  A reference that
        does not parse as a formula is stored as a literal.

        Raises:
            NamedExpressionError: Invalid identifier, duplicate name on the
                sheet, or unknown sheet.
        """
        if sheet_id < 0 or sheet_id >= len(self._sheets):
            raise NamedExpressionError(f"Unknown sheet id {sheet_id}")
        if not is_valid_name(name):
            raise NamedExpressionError(f"Invalid name {name!r}")
        key = (sheet_id, name.upper())
        if key in self._names:
            raise NamedExpressionError(
                f"Name {name!r} is already defined on sheet {self._sheets[sheet_id].name!r}"
            )
        text = ref.strip()
        if not text:
            raise NamedExpressionError(f"Empty reference for name {name!r}")
        if text.startswith("="):
            try:
                self._names[key] = parse_formula(text)
            except FormulaParseError as exc:
                raise NamedExpressionError(f"Malformed reference for {name!r}: {exc}") from exc
        else:
            try:
                self._names[key] = parse_formula("=" + text)
            except FormulaParseError:
                self._names[key] = literal_value(text)
        self.invalidate()

    def get_computed_value(self, sheet_id: int, row: int, col: int) -> EngineValue:
        sheet = self._sheet(sheet_id)
        try:
            self._prime(("cell", sheet_id, row, col))
            value = self._evaluate_cell(sheet_id, row, col)
        except ENGINE_ERRORS as exc:
            return _error_result(exc)
        except RecursionError:
            return ErrorResult(code="#CYCLE!", message=f"Reference chain too deep at {sheet.name}!{make_addr(row, col)}")
        return _to_engine_value(value)

    # ------------------------------------------------------------------
    # CellResolver protocol
    # ------------------------------------------------------------------

    def resolve_cell(self, sheet: str, row: int, col: int) -> Any:
        return self._evaluate_cell(self._resolve_sheet(sheet), row, col)

    def resolve_range(self, sheet: str, r0: int, c0: int, r1: int, c1: int) -> list[list[Any]]:
        sheet_id = self._resolve_sheet(sheet)
        return [
            [self._evaluate_cell(sheet_id, r, c) for c in range(c0, c1 + 1)]
            for r in range(r0, r1 + 1)
        ]

    def resolve_name(self, name: str, sheet: str) -> Any:
        sheet_id = self._resolve_sheet(sheet)
        key = (sheet_id, name.upper())
        if key not in self._names:
            available = sorted(n for sid, n in self._names if sid == sheet_id)
            raise FormulaRefError(name, available=available)
        return self._memoized(("name",) + key, lambda: self._evaluate_name(key))

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def invalidate(self) -> None:
        """Clear all cached values and errors."""
        self._cache.clear()
        self._errors.clear()
        self._in_progress.clear()
        self._eval_stack.clear()

    def _sheet(self, sheet_id: int) -> _Sheet:
        if sheet_id < 0 or sheet_id >= len(self._sheets):
            raise KeyError(f"Unknown sheet id {sheet_id}")
        return self._sheets[sheet_id]

    def _resolve_sheet(self, name: str) -> int:
        try:
            return self.get_sheet_id(name)
        except KeyError:
            raise FormulaRefError(
                f"{name}!", available=[s.name for s in self._sheets]
            ) from None

    def _raw(self, sheet_id: int, row: int, col: int) -> str:
        rows = self._sheets[sheet_id].rows
        if 0 <= row < len(rows) and 0 <= col < len(rows[row]):
            return rows[row][col]
        return ""

    def _evaluate_cell(self, sheet_id: int, row: int, col: int) -> Any:
        raw = self._raw(sheet_id, row, col)
        if not raw.startswith("="):
            return literal_value(raw)
        return self._memoized(
            ("cell", sheet_id, row, col),
            lambda: evaluate_formula(self._parse(raw), self, self._sheets[sheet_id].name),
        )

    def _evaluate_name(self, key: tuple[int, str]) -> Any:
        defn = self._names[key]
        if isinstance(defn, Tree):
            return evaluate_formula(defn, self, self._sheets[key[0]].name)
        return defn

    def _memoized(self, key: tuple, compute: Any) -> Any:
        """Run *compute* once per key, caching the value or the error it raised."""
        if key in self._cache:
            return self._cache[key]
        if key in self._errors:
            raise self._errors[key]
        if key in self._in_progress:
            start = self._eval_stack.index(key)
            path = [self._label(k) for k in self._eval_stack[start:] + [key]]
            raise CellCycleError(path)

        self._in_progress.add(key)
        self._eval_stack.append(key)
        try:
            value = compute()
        except ENGINE_ERRORS as exc:
            self._errors[key] = exc
            raise
        finally:
            self._in_progress.discard(key)
            if self._eval_stack and self._eval_stack[-1] == key:
                self._eval_stack.pop()
        self._cache[key] = value
        return value

    def _prime(self, root: tuple) -> None:
        """Evaluate the precedents of *root* before *root* itself.

        Post-order walk over an explicit stack.  A precedent that is
        already being expanded lies on a cycle; it is skipped here and the
        regular evaluation reports the cycle.
        """
        stack: list[tuple[tuple, bool]] = [(root, False)]
        expanded: set[tuple] = set()
        while stack:
            key, ready = stack.pop()
            if key in self._cache or key in self._errors:
                continue
            if ready:
                try:
                    self._compute(key)
                except ENGINE_ERRORS:
                    pass  # cached in _errors, reported by the caller
                continue
            if key in expanded:
                continue
            expanded.add(key)
            stack.append((key, True))
            for dep in self._precedents(key):
                if dep not in expanded:
                    stack.append((dep, False))

    def _compute(self, key: tuple) -> Any:
        if key[0] == "cell":
            return self._evaluate_cell(*key[1:])
        name_key = key[1:]
        return self._memoized(key, lambda: self._evaluate_name(name_key))

    def _precedents(self, key: tuple) -> list[tuple]:
        """Formula cells and named expressions *key* refers to directly."""
        if key[0] == "cell":
            _, sheet_id, row, col = key
            raw = self._raw(sheet_id, row, col)
            if not raw.startswith("="):
                return []
            try:
                tree = self._parse(raw)
            except FormulaParseError:
                return []
        else:
            _, sheet_id, upper = key
            tree = self._names.get((sheet_id, upper))
            if not isinstance(tree, Tree):
                return []

        deps: list[tuple] = []
        for sheet, r0, c0, r1, c1 in extract_references(tree):
            if sheet is None:
                target = sheet_id
            elif sheet.upper() in self._by_name:
                target = self._by_name[sheet.upper()]
            else:
                continue
            rows = self._sheets[target].rows
            for r in range(r0, min(r1, len(rows) - 1) + 1):
                row_cells = rows[r]
                for c in range(c0, min(c1, len(row_cells) - 1) + 1):
                    if row_cells[c].startswith("="):
                        deps.append(("cell", target, r, c))
        for name in extract_names(tree):
            name_key = (sheet_id, name.upper())
            if name_key in self._names:
                deps.append(("name",) + name_key)
        return deps

    def _parse(self, text: str) -> Tree:
        tree = self._trees.get(text)
        if tree is None:
            tree = parse_formula(text)
            self._trees[text] = tree
        return tree

    def _label(self, key: tuple) -> str:
        if key[0] == "cell":
            _, sheet_id, row, col = key
            return f"{self._sheets[sheet_id].name}!{make_addr(row, col)}"
        _, sheet_id, name = key
        return f"{self._sheets[sheet_id].name}!{name}"


def _to_engine_value(value: Any) -> EngineValue:
    if isinstance(value, list):
        if len(value) == 1 and len(value[0]) == 1:
            return Scalar(value=value[0][0])
        return ArrayResult(values=value)
    if isinstance(value, float) and (value != value or value in (float("inf"), float("-inf"))):
        return ErrorResult(code="#NUM!", message="Result is not a finite number")
    return Scalar(value=value)


def _error_result(exc: Exception) -> ErrorResult:
    if isinstance(exc, FormulaError):
        return ErrorResult(code=exc.code, message=str(exc))
    if isinstance(exc, ZeroDivisionError):
        return ErrorResult(code="#DIV/0!", message=str(exc))
    if isinstance(exc, (OverflowError, ArithmeticError)):
        return ErrorResult(code="#NUM!", message=str(exc))
    return ErrorResult(code="#VALUE!", message=str(exc))
