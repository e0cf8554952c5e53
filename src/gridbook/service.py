"""Workbook service: the single gateway for reading and changing a workbook.

Both the CLI and the FastAPI server go through :class:`WorkbookService`.
Every successful mutation follows the same pipeline:

1. copy the rows of the affected sheet and apply the change to the copy
2. rebuild a fresh engine from the whole workbook
3. re-derive the active sheet's display values
4. persist the snapshot and emit an event

A refused mutation (removing the last row, column or sheet) changes
nothing and writes nothing; it is reported as ``{"ok": False, ...}``.
Bad coordinates or sheet indexes are caller errors and raise
``ValueError``.
"""

from __future__ import annotations

from typing import Any, Callable

from gridbook.address import make_addr
from gridbook.catalog import FUNCTION_CATALOG
from gridbook.csv_codec import export_csv, import_csv
from gridbook.engine.protocol import EngineFactory, FormulaEngine
from gridbook.formatting import currency_symbol_for, format_value, recompute_sheet
from gridbook.logging.events import (
    VALUE_NOT_ALLOWED,
    EventType,
    emit_info,
    emit_warning,
)
from gridbook.model import (
    CellFormat,
    Grid,
    ListValidation,
    Sheet,
    Workbook,
    copy_grid,
    insert_column,
    insert_row,
    new_sheet,
    remove_column,
    remove_row,
)
from gridbook.names import delete_name, set_name
from gridbook.pivot import PivotError, PivotRequest, PivotResult, build_pivot
from gridbook.project import DEFAULT_CONFIG
from gridbook.storage import KeyValueStorage, MemoryStorage, load_workbook, save_workbook
from gridbook.sync import SyncResult, WorkbookSynchronizer
from gridbook.ui.view_filters import ColumnFilter, filter_rows
from gridbook.validation import (
    RejectionNotice,
    is_acceptable,
    is_flagged_invalid,
    parse_allowed_values,
)

RejectionListener = Callable[[RejectionNotice], None]

_FORMAT_FIELDS = set(CellFormat.model_fields)


class WorkbookService:
    """Owns one workbook value, its engine and its persistence.

    Parameters
    ----------
    storage : KeyValueStorage | None
        Where the snapshot lives.  Defaults to an in-memory store.
    config : dict | None
        Overrides for :data:`gridbook.project.DEFAULT_CONFIG`.
    engine_factory : EngineFactory | None
        Builds an empty engine for each rebuild.  Defaults to the bundled
        grid engine.
    """

    def __init__(
        self,
        storage: KeyValueStorage | None = None,
        *,
        config: dict[str, Any] | None = None,
        engine_factory: EngineFactory | None = None,
    ) -> None:
        self._config: dict[str, Any] = {**DEFAULT_CONFIG, **(config or {})}
        self._storage = storage if storage is not None else MemoryStorage()
        self._key = str(self._config["storage_key"])
        self._synchronizer = WorkbookSynchronizer(engine_factory)
        self._listeners: list[RejectionListener] = []

        workbook = load_workbook(
            self._storage,
            self._key,
            int(self._config["default_rows"]),
            int(self._config["default_cols"]),
        )
        self._workbook, self._sync = self._settle(workbook)

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def workbook(self) -> Workbook:
        """The current workbook value.  Treat it as read-only."""
        return self._workbook

    @property
    def engine(self) -> FormulaEngine:
        return self._sync.engine

    @property
    def sync_result(self) -> SyncResult:
        return self._sync

    @property
    def config(self) -> dict[str, Any]:
        return dict(self._config)

    @property
    def currency_symbol(self) -> str:
        return currency_symbol_for(
            self._config.get("currency_code"), self._config.get("currency_symbol")
        )

    def subscribe(self, listener: RejectionListener) -> Callable[[], None]:
        """Call *listener* with a :class:`RejectionNotice` for every refused edit.

        Returns a callable that removes the subscription.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _index(self, sheet_index: int | None) -> int:
        if sheet_index is None:
            return self._workbook.active_index
        if not 0 <= sheet_index < len(self._workbook.sheets):
            raise ValueError(
                f"Sheet index {sheet_index} out of range (0..{len(self._workbook.sheets) - 1})"
            )
        return sheet_index

    def _sheet(self, sheet_index: int | None) -> tuple[int, Sheet]:
        idx = self._index(sheet_index)
        return idx, self._workbook.sheets[idx]

    @staticmethod
    def _check_cell(sheet: Sheet, row: int, col: int) -> None:
        if not 0 <= row < sheet.n_rows or not 0 <= col < sheet.n_cols:
            raise ValueError(
                f"Cell ({row}, {col}) is outside sheet {sheet.name!r} "
                f"({sheet.n_rows} rows x {sheet.n_cols} cols)"
            )

    def _check_sheet_name(self, name: str, ignore_index: int | None = None) -> str:
        name = name.strip()
        if not name:
            raise ValueError("Sheet name must not be blank")
        for i, s in enumerate(self._workbook.sheets):
            if i != ignore_index and s.name.upper() == name.upper():
                raise ValueError(f"Sheet {name!r} already exists")
        return name

    @staticmethod
    def _replace_sheet(workbook: Workbook, idx: int, sheet: Sheet) -> list[Sheet]:
        sheets = list(workbook.sheets)
        sheets[idx] = sheet
        return sheets

    def _with_grid(self, idx: int, grid: Grid) -> Workbook:
        sheet = self._workbook.sheets[idx]
        updated = Sheet(name=sheet.name, grid=grid, names=dict(sheet.names))
        return Workbook(
            sheets=self._replace_sheet(self._workbook, idx, updated),
            active_index=self._workbook.active_index,
            version=self._workbook.version,
        )

    def _settle(self, workbook: Workbook) -> tuple[Workbook, SyncResult]:
        """Rebuild the engine and recompute the active sheet."""
        result = self._synchronizer.rebuild(workbook)
        idx = workbook.active_index
        sheet_id = result.sheet_id(idx)
        if sheet_id is None:
            return workbook, result
        sheet = recompute_sheet(workbook.sheets[idx], result.engine, sheet_id, self.currency_symbol)
        settled = Workbook(
            sheets=self._replace_sheet(workbook, idx, sheet),
            active_index=idx,
            version=workbook.version,
        )
        return settled, result

    def _commit(
        self,
        workbook: Workbook,
        event_type: EventType,
        message: str,
        context: dict[str, Any],
    ) -> dict[str, Any]:
        workbook = Workbook(
            sheets=workbook.sheets,
            active_index=workbook.active_index,
            version=self._workbook.version + 1,
        )
        self._workbook, self._sync = self._settle(workbook)
        save_workbook(self._storage, self._key, self._workbook)
        emit_info(event_type, message, {**context, "version": self._workbook.version})
        return {
            "ok": True,
            "version": self._workbook.version,
            "sheet_failures": dict(self._sync.sheet_failures),
            "name_failures": [f.model_dump() for f in self._sync.name_failures],
        }

    @staticmethod
    def _refused(reason: str, message: str) -> dict[str, Any]:
        return {"ok": False, "reason": reason, "message": message}

    # ------------------------------------------------------------------
    # Cell edits
    # ------------------------------------------------------------------

    def edit_cell(self, row: int, col: int, text: str, sheet_index: int | None = None) -> dict[str, Any]:
        """Commit *text* as the input of one cell.

        Returns ``{"ok": False, "reason": "validation", ...}`` without
        touching the workbook when the cell's list rule refuses the value.
        """
        idx, sheet = self._sheet(sheet_index)
        self._check_cell(sheet, row, col)
        addr = make_addr(row, col)
        rule = sheet.grid[row][col].validation

        if not is_acceptable(text, rule):
            notice = RejectionNotice(
                sheet=sheet.name,
                row=row,
                col=col,
                addr=addr,
                attempted=text,
                allowed_values=list(rule.allowed_values) if rule else [],
            )
            for listener in list(self._listeners):
                listener(notice)
            emit_warning(
                EventType.validation_rejected,
                notice.message,
                {"sheet": sheet.name, "addr": addr, "input": text},
                error_code=VALUE_NOT_ALLOWED,
            )
            result = self._refused("validation", notice.message)
            result["notice"] = notice.model_dump()
            return result

        grid = copy_grid(sheet.grid)
        grid[row][col].input = text
        result = self._commit(
            self._with_grid(idx, grid),
            EventType.cell_edited,
            f"Edited {sheet.name}!{addr}",
            {"sheet": sheet.name, "addr": addr, "input": text},
        )
        result["display"] = self.get_cell_display(row, col, idx)
        return result

    def set_format(self, row: int, col: int, sheet_index: int | None = None, **patch: Any) -> dict[str, Any]:
        """Merge *patch* (``bold``, ``italic``, ``align``, ``type``) into a cell's format."""
        idx, sheet = self._sheet(sheet_index)
        self._check_cell(sheet, row, col)
        unknown = set(patch) - _FORMAT_FIELDS
        if unknown:
            raise ValueError(f"Unknown format field(s): {sorted(unknown)}")
        patch = {k: v for k, v in patch.items() if v is not None}

        grid = copy_grid(sheet.grid)
        cell = grid[row][col]
        cell.fmt = CellFormat.model_validate({**cell.fmt.model_dump(), **patch})
        addr = make_addr(row, col)
        return self._commit(
            self._with_grid(idx, grid),
            EventType.structure_changed,
            f"Formatted {sheet.name}!{addr}",
            {"sheet": sheet.name, "op": "set_format", "addr": addr, **patch},
        )

    def set_validation(
        self,
        row: int,
        col: int,
        values: list[str] | str | None,
        sheet_index: int | None = None,
    ) -> dict[str, Any]:
        """Replace a cell's list rule.

        *values* may be a list or a comma-separated string.  ``None`` or an
        empty list clears the rule.  The current input is not re-checked.
        """
        idx, sheet = self._sheet(sheet_index)
        self._check_cell(sheet, row, col)
        if isinstance(values, str):
            values = parse_allowed_values(values)
        allowed = list(values or [])

        grid = copy_grid(sheet.grid)
        grid[row][col].validation = ListValidation(allowed_values=allowed) if allowed else None
        addr = make_addr(row, col)
        return self._commit(
            self._with_grid(idx, grid),
            EventType.structure_changed,
            f"Validation on {sheet.name}!{addr} set to {allowed}",
            {"sheet": sheet.name, "op": "set_validation", "addr": addr, "allowed_values": allowed},
        )

    # ------------------------------------------------------------------
    # Rows and columns
    # ------------------------------------------------------------------

    def _shape_op(
        self,
        op: Callable[[Grid], bool],
        op_name: str,
        sheet_index: int | None,
        refusal: str,
    ) -> dict[str, Any]:
        idx, sheet = self._sheet(sheet_index)
        grid = copy_grid(sheet.grid)
        if not op(grid):
            return self._refused(op_name, refusal)
        rows, cols = len(grid), len(grid[0])
        result = self._commit(
            self._with_grid(idx, grid),
            EventType.structure_changed,
            f"{op_name} on {sheet.name}: now {rows}x{cols}",
            {"sheet": sheet.name, "op": op_name, "n_rows": rows, "n_cols": cols},
        )
        result.update({"n_rows": rows, "n_cols": cols})
        return result

    def insert_row(self, sheet_index: int | None = None) -> dict[str, Any]:
        return self._shape_op(insert_row, "insert_row", sheet_index, "")

    def remove_row(self, sheet_index: int | None = None) -> dict[str, Any]:
        return self._shape_op(remove_row, "remove_row", sheet_index, "Cannot remove the last row")

    def insert_column(self, sheet_index: int | None = None) -> dict[str, Any]:
        return self._shape_op(insert_column, "insert_column", sheet_index, "")

    def remove_column(self, sheet_index: int | None = None) -> dict[str, Any]:
        return self._shape_op(remove_column, "remove_column", sheet_index, "Cannot remove the last column")

    # ------------------------------------------------------------------
    # Sheets
    # ------------------------------------------------------------------

    def _default_sheet_name(self) -> str:
        taken = {s.name.upper() for s in self._workbook.sheets}
        n = len(self._workbook.sheets) + 1
        while f"SHEET{n}" in taken:
            n += 1
        return f"Sheet{n}"

    def add_sheet(self, name: str | None = None) -> dict[str, Any]:
        """Append an empty sheet and make it active."""
        name = self._default_sheet_name() if name is None else self._check_sheet_name(name)
        sheet = new_sheet(name, int(self._config["default_rows"]), int(self._config["default_cols"]))
        sheets = list(self._workbook.sheets) + [sheet]
        result = self._commit(
            Workbook(sheets=sheets, active_index=len(sheets) - 1, version=self._workbook.version),
            EventType.sheet_changed,
            f"Added sheet {name!r}",
            {"op": "add", "sheet": name},
        )
        result.update({"index": len(sheets) - 1, "name": name})
        return result

    def rename_sheet(self, sheet_index: int, name: str) -> dict[str, Any]:
        idx, sheet = self._sheet(sheet_index)
        name = self._check_sheet_name(name, ignore_index=idx)
        renamed = Sheet(name=name, grid=copy_grid(sheet.grid), names=dict(sheet.names))
        result = self._commit(
            Workbook(
                sheets=self._replace_sheet(self._workbook, idx, renamed),
                active_index=self._workbook.active_index,
                version=self._workbook.version,
            ),
            EventType.sheet_changed,
            f"Renamed sheet {sheet.name!r} to {name!r}",
            {"op": "rename", "sheet": name, "old_name": sheet.name},
        )
        result.update({"index": idx, "name": name})
        return result

    def delete_sheet(self, sheet_index: int) -> dict[str, Any]:
        """Remove a sheet.  The last remaining sheet is never deleted.

        The active sheet stays the same sheet when possible; the active
        index is then clamped into range.
        """
        idx, sheet = self._sheet(sheet_index)
        if len(self._workbook.sheets) <= 1:
            return self._refused("delete_sheet", "Cannot delete the only sheet")
        sheets = list(self._workbook.sheets)
        sheets.pop(idx)
        active = self._workbook.active_index
        if idx < active:
            active -= 1
        active = max(0, min(active, len(sheets) - 1))
        result = self._commit(
            Workbook(sheets=sheets, active_index=active, version=self._workbook.version),
            EventType.sheet_changed,
            f"Deleted sheet {sheet.name!r}",
            {"op": "delete", "sheet": sheet.name},
        )
        result.update({"deleted": sheet.name, "active_index": active})
        return result

    def set_active_sheet(self, sheet_index: int) -> dict[str, Any]:
        idx, sheet = self._sheet(sheet_index)
        result = self._commit(
            Workbook(sheets=list(self._workbook.sheets), active_index=idx, version=self._workbook.version),
            EventType.sheet_changed,
            f"Activated sheet {sheet.name!r}",
            {"op": "activate", "sheet": sheet.name},
        )
        result["active_index"] = idx
        return result

    # ------------------------------------------------------------------
    # Named ranges
    # ------------------------------------------------------------------

    def list_named_ranges(self, sheet_index: int | None = None) -> dict[str, str]:
        _, sheet = self._sheet(sheet_index)
        return dict(sheet.names)

    def set_named_range(self, name: str, ref: str, sheet_index: int | None = None) -> dict[str, Any]:
        """Bind *name* to *ref* on a sheet.  Blank name or reference is a no-op.

        The binding is kept even when the engine rejects it; rejections
        are listed under ``name_failures`` and retried on every rebuild.
        """
        idx, sheet = self._sheet(sheet_index)
        if not name.strip() or not ref.strip():
            return self._refused("blank", "Name and reference are required")
        names = set_name(sheet.names, name, ref)
        updated = Sheet(name=sheet.name, grid=copy_grid(sheet.grid), names=names)
        return self._commit(
            Workbook(
                sheets=self._replace_sheet(self._workbook, idx, updated),
                active_index=self._workbook.active_index,
                version=self._workbook.version,
            ),
            EventType.structure_changed,
            f"Named range {name.strip()!r} -> {ref.strip()!r} on {sheet.name!r}",
            {"sheet": sheet.name, "op": "set_name", "name": name.strip(), "ref": ref.strip()},
        )

    def delete_named_range(self, name: str, sheet_index: int | None = None) -> dict[str, Any]:
        idx, sheet = self._sheet(sheet_index)
        if name not in sheet.names:
            return self._refused("missing", f"Name {name!r} is not defined on {sheet.name!r}")
        updated = Sheet(name=sheet.name, grid=copy_grid(sheet.grid), names=delete_name(sheet.names, name))
        return self._commit(
            Workbook(
                sheets=self._replace_sheet(self._workbook, idx, updated),
                active_index=self._workbook.active_index,
                version=self._workbook.version,
            ),
            EventType.structure_changed,
            f"Deleted named range {name!r} on {sheet.name!r}",
            {"sheet": sheet.name, "op": "delete_name", "name": name},
        )

    # ------------------------------------------------------------------
    # CSV
    # ------------------------------------------------------------------

    def import_csv(self, text: str, sheet_index: int | None = None) -> dict[str, Any]:
        idx, sheet = self._sheet(sheet_index)
        grid = import_csv(sheet.grid, text)
        rows, cols = len(grid), len(grid[0])
        result = self._commit(
            self._with_grid(idx, grid),
            EventType.csv_imported,
            f"Imported CSV into {sheet.name!r}",
            {"sheet": sheet.name, "n_rows": rows, "n_cols": cols, "bytes": len(text)},
        )
        result.update({"n_rows": rows, "n_cols": cols})
        return result

    def export_csv(self, sheet_index: int | None = None) -> str:
        _, sheet = self._sheet(sheet_index)
        return export_csv(sheet.grid)

    # ------------------------------------------------------------------
    # Reads over the settled state
    # ------------------------------------------------------------------

    def build_pivot(
        self,
        range_text: str,
        row_col: int = 0,
        value_col: int = 1,
        agg: str = "SUM",
        sheet_index: int | None = None,
    ) -> PivotResult | PivotError:
        idx, sheet = self._sheet(sheet_index)
        sheet_id = self._sync.sheet_id(idx)
        if sheet_id is None:
            return PivotError(message=f"Sheet {sheet.name!r} is not available in the engine")
        request = PivotRequest(range=range_text, row_col=row_col, value_col=value_col, agg=agg)
        return build_pivot(self.engine, sheet_id, request)

    def _view_sheet(self, idx: int) -> Sheet:
        """The sheet with fresh display values (inactive sheets included)."""
        sheet = self._workbook.sheets[idx]
        sheet_id = self._sync.sheet_id(idx)
        if idx == self._workbook.active_index or sheet_id is None:
            return sheet
        return recompute_sheet(sheet, self.engine, sheet_id, self.currency_symbol)

    def get_cell_display(self, row: int, col: int, sheet_index: int | None = None) -> str:
        idx, sheet = self._sheet(sheet_index)
        self._check_cell(sheet, row, col)
        sheet_id = self._sync.sheet_id(idx)
        if sheet_id is None:
            return sheet.grid[row][col].computed_value
        return format_value(
            self.engine.get_computed_value(sheet_id, row, col),
            sheet.grid[row][col].fmt,
            self.currency_symbol,
        )

    def filter_rows(self, filters: list[ColumnFilter], sheet_index: int | None = None) -> list[int]:
        idx = self._index(sheet_index)
        return filter_rows(self._view_sheet(idx).grid, filters)

    def get_sheet_view(
        self,
        sheet_index: int | None = None,
        filters: list[ColumnFilter] | None = None,
    ) -> dict[str, Any]:
        """Rows of a sheet ready for rendering, after column filters."""
        idx = self._index(sheet_index)
        sheet = self._view_sheet(idx)
        visible = filter_rows(sheet.grid, filters or [])
        rows = []
        for r in visible:
            cells = []
            for c, cell in enumerate(sheet.grid[r]):
                cells.append({
                    "addr": make_addr(r, c),
                    "input": cell.input,
                    "display": cell.computed_value,
                    "fmt": cell.fmt.model_dump(),
                    "validation": cell.validation.model_dump() if cell.validation else None,
                    "invalid": is_flagged_invalid(cell),
                })
            rows.append({"row": r, "cells": cells})
        return {
            "index": idx,
            "name": sheet.name,
            "n_rows": sheet.n_rows,
            "n_cols": sheet.n_cols,
            "names": dict(sheet.names),
            "rows": rows,
        }

    def get_workbook_info(self) -> dict[str, Any]:
        wb = self._workbook
        return {
            "version": wb.version,
            "active_index": wb.active_index,
            "sheets": [
                {
                    "index": i,
                    "name": s.name,
                    "n_rows": s.n_rows,
                    "n_cols": s.n_cols,
                    "n_names": len(s.names),
                    "active": i == wb.active_index,
                }
                for i, s in enumerate(wb.sheets)
            ],
            "sheet_failures": dict(self._sync.sheet_failures),
            "name_failures": [f.model_dump() for f in self._sync.name_failures],
        }

    @staticmethod
    def get_function_catalog() -> dict[str, list[dict[str, str]]]:
        return {
            category: [tpl.model_dump() for tpl in templates]
            for category, templates in FUNCTION_CATALOG.items()
        }
