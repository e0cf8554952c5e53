"""Rebuild a formula engine from the workbook.

Every committed mutation throws the previous engine away and pushes the
whole workbook into a fresh one: all sheets first, then every sheet's
named ranges, so a name may refer to any sheet.
"""

from __future__ import annotations

import time
from typing import Any

from gridbook.engine.grid_engine import GridEngine
from gridbook.engine.protocol import EngineFactory, FormulaEngine
from gridbook.formulas.errors import ENGINE_ERRORS
from gridbook.logging.events import (
    SHEET_PUSH_FAILED,
    EventType,
    emit_info,
    emit_warning,
)
from gridbook.model import Sheet, Workbook
from gridbook.names import NameFailure, register_names


class SyncResult:
    """Outcome of one rebuild.

    Attributes:
        engine: The freshly built engine.
        sheet_ids: Workbook sheet index -> engine sheet id, for every
            sheet that was pushed.
        sheet_failures: Workbook sheet index -> error message.
        name_failures: Named ranges the engine refused.
    """

    def __init__(self, engine: FormulaEngine) -> None:
        self.engine = engine
        self.sheet_ids: dict[int, int] = {}
        self.sheet_failures: dict[int, str] = {}
        self.name_failures: list[NameFailure] = []

    @property
    def ok(self) -> bool:
        return not self.sheet_failures and not self.name_failures

    def sheet_id(self, index: int) -> int | None:
        return self.sheet_ids.get(index)


def engine_sheet_name(sheet: Sheet, index: int) -> str:
    """Name used for *sheet* in the engine; blank names fall back to ``Sheet<n>``."""
    return sheet.name.strip() or f"Sheet{index + 1}"


class WorkbookSynchronizer:
    """Builds engines from workbooks.

    Args:
        engine_factory: Zero-argument callable returning a new, empty
            engine.  Defaults to :class:`GridEngine`.
    """

    def __init__(self, engine_factory: EngineFactory | None = None) -> None:
        self._engine_factory = engine_factory or GridEngine

    def rebuild(self, workbook: Workbook) -> SyncResult:
        t0 = time.monotonic()
        result = SyncResult(self._engine_factory())
        engine = result.engine

        for idx, sheet in enumerate(workbook.sheets):
            name = engine_sheet_name(sheet, idx)
            try:
                sheet_id = self._get_or_add_sheet(engine, name)
                engine.set_sheet_content(sheet_id, [[cell.input for cell in row] for row in sheet.grid])
            except (*ENGINE_ERRORS, KeyError) as exc:
                result.sheet_failures[idx] = str(exc)
                emit_warning(
                    EventType.sync_sheet_failed,
                    f"Could not push sheet {name!r}: {exc}",
                    {"sheet": name, "index": idx},
                    error_code=SHEET_PUSH_FAILED,
                )
                continue
            result.sheet_ids[idx] = sheet_id

        for idx, sheet_id in result.sheet_ids.items():
            sheet = workbook.sheets[idx]
            if sheet.names:
                result.name_failures.extend(
                    register_names(engine, sheet_id, sheet.names, engine_sheet_name(sheet, idx))
                )

        context: dict[str, Any] = {
            "sheets": len(result.sheet_ids),
            "sheet_failures": len(result.sheet_failures),
            "name_failures": len(result.name_failures),
            "version": workbook.version,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        }
        emit_info(EventType.sync_completed, "Engine rebuilt", context)
        return result

    @staticmethod
    def _get_or_add_sheet(engine: FormulaEngine, name: str) -> int:
        try:
            return engine.get_sheet_id(name)
        except KeyError:
            return engine.add_sheet(name)
