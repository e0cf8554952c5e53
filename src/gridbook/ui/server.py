"""FastAPI server exposing a gridbook project over HTTP.

Routes are thin wrappers over the shared :class:`WorkbookService`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from gridbook.logging.events import get_sink
from gridbook.project import open_project
from gridbook.service import WorkbookService
from gridbook.ui.view_filters import ColumnFilter

# The singleton service is set at startup by ``create_app()``.
_service: WorkbookService | None = None


def create_app(project_dir: Path) -> FastAPI:
    """Create the FastAPI application for a given project.

    Args:
        project_dir: Root of the gridbook project.

    Returns:
        Configured FastAPI instance.
    """
    global _service
    _service = open_project(project_dir)

    from gridbook import __version__

    app = FastAPI(title="gridbook", version=__version__)
    app.include_router(_api_router())
    return app


def _svc() -> WorkbookService:
    """Get the singleton service, raising if not initialised."""
    if _service is None:
        raise HTTPException(500, "Service not initialised")
    return _service


def parse_filter_params(params: list[str]) -> list[ColumnFilter]:
    """Parse ``"<column>:<query>"`` query parameters into column filters."""
    filters = []
    for raw in params:
        col, sep, query = raw.partition(":")
        if not sep or not col.strip().isdigit():
            raise ValueError(f"Filter must look like '<column>:<text>', got {raw!r}")
        filters.append(ColumnFilter(column=int(col), query=query))
    return filters


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SheetTarget(BaseModel):
    sheet_index: int | None = None


class CellEditRequest(SheetTarget):
    row: int
    col: int
    text: str


class CellFormatRequest(SheetTarget):
    row: int
    col: int
    bold: bool | None = None
    italic: bool | None = None
    align: Literal["left", "center", "right"] | None = None
    type: Literal["text", "number", "currency", "percent"] | None = None


class ValidationRequest(SheetTarget):
    row: int
    col: int
    values: list[str] | str | None = None


class AddSheetRequest(BaseModel):
    name: str | None = None


class RenameSheetRequest(BaseModel):
    name: str


class NameRequest(SheetTarget):
    name: str
    ref: str


class CsvImportRequest(SheetTarget):
    text: str


class PivotRequestBody(SheetTarget):
    range: str
    row_col: int = 0
    value_col: int = 1
    agg: Literal["SUM", "COUNT"] = "SUM"


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


def _api_router():
    from fastapi import APIRouter

    router = APIRouter(prefix="/api")

    # -- Workbook --

    @router.get("/workbook")
    async def get_workbook() -> dict[str, Any]:
        return _svc().get_workbook_info()

    @router.get("/sheet")
    async def get_sheet(
        index: int | None = Query(None, ge=0),
        filter: list[str] = Query([]),
    ) -> dict[str, Any]:
        try:
            return _svc().get_sheet_view(index, parse_filter_params(filter))
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    # -- Cells --

    @router.post("/cell")
    async def edit_cell(req: CellEditRequest) -> dict[str, Any]:
        try:
            return _svc().edit_cell(req.row, req.col, req.text, req.sheet_index)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.post("/cell/format")
    async def set_format(req: CellFormatRequest) -> dict[str, Any]:
        patch = req.model_dump(include={"bold", "italic", "align", "type"}, exclude_none=True)
        try:
            return _svc().set_format(req.row, req.col, req.sheet_index, **patch)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.post("/cell/validation")
    async def set_validation(req: ValidationRequest) -> dict[str, Any]:
        try:
            return _svc().set_validation(req.row, req.col, req.values, req.sheet_index)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    # -- Rows and columns --

    @router.post("/rows/insert")
    async def insert_row(req: SheetTarget) -> dict[str, Any]:
        try:
            return _svc().insert_row(req.sheet_index)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.post("/rows/remove")
    async def remove_row(req: SheetTarget) -> dict[str, Any]:
        try:
            return _svc().remove_row(req.sheet_index)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.post("/cols/insert")
    async def insert_column(req: SheetTarget) -> dict[str, Any]:
        try:
            return _svc().insert_column(req.sheet_index)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.post("/cols/remove")
    async def remove_column(req: SheetTarget) -> dict[str, Any]:
        try:
            return _svc().remove_column(req.sheet_index)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    # -- Sheets --

    @router.get("/sheets")
    async def list_sheets() -> list[dict[str, Any]]:
        return _svc().get_workbook_info()["sheets"]

    @router.post("/sheets")
    async def add_sheet(req: AddSheetRequest) -> dict[str, Any]:
        try:
            return _svc().add_sheet(req.name)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.patch("/sheets/{index}")
    async def rename_sheet(index: int, req: RenameSheetRequest) -> dict[str, Any]:
        try:
            return _svc().rename_sheet(index, req.name)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.delete("/sheets/{index}")
    async def delete_sheet(index: int) -> dict[str, Any]:
        try:
            return _svc().delete_sheet(index)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.post("/sheets/{index}/activate")
    async def activate_sheet(index: int) -> dict[str, Any]:
        try:
            return _svc().set_active_sheet(index)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    # -- Named ranges --

    @router.get("/names")
    async def list_names(sheet_index: int | None = Query(None, ge=0)) -> dict[str, str]:
        try:
            return _svc().list_named_ranges(sheet_index)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.post("/names")
    async def set_name(req: NameRequest) -> dict[str, Any]:
        try:
            return _svc().set_named_range(req.name, req.ref, req.sheet_index)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.delete("/names/{name}")
    async def delete_name(name: str, sheet_index: int | None = Query(None, ge=0)) -> dict[str, Any]:
        try:
            return _svc().delete_named_range(name, sheet_index)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    # -- CSV --

    @router.post("/csv/import")
    async def import_csv(req: CsvImportRequest) -> dict[str, Any]:
        try:
            return _svc().import_csv(req.text, req.sheet_index)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.get("/csv/export", response_class=PlainTextResponse)
    async def export_csv(sheet_index: int | None = Query(None, ge=0)) -> str:
        try:
            return _svc().export_csv(sheet_index)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    # -- Pivot --

    @router.post("/pivot")
    async def pivot(req: PivotRequestBody) -> dict[str, Any]:
        try:
            result = _svc().build_pivot(req.range, req.row_col, req.value_col, req.agg, req.sheet_index)
        except ValueError as exc:
            raise HTTPException(400, str(exc))
        return result.model_dump()

    # -- Function catalog --

    @router.get("/functions")
    async def functions() -> dict[str, list[dict[str, str]]]:
        return _svc().get_function_catalog()

    # -- Events --

    @router.get("/events")
    async def get_events(
        level: str | None = Query(None),
        event_type: str | None = Query(None),
        sheet: str | None = Query(None),
        limit: int = Query(200, ge=1, le=2000),
    ) -> list[dict[str, Any]]:
        sink = get_sink()
        if sink is None:
            return []
        return sink.read_global(level=level, event_type=event_type, sheet=sheet, limit=limit)

    return router
