"""Sheet-scoped named ranges.

Each sheet keeps its own ``name -> reference`` mapping; that mapping is
the source of truth and is persisted with the sheet.  The engine only
ever receives copies, re-registered on every synchronization.
"""

from __future__ import annotations

from pydantic import BaseModel

from gridbook.engine.protocol import FormulaEngine
from gridbook.formulas.errors import ENGINE_ERRORS
from gridbook.logging.events import (
    NAME_REGISTRATION_FAILED,
    EventType,
    emit_warning,
)


class NameFailure(BaseModel):
    sheet: str
    name: str
    ref: str
    error: str


def set_name(names: dict[str, str], name: str, ref: str) -> dict[str, str]:
    """Return a copy of *names* with *name* bound to *ref*.

    Blank names or references leave the mapping unchanged.
    """
    name = name.strip()
    ref = ref.strip()
    if not name or not ref:
        return dict(names)
    updated = dict(names)
    updated[name] = ref
    return updated


def delete_name(names: dict[str, str], name: str) -> dict[str, str]:
    return {k: v for k, v in names.items() if k != name}


def register_names(
    engine: FormulaEngine,
    sheet_id: int,
    names: dict[str, str],
    sheet_name: str = "",
) -> list[NameFailure]:
    """Register every entry of *names* on the engine sheet *sheet_id*.

    A failing entry (invalid identifier, duplicate, malformed reference)
    is skipped and reported; the remaining entries are still registered.
    """
    failures: list[NameFailure] = []
    for name, ref in names.items():
        try:
            engine.add_named_expression(name, ref, sheet_id)
        except (*ENGINE_ERRORS, KeyError) as exc:
            failures.append(NameFailure(sheet=sheet_name, name=name, ref=ref, error=str(exc)))
            emit_warning(
                EventType.named_range_rejected,
                f"Named range {name!r} rejected: {exc}",
                {"sheet": sheet_name, "name": name, "ref": ref},
                error_code=NAME_REGISTRATION_FAILED,
            )
    return failures
