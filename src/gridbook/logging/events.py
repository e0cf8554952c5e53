"""Workbook event schema and module-level emit helpers.

All timestamps use UTC ISO-8601 with ``Z`` suffix.  The ``emit()``
family of functions is safe to call from any context -- failures are
swallowed and printed to stderr.
"""

from __future__ import annotations

import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    # Persistence
    workbook_loaded = "workbook_loaded"
    workbook_load_failed = "workbook_load_failed"
    workbook_saved = "workbook_saved"

    # Mutations
    cell_edited = "cell_edited"
    validation_rejected = "validation_rejected"
    structure_changed = "structure_changed"
    sheet_changed = "sheet_changed"
    csv_imported = "csv_imported"

    # Engine synchronization
    sync_completed = "sync_completed"
    sync_sheet_failed = "sync_sheet_failed"
    named_range_rejected = "named_range_rejected"

    # Pivot
    pivot_built = "pivot_built"
    pivot_failed = "pivot_failed"


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

SNAPSHOT_INVALID = "snapshot_invalid"
SHEET_PUSH_FAILED = "sheet_push_failed"
NAME_REGISTRATION_FAILED = "name_registration_failed"
VALUE_NOT_ALLOWED = "value_not_allowed"
PIVOT_RANGE_INVALID = "pivot_range_invalid"


# ---------------------------------------------------------------------------
# Context sanitising
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 256


def truncate_context(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *context* with long string values truncated.

    Cell inputs and CSV payloads can be arbitrarily large; events keep
    at most 256 characters of any string value.
    """
    out: dict[str, Any] = {}
    for k, v in context.items():
        if isinstance(v, dict):
            out[k] = truncate_context(v)
        elif isinstance(v, list):
            out[k] = [_truncate_value(item) for item in v]
        else:
            out[k] = _truncate_value(v)
    return out


def _truncate_value(v: Any) -> Any:
    if isinstance(v, dict):
        return truncate_context(v)
    if isinstance(v, str) and len(v) > _MAX_VALUE_LEN:
        return v[:_MAX_VALUE_LEN] + "...[truncated]"
    return v


# ---------------------------------------------------------------------------
# Attribution invariants
# ---------------------------------------------------------------------------

_CELL_EVENT_REQUIRED = {"sheet", "addr"}

_EVENT_REQUIRED_KEYS: dict[str, set[str]] = {
    EventType.cell_edited.value: _CELL_EVENT_REQUIRED,
    EventType.validation_rejected.value: _CELL_EVENT_REQUIRED,
    EventType.structure_changed.value: {"sheet", "op"},
    EventType.sheet_changed.value: {"op"},
    EventType.sync_sheet_failed.value: {"sheet"},
    EventType.named_range_rejected.value: {"sheet", "name"},
    EventType.workbook_saved.value: {"version"},
}


def _validate_attribution(event: GridbookEvent) -> GridbookEvent:
    """Check required context keys; downgrade to warning if missing."""
    required = _EVENT_REQUIRED_KEYS.get(event.event_type.value, set())
    if not required:
        return event
    missing = required - set(event.context.keys())
    if missing:
        ctx = dict(event.context)
        ctx["_missing_attribution"] = sorted(missing)
        return event.model_copy(update={"level": EventLevel.warning, "context": ctx})
    return event


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    """Return current UTC timestamp in ISO-8601 with Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class GridbookEvent(BaseModel):
    """A single structured log event."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Module-level sink reference
# ---------------------------------------------------------------------------

# Lazily initialised when ``set_project_dir`` is called.
_sink: Any = None  # EventSink | None
_project_dir: Any = None


def set_project_dir(project_dir: Any) -> None:
    """Configure the module-level event sink for a project directory.

    If it is never called, ``emit()`` silently discards events.  Reads
    ``logging_fsync`` and ``logging_tail_bytes`` from ``gridbook.yaml``.
    """
    global _sink, _project_dir
    from pathlib import Path

    from gridbook.logging.sink import EventSink
    from gridbook.project import load_project_config

    project_dir = Path(project_dir)
    _project_dir = project_dir

    fsync = False
    tail_bytes = None
    try:
        cfg = load_project_config(project_dir)
        fsync = bool(cfg.get("logging_fsync", False))
        tb = cfg.get("logging_tail_bytes")
        if tb is not None:
            tail_bytes = int(tb)
    except (OSError, ValueError, TypeError) as exc:
        _stderr_warning(f"could not read logging config: {exc}")

    _sink = EventSink(project_dir, fsync=fsync, tail_bytes=tail_bytes)


def reset_sink() -> None:
    """Detach the module-level sink (events are discarded again)."""
    global _sink, _project_dir
    _sink = None
    _project_dir = None


def get_sink() -> Any:
    """Return the module-level sink, or None."""
    return _sink


# ---------------------------------------------------------------------------
# Rate-limited stderr warnings
# ---------------------------------------------------------------------------

_last_stderr_ts: float | None = None
_STDERR_INTERVAL_SECS = 60.0


def _stderr_warning(msg: str) -> None:
    """Print a warning to stderr, rate-limited to one per 60 seconds."""
    global _last_stderr_ts
    now = time.monotonic()
    if _last_stderr_ts is not None and now - _last_stderr_ts < _STDERR_INTERVAL_SECS:
        return
    _last_stderr_ts = now
    try:
        print(f"[gridbook] {msg}", file=sys.stderr)
    except OSError:
        pass


# ---------------------------------------------------------------------------
# Safe emit helpers
# ---------------------------------------------------------------------------


def emit(event: GridbookEvent) -> None:
    """Write an event to the project log.

    **Never raises.**  On failure, prints a rate-limited warning to stderr.
    """
    try:
        sink = get_sink()
        if sink is None:
            return
        event = event.model_copy(update={"context": truncate_context(event.context)})
        event = _validate_attribution(event)
        sink.write(event)
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")


def emit_info(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
) -> None:
    """Convenience: emit an info-level event."""
    emit(
        GridbookEvent(
            level=EventLevel.info,
            event_type=event_type,
            message=message,
            context=context or {},
        )
    )


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    """Convenience: emit a warning-level event."""
    emit(
        GridbookEvent(
            level=EventLevel.warning,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        )
    )


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    """Convenience: emit an error-level event."""
    emit(
        GridbookEvent(
            level=EventLevel.error,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        )
    )
