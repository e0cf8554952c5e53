"""Structured event logging for gridbook.

Provides the event schema, a filesystem NDJSON sink, and safe emit
helpers that never raise uncaught exceptions.
"""

from gridbook.logging.events import (
    EventLevel,
    EventType,
    GridbookEvent,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    get_sink,
    reset_sink,
    set_project_dir,
    truncate_context,
)
from gridbook.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "GridbookEvent",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
    "get_sink",
    "reset_sink",
    "set_project_dir",
    "truncate_context",
]
