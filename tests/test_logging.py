"""Tests for the gridbook structured event logging system."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gridbook.logging.events import (
    EventLevel,
    EventType,
    GridbookEvent,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    get_sink,
    set_project_dir,
    truncate_context,
)
from gridbook.logging.sink import EventSink


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Create a minimal project directory."""
    (tmp_path / "logs").mkdir()
    return tmp_path


@pytest.fixture
def sink(project_dir: Path) -> EventSink:
    return EventSink(project_dir)


def _lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


# ---------------------------------------------------------------------------
# A) Event schema
# ---------------------------------------------------------------------------


class TestGridbookEvent:
    def test_event_defaults(self) -> None:
        evt = GridbookEvent(level=EventLevel.info, event_type=EventType.cell_edited, message="hi")
        assert evt.schema_version == 1
        assert evt.ts.endswith("Z")
        assert evt.level == "info"
        assert evt.event_type == "cell_edited"
        assert evt.context == {}
        assert evt.error_code is None

    def test_all_event_types_exist(self) -> None:
        expected = {
            "workbook_loaded", "workbook_load_failed", "workbook_saved",
            "cell_edited", "validation_rejected", "structure_changed",
            "sheet_changed", "csv_imported", "sync_completed",
            "sync_sheet_failed", "named_range_rejected", "pivot_built",
            "pivot_failed",
        }
        assert {e.value for e in EventType} == expected

    def test_truncate_context(self) -> None:
        ctx = truncate_context({"input": "x" * 1000, "nested": {"v": "y" * 300}, "n": 5})
        assert ctx["input"].endswith("...[truncated]")
        assert len(ctx["input"]) == 256 + len("...[truncated]")
        assert ctx["nested"]["v"].endswith("...[truncated]")
        assert ctx["n"] == 5


# ---------------------------------------------------------------------------
# B) Sink
# ---------------------------------------------------------------------------


class TestEventSink:
    def test_write_and_read(self, sink: EventSink) -> None:
        for i in range(3):
            sink.write(GridbookEvent(
                level=EventLevel.info,
                event_type=EventType.cell_edited,
                message=f"edit {i}",
                context={"sheet": "S", "addr": "A1"},
            ))
        events = sink.read_global()
        assert [e["message"] for e in events] == ["edit 2", "edit 1", "edit 0"]

    def test_lines_are_sorted_json(self, sink: EventSink) -> None:
        sink.write(GridbookEvent(level=EventLevel.info, event_type=EventType.workbook_saved))
        raw = sink.path.read_text().strip()
        assert list(json.loads(raw)) == sorted(json.loads(raw))

    def test_filters(self, sink: EventSink) -> None:
        sink.write(GridbookEvent(level=EventLevel.info, event_type=EventType.cell_edited, context={"sheet": "A"}))
        sink.write(GridbookEvent(level=EventLevel.warning, event_type=EventType.pivot_failed, context={"sheet": "B"}))
        assert len(sink.read_global(level="warning")) == 1
        assert len(sink.read_global(event_type="cell_edited")) == 1
        assert sink.read_global(sheet="B")[0]["event_type"] == "pivot_failed"
        assert len(sink.read_global(limit=1)) == 1

    def test_skips_corrupt_lines(self, sink: EventSink) -> None:
        sink.path.write_text('not json\n{"level": "info", "event_type": "cell_edited"}\n')
        assert len(sink.read_global()) == 1

    def test_tail_read(self, project_dir: Path) -> None:
        small = EventSink(project_dir, tail_bytes=400)
        for i in range(50):
            small.write(GridbookEvent(level=EventLevel.info, event_type=EventType.sync_completed, message=str(i)))
        events = small.read_global()
        assert 0 < len(events) < 50
        assert events[0]["message"] == "49"


# ---------------------------------------------------------------------------
# C) Emit helpers
# ---------------------------------------------------------------------------


class TestEmit:
    def test_emit_without_sink_is_noop(self) -> None:
        assert get_sink() is None
        emit_info(EventType.sync_completed, "nothing happens")

    def test_emit_levels(self, project_dir: Path) -> None:
        set_project_dir(project_dir)
        emit_info(EventType.workbook_saved, "saved", {"version": 1})
        emit_warning(EventType.pivot_failed, "bad", {"range": "x"}, error_code="pivot_range_invalid")
        emit_error(EventType.workbook_load_failed, "boom", error_code="snapshot_invalid")
        events = _lines(project_dir / "logs" / "events.ndjson")
        assert [e["level"] for e in events] == ["info", "warning", "error"]
        assert events[1]["error_code"] == "pivot_range_invalid"

    def test_missing_attribution_downgrades(self, project_dir: Path) -> None:
        set_project_dir(project_dir)
        emit_info(EventType.cell_edited, "no addr", {"sheet": "S"})
        event = _lines(project_dir / "logs" / "events.ndjson")[0]
        assert event["level"] == "warning"
        assert event["context"]["_missing_attribution"] == ["addr"]

    def test_emit_never_raises(self, project_dir: Path, capsys) -> None:
        class BrokenSink:
            def write(self, event):
                raise OSError("disk full")

        import gridbook.logging.events as events_mod

        events_mod._sink = BrokenSink()
        events_mod._last_stderr_ts = None
        emit(GridbookEvent(level=EventLevel.info, event_type=EventType.sync_completed))
        assert "logging failed" in capsys.readouterr().err

    def test_config_controls_sink(self, project_dir: Path) -> None:
        (project_dir / "gridbook.yaml").write_text("logging_fsync: true\nlogging_tail_bytes: 1024\n")
        set_project_dir(project_dir)
        sink = get_sink()
        assert sink._fsync is True
        assert sink._tail_bytes == 1024

    def test_service_events(self, project: Path) -> None:
        from gridbook.project import open_project

        svc = open_project(project)
        svc.set_validation(0, 0, ["a"])
        svc.edit_cell(0, 0, "b")
        svc.build_pivot("bogus")
        types = [e["event_type"] for e in get_sink().read_global()]
        assert "validation_rejected" in types
        assert "pivot_failed" in types
        assert "sync_completed" in types
        assert "workbook_saved" in types
