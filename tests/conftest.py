"""Shared fixtures for the gridbook test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from gridbook.engine import GridEngine
from gridbook.logging.events import reset_sink


@pytest.fixture(autouse=True)
def _detached_event_sink():
    """Each test starts and ends without a module-level event sink."""
    reset_sink()
    yield
    reset_sink()


@pytest.fixture
def engine() -> GridEngine:
    return GridEngine()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A freshly scaffolded project directory."""
    from gridbook.project import scaffold_project

    return scaffold_project(tmp_path / "book")


@pytest.fixture
def sheet_engine():
    """Factory: engine holding one sheet with the given raw inputs."""

    def _make(rows: list[list[str]], name: str = "Sheet1") -> tuple[GridEngine, int]:
        eng = GridEngine()
        sid = eng.add_sheet(name)
        eng.set_sheet_content(sid, rows)
        return eng, sid

    return _make
