"""Key-value persistence of the workbook snapshot.

The snapshot is JSON::

    {"sheets": [{"name": ..., "grid": [[cell, ...], ...], "names": {...}}],
     "active_index": 0, "version": 3}
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from gridbook.logging.events import (
    SNAPSHOT_INVALID,
    EventType,
    emit_info,
    emit_warning,
)
from gridbook.model import Workbook, new_workbook

_SAFE_KEY_RE = re.compile(r"^[A-Za-z0-9_\-]+$")


class KeyValueStorage(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryStorage:
    """In-process storage, mainly for tests and embedding."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class FileStorage:
    """One ``<key>.json`` file per key inside *directory*.

    Writes go to a temporary file that then replaces the target, so a
    crash never leaves a half-written snapshot behind.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY_RE.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)


def dump_workbook(workbook: Workbook) -> str:
    return json.dumps(workbook.model_dump(mode="json"), ensure_ascii=False)


def load_workbook(
    storage: KeyValueStorage,
    key: str,
    rows: int = 30,
    cols: int = 12,
) -> Workbook:
    """Read the snapshot stored under *key*.

    A missing snapshot, or one that is not valid JSON or violates the
    workbook invariants, yields a fresh single-sheet workbook.  Never
    raises for bad data.
    """
    try:
        raw = storage.get(key)
        if raw is None:
            return new_workbook(rows, cols)
        workbook = Workbook.model_validate(json.loads(raw))
    except (UnicodeDecodeError, json.JSONDecodeError, ValidationError, TypeError) as exc:
        emit_warning(
            EventType.workbook_load_failed,
            f"Stored workbook under {key!r} is invalid; starting fresh",
            {"key": key, "error": str(exc)},
            error_code=SNAPSHOT_INVALID,
        )
        return new_workbook(rows, cols)
    emit_info(
        EventType.workbook_loaded,
        f"Loaded workbook with {len(workbook.sheets)} sheet(s)",
        {"key": key, "version": workbook.version},
    )
    return workbook


def save_workbook(storage: KeyValueStorage, key: str, workbook: Workbook) -> None:
    storage.set(key, dump_workbook(workbook))
    emit_info(
        EventType.workbook_saved,
        f"Saved workbook version {workbook.version}",
        {"key": key, "version": workbook.version},
    )
