"""Project-level configuration and scaffolding.

A gridbook project is a directory holding an optional ``gridbook.yaml``,
the persisted workbook under ``state/`` and the event log under
``logs/``.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

if TYPE_CHECKING:
    from gridbook.service import WorkbookService


CONFIG_FILENAME = "gridbook.yaml"
STATE_DIRNAME = "state"

DEFAULT_CONFIG: dict[str, Any] = {
    "default_rows": 30,
    "default_cols": 12,
    "storage_key": "workbook",
    "currency_code": "INR",
    "currency_symbol": None,  # derived from currency_code when unset
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}

DEFAULT_PROJECT_CONFIG = """\
# gridbook project configuration
#
# Size of new sheets:
default_rows: 30
default_cols: 12

# Currency-formatted cells (ISO 4217 code; currency_symbol overrides
# the symbol derived from the code):
currency_code: INR
# currency_symbol: "Rs "

# Snapshot key under state/ (letters, digits, '_' and '-'):
storage_key: workbook

# Event log (logs/events.ndjson):
# logging_fsync: false
# logging_tail_bytes: 2097152
"""


def load_project_config(project_dir: Path) -> dict[str, Any]:
    """Load project configuration from ``gridbook.yaml``, with defaults.

    Args:
        project_dir: Root of the gridbook project.

    Returns:
        Merged configuration dict.

    Raises:
        ValueError: If the file is not a YAML mapping.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = Path(project_dir) / CONFIG_FILENAME
    if config_path.exists():
        try:
            user_config = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid {CONFIG_FILENAME}: {exc}") from exc
        if not isinstance(user_config, dict):
            raise ValueError(f"{CONFIG_FILENAME} must contain a mapping")
        config.update(user_config)
    return config


def scaffold_project(target_dir: Path) -> Path:
    """Create a new, empty gridbook project at *target_dir*.

    Raises:
        FileExistsError: If the directory already holds a ``gridbook.yaml``.
    """
    target_dir = Path(target_dir).resolve()
    target_dir.mkdir(parents=True, exist_ok=True)
    config_path = target_dir / CONFIG_FILENAME
    if config_path.exists():
        raise FileExistsError(f"{CONFIG_FILENAME} already exists in {target_dir}")
    config_path.write_text(DEFAULT_PROJECT_CONFIG, encoding="utf-8")
    (target_dir / STATE_DIRNAME).mkdir(exist_ok=True)
    return target_dir


def open_project(project_dir: Path) -> WorkbookService:
    """Return a service over the project's persisted workbook.

    Points the event log at the project before loading, so the load
    itself is recorded.
    """
    from gridbook.logging.events import set_project_dir
    from gridbook.service import WorkbookService
    from gridbook.storage import FileStorage

    project_dir = Path(project_dir).resolve()
    if not project_dir.is_dir():
        raise FileNotFoundError(f"No project directory at {project_dir}")
    config = load_project_config(project_dir)
    set_project_dir(project_dir)
    return WorkbookService(FileStorage(project_dir / STATE_DIRNAME), config=config)
