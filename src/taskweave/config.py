"""Load optional configuration from `.taskweave/config.yaml`."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .constants import (
    CONFIG_FILE,
    DEFAULT_ENFORCE_PROGRESS,
    DEFAULT_LOG_LEVEL,
    STATE_DIR_NAME,
    TASKS_FILE,
)
from .io_utils import _load_data_with_error

VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


def load_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional config file.

    Args:
        project_dir: Repository root directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    project_dir = Path(project_dir).resolve()
    path = project_dir / STATE_DIR_NAME / CONFIG_FILE
    if not path.exists():
        return {}, None
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def get_tasks_path(project_dir: Path, config: dict[str, Any]) -> Path:
    """Resolve the task document path.

    Args:
        project_dir: Repository root directory.
        config: Configuration dictionary.

    Returns:
        `tasks_file` from the config (relative paths resolve against `project_dir`),
        or `.taskweave/tasks.json`.
    """
    raw = config.get("tasks_file")
    if isinstance(raw, str) and raw.strip():
        path = Path(raw).expanduser()
        return path if path.is_absolute() else Path(project_dir) / path
    return Path(project_dir) / STATE_DIR_NAME / TASKS_FILE


def get_log_level(config: dict[str, Any]) -> str:
    raw = config.get("log_level")
    if isinstance(raw, str) and raw.upper() in VALID_LOG_LEVELS:
        return raw.upper()
    return DEFAULT_LOG_LEVEL


def get_repair_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the repair block with defaults filled in.

    Args:
        config: Configuration dictionary.

    Returns:
        A mapping with at least `enforce_progress` (bool).
    """
    raw = _get_nested(config, "repair")
    repair = dict(raw) if isinstance(raw, dict) else {}
    enforce = repair.get("enforce_progress")
    repair["enforce_progress"] = enforce if isinstance(enforce, bool) else DEFAULT_ENFORCE_PROGRESS
    return repair
