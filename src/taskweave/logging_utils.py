"""Configure loguru and format dependency issues for log output."""

from __future__ import annotations

import sys
from typing import Any, Iterable

from loguru import logger

from .constants import DEFAULT_LOG_LEVEL


def configure_logging(level: str = DEFAULT_LOG_LEVEL, sink: Any = None) -> int:
    """Replace loguru's handlers with a single sink at ``level``.

    Args:
        level: Minimum level name (``DEBUG``, ``INFO``, ``SUCCESS``...).
        sink: Where to write; defaults to stderr.

    Returns:
        The loguru handler id.
    """
    logger.remove()
    return logger.add(
        sink if sink is not None else sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
            "{message}"
        ),
    )


def format_issue(issue: Any) -> str:
    """Render one validator issue as a single log line."""
    kind = getattr(getattr(issue, "kind", None), "value", "issue")
    line = f"[{str(kind).upper()}] Task {getattr(issue, 'node_id', '?')}: {getattr(issue, 'message', '')}"
    dep = getattr(issue, "dependency_id", None)
    if dep is not None:
        line += f" (Dependency: {dep})"
    return line


def summarize_issues(issues: Iterable[Any]) -> dict[str, Any]:
    """Count issues by kind and keep their rendered lines.

    Returns:
        A dictionary with keys `total`, `by_type`, and `lines`.
    """
    by_type: dict[str, int] = {}
    lines: list[str] = []
    for issue in issues:
        kind = str(getattr(getattr(issue, "kind", None), "value", "issue"))
        by_type[kind] = by_type.get(kind, 0) + 1
        lines.append(format_issue(issue))
    return {"total": len(lines), "by_type": by_type, "lines": lines}

