"""Define shared constants for taskweave."""

from __future__ import annotations

STATE_DIR_NAME = ".taskweave"
CONFIG_FILE = "config.yaml"
TASKS_FILE = "tasks.json"

DEFAULT_LOG_LEVEL = "INFO"

# Repair behaviour
DEFAULT_ENFORCE_PROGRESS = True

# Document layout
DOCUMENT_TASKS_KEY = "tasks"
JSON_INDENT = 2
