"""taskweave: dependency-graph integrity for task documents."""

from .io_utils import TaskDocumentGateway
from .task_engine.engine import TaskEngine
from .task_engine.errors import ErrorCode, OperationResult, TaskDocumentError, TaskGraphError
from .task_engine.store import TaskStore

__all__ = [
    "ErrorCode",
    "OperationResult",
    "TaskDocumentError",
    "TaskDocumentGateway",
    "TaskEngine",
    "TaskGraphError",
    "TaskStore",
]
