"""Error taxonomy and structured operation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Broad class of failure; decides how the API boundary treats an error."""

    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    STATE_CONFLICT = "STATE_CONFLICT"
    IO = "IO"


class ErrorCode(str, Enum):
    INVALID_ID_FORMAT = "INVALID_ID_FORMAT"
    SELF_DEPENDENCY = "SELF_DEPENDENCY"
    MISSING_DEPENDENCY = "MISSING_DEPENDENCY"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    NO_INDEPENDENT_SUBTASK = "NO_INDEPENDENT_SUBTASK"
    DUPLICATE_ID = "DUPLICATE_ID"
    INVALID_STATUS = "INVALID_STATUS"
    NOT_FOUND = "NOT_FOUND"
    INVALID_CONVERSION = "INVALID_CONVERSION"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    PARSE_ERROR = "PARSE_ERROR"
    WRITE_ERROR = "WRITE_ERROR"

    @property
    def category(self) -> ErrorCategory:
        return _CODE_CATEGORY[self]


_CODE_CATEGORY: dict[ErrorCode, ErrorCategory] = {
    ErrorCode.INVALID_ID_FORMAT: ErrorCategory.VALIDATION,
    ErrorCode.SELF_DEPENDENCY: ErrorCategory.VALIDATION,
    ErrorCode.MISSING_DEPENDENCY: ErrorCategory.VALIDATION,
    ErrorCode.CIRCULAR_DEPENDENCY: ErrorCategory.VALIDATION,
    ErrorCode.NO_INDEPENDENT_SUBTASK: ErrorCategory.VALIDATION,
    ErrorCode.DUPLICATE_ID: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_STATUS: ErrorCategory.VALIDATION,
    ErrorCode.NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.INVALID_CONVERSION: ErrorCategory.STATE_CONFLICT,
    ErrorCode.FILE_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.PARSE_ERROR: ErrorCategory.IO,
    ErrorCode.WRITE_ERROR: ErrorCategory.IO,
}


class TaskGraphError(Exception):
    """Raised by the core when an operation cannot be carried out."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def category(self) -> ErrorCategory:
        return self.code.category

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


class TaskDocumentError(TaskGraphError):
    """Persistence failure (missing file, unreadable document, failed write)."""

    pass


def _serialize(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


@dataclass
class ErrorInfo:
    code: ErrorCode
    message: str

    @property
    def category(self) -> ErrorCategory:
        return self.code.category

    def to_dict(self) -> dict[str, str]:
        return {
            "code": self.code.value,
            "category": self.category.value,
            "message": self.message,
        }


@dataclass
class OperationResult:
    """Outcome of one engine operation.

    ``warnings`` carries no-op notices (duplicate edge, absent edge, repair
    notes) that do not make the operation fail.
    """

    success: bool
    data: Any = None
    error: Optional[ErrorInfo] = None
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, data: Any = None, warnings: Optional[list[str]] = None) -> "OperationResult":
        return cls(success=True, data=data, warnings=list(warnings or []))

    @classmethod
    def fail(
        cls,
        code: ErrorCode,
        message: str,
        data: Any = None,
        warnings: Optional[list[str]] = None,
    ) -> "OperationResult":
        return cls(
            success=False,
            data=data,
            error=ErrorInfo(code, message),
            warnings=list(warnings or []),
        )

    @classmethod
    def from_error(cls, exc: TaskGraphError) -> "OperationResult":
        return cls.fail(exc.code, exc.message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            payload["data"] = _serialize(self.data)
        if self.error is not None:
            payload["error"] = self.error.to_dict()
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        return payload
