"""Error types raised by the todograph core.

- TodoGraphError: base exception
- ValidationError: op rejected before anything was written
- LogIOError: op log partition could not be written or parsed
- StoreError: projection read/write failure

A missing update target is not an error; the update is a no-op.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class TodoGraphError(Exception):
    """Base exception for all todograph errors.

    Attributes:
        message: Error message
        details: Additional error context
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(TodoGraphError, ValueError):
    """Op failed pre-commit validation; it was neither logged nor applied."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, details={"field": field})
        self.field = field


class LogIOError(TodoGraphError):
    """A log partition could not be created, opened, written or parsed."""

    def __init__(
        self,
        message: str,
        path: Path | None = None,
        line: int | None = None,
    ) -> None:
        super().__init__(message, details={"path": str(path) if path else None, "line": line})
        self.path = path
        self.line = line


class StoreError(TodoGraphError):
    """The materialized store could not be read or written.

    When raised after a successful log append, the op is durable and the
    next replay projects it.
    """
