"""todograph - local-first task graph backed by an append-only op log."""

from .engine import GraphEngine, apply_op, replay
from .errors import LogIOError, StoreError, TodoGraphError, ValidationError
from .models import (
    AppendEdge,
    AppendObject,
    Edge,
    GraphObject,
    Kind,
    Op,
    UpdateObject,
    new_chat,
    new_commit,
    new_doc,
    new_edge,
    new_task,
)
from .oplog import OpLog
from .store import GraphStore
from .validation import validate_op

__all__ = [
    "AppendEdge",
    "AppendObject",
    "Edge",
    "GraphEngine",
    "GraphObject",
    "GraphStore",
    "Kind",
    "LogIOError",
    "Op",
    "OpLog",
    "StoreError",
    "TodoGraphError",
    "UpdateObject",
    "ValidationError",
    "apply_op",
    "new_chat",
    "new_commit",
    "new_doc",
    "new_edge",
    "new_task",
    "replay",
    "validate_op",
]
