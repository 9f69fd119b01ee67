"""Graph engine - orchestrates validation, op log and store.

New activity flows validate -> log append -> store apply. Replay re-applies
the whole log to the store; it is the only way a store catches up.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from .config import DataPaths
from .errors import StoreError
from .models import (
    AppendEdge,
    AppendObject,
    Edge,
    GraphObject,
    Kind,
    UpdateObject,
    new_chat,
    new_edge,
    new_task,
    utc_now,
)
from .oplog import OpLog
from .store import GraphStore
from .validation import validate_op

logger = logging.getLogger(__name__)


def apply_op(log: OpLog, store: GraphStore, op: AppendObject | AppendEdge | UpdateObject) -> None:
    """Validate, log, then project a new op.

    Raises:
        ValidationError: nothing was written
        LogIOError: the log append failed; the store was not touched
        StoreError: the op is logged but not projected; replay recovers it
    """
    validate_op(op)

    if isinstance(op, UpdateObject) and op.ts is None:
        op = op.model_copy(update={"ts": utc_now()})

    log.append(op)

    try:
        store.apply_op(op)
    except StoreError:
        logger.warning(f"{op.op} logged but not applied to store; replay will recover it")
        raise


def replay(log: OpLog, store: GraphStore) -> int:
    """Re-apply every logged op to the store, in log order.

    No validation: ops were validated when first appended. Any read or
    apply error aborts the whole replay.

    Returns:
        Number of ops applied.
    """
    ops = log.read_all()
    for op in ops:
        store.apply_op(op)
    logger.debug(f"Replayed {len(ops)} ops")
    return len(ops)


class GraphEngine:
    """Main entry point for graph operations.

    Owns an OpLog and a GraphStore under one data directory. Single-process
    use is assumed for the store; multiple processes may append to the log.
    """

    def __init__(self, data_dir: Path, db_path: Path | str | None = None):
        self.paths = DataPaths(data_dir)
        self.log = OpLog(self.paths.ops_dir)
        self.store = GraphStore(db_path if db_path is not None else self.paths.db_path)

    def apply(self, op: AppendObject | AppendEdge | UpdateObject) -> None:
        apply_op(self.log, self.store, op)

    def replay(self) -> int:
        return replay(self.log, self.store)

    def rebuild(self) -> int:
        """Discard the projection and replay the whole log into it."""
        self.store.clear()
        count = self.replay()
        logger.info(f"Rebuilt store from {count} ops")
        return count

    def close(self) -> None:
        self.store.close()

    # --- Mutations used by front ends ---

    def add_task(
        self, title: str, description: str | None = None, priority: str = "medium"
    ) -> GraphObject:
        task = new_task(title, description, priority)
        self.apply(AppendObject(obj=task))
        return task

    def add_chat(self, content: str, role: str = "user") -> GraphObject:
        chat = new_chat(content, role)
        self.apply(AppendObject(obj=chat))
        return chat

    def link(self, from_id: str, to_id: str, typ: str) -> Edge:
        edge = new_edge(from_id, to_id, typ)
        self.apply(AppendEdge(edge=edge))
        return edge

    def update(self, object_id: str, patch: dict[str, Any]) -> None:
        self.apply(UpdateObject(id=object_id, patch=patch))

    def complete_task(self, task_id: str) -> None:
        self.update(task_id, {"completed": True})

    def archive_task(self, task_id: str) -> None:
        self.update(task_id, {"archived": True})

    # --- Queries ---

    def query_by_kind(self, kind: Kind) -> list[GraphObject]:
        return self.store.query_by_kind(kind)

    def query_all(self) -> list[GraphObject]:
        return self.store.query_all()

    def query_edges_touching(self, object_id: str) -> list[Edge]:
        return self.store.query_edges_touching(object_id)

    def find_task(self, ref: str) -> GraphObject | None:
        """First task matching an id prefix or a title substring."""
        matches = self.store.find_objects(Kind.TASK, ref)
        return matches[0] if matches else None

    def find_object(self, ref: str) -> GraphObject | None:
        """Object of any kind by full id or id prefix."""
        matches = self.store.find_by_id_prefix(ref)
        return matches[0] if matches else None
