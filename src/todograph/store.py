"""Materialized store: a SQLite projection of the op log.

Two tables, ``objects`` and ``edges``, keyed by id. The store never writes
to the log and can always be discarded and rebuilt by replay.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from pydantic import TypeAdapter

from .errors import StoreError
from .models import (
    AppendEdge,
    AppendObject,
    Edge,
    GraphObject,
    Kind,
    UpdateObject,
    utc_now,
)

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"

# Same JSON encoding the op log uses, so replayed and incremental rows match
_payload_adapter = TypeAdapter(dict[str, Any])

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS objects (
        id TEXT PRIMARY KEY,
        kind TEXT NOT NULL,
        payload JSON NOT NULL,
        created INTEGER NOT NULL,
        updated INTEGER
    );

    CREATE TABLE IF NOT EXISTS edges (
        id TEXT PRIMARY KEY,
        from_id TEXT NOT NULL,
        to_id TEXT NOT NULL,
        typ TEXT NOT NULL,
        created INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_objects_kind ON objects(kind);
    CREATE INDEX IF NOT EXISTS idx_edges_from ON edges(from_id);
    CREATE INDEX IF NOT EXISTS idx_edges_to ON edges(to_id);
"""


def _to_epoch(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def _from_epoch(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _encode_payload(object_id: str, payload: dict[str, Any]) -> str:
    try:
        return _payload_adapter.dump_json(payload).decode("utf-8")
    except (TypeError, ValueError) as e:
        raise StoreError(f"Cannot encode payload for object {object_id}: {e}") from e


class GraphStore:
    """Queryable projection of objects and edges.

    One connection per store, guarded by a lock, so an upsert and a patch
    merge against the same id never interleave.
    """

    def __init__(self, db_path: Path | str):
        """Initialize the store.

        Args:
            db_path: Path to graph.db, or ":memory:" for a throwaway store
        """
        self.db_path = db_path
        self._lock = threading.Lock()
        try:
            self._conn = self._connect()
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open store at {db_path}: {e}") from e

    def _connect(self) -> sqlite3.Connection:
        if str(self.db_path) != MEMORY_DB:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=30.0,
            check_same_thread=False,
            isolation_level=None,  # Autocommit; merges open explicit transactions
        )
        conn.row_factory = sqlite3.Row
        if str(self.db_path) != MEMORY_DB:
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=30000")
        return conn

    @contextmanager
    def _locked(self) -> Iterator[sqlite3.Connection]:
        """Serialize access to the connection and wrap SQLite errors."""
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as e:
                raise StoreError(f"Store operation failed: {e}") from e

    # --- Mutations ---

    def apply_op(self, op: AppendObject | AppendEdge | UpdateObject) -> None:
        """Project a single op."""
        if isinstance(op, AppendObject):
            self._upsert_object(op.obj)
        elif isinstance(op, AppendEdge):
            self._upsert_edge(op.edge)
        else:
            self._merge_patch(op.id, op.patch, op.ts or utc_now())

    def _upsert_object(self, obj: GraphObject) -> None:
        payload = _encode_payload(obj.id, obj.payload)
        with self._locked() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO objects (id, kind, payload, created, updated)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    obj.id,
                    obj.kind.value,
                    payload,
                    _to_epoch(obj.created),
                    _to_epoch(obj.updated) if obj.updated else None,
                ),
            )

    def _upsert_edge(self, edge: Edge) -> None:
        with self._locked() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO edges (id, from_id, to_id, typ, created)
                VALUES (?, ?, ?, ?, ?)
                """,
                (edge.id, edge.from_id, edge.to_id, edge.typ, _to_epoch(edge.created)),
            )

    def _merge_patch(self, object_id: str, patch: dict[str, Any], ts: datetime) -> None:
        """Shallow-merge patch keys into the stored payload.

        A missing object is a silent no-op.
        """
        with self._locked() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT payload FROM objects WHERE id = ?", (object_id,)
                ).fetchone()
                if row is None:
                    logger.debug(f"Update target {object_id} not found, skipping")
                    conn.execute("COMMIT")
                    return

                payload = self._decode_payload(object_id, row["payload"])
                payload.update(patch)
                conn.execute(
                    "UPDATE objects SET payload = ?, updated = ? WHERE id = ?",
                    (_encode_payload(object_id, payload), _to_epoch(ts), object_id),
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    def clear(self) -> None:
        """Remove all projected rows (the log is untouched)."""
        with self._locked() as conn:
            conn.execute("DELETE FROM objects")
            conn.execute("DELETE FROM edges")

    # --- Queries ---

    @staticmethod
    def _decode_payload(object_id: str, raw: str) -> dict[str, Any]:
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreError(f"Malformed payload for object {object_id}: {e}") from e
        if not isinstance(payload, dict):
            raise StoreError(f"Payload for object {object_id} is not a JSON object")
        return payload

    def _row_to_object(self, row: sqlite3.Row) -> GraphObject | None:
        """Convert a row to a GraphObject; None for kinds this version doesn't know."""
        try:
            kind = Kind(row["kind"])
        except ValueError:
            logger.debug(f"Skipping object {row['id']} of unknown kind {row['kind']!r}")
            return None

        return GraphObject(
            id=row["id"],
            kind=kind,
            payload=self._decode_payload(row["id"], row["payload"]),
            created=_from_epoch(row["created"]),
            updated=_from_epoch(row["updated"]) if row["updated"] is not None else None,
        )

    def _fetch_objects(self, sql: str, params: tuple = ()) -> list[GraphObject]:
        with self._locked() as conn:
            rows = conn.execute(sql, params).fetchall()
        objects = []
        for row in rows:
            obj = self._row_to_object(row)
            if obj is not None:
                objects.append(obj)
        return objects

    def query_by_kind(self, kind: Kind) -> list[GraphObject]:
        """All objects of one kind, oldest first."""
        return self._fetch_objects(
            """
            SELECT id, kind, payload, created, updated FROM objects
            WHERE kind = ?
            ORDER BY created, id
            """,
            (kind.value,),
        )

    def query_all(self) -> list[GraphObject]:
        """All objects, newest created first."""
        return self._fetch_objects(
            "SELECT id, kind, payload, created, updated FROM objects "
            "ORDER BY created DESC, id DESC"
        )

    def get_object(self, object_id: str) -> GraphObject | None:
        objects = self._fetch_objects(
            "SELECT id, kind, payload, created, updated FROM objects WHERE id = ?",
            (object_id,),
        )
        return objects[0] if objects else None

    def find_objects(self, kind: Kind, ref: str) -> list[GraphObject]:
        """Objects of ``kind`` whose id starts with ``ref`` or whose title contains it.

        ID-prefix matches come first.
        """
        candidates = self.query_by_kind(kind)
        upper = ref.upper()  # ULIDs are upper-case Crockford base32
        by_id = [o for o in candidates if o.id.startswith(upper)]
        by_title = [o for o in candidates if o not in by_id and ref in o.title]
        return by_id + by_title

    def find_by_id_prefix(self, ref: str) -> list[GraphObject]:
        """Objects of any kind whose id is ``ref`` or starts with it, oldest first."""
        if not ref:
            return []
        exact = self.get_object(ref)
        if exact is not None:
            return [exact]
        upper = ref.upper()
        return self._fetch_objects(
            """
            SELECT id, kind, payload, created, updated FROM objects
            WHERE substr(id, 1, length(?)) = ?
            ORDER BY created, id
            """,
            (upper, upper),
        )

    def query_edges_touching(self, object_id: str) -> list[Edge]:
        """All edges where the object is either endpoint."""
        with self._locked() as conn:
            rows = conn.execute(
                """
                SELECT id, from_id, to_id, typ, created FROM edges
                WHERE from_id = ? OR to_id = ?
                ORDER BY created, id
                """,
                (object_id, object_id),
            ).fetchall()
        return [
            Edge(
                id=row["id"],
                from_id=row["from_id"],
                to_id=row["to_id"],
                typ=row["typ"],
                created=_from_epoch(row["created"]),
            )
            for row in rows
        ]

    def stats(self) -> dict[str, int]:
        """Object counts per known kind, plus the edge count."""
        with self._locked() as conn:
            kind_rows = conn.execute(
                "SELECT kind, COUNT(*) AS n FROM objects GROUP BY kind"
            ).fetchall()
            edge_count = conn.execute("SELECT COUNT(*) FROM edges").fetchone()[0]

        counts = {kind.value: 0 for kind in Kind}
        for row in kind_rows:
            if row["kind"] in counts:
                counts[row["kind"]] = row["n"]
        counts["edges"] = edge_count
        return counts

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()
