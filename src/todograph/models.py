"""Core data models for the task graph.

Uses Pydantic v2 for validation, ULID for sortable unique IDs.
Operations form a tagged union discriminated by the ``op`` field; one
serialized operation is one line of the op log.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter
from ulid import ULID


def generate_id() -> str:
    """Generate a ULID (sortable, unique identifier)."""
    return str(ULID())


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Treat a naive datetime as UTC; aware ones are returned unchanged."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class Kind(str, Enum):
    """Object kinds known to the graph."""

    TASK = "Task"
    CHAT = "Chat"
    DOC = "Doc"
    COMMIT = "Commit"


PRIORITIES = ("high", "medium", "low")
DEFAULT_PRIORITY = "medium"


class GraphObject(BaseModel):
    """A node in the graph. The payload shape depends on ``kind``."""

    id: str = Field(default_factory=generate_id)
    kind: Kind
    payload: dict[str, Any] = Field(default_factory=dict)
    created: datetime = Field(default_factory=utc_now)
    updated: datetime | None = None

    @property
    def title(self) -> str:
        """Display title: ``title`` for tasks and docs, ``content`` for chats."""
        for key in ("title", "content", "message"):
            value = self.payload.get(key)
            if isinstance(value, str):
                return value
        return ""


class Edge(BaseModel):
    """A typed link between two objects."""

    id: str = Field(default_factory=generate_id)
    from_id: str
    to_id: str
    typ: str  # e.g. "CREATES", "SPAWNS", "FULFILLS"
    created: datetime = Field(default_factory=utc_now)

    def other_end(self, object_id: str) -> str:
        """Return the object on the other end of this edge."""
        return self.to_id if self.from_id == object_id else self.from_id


class AppendObject(BaseModel):
    """Introduce a new object."""

    op: Literal["AppendObject"] = "AppendObject"
    obj: GraphObject


class AppendEdge(BaseModel):
    """Introduce a new edge."""

    op: Literal["AppendEdge"] = "AppendEdge"
    edge: Edge


class UpdateObject(BaseModel):
    """Shallow-merge ``patch`` into an existing object's payload.

    ``ts`` is stamped when the update is logged. Records written before
    stamping existed carry no ``ts``.
    """

    op: Literal["UpdateObject"] = "UpdateObject"
    id: str
    patch: dict[str, Any]
    ts: datetime | None = None


Op = Annotated[
    Union[AppendObject, AppendEdge, UpdateObject],
    Field(discriminator="op"),
]

_op_adapter: TypeAdapter = TypeAdapter(Op)


def parse_op(line: str | bytes) -> AppendObject | AppendEdge | UpdateObject:
    """Parse one serialized op (a single log line)."""
    return _op_adapter.validate_json(line)


def dump_op(op: AppendObject | AppendEdge | UpdateObject) -> str:
    """Serialize an op to a single-line JSON string."""
    return op.model_dump_json()


def op_timestamp(op: AppendObject | AppendEdge | UpdateObject) -> datetime | None:
    """Time an op is ordered by during replay.

    Appends use the created time of what they introduce; updates use their
    stamp, which may be missing on old records.
    """
    if isinstance(op, AppendObject):
        return op.obj.created
    if isinstance(op, AppendEdge):
        return op.edge.created
    return op.ts


def op_target_id(op: AppendObject | AppendEdge | UpdateObject) -> str:
    """ID of the object or edge an op touches."""
    if isinstance(op, AppendObject):
        return op.obj.id
    if isinstance(op, AppendEdge):
        return op.edge.id
    return op.id


# --- Constructors ---


def normalize_priority(priority: str | None) -> str:
    """Map anything outside high/medium/low to the default priority."""
    if priority in PRIORITIES:
        return priority
    return DEFAULT_PRIORITY


def new_task(
    title: str,
    description: str | None = None,
    priority: str = DEFAULT_PRIORITY,
) -> GraphObject:
    """Create a new, open task."""
    return GraphObject(
        kind=Kind.TASK,
        payload={
            "title": title,
            "description": description,
            "completed": False,
            "archived": False,
            "priority": normalize_priority(priority),
        },
    )


def new_chat(content: str, role: str, model: str = "gpt-4") -> GraphObject:
    """Create a chat message object."""
    return GraphObject(
        kind=Kind.CHAT,
        payload={"content": content, "role": role, "model": model},
    )


def new_doc(title: str, body: str = "") -> GraphObject:
    return GraphObject(kind=Kind.DOC, payload={"title": title, "body": body})


def new_commit(message: str, sha: str | None = None) -> GraphObject:
    return GraphObject(kind=Kind.COMMIT, payload={"message": message, "sha": sha})


def new_edge(from_id: str, to_id: str, typ: str) -> Edge:
    """Create an edge ``from_id -[typ]-> to_id``."""
    return Edge(from_id=from_id, to_id=to_id, typ=typ)
