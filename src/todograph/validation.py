"""Pre-commit validation of ops.

Runs once per op, before the op is logged. Pure: no access to the log or
the store, so cross-object checks (e.g. "target exists") are out of reach.
"""

from typing import Any, Callable

from .errors import ValidationError
from .models import PRIORITIES, AppendEdge, AppendObject, Kind, UpdateObject

MAX_TITLE_LEN = 200


def validate_task_payload(payload: dict[str, Any]) -> None:
    """Check the fields every task must carry."""
    title = payload.get("title")
    if not isinstance(title, str):
        raise ValidationError("Task title missing or not a string", field="title")
    trimmed = title.strip()
    if not trimmed:
        raise ValidationError("Task title cannot be empty", field="title")
    if len(trimmed) > MAX_TITLE_LEN:
        raise ValidationError(f"Task title too long (>{MAX_TITLE_LEN} chars)", field="title")

    # bool only; 0/1 are not accepted
    if not isinstance(payload.get("archived"), bool):
        raise ValidationError("Task archived field must be a boolean", field="archived")

    priority = payload.get("priority")
    if not isinstance(priority, str):
        raise ValidationError("Task priority missing or not a string", field="priority")
    if priority not in PRIORITIES:
        raise ValidationError(
            f"Invalid priority value: {priority!r} (expected one of {', '.join(PRIORITIES)})",
            field="priority",
        )


# Kinds without an entry accept any payload.
PAYLOAD_VALIDATORS: dict[Kind, Callable[[dict[str, Any]], None]] = {
    Kind.TASK: validate_task_payload,
}


def validate_op(op: AppendObject | AppendEdge | UpdateObject) -> None:
    """Validate an op before it is committed to the log.

    Raises:
        ValidationError: describing the first rule the op breaks
    """
    if isinstance(op, AppendObject):
        validator = PAYLOAD_VALIDATORS.get(op.obj.kind)
        if validator is not None:
            validator(op.obj.payload)
    # Edges and patches are not checked; a patch may break task rules.
