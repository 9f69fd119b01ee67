"""Append-only op log, partitioned by calendar month.

The op log is the source of truth. The store is derived by replaying it.
Each partition is a JSONL file named ``YYYY-MM.jsonl`` holding one
serialized op per line, in append order.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from .errors import LogIOError
from .models import AppendEdge, AppendObject, UpdateObject, as_utc, dump_op, op_timestamp, parse_op, utc_now

logger = logging.getLogger(__name__)

PARTITION_SUFFIX = ".jsonl"
PARTITION_PATTERN = re.compile(r"^\d{4}-\d{2}$")


def partition_key(dt: datetime) -> str:
    """Partition key (``YYYY-MM``) for a point in time, in UTC."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m")


class OpLog:
    """Append-only op log backed by monthly JSONL files.

    Appends rely on the OS appending small writes atomically; there is no
    lock. Records from concurrent writers never share a line, but their
    relative order is undefined.
    """

    def __init__(self, ops_dir: Path):
        self.ops_dir = ops_dir

    def partition_path(self, key: str) -> Path:
        return self.ops_dir / f"{key}{PARTITION_SUFFIX}"

    def append(
        self,
        op: AppendObject | AppendEdge | UpdateObject,
        at: datetime | None = None,
    ) -> Path:
        """Append op to the partition for ``at`` (default: now).

        Returns:
            Path of the partition written to.

        Raises:
            LogIOError: if the directory or partition cannot be written
        """
        path = self.partition_path(partition_key(at or utc_now()))
        record = (dump_op(op) + "\n").encode("utf-8")
        try:
            self.ops_dir.mkdir(parents=True, exist_ok=True)
            # Whole record in a single write to an O_APPEND handle
            with open(path, "ab") as f:
                f.write(record)
        except OSError as e:
            raise LogIOError(f"Cannot append to {path}: {e}", path=path) from e

        logger.debug(f"Appended {op.op} to {path.name}")
        return path

    def partitions(self) -> list[str]:
        """Sorted keys of all partitions on disk."""
        if not self.ops_dir.exists():
            return []
        keys = []
        for path in self.ops_dir.iterdir():
            if path.suffix == PARTITION_SUFFIX and PARTITION_PATTERN.match(path.stem):
                keys.append(path.stem)
        return sorted(keys)

    def read_partition(self, key: str) -> list[AppendObject | AppendEdge | UpdateObject]:
        """Read one partition in physical order.

        Blank lines are ignored. Any malformed line fails the whole read.

        Raises:
            LogIOError: if the file cannot be read or a line cannot be parsed
        """
        path = self.partition_path(key)
        if not path.exists():
            return []

        ops = []
        try:
            with open(path, "r", encoding="utf-8") as f:
                for lineno, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        ops.append(parse_op(line))
                    except PydanticValidationError as e:
                        raise LogIOError(
                            f"Malformed op at {path.name} line {lineno}: {e}",
                            path=path,
                            line=lineno,
                        ) from e
        except (OSError, UnicodeDecodeError) as e:
            raise LogIOError(f"Cannot read {path}: {e}", path=path) from e
        return ops

    def read_all(self) -> list[AppendObject | AppendEdge | UpdateObject]:
        """Read the full history, ordered by each op's embedded time.

        Appends sort by the created time of their object or edge, stamped
        updates by their ``ts``. Unstamped updates sort as if they happened
        at read time. The sort is stable, so ties keep partition-then-line
        order.
        """
        ops = []
        for key in self.partitions():
            ops.extend(self.read_partition(key))

        read_time = utc_now()

        def sort_key(op: AppendObject | AppendEdge | UpdateObject) -> datetime:
            ts = op_timestamp(op)
            return read_time if ts is None else as_utc(ts)

        ops.sort(key=sort_key)
        return ops

    def count(self) -> int:
        """Count records without parsing them."""
        total = 0
        for key in self.partitions():
            with open(self.partition_path(key), "r", encoding="utf-8") as f:
                total += sum(1 for line in f if line.strip())
        return total
