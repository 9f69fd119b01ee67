"""Tests for the monthly-partitioned op log."""

import pytest

from conftest import make_object, utc
from todograph.errors import LogIOError
from todograph.models import (
    AppendEdge,
    AppendObject,
    Kind,
    UpdateObject,
    dump_op,
    new_edge,
    new_task,
)
from todograph.oplog import OpLog, partition_key


def test_partition_key_is_utc_month():
    assert partition_key(utc(2025, 1, 31, 23, 59)) == "2025-01"
    assert partition_key(utc(2025, 12, 1)) == "2025-12"


def test_read_empty(oplog):
    """A log with no directory reads as empty."""
    assert not oplog.ops_dir.exists()
    assert oplog.read_all() == []
    assert oplog.read_partition("2025-01") == []
    assert oplog.partitions() == []
    assert oplog.count() == 0


def test_append_creates_directory_and_partition(temp_data_dir):
    oplog = OpLog(temp_data_dir / "nested" / "ops")
    task = new_task("First")
    path = oplog.append(AppendObject(obj=task), at=utc(2025, 3, 14))

    assert path == oplog.ops_dir / "2025-03.jsonl"
    assert path.exists()
    assert path.read_text().endswith("\n")
    assert oplog.partitions() == ["2025-03"]


def test_append_defaults_to_current_month(oplog):
    task = new_task("Now")
    path = oplog.append(AppendObject(obj=task))
    assert path.stem == partition_key(task.created)


def test_read_partition_keeps_physical_order(oplog):
    """Within a partition, records come back in append order."""
    at = utc(2025, 5, 1)
    tasks = [new_task(f"task {i}") for i in range(3)]
    # Append in reverse creation order
    for task in reversed(tasks):
        oplog.append(AppendObject(obj=task), at=at)

    ops = oplog.read_partition("2025-05")
    assert [op.obj.id for op in ops] == [t.id for t in reversed(tasks)]


def test_one_record_per_line(oplog):
    at = utc(2025, 5, 1)
    task = new_task("multi\nline title")
    oplog.append(AppendObject(obj=task), at=at)
    oplog.append(UpdateObject(id=task.id, patch={"note": "a\nb"}, ts=utc(2025, 5, 2)), at=at)

    lines = oplog.partition_path("2025-05").read_text().splitlines()
    assert len(lines) == 2
    assert oplog.count() == 2


def test_blank_lines_ignored(oplog):
    at = utc(2025, 5, 1)
    oplog.append(AppendObject(obj=new_task("a")), at=at)
    with open(oplog.partition_path("2025-05"), "a") as f:
        f.write("\n\n   \n")
    oplog.append(AppendObject(obj=new_task("b")), at=at)

    assert len(oplog.read_partition("2025-05")) == 2


def test_malformed_line_fails_read(oplog):
    """A corrupt record fails the whole read with its location."""
    at = utc(2025, 5, 1)
    oplog.append(AppendObject(obj=new_task("ok")), at=at)
    with open(oplog.partition_path("2025-05"), "a") as f:
        f.write("this is not valid json\n")

    with pytest.raises(LogIOError, match="line 2") as exc_info:
        oplog.read_partition("2025-05")
    assert exc_info.value.line == 2
    assert exc_info.value.path == oplog.partition_path("2025-05")

    with pytest.raises(LogIOError):
        oplog.read_all()


def test_unknown_op_tag_fails_read(oplog):
    oplog.ops_dir.mkdir(parents=True)
    oplog.partition_path("2025-05").write_text('{"op": "DeleteObject", "id": "x"}\n')
    with pytest.raises(LogIOError):
        oplog.read_partition("2025-05")


def test_non_partition_files_ignored(oplog):
    oplog.append(AppendObject(obj=new_task("a")), at=utc(2025, 5, 1))
    (oplog.ops_dir / "notes.txt").write_text("hello")
    (oplog.ops_dir / "backup.jsonl").write_text("garbage\n")

    assert oplog.partitions() == ["2025-05"]
    assert len(oplog.read_all()) == 1


def test_append_failure_raises_log_error(temp_data_dir):
    """A file where the ops directory should be makes appends fail."""
    blocker = temp_data_dir / "ops"
    blocker.write_text("not a directory")
    oplog = OpLog(blocker)

    with pytest.raises(LogIOError):
        oplog.append(AppendObject(obj=new_task("x")))


def test_read_all_sorts_by_created_across_partitions(oplog):
    """Order comes from embedded times, not file name or position."""
    early = make_object("01A", Kind.TASK, {"title": "early"}, utc(2025, 1, 10))
    middle = make_object("01B", Kind.TASK, {"title": "middle"}, utc(2025, 1, 20))
    late = make_object("01C", Kind.CHAT, {"content": "late"}, utc(2025, 2, 5))

    # Written into partitions that disagree with creation order
    oplog.append(AppendObject(obj=late), at=utc(2025, 1, 1))
    oplog.append(AppendObject(obj=middle), at=utc(2025, 2, 1))
    oplog.append(AppendObject(obj=early), at=utc(2025, 2, 1))

    ops = oplog.read_all()
    assert [op.obj.id for op in ops] == ["01A", "01B", "01C"]


def test_read_all_orders_stamped_updates_by_ts(oplog):
    at = utc(2025, 3, 1)
    task = make_object("01T", Kind.TASK, {"n": 0}, utc(2025, 3, 1))
    edge = new_edge("01T", "01T", "SELF")
    edge.created = utc(2025, 3, 3)

    oplog.append(UpdateObject(id="01T", patch={"n": 2}, ts=utc(2025, 3, 4)), at=at)
    oplog.append(UpdateObject(id="01T", patch={"n": 1}, ts=utc(2025, 3, 2)), at=at)
    oplog.append(AppendEdge(edge=edge), at=at)
    oplog.append(AppendObject(obj=task), at=at)

    ops = oplog.read_all()
    assert [op.op for op in ops] == ["AppendObject", "UpdateObject", "AppendEdge", "UpdateObject"]
    assert [op.patch["n"] for op in ops if isinstance(op, UpdateObject)] == [1, 2]


def test_unstamped_updates_sort_last_in_physical_order(oplog):
    """Legacy updates without ts land after stamped ops, keeping line order."""
    oplog.ops_dir.mkdir(parents=True)
    task = make_object("01T", Kind.TASK, {"n": 0}, utc(2025, 3, 1))
    lines = [
        '{"op": "UpdateObject", "id": "01T", "patch": {"n": 1}}',
        '{"op": "UpdateObject", "id": "01T", "patch": {"n": 2}}',
        dump_op(AppendObject(obj=task)),
        '{"op": "UpdateObject", "id": "01T", "patch": {"n": 3}}',
    ]
    oplog.partition_path("2025-03").write_text("\n".join(lines) + "\n")

    ops = oplog.read_all()
    assert isinstance(ops[0], AppendObject)
    assert [op.patch["n"] for op in ops[1:]] == [1, 2, 3]
