"""Shared test fixtures and helpers for todograph tests."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from todograph.engine import GraphEngine
from todograph.models import GraphObject, Kind
from todograph.oplog import OpLog
from todograph.store import GraphStore


# --- Fixtures ---


@pytest.fixture
def temp_data_dir():
    """Provide a temporary data directory, cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def oplog(temp_data_dir):
    """Provide an empty op log."""
    return OpLog(temp_data_dir / "ops")


@pytest.fixture
def store():
    """Provide an empty in-memory store."""
    store = GraphStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def engine(temp_data_dir):
    """Provide a fresh GraphEngine with an on-disk store."""
    engine = GraphEngine(temp_data_dir)
    yield engine
    engine.close()


# --- Helper Functions (not fixtures) ---


def make_object(id: str, kind: Kind, payload: dict, created: datetime) -> GraphObject:
    """Build an object with a fixed id and creation time.

    Times are truncated to whole seconds, the store's resolution.
    """
    return GraphObject(
        id=id,
        kind=kind,
        payload=payload,
        created=created.replace(microsecond=0),
    )


def utc(*args) -> datetime:
    """Shorthand for a UTC datetime."""
    return datetime(*args, tzinfo=timezone.utc)
