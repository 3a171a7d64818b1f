"""Tests for file transport."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone

import pytest

from evntaly.core.event import Event
from evntaly.transport.base import SubmitResult
from evntaly.transport.file import FileTransport


@pytest.fixture
def transport(tmp_path):
    return FileTransport(directory=tmp_path / "events")


def test_init_creates_directory(tmp_path):
    """Test that initialization creates the directory."""
    event_dir = tmp_path / "nested" / "events"
    assert not event_dir.exists()

    FileTransport(directory=event_dir)

    assert event_dir.is_dir()


def test_file_name_uses_utc_date(transport):
    """Test that events go to a file named after the UTC date."""
    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    assert transport.current_file.name == f"events-{today}.jsonl"


def test_submit_appends_jsonl(transport):
    """Test that each event is appended as one JSON line."""
    assert transport.submit(Event(title="a", timestamp=1)) == SubmitResult.SUCCESS
    assert transport.submit(Event(title="b", tags=["x"])) == SubmitResult.SUCCESS

    lines = transport.current_file.read_text().splitlines()
    assert [json.loads(line) for line in lines] == [
        {"title": "a", "timestamp": 1},
        {"title": "b", "tags": ["x"]},
    ]


def test_read_events(transport):
    """Test reading events back from disk, skipping malformed lines."""
    transport.submit(Event(title="a", data={"k": 1}))
    with open(transport.current_file, "a") as f:
        f.write("not json\n\n")
    transport.submit(Event(title="b"))

    events = list(transport.read_events())
    assert [e.title for e in events] == ["a", "b"]
    assert events[0].data == {"k": 1}


def test_non_serializable_data_is_stringified(transport):
    """Test that non-JSON data is stringified."""
    when = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert transport.submit(Event(title="a", data={"when": when})) == SubmitResult.SUCCESS
    stored = json.loads(transport.current_file.read_text())
    assert stored["data"]["when"] == str(when)


def test_write_failure_returns_failure(transport):
    """Test that a write error returns FAILURE."""
    transport.directory.rmdir()
    transport.directory.write_text("now a file")
    assert transport.submit(Event(title="a")) == SubmitResult.FAILURE


def test_concurrent_writes(transport):
    """Test that concurrent submits never interleave lines."""

    def worker(n):
        for i in range(50):
            transport.submit(Event(title=f"w{n}-{i}"))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(list(transport.read_events())) == 200
