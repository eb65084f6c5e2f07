"""
Tests for the SQLite tender record store

Verifies core event sourcing properties:
- Append-only semantics
- Idempotency via command_id
- Optimistic locking via stream versioning
- Atomic multi-stream batches with read guards

Fun fact: Event sourcing tests are like archaeology - we're verifying
that the historical record is complete, immutable, and replayable!
"""

from datetime import datetime, timezone

import pytest

from tender_lifecycle.kernel.errors import ConcurrentModification
from tender_lifecycle.kernel.event_store import SQLiteEventStore, StreamWrite
from tender_lifecycle.kernel.events import Event
from tender_lifecycle.kernel.ids import generate_id
from tender_lifecycle.kernel.metrics import stream_version_conflicts_total

OCCURRED_AT = datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc)


def make_event(
    stream_id: str,
    version: int,
    command_id: str | None = None,
    event_type: str = "TestEvent",
    stream_type: str | None = None,
    **payload: object,
) -> Event:
    return Event(
        event_id=generate_id(),
        stream_id=stream_id,
        stream_type=stream_type or stream_id.split("-", 1)[0],
        event_type=event_type,
        occurred_at=OCCURRED_AT,
        actor_id="clerk-1",
        command_id=command_id or generate_id(),
        payload=dict(payload),
        version=version,
    )


def test_append_and_load_single_event(event_store: SQLiteEventStore) -> None:
    """Test appending and loading a single event"""
    event = make_event("work-1", 1, message="bid registered")

    appended = event_store.append("work-1", 0, [event])
    assert [e.event_id for e in appended] == [event.event_id]

    loaded = event_store.load_stream("work-1")
    assert len(loaded) == 1
    assert loaded[0].event_id == event.event_id
    assert loaded[0].payload == {"message": "bid registered"}
    assert loaded[0].occurred_at == OCCURRED_AT


def test_stream_version_tracks_last_event(event_store: SQLiteEventStore) -> None:
    assert event_store.get_stream_version("work-2") == 0

    event_store.append("work-2", 0, [make_event("work-2", 1)])
    event_store.append("work-2", 1, [make_event("work-2", 2), make_event("work-2", 3)])

    assert event_store.get_stream_version("work-2") == 3
    assert [e.version for e in event_store.load_stream("work-2")] == [1, 2, 3]


def test_stale_expected_version_is_rejected(event_store: SQLiteEventStore) -> None:
    """Two writers loaded version 1; only the first commit wins"""
    event_store.append("work-3", 0, [make_event("work-3", 1)])
    event_store.append("work-3", 1, [make_event("work-3", 2)])

    with pytest.raises(ConcurrentModification) as exc_info:
        event_store.append("work-3", 1, [make_event("work-3", 2)])

    assert exc_info.value.expected_version == 1
    assert exc_info.value.actual_version == 2
    assert event_store.get_stream_version("work-3") == 2


def test_same_command_is_applied_once(event_store: SQLiteEventStore) -> None:
    """Replaying a command returns the stored events instead of appending twice"""
    command_id = generate_id()
    first = event_store.append("nit-1", 0, [make_event("nit-1", 1, command_id=command_id)])

    again = event_store.append("nit-1", 0, [make_event("nit-1", 1, command_id=command_id)])

    assert [e.event_id for e in again] == [e.event_id for e in first]
    assert event_store.count_events() == 1


def test_batch_writes_all_streams_atomically(event_store: SQLiteEventStore) -> None:
    command_id = generate_id()
    writes = [
        StreamWrite(
            stream_id="nit-1",
            events=[make_event("nit-1", 1, command_id=command_id)],
            expected_version=0,
        ),
        StreamWrite(
            stream_id="work-1",
            events=[make_event("work-1", 1, command_id=command_id)],
            expected_version=0,
        ),
    ]

    stored = event_store.append_batch(writes)

    assert [e.stream_id for e in stored] == ["nit-1", "work-1"]
    assert event_store.count_streams() == 2


def test_failed_batch_writes_nothing(event_store: SQLiteEventStore) -> None:
    """One stale stream in a batch aborts the whole batch"""
    event_store.append("work-1", 0, [make_event("work-1", 1)])
    command_id = generate_id()
    writes = [
        StreamWrite(
            stream_id="nit-1",
            events=[make_event("nit-1", 1, command_id=command_id)],
            expected_version=0,
        ),
        StreamWrite(
            stream_id="work-1",
            events=[make_event("work-1", 1, command_id=command_id)],
            expected_version=0,
        ),
    ]

    with pytest.raises(ConcurrentModification):
        event_store.append_batch(writes)

    assert event_store.load_stream("nit-1") == []
    assert event_store.count_events() == 1


def test_read_guard_detects_moved_sibling(event_store: SQLiteEventStore) -> None:
    """A guarded stream that moved since it was read aborts the batch"""
    event_store.append("work-sibling", 0, [make_event("work-sibling", 1)])
    guards = {"work-sibling": 1}
    event_store.append("work-sibling", 1, [make_event("work-sibling", 2)])

    before = stream_version_conflicts_total.labels(stream_type="work")._value.get()
    with pytest.raises(ConcurrentModification) as exc_info:
        event_store.append_batch(
            [StreamWrite(stream_id="work-1", events=[make_event("work-1", 1)], expected_version=0)],
            guards,
        )

    assert exc_info.value.stream_id == "work-sibling"
    assert event_store.load_stream("work-1") == []
    after = stream_version_conflicts_total.labels(stream_type="work")._value.get()
    assert after == before + 1


def test_head_append_renumbers_ledger_events(event_store: SQLiteEventStore) -> None:
    """Writes without an expected version land after whatever is stored"""
    event_store.append("ledger-1", None, [make_event("ledger-1", 1)])
    # A second writer also built its entry as version 1
    stored = event_store.append("ledger-1", None, [make_event("ledger-1", 1)])

    assert stored[0].version == 2
    assert [e.version for e in event_store.load_stream("ledger-1")] == [1, 2]


def test_query_events_by_type(event_store: SQLiteEventStore) -> None:
    event_store.append("work-1", 0, [make_event("work-1", 1, event_type="BidRegistered", bid_id="b-1")])
    event_store.append("work-2", 0, [make_event("work-2", 1, event_type="WorkAdded")])
    event_store.append("nit-1", 0, [make_event("nit-1", 1, event_type="BidRegistered")])

    found = event_store.query_events(stream_type="work", event_type="BidRegistered")

    assert [e.payload.get("bid_id") for e in found] == ["b-1"]


def test_load_all_events_keeps_commit_order(event_store: SQLiteEventStore) -> None:
    event_store.append("nit-1", 0, [make_event("nit-1", 1)])
    event_store.append("work-1", 0, [make_event("work-1", 1)])
    event_store.append("nit-1", 1, [make_event("nit-1", 2)])

    assert [(e.stream_id, e.version) for e in event_store.load_all_events()] == [
        ("nit-1", 1),
        ("work-1", 1),
        ("nit-1", 2),
    ]


def test_load_events_after_returns_only_later_commits(event_store: SQLiteEventStore) -> None:
    event_store.append("nit-1", 0, [make_event("nit-1", 1)])
    event_store.append("work-1", 0, [make_event("work-1", 1)])

    seen = event_store.load_events_after(0)
    assert [e.stream_id for _, e in seen] == ["nit-1", "work-1"]
    last_position = seen[-1][0]

    event_store.append("nit-1", 1, [make_event("nit-1", 2)])
    later = event_store.load_events_after(last_position)

    assert [(e.stream_id, e.version) for _, e in later] == [("nit-1", 2)]
    assert later[0][0] > last_position
    assert event_store.load_events_after(later[0][0]) == []


def test_store_survives_reopen(temp_db) -> None:
    SQLiteEventStore(temp_db).append("work-1", 0, [make_event("work-1", 1)])

    reopened = SQLiteEventStore(temp_db)

    assert reopened.get_stream_version("work-1") == 1
