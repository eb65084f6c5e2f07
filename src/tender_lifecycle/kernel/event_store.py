"""
SQLite Event Store - Append-only tender record store

The event store is the source of truth for every NIT, work and payment
ledger. It provides:
- Append-only semantics (events never modified or deleted)
- Idempotency via command_id (same action = same events)
- Optimistic locking via stream versioning
- Atomic multi-stream commits with read guards on sibling streams

Fun fact: SQLite's BEGIN IMMEDIATE grabs the write lock up front, so two
clerks awarding the same work at the same instant are served strictly one
after the other. The second one finds the version has moved on.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from pydantic import BaseModel, Field

from tender_lifecycle.kernel.errors import ConcurrentModification, EventStoreError
from tender_lifecycle.kernel.events import Event
from tender_lifecycle.kernel.logging import get_logger
from tender_lifecycle.kernel.metrics import (
    events_appended_total,
    events_loaded_total,
    stream_version_conflicts_total,
)
from tender_lifecycle.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

_EVENT_COLUMNS = """
    event_id, stream_id, stream_type, version,
    command_id, event_type, occurred_at, actor_id, payload_json
"""


class StreamWrite(BaseModel):
    """
    Events destined for one stream within an atomic batch

    ``expected_version`` None means "append at the head": the store assigns
    versions at commit time and does not check the stream version. Payment
    ledgers are written this way.
    """

    stream_id: str
    events: list[Event]
    expected_version: int | None = Field(default=None, ge=0)

    model_config = {"frozen": True}


class SQLiteEventStore:
    """
    SQLite-based event store with append-only semantics

    Uses WAL mode for crash safety and concurrent readers.

    Schema:
    - events table: append-only event log
    - Unique constraint: (stream_id, version)
    - Indices: stream_id, event_type, occurred_at, command_id
    """

    def __init__(self, db_path: str | Path, busy_timeout_seconds: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout_seconds = busy_timeout_seconds
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        """Create tables and indices if they don't exist"""
        try:
            with self._connect() as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS events (
                        event_id TEXT PRIMARY KEY,
                        stream_id TEXT NOT NULL,
                        stream_type TEXT NOT NULL,
                        version INTEGER NOT NULL,
                        command_id TEXT NOT NULL,
                        event_type TEXT NOT NULL,
                        occurred_at TEXT NOT NULL,
                        actor_id TEXT,
                        payload_json TEXT NOT NULL,

                        UNIQUE(stream_id, version)
                    )
                """)
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_events_stream "
                    "ON events(stream_id, version)"
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type)"
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_events_time ON events(occurred_at)"
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_events_command ON events(command_id)"
                )
        except sqlite3.Error as e:
            raise EventStoreError(
                f"Cannot open tender record store at {self.db_path}: {e}",
                db_path=str(self.db_path),
            ) from e

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """
        Open a connection in autocommit mode

        Transactions are opened explicitly (BEGIN IMMEDIATE) by the writer,
        so the sqlite3 module never starts one behind our back.
        """
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_seconds,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(
        self,
        stream_id: str,
        expected_version: int | None,
        events: list[Event],
    ) -> list[Event]:
        """
        Append events to a single stream with optimistic locking

        Args:
            stream_id: Stream identifier
            expected_version: Version the caller loaded, or None to append at the head
            events: Events to append (sequential versions)

        Returns:
            The stored events (from a previous execution if the command was already applied)
        """
        return self.append_batch(
            [StreamWrite(stream_id=stream_id, events=events, expected_version=expected_version)]
        )

    def append_batch(
        self,
        writes: list[StreamWrite],
        guards: dict[str, int] | None = None,
    ) -> list[Event]:
        """
        Append to several streams in one transaction

        Every expected version and every read guard (stream id -> version the
        caller read) is re-checked after the write lock is taken. Either all
        events are stored or none are.

        Args:
            writes: Per-stream event lists
            guards: Streams that must still be at the given version

        Returns:
            The stored events in batch order

        Raises:
            ConcurrentModification: If any stream moved since it was loaded
            EventStoreError: If the store is unavailable or the write fails
        """
        all_events = [event for write in writes for event in write.events]
        if not all_events:
            return []

        command_id = all_events[0].command_id
        existing = self._get_events_by_command_id(command_id)
        if existing:
            logger.info(
                "Command already applied, returning stored events",
                command_id=command_id,
                event_count=len(existing),
            )
            return existing

        try:
            stored = self._commit(writes, guards or {})
        except ConcurrentModification as e:
            stream_version_conflicts_total.labels(
                stream_type=e.stream_id.split("-", 1)[0]
            ).inc()
            raise
        except sqlite3.Error as e:
            logger.error(
                "Event store write failed",
                command_id=command_id,
                streams=[write.stream_id for write in writes],
                error=str(e),
            )
            raise EventStoreError(
                f"Failed to append events: {e}", command_id=command_id
            ) from e

        for event in stored:
            events_appended_total.labels(
                stream_type=event.stream_type, event_type=event.event_type
            ).inc()
        return stored

    @retry_on_sqlite_lock()
    def _commit(
        self, writes: list[StreamWrite], guards: dict[str, int]
    ) -> list[Event]:
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                for stream_id, expected in guards.items():
                    current = self._get_stream_version(conn, stream_id)
                    if current != expected:
                        raise ConcurrentModification(stream_id, expected, current)

                stored: list[Event] = []
                for write in writes:
                    current = self._get_stream_version(conn, write.stream_id)
                    if write.expected_version is not None and current != write.expected_version:
                        raise ConcurrentModification(
                            write.stream_id, write.expected_version, current
                        )
                    for offset, event in enumerate(write.events, start=1):
                        if write.expected_version is None:
                            event = event.model_copy(update={"version": current + offset})
                        self._insert(conn, event)
                        stored.append(event)

                conn.execute("COMMIT")
                return stored

            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                raise EventStoreError(f"Integrity violation appending events: {e}") from e
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    def _insert(self, conn: sqlite3.Connection, event: Event) -> None:
        conn.execute(
            f"INSERT INTO events ({_EVENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                event.event_id,
                event.stream_id,
                event.stream_type,
                event.version,
                event.command_id,
                event.event_type,
                event.occurred_at.isoformat(),
                event.actor_id,
                json.dumps(event.payload),
            ),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load_stream(self, stream_id: str) -> list[Event]:
        """
        Load all events for a stream in version order

        A single SELECT, so the result is one consistent snapshot of the stream.
        """
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"SELECT {_EVENT_COLUMNS} FROM events "
                    "WHERE stream_id = ? ORDER BY version ASC",
                    (stream_id,),
                )
                events = [self._row_to_event(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise EventStoreError(
                f"Failed to load stream {stream_id}: {e}", stream_id=stream_id
            ) from e

        if events:
            events_loaded_total.labels(stream_type=events[0].stream_type).inc(len(events))
        return events

    def load_all_events(self) -> list[Event]:
        """Load every event in chronological order (for read-view rebuilding)"""
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"SELECT {_EVENT_COLUMNS} FROM events "
                    "ORDER BY occurred_at ASC, rowid ASC"
                )
                return [self._row_to_event(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise EventStoreError(f"Failed to load events: {e}") from e

    def load_events_after(self, position: int) -> list[tuple[int, Event]]:
        """
        Events committed after a log position, in commit order

        The position is the row id of the last event a reader applied (0 for
        none); each event comes back paired with its own position.
        """
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"SELECT rowid AS position, {_EVENT_COLUMNS} FROM events "
                    "WHERE rowid > ? ORDER BY rowid ASC",
                    (position,),
                )
                return [(row["position"], self._row_to_event(row)) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise EventStoreError(f"Failed to load events after {position}: {e}") from e

    def query_events(
        self,
        *,
        stream_type: str | None = None,
        event_type: str | None = None,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """
        Query events by various criteria

        Args:
            stream_type: Filter by stream type (e.g., "work", "ledger")
            event_type: Filter by event type (e.g., "BidRegistered")
            from_time: Events at or after this time
            to_time: Events at or before this time
            limit: Maximum number of events to return
        """
        conditions = []
        params: list = []

        if stream_type:
            conditions.append("stream_type = ?")
            params.append(stream_type)
        if event_type:
            conditions.append("event_type = ?")
            params.append(event_type)
        if from_time:
            conditions.append("occurred_at >= ?")
            params.append(from_time.isoformat())
        if to_time:
            conditions.append("occurred_at <= ?")
            params.append(to_time.isoformat())

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        query = (
            f"SELECT {_EVENT_COLUMNS} FROM events WHERE {where_clause} "
            "ORDER BY occurred_at ASC, rowid ASC"
        )
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        try:
            with self._connect() as conn:
                cursor = conn.execute(query, params)
                return [self._row_to_event(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise EventStoreError(f"Failed to query events: {e}") from e

    def get_stream_version(self, stream_id: str) -> int:
        """Current version of a stream (0 if it doesn't exist)"""
        with self._connect() as conn:
            return self._get_stream_version(conn, stream_id)

    def _get_stream_version(self, conn: sqlite3.Connection, stream_id: str) -> int:
        row = conn.execute(
            "SELECT MAX(version) FROM events WHERE stream_id = ?",
            (stream_id,),
        ).fetchone()
        return row[0] if row[0] is not None else 0

    def _get_events_by_command_id(self, command_id: str) -> list[Event]:
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"SELECT {_EVENT_COLUMNS} FROM events "
                    "WHERE command_id = ? ORDER BY rowid ASC",
                    (command_id,),
                )
                return [self._row_to_event(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise EventStoreError(f"Failed to check command {command_id}: {e}") from e

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        return Event(
            event_id=row["event_id"],
            stream_id=row["stream_id"],
            stream_type=row["stream_type"],
            version=row["version"],
            command_id=row["command_id"],
            event_type=row["event_type"],
            occurred_at=datetime.fromisoformat(row["occurred_at"]),
            actor_id=row["actor_id"],
            payload=json.loads(row["payload_json"]),
        )

    def count_events(self) -> int:
        """Total number of events in store"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    def count_streams(self) -> int:
        """Total number of distinct streams"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(DISTINCT stream_id) FROM events").fetchone()[0]
