"""
Base Event model for the tender record store

Events are immutable facts about what happened to a NIT, a work or a
payment ledger. The append-only log of events is the source of truth; every
NIT, work and ledger is rebuilt from it on load.

Fun fact: Public works departments kept "measurement books" long before
computers. An entry was never erased, only countersigned and carried forward.
An event log is the same book with better handwriting!
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Event(BaseModel):
    """
    Base event class - every stored fact is one of these

    Events are:
    - Immutable (never modified after creation)
    - Append-only (never deleted)
    - Versioned per stream (stream_id + version gives optimistic locking)
    - Idempotent per command (command_id)
    """

    event_id: str = Field(
        ...,
        description="Unique event identifier (time-ordered)",
    )

    stream_id: str = Field(
        ...,
        description="Stream identifier: 'nit-<id>', 'work-<id>', 'ledger-<work id>', 'memo-<year>'",
    )

    stream_type: str = Field(
        ...,
        description="Type of stream: 'nit', 'work', 'ledger', 'memo_register'",
    )

    event_type: str = Field(
        ...,
        description="Specific event type: 'NitPublished', 'ContractAwarded', etc.",
    )

    occurred_at: datetime = Field(
        ...,
        description="UTC timestamp when event occurred",
    )

    actor_id: str | None = Field(
        default=None,
        description="Staff member who triggered this event (None for system events)",
    )

    command_id: str = Field(
        ...,
        description="ID of the desk action that caused this event (idempotency key)",
    )

    payload: dict = Field(
        default_factory=dict,
        description="Event-specific data (must be JSON-serializable)",
    )

    version: int = Field(
        ...,
        description="Stream version after this event (monotonically increasing)",
        ge=1,
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "event_id": "01908e9a-3b87-7000-8000-123456789abc",
                    "stream_id": "work-01908e9a-3b87-7000-8000-0000000000aa",
                    "stream_type": "work",
                    "event_type": "BidRegistered",
                    "occurred_at": "2024-06-03T10:30:00Z",
                    "actor_id": "clerk-1",
                    "command_id": "01908e9a-3b87-7000-8000-0000000000bb",
                    "payload": {"bid_id": "b-1", "agency_id": "agency-7"},
                    "version": 2,
                }
            ]
        },
    }


def create_event(
    *,
    event_id: str,
    stream_id: str,
    stream_type: str,
    event_type: str,
    occurred_at: datetime,
    command_id: str,
    version: int,
    actor_id: str | None = None,
    payload: dict | None = None,
) -> Event:
    """Factory function for creating events with all required fields"""
    return Event(
        event_id=event_id,
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=occurred_at,
        actor_id=actor_id,
        command_id=command_id,
        payload=payload or {},
        version=version,
    )
