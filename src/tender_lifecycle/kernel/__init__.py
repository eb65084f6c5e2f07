"""
Kernel - event sourcing infrastructure for the tender desk

Event store, event model, bus, time, ids, logging, metrics, retry, office
policy and the result/error types every desk action speaks in.

Fun fact: Event sourcing was inspired by accountants - they never erase
ledger entries, they add correcting entries. A payment ledger is the one
place in this system where that origin story is literally true.
"""

from tender_lifecycle.kernel.commands import CommandContext
from tender_lifecycle.kernel.errors import (
    ConcurrentModification,
    EventStoreError,
    TenderDeskError,
    ValidationFailed,
)
from tender_lifecycle.kernel.event_store import SQLiteEventStore, StreamWrite
from tender_lifecycle.kernel.events import Event, create_event
from tender_lifecycle.kernel.ids import generate_id
from tender_lifecycle.kernel.policy import TenderPolicy
from tender_lifecycle.kernel.results import ActionError, ActionResult, Anomaly
from tender_lifecycle.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs & time
    "generate_id",
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Events & store
    "Event",
    "create_event",
    "CommandContext",
    "SQLiteEventStore",
    "StreamWrite",
    # Config
    "TenderPolicy",
    # Results & errors
    "ActionResult",
    "ActionError",
    "Anomaly",
    "TenderDeskError",
    "ValidationFailed",
    "ConcurrentModification",
    "EventStoreError",
]
