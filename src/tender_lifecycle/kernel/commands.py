"""
Command context - who asked for a change, when, and under which idempotency key

Every desk action builds one ``CommandContext``. Domain components use it to
stamp the events they emit, so a single action produces events that share
one command_id, one actor and one timestamp.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field

from tender_lifecycle.kernel.events import Event, create_event
from tender_lifecycle.kernel.ids import generate_id


class CommandContext(BaseModel):
    """Stamp shared by all events of one desk action"""

    command_id: str = Field(..., description="Unique action identifier (idempotency key)")
    actor_id: str | None = Field(default=None, description="Staff member issuing the action")
    issued_at: datetime = Field(..., description="UTC timestamp when the action was issued")

    model_config = {"frozen": True}

    @property
    def today(self) -> date:
        return self.issued_at.date()

    def event(
        self,
        *,
        stream_id: str,
        stream_type: str,
        version: int,
        payload: BaseModel,
    ) -> Event:
        """
        Build an event from a payload model

        The event type is the payload class name (``NitPublished``,
        ``ContractAwarded``...), so payload models and event types cannot drift.
        """
        return create_event(
            event_id=generate_id(),
            stream_id=stream_id,
            stream_type=stream_type,
            event_type=type(payload).__name__,
            occurred_at=self.issued_at,
            actor_id=self.actor_id,
            command_id=self.command_id,
            payload=payload.model_dump(mode="json"),
            version=version,
        )
