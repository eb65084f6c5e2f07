"""Rebuild a work's payment ledger from its stream"""

from tender_lifecycle.kernel.events import Event
from tender_lifecycle.ledger.events import PaymentRecorded
from tender_lifecycle.ledger.models import Ledger, PaymentEntry


def load_ledger(work_id: str, stream: list[Event]) -> Ledger:
    """Fold a ledger stream (an empty stream is an empty ledger)"""
    ledger = Ledger(work_id=work_id)
    for event in stream:
        if event.event_type == "PaymentRecorded":
            recorded = PaymentRecorded.model_validate(event.payload)
            ledger.entries.append(PaymentEntry(**recorded.model_dump()))
        ledger.version = event.version
    return ledger
