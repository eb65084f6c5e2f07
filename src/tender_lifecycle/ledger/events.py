"""
Payment Ledger Events

Ledger streams are append-only and written at the head: the store assigns
the final version at commit time.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from tender_lifecycle.kernel.commands import CommandContext
from tender_lifecycle.kernel.events import Event
from tender_lifecycle.kernel.ids import ledger_stream
from tender_lifecycle.ledger.models import BillType, Deductions, Ledger

LEDGER_STREAM = "ledger"


class PaymentRecorded(BaseModel):
    entry_id: str
    work_id: str
    gross_bill_amount: Decimal = Field(..., ge=0)
    deductions: Deductions
    net_amount: Decimal
    bill_type: BillType
    bill_payment_date: date
    security_deposit_maturity_date: date
    egram_voucher_no: str | None = None
    gpms_voucher_no: str | None = None
    mb_reference: str | None = None
    recorded_at: datetime


def ledger_events(ctx: CommandContext, ledger: Ledger, *payloads: BaseModel) -> list[Event]:
    """Stamp payloads as events on the work's ledger stream"""
    return [
        ctx.event(
            stream_id=ledger_stream(ledger.work_id),
            stream_type=LEDGER_STREAM,
            version=ledger.version + offset,
            payload=payload,
        )
        for offset, payload in enumerate(payloads, start=1)
    ]
