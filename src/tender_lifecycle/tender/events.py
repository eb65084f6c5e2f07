"""
Tender Events

Payload models for every fact recorded on NIT, work and memo-register
streams. The event type stored in the log is the class name.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from tender_lifecycle.kernel.commands import CommandContext
from tender_lifecycle.kernel.events import Event
from tender_lifecycle.kernel.ids import memo_register_stream, nit_stream, work_stream
from tender_lifecycle.tender.models import MemoRegister, Nit, TenderStatus, Work, WorkStatus

NIT_STREAM = "nit"
WORK_STREAM = "work"
MEMO_REGISTER_STREAM = "memo_register"


# ============================================================================
# Memo register (one stream per calendar year)
# ============================================================================


class MemoNumberClaimed(BaseModel):
    """A NIT took a memo number for the year"""

    year: int
    memo_number: int
    nit_id: str


class MemoNumberReleased(BaseModel):
    """A NIT gave up a memo number (amended or deleted)"""

    year: int
    memo_number: int
    nit_id: str


# ============================================================================
# NIT Events
# ============================================================================


class NitBooked(BaseModel):
    """NIT memo number booked (not yet published)"""

    nit_id: str
    memo_number: int
    memo_date: date
    is_supply: bool
    office_code: str
    booked_at: datetime


class NitMemoAmended(BaseModel):
    """Memo number/date corrected before publication"""

    nit_id: str
    previous_memo_number: int
    previous_memo_date: date
    memo_number: int
    memo_date: date
    is_supply: bool


class NitPublished(BaseModel):
    nit_id: str
    reference: str
    published_at: datetime


class NitDeleted(BaseModel):
    nit_id: str
    deleted_at: datetime


class WorkAttached(BaseModel):
    """A work was added to the NIT's schedule"""

    nit_id: str
    work_id: str
    serial_no: int


class NitCancelled(BaseModel):
    """Every work of the NIT is cancelled"""

    nit_id: str
    last_cancelled_work_id: str
    cancelled_at: datetime


class NitReinstated(BaseModel):
    """A work of a cancelled NIT was reopened for retender"""

    nit_id: str
    work_id: str
    reinstated_at: datetime


# ============================================================================
# Work Events
# ============================================================================


class WorkAdded(BaseModel):
    work_id: str
    nit_id: str
    serial_no: int
    description: str
    estimated_cost: Decimal = Field(..., ge=0)


class BidRegistered(BaseModel):
    work_id: str
    bid_id: str
    agency_id: str
    registered_at: datetime


class BidWithdrawn(BaseModel):
    work_id: str
    bid_id: str
    agency_id: str
    reason: str = "withdrawn"


class TechnicalEvaluationRecorded(BaseModel):
    """Evaluation result for a bid; a later one for the same bid overwrites it"""

    work_id: str
    bid_id: str
    qualify: bool
    evaluation_doc_ref: str | None = None
    evaluated_at: datetime


class FinancialBidRecorded(BaseModel):
    work_id: str
    bid_id: str
    bidding_amount: Decimal


class TenderStageAdvanced(BaseModel):
    """Tender status moved (forward, cancelled or retender)"""

    work_id: str
    from_status: TenderStatus
    to_status: TenderStatus
    changed_at: datetime
    reason: str | None = None


class WorkReopenedForRetender(BaseModel):
    """Cancelled/retendered work reset to ToBeOpened; its old bids are withdrawn"""

    work_id: str
    from_status: TenderStatus
    withdrawn_bid_ids: list[str]
    reopened_at: datetime


class ContractAwarded(BaseModel):
    work_id: str
    award_id: str
    bid_id: str
    agency_id: str
    work_order_memo_no: str
    work_order_memo_date: date
    awarded_at: datetime


class WorkOrderIssued(BaseModel):
    work_id: str
    award_id: str
    bid_id: str
    agency_id: str
    bidding_amount: Decimal
    estimated_cost: Decimal
    bid_percentage: str


class AgreementRecorded(BaseModel):
    work_id: str
    award_id: str
    agreement_id: str
    agreement_no: str
    agreement_date: date


class DeliveryAcknowledged(BaseModel):
    """Agency acknowledged receipt of the work order"""

    work_id: str
    award_id: str
    delivered_on: date


class WorkStatusChanged(BaseModel):
    work_id: str
    from_status: WorkStatus | None
    to_status: WorkStatus
    changed_at: datetime


class CompletionDateRecorded(BaseModel):
    work_id: str
    completion_date: date


# ============================================================================
# Emission helpers
# ============================================================================


def work_events(ctx: CommandContext, work: Work, *payloads: BaseModel) -> list[Event]:
    """Stamp payloads as consecutive events on the work's stream"""
    return [
        ctx.event(
            stream_id=work_stream(work.work_id),
            stream_type=WORK_STREAM,
            version=work.version + offset,
            payload=payload,
        )
        for offset, payload in enumerate(payloads, start=1)
    ]


def nit_events(ctx: CommandContext, nit: Nit, *payloads: BaseModel) -> list[Event]:
    """Stamp payloads as consecutive events on the NIT's stream"""
    return [
        ctx.event(
            stream_id=nit_stream(nit.nit_id),
            stream_type=NIT_STREAM,
            version=nit.version + offset,
            payload=payload,
        )
        for offset, payload in enumerate(payloads, start=1)
    ]


def memo_register_events(
    ctx: CommandContext, register: MemoRegister, *payloads: BaseModel
) -> list[Event]:
    """Stamp payloads as consecutive events on a year's memo register"""
    return [
        ctx.event(
            stream_id=memo_register_stream(register.year),
            stream_type=MEMO_REGISTER_STREAM,
            version=register.version + offset,
            payload=payload,
        )
        for offset, payload in enumerate(payloads, start=1)
    ]
