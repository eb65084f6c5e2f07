"""
Tender Commands

Input models for the desk actions. They reject malformed input (unknown
status, empty ids, negative money) before anything is loaded; the domain
rules themselves are checked by the components.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from tender_lifecycle.tender.models import TenderStatus, WorkStatus

NonEmpty = Field(..., min_length=1)


class BookNit(BaseModel):
    """Book a memo number for a new NIT without publishing it"""

    memo_number: int = Field(..., gt=0, description="Memo number, unique per calendar year")
    memo_date: date
    is_supply: bool = False


class PublishNit(BookNit):
    """Publish a NIT (booking it first when the memo number is new)"""


class AmendNitMemo(BaseModel):
    nit_id: str = NonEmpty
    memo_number: int = Field(..., gt=0)
    memo_date: date
    is_supply: bool | None = Field(default=None, description="None keeps the current value")


class DeleteNit(BaseModel):
    nit_id: str = NonEmpty


class AddWork(BaseModel):
    nit_id: str = NonEmpty
    serial_no: int = Field(..., gt=0, description="Serial number within the NIT")
    estimated_cost: Decimal = Field(..., ge=0, description="Final estimated cost")
    description: str = ""


class RegisterBid(BaseModel):
    work_id: str = NonEmpty
    agency_id: str = NonEmpty


class SubmitTechnicalEvaluation(BaseModel):
    bid_id: str = NonEmpty
    qualify: bool
    evaluation_doc_ref: str | None = None


class WithdrawBid(BaseModel):
    bid_id: str = NonEmpty


class RecordFinancialBid(BaseModel):
    bid_id: str = NonEmpty
    bidding_amount: Decimal = Field(..., gt=0)


class AdvanceTenderStage(BaseModel):
    work_id: str = NonEmpty
    target_status: TenderStatus
    expected_version: int | None = Field(
        default=None, ge=0, description="Version the caller loaded; None = version read now"
    )


class CancelWork(BaseModel):
    work_id: str = NonEmpty


class ReopenForRetender(BaseModel):
    work_id: str = NonEmpty


class AwardContract(BaseModel):
    work_id: str = NonEmpty
    winning_bid_id: str = NonEmpty
    work_order_memo_no: str = NonEmpty
    work_order_memo_date: date

    model_config = {"coerce_numbers_to_str": True}


class RecordAgreement(BaseModel):
    award_id: str = NonEmpty
    agreement_no: str | None = Field(default=None, description="None = office numbering")
    agreement_date: date | None = Field(default=None, description="None = work-order memo date")


class AcknowledgeDelivery(BaseModel):
    award_id: str = NonEmpty
    delivered_on: date | None = None


class ChangeWorkStatus(BaseModel):
    work_id: str = NonEmpty
    target_status: WorkStatus
    completion_date: date | None = None
