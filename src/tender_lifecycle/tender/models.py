"""
Tender Domain Models

NITs, works, bids and the award instruments. Statuses are closed enums, so
a status outside the lifecycle cannot even be constructed.

Fun fact: "NIT" (Notice Inviting Tender) is the form number in the Central
Public Works Department manual. Village panchayats adopted the term along
with the form, even for tenders worth a few thousand rupees!
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class TenderStatus(str, Enum):
    """
    Tender lifecycle of a work

    Forward path:
    ToBeOpened → TechnicalBidOpening → TechnicalEvaluation
        → FinancialBidOpening → FinancialEvaluation → AOC

    Cancelled and Retender are reachable from every non-terminal state.
    AOC, Cancelled and Retender are terminal; only an explicit retender
    action brings a cancelled work back to ToBeOpened.
    """

    TO_BE_OPENED = "ToBeOpened"
    TECHNICAL_BID_OPENING = "TechnicalBidOpening"
    TECHNICAL_EVALUATION = "TechnicalEvaluation"
    FINANCIAL_BID_OPENING = "FinancialBidOpening"
    FINANCIAL_EVALUATION = "FinancialEvaluation"
    AOC = "AOC"
    CANCELLED = "Cancelled"
    RETENDER = "Retender"


class WorkStatus(str, Enum):
    """Execution status of an awarded work (monotonic)"""

    YET_TO_START = "yettostart"
    WORK_IN_PROGRESS = "workinprogress"
    WORK_COMPLETED = "workcompleted"
    BILL_PAID = "billpaid"

    @property
    def rank(self) -> int:
        return list(WorkStatus).index(self)


TERMINAL_STATUSES = frozenset(
    {TenderStatus.AOC, TenderStatus.CANCELLED, TenderStatus.RETENDER}
)


class Evaluation(BaseModel):
    """Technical-evaluation result of one bid"""

    qualify: bool
    evaluation_doc_ref: str | None = None
    evaluated_at: datetime


class Bid(BaseModel):
    """One agency's bid on a work"""

    bid_id: str
    agency_id: str
    registered_at: datetime
    evaluation: Evaluation | None = None
    bidding_amount: Decimal | None = None

    @property
    def evaluated(self) -> bool:
        return self.evaluation is not None

    @property
    def qualified(self) -> bool:
        return self.evaluation is not None and self.evaluation.qualify


class Award(BaseModel):
    """
    Award of contract (AOC)

    Created once per work; only the delivery acknowledgement changes later.
    """

    award_id: str
    bid_id: str
    agency_id: str
    work_order_memo_no: str
    work_order_memo_date: date
    awarded_at: datetime
    delivered: bool = False
    delivered_on: date | None = None


class WorkOrderDetail(BaseModel):
    """Links the award to the winning bid; the percentage is a snapshot taken at award time"""

    award_id: str
    bid_id: str
    agency_id: str
    bidding_amount: Decimal
    estimated_cost: Decimal
    bid_percentage: str


class Agreement(BaseModel):
    """Legal instrument executed after award (one per award)"""

    agreement_id: str
    award_id: str
    agreement_no: str
    agreement_date: date


class Nit(BaseModel):
    """Notice Inviting Tender, rebuilt from its stream"""

    nit_id: str
    memo_number: int = Field(..., gt=0)
    memo_date: date
    is_supply: bool = False
    office_code: str
    published: bool = False
    published_at: datetime | None = None
    cancelled: bool = False
    deleted: bool = False
    work_ids: list[str] = Field(default_factory=list)
    work_serials: dict[str, int] = Field(default_factory=dict)
    version: int = 0

    @property
    def reference(self) -> str:
        """Human-readable reference, e.g. '12/GP/2024'"""
        return f"{self.memo_number}/{self.office_code}/{self.memo_date.year}"


class Work(BaseModel):
    """A schedule item tendered under a NIT, rebuilt from its stream"""

    work_id: str
    nit_id: str
    serial_no: int = Field(..., gt=0)
    description: str = ""
    estimated_cost: Decimal = Field(..., ge=0)
    tender_status: TenderStatus = TenderStatus.TO_BE_OPENED
    work_status: WorkStatus | None = None
    bids: dict[str, Bid] = Field(default_factory=dict)
    qualification_gate_passed: bool = False
    award: Award | None = None
    work_order: WorkOrderDetail | None = None
    agreement: Agreement | None = None
    completion_date: date | None = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.tender_status in TERMINAL_STATUSES

    @property
    def qualified_bids(self) -> list[Bid]:
        return [bid for bid in self.bids.values() if bid.qualified]

    @property
    def pending_bids(self) -> list[Bid]:
        return [bid for bid in self.bids.values() if not bid.evaluated]


class MemoRegister(BaseModel):
    """Memo numbers held by NITs in one calendar year"""

    year: int
    claims: dict[int, str] = Field(default_factory=dict)
    version: int = 0

    def holder_of(self, memo_number: int) -> str | None:
        return self.claims.get(memo_number)
