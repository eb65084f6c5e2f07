"""
Bidder Qualification Gate

Tracks technical-evaluation results per bid and decides whether a work may
open financial bids: every bid evaluated AND at least three qualified.

Fun fact: The three-bid rule exists because two bidders can agree on a
price over tea. Getting three to collude takes a proper lunch!
"""

from decimal import Decimal

from pydantic import BaseModel

from tender_lifecycle.kernel.commands import CommandContext
from tender_lifecycle.kernel.errors import (
    BidNotFound,
    BidsPendingEvaluation,
    CannotDeleteEvaluatedBid,
    DuplicateBidder,
    InsufficientQualifiedBidders,
    NitNotPublished,
    NotQualified,
    StageMismatch,
    ValidationFailed,
)
from tender_lifecycle.kernel.events import Event
from tender_lifecycle.kernel.ids import generate_id
from tender_lifecycle.tender.events import (
    BidRegistered,
    BidWithdrawn,
    FinancialBidRecorded,
    TechnicalEvaluationRecorded,
    TenderStageAdvanced,
    work_events,
)
from tender_lifecycle.tender.models import Bid, Nit, TenderStatus, Work

# Fixed business rule of the tender process; not part of TenderPolicy
REQUIRED_QUALIFIED_BIDDERS = 3

BID_REGISTRATION_STAGES = (TenderStatus.TO_BE_OPENED, TenderStatus.TECHNICAL_BID_OPENING)
BID_WITHDRAWAL_STAGES = (
    TenderStatus.TO_BE_OPENED,
    TenderStatus.TECHNICAL_BID_OPENING,
    TenderStatus.TECHNICAL_EVALUATION,
)


class QualificationAssessment(BaseModel):
    """Where a work stands against the qualification gate"""

    work_id: str
    total: int
    evaluated: int
    pending: int
    qualified: int
    required: int = REQUIRED_QUALIFIED_BIDDERS
    outcome: str  # ready | pending_evaluation | none_qualified | insufficient_qualified
    message: str

    @property
    def can_advance(self) -> bool:
        return self.outcome == "ready"


def assess_qualification(work: Work) -> QualificationAssessment:
    """Count bids and classify the gate outcome with a user-facing message"""
    total = len(work.bids)
    pending = len(work.pending_bids)
    qualified = len(work.qualified_bids)

    if pending:
        outcome = "pending_evaluation"
        message = f"{pending} of {total} bids still await technical evaluation"
    elif qualified >= REQUIRED_QUALIFIED_BIDDERS:
        outcome = "ready"
        message = f"{qualified} qualified bidders; financial bids may be opened"
    elif qualified == 0:
        outcome = "none_qualified"
        message = f"No bidder qualified (0 of {REQUIRED_QUALIFIED_BIDDERS} required)"
    else:
        outcome = "insufficient_qualified"
        message = f"{qualified} of {REQUIRED_QUALIFIED_BIDDERS} required qualified bidders"

    return QualificationAssessment(
        work_id=work.work_id,
        total=total,
        evaluated=total - pending,
        pending=pending,
        qualified=qualified,
        outcome=outcome,
        message=message,
    )


def can_advance_to_financial(work: Work) -> bool:
    """All bids evaluated and at least REQUIRED_QUALIFIED_BIDDERS qualified"""
    return assess_qualification(work).can_advance


def ensure_can_advance_to_financial(work: Work) -> None:
    """
    Raises:
        BidsPendingEvaluation: Some bids have no evaluation result
        InsufficientQualifiedBidders: Fewer than three qualified (none_qualified tells 0 apart)
    """
    assessment = assess_qualification(work)
    if assessment.outcome == "pending_evaluation":
        raise BidsPendingEvaluation(work.work_id, assessment.pending, assessment.total)
    if not assessment.can_advance:
        raise InsufficientQualifiedBidders(
            work.work_id, assessment.qualified, REQUIRED_QUALIFIED_BIDDERS
        )


def _require_stage(work: Work, *allowed: TenderStatus) -> None:
    if work.tender_status not in allowed:
        raise StageMismatch(
            work.work_id, work.tender_status.value, [status.value for status in allowed]
        )


def _require_bid(work: Work, bid_id: str) -> Bid:
    bid = work.bids.get(bid_id)
    if bid is None:
        raise BidNotFound(bid_id, work.work_id)
    return bid


def register_bid(
    ctx: CommandContext, work: Work, nit: Nit, agency_id: str
) -> tuple[str, list[Event]]:
    """
    Register an agency's bid on a work

    The first bid on a ToBeOpened work opens technical bids in the same commit.

    Returns:
        (bid_id, events)
    """
    if not nit.published:
        raise NitNotPublished(nit.nit_id)
    _require_stage(work, *BID_REGISTRATION_STAGES)
    if any(bid.agency_id == agency_id for bid in work.bids.values()):
        raise DuplicateBidder(work.work_id, agency_id)

    bid_id = generate_id()
    payloads: list[BaseModel] = [
        BidRegistered(
            work_id=work.work_id,
            bid_id=bid_id,
            agency_id=agency_id,
            registered_at=ctx.issued_at,
        )
    ]
    if work.tender_status == TenderStatus.TO_BE_OPENED:
        payloads.append(
            TenderStageAdvanced(
                work_id=work.work_id,
                from_status=TenderStatus.TO_BE_OPENED,
                to_status=TenderStatus.TECHNICAL_BID_OPENING,
                changed_at=ctx.issued_at,
                reason="first_bid_registered",
            )
        )
    return bid_id, work_events(ctx, work, *payloads)


def record_evaluation(
    ctx: CommandContext,
    work: Work,
    bid_id: str,
    qualify: bool,
    evaluation_doc_ref: str | None = None,
) -> list[Event]:
    """
    Record (or overwrite) the technical-evaluation result of a bid

    Raises:
        StageMismatch: Work is not in TechnicalEvaluation
        BidNotFound: Bid is not on this work
    """
    _require_stage(work, TenderStatus.TECHNICAL_EVALUATION)
    _require_bid(work, bid_id)

    return work_events(
        ctx,
        work,
        TechnicalEvaluationRecorded(
            work_id=work.work_id,
            bid_id=bid_id,
            qualify=qualify,
            evaluation_doc_ref=evaluation_doc_ref,
            evaluated_at=ctx.issued_at,
        ),
    )


def withdraw_bid(ctx: CommandContext, work: Work, bid_id: str) -> list[Event]:
    """
    Delete a bid that has not been evaluated yet

    Raises:
        BidNotFound: Bid is not on this work
        CannotDeleteEvaluatedBid: Bid already has an evaluation result
        StageMismatch: Financial bids are already open
    """
    bid = _require_bid(work, bid_id)
    if bid.evaluated:
        raise CannotDeleteEvaluatedBid(bid_id)
    _require_stage(work, *BID_WITHDRAWAL_STAGES)

    return work_events(
        ctx,
        work,
        BidWithdrawn(work_id=work.work_id, bid_id=bid_id, agency_id=bid.agency_id),
    )


def record_financial_bid(
    ctx: CommandContext, work: Work, bid_id: str, bidding_amount: Decimal
) -> list[Event]:
    """
    Record a qualified bid's financial offer

    When the last qualified bid receives its amount the work moves on to
    FinancialEvaluation in the same commit.

    Raises:
        StageMismatch: Work is not in FinancialBidOpening
        BidNotFound: Bid is not on this work
        NotQualified: Bid did not pass technical evaluation
        ValidationFailed: Amount is not positive
    """
    _require_stage(work, TenderStatus.FINANCIAL_BID_OPENING)
    bid = _require_bid(work, bid_id)
    if not bid.qualified:
        raise NotQualified(bid_id)
    if bidding_amount <= 0:
        raise ValidationFailed("bidding_amount", "must be greater than zero")

    payloads: list[BaseModel] = [
        FinancialBidRecorded(work_id=work.work_id, bid_id=bid_id, bidding_amount=bidding_amount)
    ]
    still_missing = [
        other
        for other in work.qualified_bids
        if other.bid_id != bid_id and other.bidding_amount is None
    ]
    if not still_missing:
        payloads.append(
            TenderStageAdvanced(
                work_id=work.work_id,
                from_status=TenderStatus.FINANCIAL_BID_OPENING,
                to_status=TenderStatus.FINANCIAL_EVALUATION,
                changed_at=ctx.issued_at,
                reason="all_financial_bids_recorded",
            )
        )
    return work_events(ctx, work, *payloads)
