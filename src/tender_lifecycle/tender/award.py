"""
Award & Agreement Resolver

Accepts the winning bid, snapshots the bid percentage into the work order
and records the agreement. Award, work order and the move to AOC are one
batch of events on the work stream, so none of them can exist without the
others.

Fun fact: A bid "7.50% below estimate" is the number every panchayat
member asks about first. It is computed once, at award time, and frozen so
that a later correction of the estimate never rewrites history.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from tender_lifecycle.kernel.commands import CommandContext
from tender_lifecycle.kernel.errors import (
    AgreementAlreadyExists,
    AlreadyAwarded,
    AwardNotFound,
    BidNotFound,
    DeliveryAlreadyAcknowledged,
    FinancialBidsIncomplete,
    NotQualified,
    PrematureAward,
    ValidationFailed,
)
from tender_lifecycle.kernel.events import Event
from tender_lifecycle.kernel.ids import generate_id
from tender_lifecycle.tender.events import (
    AgreementRecorded,
    ContractAwarded,
    DeliveryAcknowledged,
    TenderStageAdvanced,
    WorkOrderIssued,
    WorkStatusChanged,
    work_events,
)
from tender_lifecycle.tender.models import Award, TenderStatus, Work, WorkStatus

TWO_PLACES = Decimal("0.01")


def bid_percentage(
    estimated_cost: Decimal | None, bidding_amount: Decimal | None
) -> str:
    """
    Percentage below estimate, as printed on the work order

    (estimate - bid) / estimate * 100, two decimals, half-up. Negative when
    the bid is above estimate; "0.00" when the estimate is zero or either
    figure is missing.

    >>> bid_percentage(Decimal("100000"), Decimal("92500"))
    '7.50'
    """
    if not estimated_cost or bidding_amount is None:
        return "0.00"
    percentage = ((estimated_cost - bidding_amount) / estimated_cost * 100).quantize(
        TWO_PLACES, rounding=ROUND_HALF_UP
    )
    if percentage == 0:
        return "0.00"
    return f"{percentage:.2f}"


def award_contract(
    ctx: CommandContext,
    work: Work,
    winning_bid_id: str,
    work_order_memo_no: str,
    work_order_memo_date: date,
) -> tuple[str, list[Event]]:
    """
    Award the work to a qualified bid

    Returns:
        (award_id, [ContractAwarded, WorkOrderIssued, TenderStageAdvanced, WorkStatusChanged])

    Raises:
        AlreadyAwarded: The work already has an award
        PrematureAward: Not in FinancialEvaluation, or the gate never passed
        BidNotFound: Winning bid is not on this work
        NotQualified: Winning bid failed technical evaluation
        ValidationFailed: Empty work-order memo number
    """
    if work.award is not None:
        raise AlreadyAwarded(work.work_id, work.award.award_id)
    if (
        work.tender_status != TenderStatus.FINANCIAL_EVALUATION
        or not work.qualification_gate_passed
    ):
        raise PrematureAward(
            work.work_id, work.tender_status.value, work.qualification_gate_passed
        )

    bid = work.bids.get(winning_bid_id)
    if bid is None:
        raise BidNotFound(winning_bid_id, work.work_id)
    if not bid.qualified:
        raise NotQualified(winning_bid_id)
    if bid.bidding_amount is None:
        raise FinancialBidsIncomplete(work.work_id, 1)

    memo_no = work_order_memo_no.strip()
    if not memo_no:
        raise ValidationFailed("work_order_memo_no", "must not be empty")

    award_id = generate_id()
    events = work_events(
        ctx,
        work,
        ContractAwarded(
            work_id=work.work_id,
            award_id=award_id,
            bid_id=bid.bid_id,
            agency_id=bid.agency_id,
            work_order_memo_no=memo_no,
            work_order_memo_date=work_order_memo_date,
            awarded_at=ctx.issued_at,
        ),
        WorkOrderIssued(
            work_id=work.work_id,
            award_id=award_id,
            bid_id=bid.bid_id,
            agency_id=bid.agency_id,
            bidding_amount=bid.bidding_amount,
            estimated_cost=work.estimated_cost,
            bid_percentage=bid_percentage(work.estimated_cost, bid.bidding_amount),
        ),
        TenderStageAdvanced(
            work_id=work.work_id,
            from_status=work.tender_status,
            to_status=TenderStatus.AOC,
            changed_at=ctx.issued_at,
            reason="contract_awarded",
        ),
        WorkStatusChanged(
            work_id=work.work_id,
            from_status=None,
            to_status=WorkStatus.YET_TO_START,
            changed_at=ctx.issued_at,
        ),
    )
    return award_id, events


def _require_award(work: Work, award_id: str) -> Award:
    if work.award is None or work.award.award_id != award_id:
        raise AwardNotFound(award_id)
    return work.award


def default_agreement_no(award: Award, serial_no: int) -> str:
    """AGR-{memo year}-{work-order memo no, zero padded to 4}/{work serial}"""
    return (
        f"AGR-{award.work_order_memo_date.year}-"
        f"{award.work_order_memo_no.zfill(4)}/{serial_no}"
    )


def record_agreement(
    ctx: CommandContext,
    work: Work,
    award_id: str,
    agreement_no: str | None = None,
    agreement_date: date | None = None,
) -> tuple[str, list[Event]]:
    """
    Record the agreement executed for an award (exactly once)

    Number and date default to the office's usual AGR numbering and the
    work-order memo date.

    Raises:
        AwardNotFound: Award is not this work's award
        AgreementAlreadyExists: An agreement was already recorded
    """
    award = _require_award(work, award_id)
    if work.agreement is not None:
        raise AgreementAlreadyExists(award_id, work.agreement.agreement_no)

    agreement_id = generate_id()
    events = work_events(
        ctx,
        work,
        AgreementRecorded(
            work_id=work.work_id,
            award_id=award_id,
            agreement_id=agreement_id,
            agreement_no=(agreement_no or "").strip()
            or default_agreement_no(award, work.serial_no),
            agreement_date=agreement_date or award.work_order_memo_date,
        ),
    )
    return agreement_id, events


def acknowledge_delivery(
    ctx: CommandContext, work: Work, award_id: str, delivered_on: date | None = None
) -> list[Event]:
    """
    Mark the work order as delivered to the agency

    Raises:
        AwardNotFound: Award is not this work's award
        DeliveryAlreadyAcknowledged: Delivery was already recorded
    """
    award = _require_award(work, award_id)
    if award.delivered:
        raise DeliveryAlreadyAcknowledged(award_id, str(award.delivered_on))

    return work_events(
        ctx,
        work,
        DeliveryAcknowledged(
            work_id=work.work_id,
            award_id=award_id,
            delivered_on=delivered_on or ctx.today,
        ),
    )
