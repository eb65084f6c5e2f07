"""
Status Transition Guard

The tender lifecycle is one adjacency table; every status change of a work
is a single lookup in it, followed by the stage pre-condition for the step
being taken. The NIT cancellation cascade and the work-status chain live
here too, as plain functions that can be tested without a database.

Fun fact: The same closed-table technique drives the citizen-certificate
workflow of the office (draft, enquiry, approval, issue, renewal). Only the
state set differs!
"""

from datetime import date

from tender_lifecycle.kernel.commands import CommandContext
from tender_lifecycle.kernel.errors import (
    AlreadyTerminal,
    FinalBillRequired,
    FinancialBidsIncomplete,
    IllegalTransition,
    NoBidsRegistered,
    RetenderNotAllowed,
    WorkNotAwarded,
    WorkStatusRegression,
)
from tender_lifecycle.kernel.events import Event
from tender_lifecycle.tender import qualification
from tender_lifecycle.tender.events import (
    CompletionDateRecorded,
    NitCancelled,
    NitReinstated,
    TenderStageAdvanced,
    WorkReopenedForRetender,
    WorkStatusChanged,
    nit_events,
    work_events,
)
from tender_lifecycle.tender.models import (
    TERMINAL_STATUSES,
    Nit,
    TenderStatus,
    Work,
    WorkStatus,
)

FORWARD_PATH: tuple[TenderStatus, ...] = (
    TenderStatus.TO_BE_OPENED,
    TenderStatus.TECHNICAL_BID_OPENING,
    TenderStatus.TECHNICAL_EVALUATION,
    TenderStatus.FINANCIAL_BID_OPENING,
    TenderStatus.FINANCIAL_EVALUATION,
    TenderStatus.AOC,
)


def _build_transition_table() -> dict[TenderStatus, frozenset[TenderStatus]]:
    table: dict[TenderStatus, frozenset[TenderStatus]] = {}
    for current, following in zip(FORWARD_PATH, FORWARD_PATH[1:]):
        table[current] = frozenset(
            {following, TenderStatus.CANCELLED, TenderStatus.RETENDER}
        )
    for terminal in TERMINAL_STATUSES:
        table[terminal] = frozenset()
    return table


ALLOWED_TRANSITIONS = _build_transition_table()

COMPLETION_STATUSES = frozenset({WorkStatus.WORK_COMPLETED, WorkStatus.BILL_PAID})


def check_transition(work: Work, target: TenderStatus) -> None:
    """
    Validate that ``target`` is one step away from the work's status

    Raises:
        AlreadyTerminal: Work is AOC/Cancelled/Retender and target is on the forward path
        IllegalTransition: Target is not adjacent (stage skip, self-transition,
            cancelling a terminal work, or AOC without an award)
    """
    current = work.tender_status

    if current in TERMINAL_STATUSES:
        if target in FORWARD_PATH:
            raise AlreadyTerminal(work.work_id, current.value, target.value)
        raise IllegalTransition(work.work_id, current.value, target.value, reason="terminal")

    if target not in ALLOWED_TRANSITIONS[current]:
        reason = "same_status" if target == current else "not_adjacent"
        raise IllegalTransition(work.work_id, current.value, target.value, reason=reason)

    if target == TenderStatus.AOC:
        raise IllegalTransition(
            work.work_id, current.value, target.value, reason="award_required"
        )


def check_stage_preconditions(work: Work, target: TenderStatus) -> None:
    """Pre-conditions of the step into ``target`` (guard already passed)"""
    if target == TenderStatus.TECHNICAL_EVALUATION and not work.bids:
        raise NoBidsRegistered(work.work_id)

    if target == TenderStatus.FINANCIAL_BID_OPENING:
        qualification.ensure_can_advance_to_financial(work)

    if target == TenderStatus.FINANCIAL_EVALUATION:
        missing = [bid for bid in work.qualified_bids if bid.bidding_amount is None]
        if missing:
            raise FinancialBidsIncomplete(work.work_id, len(missing))


def transition(
    ctx: CommandContext, work: Work, target: TenderStatus, reason: str | None = None
) -> list[Event]:
    """
    Move a work's tender status one step

    Returns:
        A single TenderStageAdvanced event on the work stream
    """
    check_transition(work, target)
    check_stage_preconditions(work, target)

    return work_events(
        ctx,
        work,
        TenderStageAdvanced(
            work_id=work.work_id,
            from_status=work.tender_status,
            to_status=target,
            changed_at=ctx.issued_at,
            reason=reason,
        ),
    )


def nit_cancellation_cascade(
    ctx: CommandContext,
    nit: Nit,
    sibling_works: list[Work],
    cancelled_work_id: str,
) -> list[Event]:
    """
    NIT cancellation rule

    The NIT is cancelled exactly when the work being cancelled is the last of
    its works not yet cancelled. ``sibling_works`` are the NIT's other works
    as loaded for this action; the caller must guard their stream versions
    at commit so a concurrent change cannot slip past this check.

    Returns:
        [NitCancelled] when the NIT flips, otherwise []
    """
    if nit.cancelled:
        return []

    others = [work for work in sibling_works if work.work_id != cancelled_work_id]
    if any(work.tender_status != TenderStatus.CANCELLED for work in others):
        return []

    return nit_events(
        ctx,
        nit,
        NitCancelled(
            nit_id=nit.nit_id,
            last_cancelled_work_id=cancelled_work_id,
            cancelled_at=ctx.issued_at,
        ),
    )


def reopen_for_retender(ctx: CommandContext, work: Work, nit: Nit) -> list[Event]:
    """
    Explicit retender action: reset a Cancelled/Retender work to ToBeOpened

    Old bids are withdrawn and the qualification flag cleared. A cancelled
    NIT is reinstated, since it now has a live work again.

    Raises:
        RetenderNotAllowed: Work is not Cancelled or Retender
    """
    if work.tender_status not in (TenderStatus.CANCELLED, TenderStatus.RETENDER):
        raise RetenderNotAllowed(work.work_id, work.tender_status.value)

    events = work_events(
        ctx,
        work,
        WorkReopenedForRetender(
            work_id=work.work_id,
            from_status=work.tender_status,
            withdrawn_bid_ids=list(work.bids),
            reopened_at=ctx.issued_at,
        ),
    )
    if nit.cancelled:
        events += nit_events(
            ctx,
            nit,
            NitReinstated(nit_id=nit.nit_id, work_id=work.work_id, reinstated_at=ctx.issued_at),
        )
    return events


def change_work_status(
    ctx: CommandContext,
    work: Work,
    target: WorkStatus,
    final_bill_recorded: bool,
    completion_date: date | None = None,
) -> list[Event]:
    """
    Move an awarded work along yettostart → workinprogress → workcompleted → billpaid

    Forward skips are allowed; staying put or going back is not. Reaching
    workcompleted or billpaid records the completion date (given, or today)
    when the work has none yet.

    Raises:
        WorkNotAwarded: Tender status is not AOC
        WorkStatusRegression: Target is not after the current work status
        FinalBillRequired: billpaid without a final-bill payment
    """
    if work.tender_status != TenderStatus.AOC:
        raise WorkNotAwarded(work.work_id, work.tender_status.value)

    current = work.work_status or WorkStatus.YET_TO_START
    if target.rank <= current.rank:
        raise WorkStatusRegression(work.work_id, current.value, target.value)

    if target == WorkStatus.BILL_PAID and not final_bill_recorded:
        raise FinalBillRequired(work.work_id)

    payloads = [
        WorkStatusChanged(
            work_id=work.work_id,
            from_status=current,
            to_status=target,
            changed_at=ctx.issued_at,
        )
    ]
    if target in COMPLETION_STATUSES and work.completion_date is None:
        payloads.append(
            CompletionDateRecorded(
                work_id=work.work_id, completion_date=completion_date or ctx.today
            )
        )
    return work_events(ctx, work, *payloads)
