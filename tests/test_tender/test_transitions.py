"""
Tests for the status transition guard

Every status change is one lookup in the adjacency table; these tests walk
the whole table, the stage pre-conditions, the NIT cancellation cascade and
the work-status chain.
"""

from datetime import date

import pytest

from tender_lifecycle.kernel.errors import (
    AlreadyTerminal,
    BidsPendingEvaluation,
    FinalBillRequired,
    FinancialBidsIncomplete,
    IllegalTransition,
    InsufficientQualifiedBidders,
    NoBidsRegistered,
    RetenderNotAllowed,
    WorkNotAwarded,
    WorkStatusRegression,
)
from tender_lifecycle.tender.models import TERMINAL_STATUSES, TenderStatus, WorkStatus
from tender_lifecycle.tender.transitions import (
    ALLOWED_TRANSITIONS,
    FORWARD_PATH,
    change_work_status,
    check_transition,
    nit_cancellation_cascade,
    reopen_for_retender,
    transition,
)
from tests.helpers import make_bid, make_nit, make_work

NON_TERMINAL = [status for status in TenderStatus if status not in TERMINAL_STATUSES]


def three_qualified() -> list:
    return [make_bid(f"b{n}", qualify=True) for n in range(3)]


# =============================================================================
# Adjacency table
# =============================================================================


@pytest.mark.parametrize("current", list(TenderStatus))
@pytest.mark.parametrize("target", list(TenderStatus))
def test_only_adjacent_moves_pass_the_guard(current: TenderStatus, target: TenderStatus) -> None:
    """Every (current, target) pair: allowed exactly when the table says so"""
    work = make_work(current)
    allowed = target in ALLOWED_TRANSITIONS[current] and target != TenderStatus.AOC

    if allowed:
        check_transition(work, target)
    else:
        with pytest.raises((IllegalTransition, AlreadyTerminal)):
            check_transition(work, target)


def test_stage_skip_is_illegal() -> None:
    with pytest.raises(IllegalTransition) as exc_info:
        check_transition(make_work(TenderStatus.TO_BE_OPENED), TenderStatus.TECHNICAL_EVALUATION)
    assert exc_info.value.reason == "not_adjacent"


def test_self_transition_is_illegal() -> None:
    with pytest.raises(IllegalTransition) as exc_info:
        check_transition(make_work(TenderStatus.TECHNICAL_EVALUATION), TenderStatus.TECHNICAL_EVALUATION)
    assert exc_info.value.reason == "same_status"


def test_aoc_requires_an_award() -> None:
    with pytest.raises(IllegalTransition) as exc_info:
        check_transition(make_work(TenderStatus.FINANCIAL_EVALUATION), TenderStatus.AOC)
    assert exc_info.value.reason == "award_required"


@pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
def test_forward_target_on_terminal_work_is_already_terminal(terminal: TenderStatus) -> None:
    with pytest.raises(AlreadyTerminal):
        check_transition(make_work(terminal), TenderStatus.TECHNICAL_BID_OPENING)


def test_cancelling_a_cancelled_work_is_illegal() -> None:
    with pytest.raises(IllegalTransition) as exc_info:
        check_transition(make_work(TenderStatus.CANCELLED), TenderStatus.CANCELLED)
    assert exc_info.value.reason == "terminal"


@pytest.mark.parametrize("current", NON_TERMINAL)
def test_cancel_and_retender_reachable_from_every_open_status(current: TenderStatus) -> None:
    assert TenderStatus.CANCELLED in ALLOWED_TRANSITIONS[current]
    assert TenderStatus.RETENDER in ALLOWED_TRANSITIONS[current]


def test_forward_path_order() -> None:
    assert FORWARD_PATH[0] == TenderStatus.TO_BE_OPENED
    assert FORWARD_PATH[-1] == TenderStatus.AOC
    for current, following in zip(FORWARD_PATH, FORWARD_PATH[1:]):
        assert following in ALLOWED_TRANSITIONS[current]


# =============================================================================
# Stage pre-conditions
# =============================================================================


def test_technical_evaluation_needs_a_bid(ctx) -> None:
    with pytest.raises(NoBidsRegistered):
        transition(ctx, make_work(TenderStatus.TECHNICAL_BID_OPENING), TenderStatus.TECHNICAL_EVALUATION)


def test_financial_opening_needs_every_bid_evaluated(ctx) -> None:
    work = make_work(
        TenderStatus.TECHNICAL_EVALUATION, three_qualified() + [make_bid("pending")]
    )
    with pytest.raises(BidsPendingEvaluation):
        transition(ctx, work, TenderStatus.FINANCIAL_BID_OPENING)


def test_financial_opening_needs_three_qualified(ctx) -> None:
    bids = [make_bid("b1", qualify=True), make_bid("b2", qualify=True), make_bid("b3", qualify=False)]
    with pytest.raises(InsufficientQualifiedBidders) as exc_info:
        transition(ctx, make_work(TenderStatus.TECHNICAL_EVALUATION, bids), TenderStatus.FINANCIAL_BID_OPENING)

    assert exc_info.value.qualified == 2
    assert "2 of 3 required qualified bidders" in exc_info.value.message


def test_financial_evaluation_needs_every_amount(ctx) -> None:
    bids = [
        make_bid("b1", qualify=True, bidding_amount="90000"),
        make_bid("b2", qualify=True),
        make_bid("b3", qualify=True, bidding_amount="95000"),
    ]
    work = make_work(TenderStatus.FINANCIAL_BID_OPENING, bids, qualification_gate_passed=True)
    with pytest.raises(FinancialBidsIncomplete):
        transition(ctx, work, TenderStatus.FINANCIAL_EVALUATION)


def test_transition_event_carries_both_statuses(ctx) -> None:
    work = make_work(TenderStatus.TECHNICAL_EVALUATION, three_qualified(), version=7)

    events = transition(ctx, work, TenderStatus.FINANCIAL_BID_OPENING)

    assert len(events) == 1
    assert events[0].event_type == "TenderStageAdvanced"
    assert events[0].version == 8
    assert events[0].payload["from_status"] == "TechnicalEvaluation"
    assert events[0].payload["to_status"] == "FinancialBidOpening"


# =============================================================================
# NIT cancellation cascade
# =============================================================================


def test_cancelling_last_live_work_cancels_nit(ctx) -> None:
    nit = make_nit(work_ids=["w-1", "w-2", "w-3"])
    siblings = [
        make_work(TenderStatus.CANCELLED, work_id="w-2"),
        make_work(TenderStatus.CANCELLED, work_id="w-3"),
    ]

    events = nit_cancellation_cascade(ctx, nit, siblings, "w-1")

    assert [e.event_type for e in events] == ["NitCancelled"]
    assert events[0].payload["last_cancelled_work_id"] == "w-1"
    assert events[0].version == nit.version + 1


def test_cancelling_a_non_last_work_leaves_nit_open(ctx) -> None:
    nit = make_nit(work_ids=["w-1", "w-2"])
    siblings = [make_work(TenderStatus.TECHNICAL_EVALUATION, work_id="w-2")]

    assert nit_cancellation_cascade(ctx, nit, siblings, "w-1") == []


def test_awarded_sibling_keeps_nit_open(ctx) -> None:
    nit = make_nit(work_ids=["w-1", "w-2"])
    siblings = [make_work(TenderStatus.AOC, work_id="w-2")]

    assert nit_cancellation_cascade(ctx, nit, siblings, "w-1") == []


def test_single_work_nit_is_cancelled_with_its_work(ctx) -> None:
    assert len(nit_cancellation_cascade(ctx, make_nit(work_ids=["w-1"]), [], "w-1")) == 1


def test_already_cancelled_nit_is_not_cancelled_twice(ctx) -> None:
    nit = make_nit(work_ids=["w-1"], cancelled=True)
    assert nit_cancellation_cascade(ctx, nit, [], "w-1") == []


# =============================================================================
# Retender
# =============================================================================


def test_retender_resets_work_and_reinstates_nit(ctx) -> None:
    work = make_work(TenderStatus.CANCELLED, [make_bid("b1", qualify=True)])
    nit = make_nit(work_ids=["w-1"], cancelled=True)

    events = reopen_for_retender(ctx, work, nit)

    assert [e.event_type for e in events] == ["WorkReopenedForRetender", "NitReinstated"]
    assert events[0].payload["withdrawn_bid_ids"] == ["b1"]


def test_retender_on_open_nit_touches_only_the_work(ctx) -> None:
    events = reopen_for_retender(ctx, make_work(TenderStatus.RETENDER), make_nit(work_ids=["w-1"]))
    assert [e.event_type for e in events] == ["WorkReopenedForRetender"]


def test_retender_needs_cancelled_or_retender_status(ctx) -> None:
    with pytest.raises(RetenderNotAllowed):
        reopen_for_retender(ctx, make_work(TenderStatus.AOC), make_nit(work_ids=["w-1"]))


# =============================================================================
# Work status
# =============================================================================


def awarded(work_status: WorkStatus = WorkStatus.YET_TO_START, **fields):
    return make_work(TenderStatus.AOC, work_status=work_status, **fields)


def test_work_status_needs_award(ctx) -> None:
    with pytest.raises(WorkNotAwarded):
        change_work_status(
            ctx, make_work(TenderStatus.FINANCIAL_EVALUATION), WorkStatus.WORK_IN_PROGRESS, False
        )


def test_work_status_may_skip_forward(ctx) -> None:
    events = change_work_status(ctx, awarded(), WorkStatus.WORK_COMPLETED, False)

    assert [e.event_type for e in events] == ["WorkStatusChanged", "CompletionDateRecorded"]
    assert events[1].payload["completion_date"] == ctx.today.isoformat()


@pytest.mark.parametrize(
    "current,target",
    [
        (WorkStatus.WORK_IN_PROGRESS, WorkStatus.WORK_IN_PROGRESS),
        (WorkStatus.WORK_COMPLETED, WorkStatus.WORK_IN_PROGRESS),
        (WorkStatus.BILL_PAID, WorkStatus.YET_TO_START),
    ],
)
def test_work_status_never_goes_back(ctx, current: WorkStatus, target: WorkStatus) -> None:
    with pytest.raises(WorkStatusRegression):
        change_work_status(ctx, awarded(current), target, True)


def test_bill_paid_needs_final_bill(ctx) -> None:
    with pytest.raises(FinalBillRequired):
        change_work_status(ctx, awarded(WorkStatus.WORK_COMPLETED), WorkStatus.BILL_PAID, False)


def test_existing_completion_date_is_kept(ctx) -> None:
    work = awarded(WorkStatus.WORK_COMPLETED, completion_date=date(2024, 5, 20))

    events = change_work_status(ctx, work, WorkStatus.BILL_PAID, True, date(2024, 6, 1))

    assert [e.event_type for e in events] == ["WorkStatusChanged"]


def test_given_completion_date_is_recorded(ctx) -> None:
    events = change_work_status(
        ctx, awarded(WorkStatus.WORK_IN_PROGRESS), WorkStatus.WORK_COMPLETED, False, date(2024, 5, 31)
    )
    assert events[1].payload["completion_date"] == "2024-05-31"
