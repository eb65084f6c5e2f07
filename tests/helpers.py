"""
Test Helper Functions - Builders for works and desk scenarios

Two kinds of builders: plain ``Work``/``Nit`` models for component tests
that never touch a database, and desk walkthroughs that drive a work to a
given stage through the public actions.

Fun fact: The Builder pattern was formalized by the Gang of Four in 1994,
but test data builders were popularized by the growing programmer test
movement in the 2000s - we use them to keep tests readable and maintainable!
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from tender_lifecycle.desk import TenderDesk
from tender_lifecycle.tender.models import Bid, Evaluation, Nit, TenderStatus, Work

EVALUATED_AT = datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc)


def make_bid(
    bid_id: str,
    qualify: bool | None = None,
    bidding_amount: Decimal | str | None = None,
    agency_id: str | None = None,
) -> Bid:
    """
    Builder for a bid; ``qualify=None`` leaves it unevaluated

    Example:
        >>> make_bid("b1", qualify=True, bidding_amount="92500").qualified
        True
    """
    return Bid(
        bid_id=bid_id,
        agency_id=agency_id or f"agency-{bid_id}",
        registered_at=EVALUATED_AT,
        evaluation=(
            None if qualify is None else Evaluation(qualify=qualify, evaluated_at=EVALUATED_AT)
        ),
        bidding_amount=Decimal(bidding_amount) if bidding_amount is not None else None,
    )


def make_work(
    status: TenderStatus = TenderStatus.TO_BE_OPENED,
    bids: list[Bid] | None = None,
    estimated_cost: Decimal | str = "100000",
    work_id: str = "w-1",
    nit_id: str = "n-1",
    version: int = 1,
    **fields: Any,
) -> Work:
    """Builder for a work model at a given tender status"""
    return Work(
        work_id=work_id,
        nit_id=nit_id,
        serial_no=fields.pop("serial_no", 1),
        estimated_cost=Decimal(estimated_cost),
        tender_status=status,
        bids={bid.bid_id: bid for bid in bids or []},
        version=version,
        **fields,
    )


def make_nit(
    nit_id: str = "n-1",
    work_ids: list[str] | None = None,
    published: bool = True,
    version: int = 2,
    **fields: Any,
) -> Nit:
    """Builder for a NIT model (published by default)"""
    work_ids = work_ids or []
    return Nit(
        nit_id=nit_id,
        memo_number=fields.pop("memo_number", 12),
        memo_date=fields.pop("memo_date", date(2024, 6, 3)),
        office_code=fields.pop("office_code", "GP"),
        published=published,
        work_ids=work_ids,
        work_serials={wid: n for n, wid in enumerate(work_ids, start=1)},
        version=version,
        **fields,
    )


# =============================================================================
# Desk walkthroughs
# =============================================================================


def ok(result: Any) -> Any:
    """Unwrap a successful ActionResult, failing the test with its error otherwise"""
    assert result.ok, f"expected success, got {result.error}"
    return result.value


def published_nit(desk: TenderDesk, memo_number: int = 12) -> str:
    return ok(desk.publish_nit(memo_number, date(2024, 6, 3)))


def open_work(
    desk: TenderDesk,
    nit_id: str | None = None,
    serial_no: int = 1,
    estimated_cost: str = "100000",
) -> str:
    """A work on a published NIT, still ToBeOpened"""
    nit_id = nit_id or published_nit(desk)
    return ok(desk.add_work(nit_id, serial_no, estimated_cost, f"Work {serial_no}"))


def work_in_technical_evaluation(
    desk: TenderDesk, bid_count: int = 3, estimated_cost: str = "100000"
) -> tuple[str, list[str]]:
    """Bids registered and technical evaluation opened; returns (work_id, bid_ids)"""
    work_id = open_work(desk, estimated_cost=estimated_cost)
    bid_ids = [ok(desk.register_bid(work_id, f"agency-{n}")) for n in range(1, bid_count + 1)]
    ok(desk.advance_tender_stage(work_id, TenderStatus.TECHNICAL_EVALUATION))
    return work_id, bid_ids


def work_in_financial_bid_opening(
    desk: TenderDesk, qualified: int = 3, disqualified: int = 0, estimated_cost: str = "100000"
) -> tuple[str, list[str]]:
    """Qualification gate passed; returns (work_id, qualified bid ids)"""
    work_id, bid_ids = work_in_technical_evaluation(desk, qualified + disqualified, estimated_cost)
    for n, bid_id in enumerate(bid_ids):
        ok(desk.submit_technical_evaluation(bid_id, qualify=n < qualified))
    ok(desk.advance_tender_stage(work_id, TenderStatus.FINANCIAL_BID_OPENING))
    return work_id, bid_ids[:qualified]


def work_in_financial_evaluation(
    desk: TenderDesk, amounts: tuple[str, ...] = ("92500", "95000", "99000"), estimated_cost: str = "100000"
) -> tuple[str, list[str]]:
    """Every qualified bid carries an amount; returns (work_id, bid ids)"""
    work_id, bid_ids = work_in_financial_bid_opening(desk, len(amounts), estimated_cost=estimated_cost)
    for bid_id, amount in zip(bid_ids, amounts):
        ok(desk.record_financial_bid(bid_id, amount))
    return work_id, bid_ids


def awarded_work(
    desk: TenderDesk, estimated_cost: str = "100000", amounts: tuple[str, ...] = ("92500", "95000", "99000")
) -> tuple[str, str]:
    """Work awarded to its first bid; returns (work_id, award_id)"""
    work_id, bid_ids = work_in_financial_evaluation(desk, amounts, estimated_cost)
    award_id = ok(desk.award_contract(work_id, bid_ids[0], "45", date(2024, 8, 1)))
    return work_id, award_id
