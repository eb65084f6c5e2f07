"""
Integration tests for the TenderDesk façade

Each test drives a real SQLite store through the public actions, from NIT
publication to the completion certificate.
"""

from datetime import date
from decimal import Decimal

from prometheus_client import REGISTRY

from tender_lifecycle.desk import TenderDesk
from tender_lifecycle.tender.models import TenderStatus
from tests.helpers import (
    awarded_work,
    ok,
    open_work,
    published_nit,
    work_in_financial_bid_opening,
    work_in_technical_evaluation,
)


def test_publish_nit(desk: TenderDesk) -> None:
    nit_id = published_nit(desk)

    view = ok(desk.get_nit(nit_id))

    assert view["published"] is True
    assert view["reference"] == "12/GP/2024"
    assert view["works"] == []


def test_publish_a_booked_nit(desk: TenderDesk) -> None:
    booked = ok(desk.book_nit(12, date(2024, 6, 3)))
    assert ok(desk.get_nit(booked))["published"] is False

    assert ok(desk.publish_nit(12, date(2024, 6, 3))) == booked
    assert ok(desk.get_nit(booked))["published"] is True


def test_amend_then_publish(desk: TenderDesk) -> None:
    booked = ok(desk.book_nit(12, date(2024, 6, 3)))

    view = ok(desk.amend_nit_memo(booked, 14, date(2024, 6, 4), is_supply=True))

    assert view["reference"] == "14/GP/2024"
    assert view["is_supply"] is True
    # 12 is free again, 14 is held by the amended NIT
    assert ok(desk.publish_nit(14, date(2024, 6, 4))) == booked
    assert ok(desk.book_nit(12, date(2024, 9, 1))) != booked


def test_delete_frees_memo_number(desk: TenderDesk) -> None:
    booked = ok(desk.book_nit(12, date(2024, 6, 3)))

    ok(desk.delete_nit(booked))

    assert desk.get_nit(booked).code == "NitNotFound"
    assert ok(desk.book_nit(12, date(2024, 6, 3))) != booked


def test_first_bid_opens_technical_bids(desk: TenderDesk) -> None:
    work_id = open_work(desk)

    ok(desk.register_bid(work_id, "agency-1"))

    assert ok(desk.get_work(work_id))["tender_status"] == "TechnicalBidOpening"


def test_qualification_gate_through_the_desk(desk: TenderDesk) -> None:
    work_id, bid_ids = work_in_technical_evaluation(desk, bid_count=4)

    ok(desk.submit_technical_evaluation(bid_ids[0], qualify=True))
    status = ok(desk.qualification_status(work_id))
    assert status["outcome"] == "pending_evaluation"
    assert status["can_advance"] is False

    ok(desk.submit_technical_evaluation(bid_ids[1], qualify=True))
    ok(desk.submit_technical_evaluation(bid_ids[2], qualify=False))
    assessment = ok(desk.submit_technical_evaluation(bid_ids[3], qualify=False))
    assert assessment["outcome"] == "insufficient_qualified"

    blocked = desk.advance_tender_stage(work_id, TenderStatus.FINANCIAL_BID_OPENING)
    assert blocked.code == "InsufficientQualifiedBidders"
    assert blocked.error.details["qualified"] == 2

    # a corrected evaluation opens the gate
    ok(desk.submit_technical_evaluation(bid_ids[2], qualify=True, evaluation_doc_ref="EV-3"))
    ack = ok(desk.advance_tender_stage(work_id, "FinancialBidOpening"))
    assert ack["tender_status"] == "FinancialBidOpening"


def test_last_financial_bid_moves_to_evaluation(desk: TenderDesk) -> None:
    work_id, bid_ids = work_in_financial_bid_opening(desk, qualified=3, disqualified=1)

    first = ok(desk.record_financial_bid(bid_ids[0], "92500"))
    ok(desk.record_financial_bid(bid_ids[1], "95000"))
    last = ok(desk.record_financial_bid(bid_ids[2], Decimal("99000")))

    assert first["events"] == ["FinancialBidRecorded"]
    assert last["events"] == ["FinancialBidRecorded", "TenderStageAdvanced"]
    assert last["tender_status"] == "FinancialEvaluation"


def test_award_agreement_and_delivery(desk: TenderDesk) -> None:
    work_id, award_id = awarded_work(desk)

    work = ok(desk.get_work(work_id))
    assert work["tender_status"] == "AOC"
    assert work["work_status"] == "yettostart"
    assert work["award"]["award_id"] == award_id
    assert work["work_order"]["bid_percentage"] == "7.50"

    ok(desk.record_agreement(award_id))
    ok(desk.acknowledge_delivery(award_id, date(2024, 8, 3)))

    work = ok(desk.get_work(work_id))
    assert work["agreement"]["agreement_no"] == "AGR-2024-0045/1"
    assert work["award"]["delivered_on"] == "2024-08-03"


def test_full_lifecycle_to_completion_certificate(desk: TenderDesk) -> None:
    work_id, award_id = awarded_work(
        desk, estimated_cost="1000000", amounts=("925000", "950000", "990000")
    )
    ok(desk.record_agreement(award_id))
    ok(desk.change_work_status(work_id, "workinprogress"))

    ok(
        desk.record_payment(
            work_id,
            "400000",
            {"income_tax": "8000", "security_deposit": "20000"},
            bill_payment_date=date(2024, 9, 1),
            mb_reference="MB-7/112",
        )
    )
    totals = ok(desk.compute_totals(work_id))
    assert Decimal(totals["pending"]) == Decimal("600000")

    ok(
        desk.record_payment(
            work_id,
            "300000",
            bill_type="Final Bill",
            bill_payment_date=date(2024, 11, 5),
            completion_date=date(2024, 10, 31),
        )
    )
    totals = ok(desk.compute_totals(work_id))
    assert Decimal(totals["total_paid"]) == Decimal("700000")
    assert Decimal(totals["pending"]) == Decimal("0")
    assert totals["has_final_bill"] is True

    ack = ok(desk.change_work_status(work_id, "billpaid"))
    assert ack["work_status"] == "billpaid"

    certificate = ok(desk.completion_certificate(work_id))
    assert certificate["completion_date"] == "2024-10-31"
    assert certificate["agreement_no"] == "AGR-2024-0045/1"
    assert certificate["bid_percentage"] == "7.50"
    assert certificate["payment_count"] == 2
    assert certificate["last_payment_date"] == "2024-11-05"
    assert ok(desk.completion_certificate(work_id)) == certificate


def test_final_bill_keeps_the_recorded_completion_date(desk: TenderDesk) -> None:
    work_id, _ = awarded_work(desk)
    ok(desk.change_work_status(work_id, "workcompleted", date(2024, 9, 1)))

    ok(
        desk.record_payment(
            work_id,
            "90000",
            bill_type="Final Bill",
            bill_payment_date=date(2024, 12, 31),
            completion_date=date(2024, 12, 31),
        )
    )

    assert ok(desk.get_work(work_id))["completion_date"] == "2024-09-01"
    assert ok(desk.completion_certificate(work_id))["completion_date"] == "2024-09-01"


def test_cancelling_the_last_live_work_cancels_the_nit(desk: TenderDesk) -> None:
    nit_id = published_nit(desk)
    first = open_work(desk, nit_id, serial_no=1)
    second = open_work(desk, nit_id, serial_no=2)

    ack = ok(desk.cancel_work(first))
    assert ack["nit_cancelled"] is False
    assert ok(desk.get_nit(nit_id))["cancelled"] is False

    ack = ok(desk.advance_tender_stage(second, "Cancelled"))
    assert ack["nit_cancelled"] is True
    assert ack["events"] == ["TenderStageAdvanced", "NitCancelled"]
    assert ok(desk.get_nit(nit_id))["cancelled"] is True

    assert desk.add_work(nit_id, 3, "1000").code == "NitClosed"


def test_retender_reinstates_a_cancelled_nit(desk: TenderDesk) -> None:
    nit_id = published_nit(desk)
    work_id = open_work(desk, nit_id)
    ok(desk.register_bid(work_id, "agency-1"))
    ok(desk.cancel_work(work_id))

    ack = ok(desk.reopen_for_retender(work_id))

    assert ack["tender_status"] == "ToBeOpened"
    assert ack["events"] == ["WorkReopenedForRetender", "NitReinstated"]
    assert ok(desk.get_nit(nit_id))["cancelled"] is False
    assert ok(desk.get_work(work_id))["bids"] == {}
    # the same agency may bid again on the new round
    ok(desk.register_bid(work_id, "agency-1"))


def test_withdraw_bid(desk: TenderDesk) -> None:
    work_id = open_work(desk)
    bid_id = ok(desk.register_bid(work_id, "agency-1"))

    ok(desk.withdraw_bid(bid_id))

    assert ok(desk.get_work(work_id))["bids"] == {}
    assert desk.withdraw_bid(bid_id).code == "BidNotFound"


def test_listings_and_summary(desk: TenderDesk) -> None:
    old_nit = ok(desk.publish_nit(3, date(2024, 2, 10)))
    nit_id = published_nit(desk)
    work_id = open_work(desk, nit_id, serial_no=1)
    open_work(desk, nit_id, serial_no=2)
    ok(desk.register_bid(work_id, "agency-1"))

    assert [n["nit_id"] for n in ok(desk.list_nits())] == [old_nit, nit_id]
    assert [n["nit_id"] for n in ok(desk.list_nits("2023-24"))] == [old_nit]
    assert [w["work_id"] for w in ok(desk.list_works("TechnicalBidOpening"))] == [work_id]
    assert [w["serial_no"] for w in ok(desk.list_works(nit_id=nit_id))] == [1, 2]
    assert ok(desk.list_works(TenderStatus.AOC)) == []

    summary = ok(desk.tender_status_summary())
    assert summary["ToBeOpened"] == 1
    assert summary["TechnicalBidOpening"] == 1
    assert sum(summary.values()) == 2


def test_projections_are_rebuilt_on_startup(desk: TenderDesk, temp_db, test_time, policy) -> None:
    work_id, award_id = awarded_work(desk)

    reopened = TenderDesk(temp_db, policy=policy, time_provider=test_time)

    assert [w["work_id"] for w in ok(reopened.list_works("AOC"))] == [work_id]
    # award index rebuilt from the log
    ok(reopened.record_agreement(award_id))
    assert ok(reopened.get_work(work_id))["agreement"] is not None


def test_subscribers_see_committed_events(desk: TenderDesk) -> None:
    seen = []
    desk.subscribe("ContractAwarded", seen.append)

    _, award_id = awarded_work(desk)

    assert [event.payload["award_id"] for event in seen] == [award_id]
    assert seen[0].actor_id == "clerk-1"


def gauge(status: str) -> float:
    return REGISTRY.get_sample_value("tender_works_by_tender_status", {"tender_status": status})


def test_status_gauge_follows_each_action(desk: TenderDesk) -> None:
    work_id = open_work(desk)
    assert gauge("ToBeOpened") == 1

    ok(desk.register_bid(work_id, "agency-1"))

    assert gauge("ToBeOpened") == 0
    assert gauge("TechnicalBidOpening") == 1


def test_subscribers_see_up_to_date_read_views(desk: TenderDesk) -> None:
    seen = []

    def on_stage(event) -> None:
        row = desk.work_registry.get(event.payload["work_id"])
        to_status = event.payload["to_status"]
        seen.append((to_status, row["tender_status"], gauge(to_status)))

    desk.subscribe("TenderStageAdvanced", on_stage)
    awarded_work(desk)

    assert seen[-1] == ("AOC", "AOC", 1)
    assert all(to_status == projected for to_status, projected, _ in seen)
    assert all(count == 1 for _, _, count in seen)


def test_read_views_pick_up_writes_from_another_desk(
    desk: TenderDesk, temp_db, test_time, policy
) -> None:
    reader = TenderDesk(temp_db, policy=policy, time_provider=test_time)
    nit_id = published_nit(desk)
    work_id = open_work(desk, nit_id=nit_id)
    ok(desk.cancel_work(work_id))

    nit = ok(reader.get_nit(nit_id))
    assert [(w["work_id"], w["tender_status"]) for w in nit["works"]] == [(work_id, "Cancelled")]
    assert [w["work_id"] for w in ok(reader.list_works("Cancelled"))] == [work_id]
    assert ok(reader.tender_status_summary())["Cancelled"] == 1
    assert [n["nit_id"] for n in ok(reader.list_nits())] == [nit_id]


def test_actor_is_stamped_on_events(desk: TenderDesk) -> None:
    nit_id = ok(desk.publish_nit(12, date(2024, 6, 3), actor_id="engineer-2"))

    events = desk.event_store.load_stream(f"nit-{nit_id}")

    assert {event.actor_id for event in events} == {"engineer-2"}
