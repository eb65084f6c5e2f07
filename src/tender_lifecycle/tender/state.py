"""
Tender State - rebuild NITs and works by replaying their streams

Every desk action reloads the streams it touches and folds them through
these functions, so validation always runs against what is stored, never
against a cached copy.
"""

from tender_lifecycle.kernel.events import Event
from tender_lifecycle.tender import events as tender_events
from tender_lifecycle.tender.models import (
    Agreement,
    Award,
    Bid,
    Evaluation,
    MemoRegister,
    Nit,
    TenderStatus,
    Work,
    WorkOrderDetail,
)


def load_nit(stream: list[Event]) -> Nit | None:
    """Fold a NIT stream; None when the stream is empty"""
    nit: Nit | None = None
    for event in stream:
        payload = event.payload
        if event.event_type == "NitBooked":
            booked = tender_events.NitBooked.model_validate(payload)
            nit = Nit(
                nit_id=booked.nit_id,
                memo_number=booked.memo_number,
                memo_date=booked.memo_date,
                is_supply=booked.is_supply,
                office_code=booked.office_code,
            )
        elif nit is None:
            continue
        elif event.event_type == "NitMemoAmended":
            amended = tender_events.NitMemoAmended.model_validate(payload)
            nit.memo_number = amended.memo_number
            nit.memo_date = amended.memo_date
            nit.is_supply = amended.is_supply
        elif event.event_type == "NitPublished":
            nit.published = True
            nit.published_at = tender_events.NitPublished.model_validate(payload).published_at
        elif event.event_type == "NitDeleted":
            nit.deleted = True
        elif event.event_type == "WorkAttached":
            nit.work_ids.append(payload["work_id"])
            nit.work_serials[payload["work_id"]] = payload["serial_no"]
        elif event.event_type == "NitCancelled":
            nit.cancelled = True
        elif event.event_type == "NitReinstated":
            nit.cancelled = False
        if nit is not None:
            nit.version = event.version
    return nit


def load_work(stream: list[Event]) -> Work | None:
    """Fold a work stream; None when the stream is empty"""
    work: Work | None = None
    for event in stream:
        if event.event_type == "WorkAdded":
            added = tender_events.WorkAdded.model_validate(event.payload)
            work = Work(
                work_id=added.work_id,
                nit_id=added.nit_id,
                serial_no=added.serial_no,
                description=added.description,
                estimated_cost=added.estimated_cost,
            )
        elif work is not None:
            _apply_work_event(work, event)
        if work is not None:
            work.version = event.version
    return work


def apply_work_events(work: Work, events: list[Event]) -> None:
    """Fold further events of its stream into an already loaded work, in place"""
    for event in events:
        _apply_work_event(work, event)
        work.version = event.version


def _apply_work_event(work: Work, event: Event) -> None:
    event_type = event.event_type
    payload = event.payload

    if event_type == "BidRegistered":
        registered = tender_events.BidRegistered.model_validate(payload)
        work.bids[registered.bid_id] = Bid(
            bid_id=registered.bid_id,
            agency_id=registered.agency_id,
            registered_at=registered.registered_at,
        )
    elif event_type == "BidWithdrawn":
        work.bids.pop(payload["bid_id"], None)
    elif event_type == "TechnicalEvaluationRecorded":
        recorded = tender_events.TechnicalEvaluationRecorded.model_validate(payload)
        work.bids[recorded.bid_id].evaluation = Evaluation(
            qualify=recorded.qualify,
            evaluation_doc_ref=recorded.evaluation_doc_ref,
            evaluated_at=recorded.evaluated_at,
        )
    elif event_type == "FinancialBidRecorded":
        recorded_bid = tender_events.FinancialBidRecorded.model_validate(payload)
        work.bids[recorded_bid.bid_id].bidding_amount = recorded_bid.bidding_amount
    elif event_type == "TenderStageAdvanced":
        advanced = tender_events.TenderStageAdvanced.model_validate(payload)
        work.tender_status = advanced.to_status
        if advanced.to_status == TenderStatus.FINANCIAL_BID_OPENING:
            work.qualification_gate_passed = True
    elif event_type == "WorkReopenedForRetender":
        reopened = tender_events.WorkReopenedForRetender.model_validate(payload)
        for bid_id in reopened.withdrawn_bid_ids:
            work.bids.pop(bid_id, None)
        work.tender_status = TenderStatus.TO_BE_OPENED
        work.qualification_gate_passed = False
    elif event_type == "ContractAwarded":
        awarded = tender_events.ContractAwarded.model_validate(payload)
        work.award = Award(
            award_id=awarded.award_id,
            bid_id=awarded.bid_id,
            agency_id=awarded.agency_id,
            work_order_memo_no=awarded.work_order_memo_no,
            work_order_memo_date=awarded.work_order_memo_date,
            awarded_at=awarded.awarded_at,
        )
    elif event_type == "WorkOrderIssued":
        issued = tender_events.WorkOrderIssued.model_validate(payload)
        work.work_order = WorkOrderDetail(
            award_id=issued.award_id,
            bid_id=issued.bid_id,
            agency_id=issued.agency_id,
            bidding_amount=issued.bidding_amount,
            estimated_cost=issued.estimated_cost,
            bid_percentage=issued.bid_percentage,
        )
    elif event_type == "AgreementRecorded":
        recorded_agreement = tender_events.AgreementRecorded.model_validate(payload)
        work.agreement = Agreement(
            agreement_id=recorded_agreement.agreement_id,
            award_id=recorded_agreement.award_id,
            agreement_no=recorded_agreement.agreement_no,
            agreement_date=recorded_agreement.agreement_date,
        )
    elif event_type == "DeliveryAcknowledged" and work.award is not None:
        acknowledged = tender_events.DeliveryAcknowledged.model_validate(payload)
        work.award.delivered = True
        work.award.delivered_on = acknowledged.delivered_on
    elif event_type == "WorkStatusChanged":
        work.work_status = tender_events.WorkStatusChanged.model_validate(payload).to_status
    elif event_type == "CompletionDateRecorded":
        work.completion_date = tender_events.CompletionDateRecorded.model_validate(
            payload
        ).completion_date


def load_memo_register(year: int, stream: list[Event]) -> MemoRegister:
    """Fold a memo-register stream into the memo numbers still held that year"""
    register = MemoRegister(year=year)
    claimed = register.claims
    for event in stream:
        if event.event_type == "MemoNumberClaimed":
            claimed[event.payload["memo_number"]] = event.payload["nit_id"]
        elif event.event_type == "MemoNumberReleased":
            claimed.pop(event.payload["memo_number"], None)
        register.version = event.version
    return register
