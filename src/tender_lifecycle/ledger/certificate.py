"""
Work completion certificate

Derived, never stored: the same work, NIT and ledger always give the same
certificate, and generating it has no side effects.
"""

from tender_lifecycle.kernel.errors import CompletionNotCertifiable
from tender_lifecycle.ledger.models import CompletionCertificate, PaymentEntry
from tender_lifecycle.ledger.payments import compute_totals
from tender_lifecycle.tender.models import Nit, Work


def completion_certificate(
    work: Work, nit: Nit, entries: list[PaymentEntry]
) -> CompletionCertificate:
    """
    Build the completion certificate of a work

    Raises:
        CompletionNotCertifiable: No completion date, no award or no payment yet
    """
    if work.completion_date is None:
        raise CompletionNotCertifiable(work.work_id, "completion_date")
    if work.award is None or work.work_order is None:
        raise CompletionNotCertifiable(work.work_id, "award")
    if not entries:
        raise CompletionNotCertifiable(work.work_id, "payment_entry")

    totals = compute_totals(work.work_id, work.estimated_cost, entries)
    agreement = work.agreement

    return CompletionCertificate(
        work_id=work.work_id,
        nit_reference=nit.reference,
        serial_no=work.serial_no,
        description=work.description,
        agency_id=work.award.agency_id,
        estimated_cost=work.work_order.estimated_cost,
        work_order_memo_no=work.award.work_order_memo_no,
        work_order_memo_date=work.award.work_order_memo_date,
        agreement_no=agreement.agreement_no if agreement else None,
        agreement_date=agreement.agreement_date if agreement else None,
        bidding_amount=work.work_order.bidding_amount,
        bid_percentage=work.work_order.bid_percentage,
        completion_date=work.completion_date,
        total_paid=totals.total_paid,
        total_net=totals.total_net,
        total_deductions=totals.total_deductions,
        pending=totals.pending,
        has_final_bill=totals.has_final_bill,
        payment_count=totals.entry_count,
        last_payment_date=max(entry.bill_payment_date for entry in entries),
    )
