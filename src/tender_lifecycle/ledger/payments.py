"""
Payment Ledger

Records bills against an awarded work and derives paid/pending totals.

Pending rule: once any final bill is on the ledger, pending is zero,
whatever was actually paid. Otherwise pending is the estimate minus the
gross paid, never below zero; paying past the estimate is reported as an
OverpaymentAnomaly next to the totals instead of a negative number.
"""

from datetime import date
from decimal import Decimal

from dateutil.relativedelta import relativedelta

from tender_lifecycle.kernel.commands import CommandContext
from tender_lifecycle.kernel.errors import (
    FinalBillOnUnawardedWork,
    ValidationFailed,
    WorkNotAwarded,
)
from tender_lifecycle.kernel.events import Event
from tender_lifecycle.kernel.ids import generate_id
from tender_lifecycle.ledger.events import PaymentRecorded, ledger_events
from tender_lifecycle.ledger.models import (
    BillType,
    Deductions,
    Ledger,
    LedgerTotals,
    OverpaymentAnomaly,
    PaymentEntry,
)
from tender_lifecycle.tender.events import CompletionDateRecorded, work_events
from tender_lifecycle.tender.models import TenderStatus, Work

ZERO = Decimal("0")


def security_deposit_maturity(
    bill_payment_date: date, completion_date: date | None, months: int
) -> date:
    """Security deposit falls due ``months`` after completion, or after the bill if not completed"""
    return (completion_date or bill_payment_date) + relativedelta(months=months)


def record_payment(
    ctx: CommandContext,
    work: Work,
    ledger: Ledger,
    gross_bill_amount: Decimal,
    deductions: Deductions,
    bill_type: BillType,
    *,
    maturity_months: int,
    bill_payment_date: date | None = None,
    completion_date: date | None = None,
    egram_voucher_no: str | None = None,
    gpms_voucher_no: str | None = None,
    mb_reference: str | None = None,
) -> tuple[str, list[Event]]:
    """
    Append a payment entry to the work's ledger

    A completion date given with the bill is stored on the work in the same
    commit unless the work already has one; the stored date wins and drives
    the security-deposit maturity.

    Returns:
        (entry_id, events)

    Raises:
        ValidationFailed: Negative gross, or deductions larger than gross
        FinalBillOnUnawardedWork: Final bill on a work that is not AOC
        WorkNotAwarded: Any other bill on a work that is not AOC
    """
    if gross_bill_amount < 0:
        raise ValidationFailed("gross_bill_amount", "must not be negative")
    if deductions.total > gross_bill_amount:
        raise ValidationFailed(
            "deductions",
            f"total deductions {deductions.total} exceed gross bill amount {gross_bill_amount}",
        )

    if work.tender_status != TenderStatus.AOC:
        if bill_type == BillType.FINAL:
            raise FinalBillOnUnawardedWork(work.work_id, work.tender_status.value)
        raise WorkNotAwarded(work.work_id, work.tender_status.value)

    paid_on = bill_payment_date or ctx.today
    entry_id = generate_id()
    events = ledger_events(
        ctx,
        ledger,
        PaymentRecorded(
            entry_id=entry_id,
            work_id=work.work_id,
            gross_bill_amount=gross_bill_amount,
            deductions=deductions,
            net_amount=gross_bill_amount - deductions.total,
            bill_type=bill_type,
            bill_payment_date=paid_on,
            security_deposit_maturity_date=security_deposit_maturity(
                paid_on, work.completion_date or completion_date, maturity_months
            ),
            egram_voucher_no=egram_voucher_no,
            gpms_voucher_no=gpms_voucher_no,
            mb_reference=mb_reference,
            recorded_at=ctx.issued_at,
        ),
    )
    if completion_date is not None and work.completion_date is None:
        events += work_events(
            ctx,
            work,
            CompletionDateRecorded(work_id=work.work_id, completion_date=completion_date),
        )
    return entry_id, events


def compute_totals(
    work_id: str, estimated_cost: Decimal, entries: list[PaymentEntry]
) -> LedgerTotals:
    """
    Totals of a ledger snapshot

    ``entries`` must come from one read of the ledger stream so the sum is
    never a mix of two points in time.
    """
    total_paid = sum((entry.gross_bill_amount for entry in entries), ZERO)
    total_deductions = sum((entry.deductions.total for entry in entries), ZERO)
    total_net = sum((entry.net_amount for entry in entries), ZERO)
    has_final_bill = any(entry.is_final_bill for entry in entries)

    if has_final_bill:
        pending = ZERO
    else:
        pending = max(estimated_cost - total_paid, ZERO)

    anomalies = []
    if total_paid > estimated_cost:
        anomalies.append(
            OverpaymentAnomaly(
                work_id=work_id,
                estimated_cost=estimated_cost,
                total_paid=total_paid,
                excess=total_paid - estimated_cost,
            )
        )

    return LedgerTotals(
        work_id=work_id,
        estimated_cost=estimated_cost,
        total_paid=total_paid,
        total_deductions=total_deductions,
        total_net=total_net,
        pending=pending,
        has_final_bill=has_final_bill,
        entry_count=len(entries),
        anomalies=anomalies,
    )
