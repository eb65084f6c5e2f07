"""
Error hierarchy for the tender desk

Every failure the desk can report is one of these classes. Each carries a
stable ``code`` (the typed reason shown to the caller), a ``category`` that
decides how it is logged and whether the caller may retry, and a ``details``
dict with the structured facts the UI needs to explain the rejection.

Fun fact: Indian public-works codes have required three valid tenders before
opening financial bids since at least the 1970s. The rule outlived the
typewriters that first enforced it!
"""

from typing import Any


class TenderDeskError(Exception):
    """Base exception for all tender desk errors"""

    code = "TenderDeskError"
    category = "business_rule"

    def __init__(self, message: str, **details: Any) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


# Validation


class ValidationFailed(TenderDeskError):
    """Raised when caller input is malformed (bad enum, missing field, negative amount)"""

    code = "ValidationFailed"
    category = "validation"

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}", field=field, reason=reason)


# Not found


class NotFound(TenderDeskError):
    """Base class for missing records"""

    code = "NotFound"
    category = "not_found"


class NitNotFound(NotFound):
    code = "NitNotFound"

    def __init__(self, nit_id: str) -> None:
        self.nit_id = nit_id
        super().__init__(f"NIT {nit_id} not found", nit_id=nit_id)


class WorkNotFound(NotFound):
    code = "WorkNotFound"

    def __init__(self, work_id: str) -> None:
        self.work_id = work_id
        super().__init__(f"Work {work_id} not found", work_id=work_id)


class BidNotFound(NotFound):
    code = "BidNotFound"

    def __init__(self, bid_id: str, work_id: str | None = None) -> None:
        self.bid_id = bid_id
        self.work_id = work_id
        super().__init__(f"Bid {bid_id} not found", bid_id=bid_id, work_id=work_id)


class AwardNotFound(NotFound):
    code = "AwardNotFound"

    def __init__(self, award_id: str) -> None:
        self.award_id = award_id
        super().__init__(f"Award {award_id} not found", award_id=award_id)


# Tender status guard


class IllegalTransition(TenderDeskError):
    """Raised when the target status is not adjacent to the current one"""

    code = "IllegalTransition"

    def __init__(
        self, work_id: str, current_status: str, target_status: str, reason: str = "not_adjacent"
    ) -> None:
        self.work_id = work_id
        self.current_status = current_status
        self.target_status = target_status
        self.reason = reason
        super().__init__(
            f"Work {work_id} cannot move from {current_status} to {target_status} ({reason})",
            work_id=work_id,
            current_status=current_status,
            target_status=target_status,
            reason=reason,
        )


class AlreadyTerminal(TenderDeskError):
    """Raised when a forward status is requested for an awarded, cancelled or retendered work"""

    code = "AlreadyTerminal"

    def __init__(self, work_id: str, current_status: str, target_status: str) -> None:
        self.work_id = work_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Work {work_id} is already {current_status}; cannot advance to {target_status}",
            work_id=work_id,
            current_status=current_status,
            target_status=target_status,
        )


class StageMismatch(TenderDeskError):
    """Raised when an operation needs the work to be in a different tender stage"""

    code = "StageMismatch"

    def __init__(self, work_id: str, current_status: str, allowed: list[str]) -> None:
        self.work_id = work_id
        self.current_status = current_status
        self.allowed = allowed
        super().__init__(
            f"Work {work_id} is in {current_status}; operation requires {' or '.join(allowed)}",
            work_id=work_id,
            current_status=current_status,
            allowed=allowed,
        )


class NoBidsRegistered(TenderDeskError):
    code = "NoBidsRegistered"

    def __init__(self, work_id: str) -> None:
        self.work_id = work_id
        super().__init__(
            f"Work {work_id} has no registered bids to evaluate", work_id=work_id
        )


class RetenderNotAllowed(TenderDeskError):
    """Raised when reopening a work that is neither cancelled nor marked for retender"""

    code = "RetenderNotAllowed"

    def __init__(self, work_id: str, current_status: str) -> None:
        self.work_id = work_id
        self.current_status = current_status
        super().__init__(
            f"Work {work_id} is {current_status}; only Cancelled or Retender works can be reopened",
            work_id=work_id,
            current_status=current_status,
        )


# Qualification gate


class BidsPendingEvaluation(TenderDeskError):
    """Raised when some bids still lack a technical-evaluation result"""

    code = "BidsPendingEvaluation"

    def __init__(self, work_id: str, pending: int, total: int) -> None:
        self.work_id = work_id
        self.pending = pending
        self.total = total
        super().__init__(
            f"{pending} of {total} bids on work {work_id} still await technical evaluation",
            work_id=work_id,
            pending=pending,
            total=total,
        )


class InsufficientQualifiedBidders(TenderDeskError):
    """
    Raised when fewer than the required number of bidders qualified

    ``none_qualified`` separates the "nobody qualified" case from the
    "some but not enough" case so the UI can word the two differently.
    """

    code = "InsufficientQualifiedBidders"

    def __init__(self, work_id: str, qualified: int, required: int) -> None:
        self.work_id = work_id
        self.qualified = qualified
        self.required = required
        self.none_qualified = qualified == 0
        super().__init__(
            f"{qualified} of {required} required qualified bidders on work {work_id}",
            work_id=work_id,
            qualified=qualified,
            required=required,
            none_qualified=self.none_qualified,
        )


class CannotDeleteEvaluatedBid(TenderDeskError):
    code = "CannotDeleteEvaluatedBid"

    def __init__(self, bid_id: str) -> None:
        self.bid_id = bid_id
        super().__init__(
            f"Bid {bid_id} already has a technical-evaluation result and cannot be withdrawn",
            bid_id=bid_id,
        )


class DuplicateBidder(TenderDeskError):
    code = "DuplicateBidder"

    def __init__(self, work_id: str, agency_id: str) -> None:
        self.work_id = work_id
        self.agency_id = agency_id
        super().__init__(
            f"Agency {agency_id} has already bid on work {work_id}",
            work_id=work_id,
            agency_id=agency_id,
        )


class FinancialBidsIncomplete(TenderDeskError):
    code = "FinancialBidsIncomplete"

    def __init__(self, work_id: str, missing: int) -> None:
        self.work_id = work_id
        self.missing = missing
        super().__init__(
            f"{missing} qualified bid(s) on work {work_id} have no bidding amount",
            work_id=work_id,
            missing=missing,
        )


# Award & agreement


class PrematureAward(TenderDeskError):
    code = "PrematureAward"

    def __init__(self, work_id: str, current_status: str, gate_passed: bool) -> None:
        self.work_id = work_id
        self.current_status = current_status
        self.gate_passed = gate_passed
        super().__init__(
            f"Work {work_id} cannot be awarded in {current_status} "
            f"(qualification gate passed: {gate_passed})",
            work_id=work_id,
            current_status=current_status,
            gate_passed=gate_passed,
        )


class NotQualified(TenderDeskError):
    code = "NotQualified"

    def __init__(self, bid_id: str) -> None:
        self.bid_id = bid_id
        super().__init__(
            f"Bid {bid_id} did not pass technical evaluation", bid_id=bid_id
        )


class AlreadyAwarded(TenderDeskError):
    code = "AlreadyAwarded"

    def __init__(self, work_id: str, award_id: str | None) -> None:
        self.work_id = work_id
        self.award_id = award_id
        super().__init__(
            f"Work {work_id} already has award {award_id}",
            work_id=work_id,
            award_id=award_id,
        )


class AgreementAlreadyExists(TenderDeskError):
    code = "AgreementAlreadyExists"

    def __init__(self, award_id: str, agreement_no: str) -> None:
        self.award_id = award_id
        self.agreement_no = agreement_no
        super().__init__(
            f"Award {award_id} already has agreement {agreement_no}",
            award_id=award_id,
            agreement_no=agreement_no,
        )


class DeliveryAlreadyAcknowledged(TenderDeskError):
    code = "DeliveryAlreadyAcknowledged"

    def __init__(self, award_id: str, delivered_on: str) -> None:
        self.award_id = award_id
        super().__init__(
            f"Work order for award {award_id} was already delivered on {delivered_on}",
            award_id=award_id,
            delivered_on=delivered_on,
        )


# NIT


class DuplicateNitMemo(TenderDeskError):
    code = "DuplicateNitMemo"

    def __init__(self, memo_number: int, year: int) -> None:
        self.memo_number = memo_number
        self.year = year
        super().__init__(
            f"NIT memo number {memo_number} already exists for {year}",
            memo_number=memo_number,
            year=year,
        )


class DuplicateWorkSerial(TenderDeskError):
    code = "DuplicateWorkSerial"

    def __init__(self, nit_id: str, serial_no: int) -> None:
        self.nit_id = nit_id
        self.serial_no = serial_no
        super().__init__(
            f"NIT {nit_id} already has a work with serial number {serial_no}",
            nit_id=nit_id,
            serial_no=serial_no,
        )


class NitAlreadyPublished(TenderDeskError):
    code = "NitAlreadyPublished"

    def __init__(self, nit_id: str) -> None:
        self.nit_id = nit_id
        super().__init__(
            f"NIT {nit_id} is published; its memo number and date are frozen",
            nit_id=nit_id,
        )


class NitNotPublished(TenderDeskError):
    code = "NitNotPublished"

    def __init__(self, nit_id: str) -> None:
        self.nit_id = nit_id
        super().__init__(
            f"NIT {nit_id} is not published; bids cannot be registered", nit_id=nit_id
        )


class NitHasWorks(TenderDeskError):
    code = "NitHasWorks"

    def __init__(self, nit_id: str, work_count: int) -> None:
        self.nit_id = nit_id
        self.work_count = work_count
        super().__init__(
            f"NIT {nit_id} has {work_count} work(s) and cannot be deleted",
            nit_id=nit_id,
            work_count=work_count,
        )


class NitClosed(TenderDeskError):
    """Raised when adding works to a cancelled or deleted NIT"""

    code = "NitClosed"

    def __init__(self, nit_id: str, state: str) -> None:
        self.nit_id = nit_id
        self.state = state
        super().__init__(f"NIT {nit_id} is {state}", nit_id=nit_id, state=state)


# Work status & ledger


class WorkNotAwarded(TenderDeskError):
    code = "WorkNotAwarded"

    def __init__(self, work_id: str, current_status: str) -> None:
        self.work_id = work_id
        self.current_status = current_status
        super().__init__(
            f"Work {work_id} is {current_status}; operation requires AOC",
            work_id=work_id,
            current_status=current_status,
        )


class FinalBillOnUnawardedWork(TenderDeskError):
    code = "FinalBillOnUnawardedWork"

    def __init__(self, work_id: str, current_status: str) -> None:
        self.work_id = work_id
        self.current_status = current_status
        super().__init__(
            f"Cannot book a final bill on work {work_id} in {current_status}",
            work_id=work_id,
            current_status=current_status,
        )


class FinalBillRequired(TenderDeskError):
    code = "FinalBillRequired"

    def __init__(self, work_id: str) -> None:
        self.work_id = work_id
        super().__init__(
            f"Work {work_id} has no final bill payment; it cannot be marked billpaid",
            work_id=work_id,
        )


class WorkStatusRegression(TenderDeskError):
    code = "WorkStatusRegression"

    def __init__(self, work_id: str, current_status: str, target_status: str) -> None:
        self.work_id = work_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Work {work_id} cannot go from {current_status} back to {target_status}",
            work_id=work_id,
            current_status=current_status,
            target_status=target_status,
        )


class CompletionNotCertifiable(TenderDeskError):
    code = "CompletionNotCertifiable"

    def __init__(self, work_id: str, missing: str) -> None:
        self.work_id = work_id
        self.missing = missing
        super().__init__(
            f"Completion certificate for work {work_id} needs {missing}",
            work_id=work_id,
            missing=missing,
        )


# Concurrency & infrastructure


class ConcurrentModification(TenderDeskError):
    """
    Raised when a stream changed between load and commit (optimistic locking)

    The caller should reload and decide again; the desk never retries on its own.
    """

    code = "ConcurrentModification"
    category = "concurrency"

    def __init__(
        self, stream_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream {stream_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}",
            stream_id=stream_id,
            expected_version=expected_version,
            actual_version=actual_version,
        )


class EventStoreError(TenderDeskError):
    """Store unavailable or a write failed after validation passed"""

    code = "InfrastructureError"
    category = "infrastructure"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message, **details)
