"""Ledger - payments against awarded works and the completion certificate"""

from tender_lifecycle.ledger.models import (
    BillType,
    CompletionCertificate,
    Deductions,
    LedgerTotals,
    PaymentEntry,
)

__all__ = ["BillType", "CompletionCertificate", "Deductions", "LedgerTotals", "PaymentEntry"]
