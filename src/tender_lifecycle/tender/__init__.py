"""
Tender - NITs, works, bids and awards

Pure decision components: each takes the aggregates loaded by the desk and
returns the events to commit, or raises a typed TenderDeskError.
"""

from tender_lifecycle.tender.models import (
    Award,
    Bid,
    MemoRegister,
    Nit,
    TenderStatus,
    Work,
    WorkStatus,
)
from tender_lifecycle.tender.qualification import REQUIRED_QUALIFIED_BIDDERS

__all__ = [
    "Award",
    "Bid",
    "MemoRegister",
    "Nit",
    "TenderStatus",
    "Work",
    "WorkStatus",
    "REQUIRED_QUALIFIED_BIDDERS",
]
