"""
Tender Lifecycle - event-sourced tender desk of a local-government office

Tracks a Notice Inviting Tender from its memo number through bids, technical
evaluation, award, work order and agreement, down to the payment ledger and
the completion certificate of every work.

Fun fact: A single gram panchayat can float dozens of NITs a year, each with
a handful of works. The paper register that tracked them was a ledger long
before anyone called it event sourcing.
"""

from tender_lifecycle.desk import TenderDesk

__version__ = "0.1.0"
__all__ = ["TenderDesk", "__version__"]
