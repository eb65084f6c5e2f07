"""
Payment Ledger Models

Bills paid against an awarded work, their statutory deductions, and the
totals derived from them.

Fun fact: Labour welfare cess on Indian construction works is 1% of the
cost of construction, collected at source from every running bill since the
Building and Other Construction Workers' Welfare Cess Act of 1996!
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class BillType(str, Enum):
    """
    Kind of bill a payment settles

    Input is matched case-insensitively, so "Final Bill", "final bill" and
    "FINAL  BILL" are the same value.
    """

    RUNNING = "running bill"
    FINAL = "final bill"

    @classmethod
    def _missing_(cls, value: object) -> "BillType | None":
        if isinstance(value, str):
            normalised = " ".join(value.lower().split())
            for member in cls:
                if member.value == normalised:
                    return member
        return None


class Deductions(BaseModel):
    """Statutory deductions withheld from a gross bill"""

    income_tax: Decimal = Field(default=Decimal("0"), ge=0)
    labour_welfare_cess: Decimal = Field(default=Decimal("0"), ge=0)
    security_deposit: Decimal = Field(default=Decimal("0"), ge=0)
    tds_cgst: Decimal = Field(default=Decimal("0"), ge=0)
    tds_sgst: Decimal = Field(default=Decimal("0"), ge=0)

    @property
    def total(self) -> Decimal:
        return (
            self.income_tax
            + self.labour_welfare_cess
            + self.security_deposit
            + self.tds_cgst
            + self.tds_sgst
        )


class PaymentEntry(BaseModel):
    """One append-only ledger row"""

    entry_id: str
    work_id: str
    gross_bill_amount: Decimal = Field(..., ge=0)
    deductions: Deductions = Field(default_factory=Deductions)
    net_amount: Decimal
    bill_type: BillType
    bill_payment_date: date
    security_deposit_maturity_date: date
    egram_voucher_no: str | None = None
    gpms_voucher_no: str | None = None
    mb_reference: str | None = None
    recorded_at: datetime

    @field_validator("bill_type", mode="before")
    @classmethod
    def normalise_bill_type(cls, v: object) -> object:
        return BillType(v) if isinstance(v, str) else v

    @property
    def is_final_bill(self) -> bool:
        return self.bill_type == BillType.FINAL


class Ledger(BaseModel):
    """Payment ledger of one work, rebuilt from its stream"""

    work_id: str
    entries: list[PaymentEntry] = Field(default_factory=list)
    version: int = 0

    @property
    def has_final_bill(self) -> bool:
        return any(entry.is_final_bill for entry in self.entries)


class OverpaymentAnomaly(BaseModel):
    """Gross payments exceed the estimate; reported, never fatal"""

    code: str = "OverpaymentAnomaly"
    work_id: str
    estimated_cost: Decimal
    total_paid: Decimal
    excess: Decimal

    @property
    def message(self) -> str:
        return (
            f"Payments of {self.total_paid} on work {self.work_id} exceed "
            f"the estimate of {self.estimated_cost} by {self.excess}"
        )


class LedgerTotals(BaseModel):
    """Paid/pending figures of a ledger at one point in time"""

    work_id: str
    estimated_cost: Decimal
    total_paid: Decimal
    total_deductions: Decimal
    total_net: Decimal
    pending: Decimal
    has_final_bill: bool
    entry_count: int
    anomalies: list[OverpaymentAnomaly] = Field(default_factory=list)


class CompletionCertificate(BaseModel):
    """
    Work completion certificate

    Derived on demand from the work, its NIT and its ledger; never stored.
    """

    work_id: str
    nit_reference: str
    serial_no: int
    description: str
    agency_id: str
    estimated_cost: Decimal
    work_order_memo_no: str
    work_order_memo_date: date
    agreement_no: str | None
    agreement_date: date | None
    bidding_amount: Decimal
    bid_percentage: str
    completion_date: date
    total_paid: Decimal
    total_net: Decimal
    total_deductions: Decimal
    pending: Decimal
    has_final_bill: bool
    payment_count: int
    last_payment_date: date
