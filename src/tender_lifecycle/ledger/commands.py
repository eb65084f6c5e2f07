"""Payment Ledger Commands"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from tender_lifecycle.ledger.models import BillType, Deductions


class RecordPayment(BaseModel):
    """Record a bill paid against an awarded work"""

    work_id: str = Field(..., min_length=1)
    gross_bill_amount: Decimal = Field(..., ge=0)
    deductions: Deductions = Field(default_factory=Deductions)
    bill_type: BillType = BillType.RUNNING
    bill_payment_date: date | None = Field(default=None, description="None = today")
    completion_date: date | None = Field(
        default=None, description="Work completion date, stored on the work when given"
    )
    egram_voucher_no: str | None = None
    gpms_voucher_no: str | None = None
    mb_reference: str | None = Field(default=None, description="Measurement book reference")

    @field_validator("bill_type", mode="before")
    @classmethod
    def normalise_bill_type(cls, v: object) -> object:
        return BillType(v) if isinstance(v, str) else v
