"""
Office policy - the few settings that differ between offices

The qualified-bidder threshold is not here: three qualified bidders is a
fixed rule of the tender process.
"""

import os

from pydantic import BaseModel, Field


class TenderPolicy(BaseModel):
    """Configuration of one tendering office"""

    office_code: str = Field(
        default="GP",
        min_length=1,
        description="Office code printed in NIT references: '{memo}/{office_code}/{year}'",
    )
    security_deposit_maturity_months: int = Field(
        default=6,
        ge=0,
        description="Months after completion (or bill date) when the security deposit matures",
    )
    policy_version: str = Field(default="1.0", description="Policy version for audit trails")

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls) -> "TenderPolicy":
        """
        Build a policy from TENDER_OFFICE_CODE and TENDER_SD_MATURITY_MONTHS

        Unset variables fall back to the defaults; malformed values raise
        pydantic's ValidationError.
        """
        overrides: dict[str, str] = {}
        if office_code := os.getenv("TENDER_OFFICE_CODE"):
            overrides["office_code"] = office_code
        if months := os.getenv("TENDER_SD_MATURITY_MONTHS"):
            overrides["security_deposit_maturity_months"] = months
        return cls.model_validate(overrides)
