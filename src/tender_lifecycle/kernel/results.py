"""
Action results - every desk outcome is a value

Components raise typed ``TenderDeskError`` subclasses; the desk turns them
into an ``ActionResult`` so the presentation layer never has to catch
anything. Non-fatal anomalies (an overpaid ledger) ride along with a
successful result.
"""

from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from tender_lifecycle.kernel.errors import TenderDeskError


class ActionError(BaseModel):
    """Typed reason an action was refused or failed"""

    code: str = Field(..., description="Error code, e.g. 'InsufficientQualifiedBidders'")
    category: str = Field(
        ...,
        description="validation | not_found | business_rule | concurrency | infrastructure",
    )
    message: str = Field(..., description="Human readable explanation")
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, error: TenderDeskError) -> "ActionError":
        return cls(
            code=error.code,
            category=error.category,
            message=error.message,
            details=error.details,
        )

    @classmethod
    def from_validation_error(cls, error: ValidationError) -> "ActionError":
        first = error.errors()[0] if error.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ())) or "input"
        return cls(
            code="ValidationFailed",
            category="validation",
            message=f"Invalid {field}: {first.get('msg', str(error))}",
            details={
                "field": field,
                "reason": first.get("msg", ""),
                "errors": [
                    {"field": ".".join(str(p) for p in e["loc"]), "reason": e["msg"]}
                    for e in error.errors()
                ],
            },
        )


class Anomaly(BaseModel):
    """Non-fatal condition reported alongside a successful result"""

    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ActionResult(BaseModel):
    """Outcome of one desk action"""

    ok: bool
    value: Any = None
    error: ActionError | None = None
    anomalies: list[Anomaly] = Field(default_factory=list)

    @model_validator(mode="after")
    def _error_only_on_failure(self) -> "ActionResult":
        if self.ok == (self.error is not None):
            raise ValueError("a failed result carries an error, a successful one none")
        return self

    @classmethod
    def success(cls, value: Any = None, anomalies: list[Anomaly] | None = None) -> "ActionResult":
        return cls(ok=True, value=value, anomalies=anomalies or [])

    @classmethod
    def failure(cls, error: ActionError) -> "ActionResult":
        return cls(ok=False, error=error)

    @property
    def code(self) -> str | None:
        """Error code, or None on success"""
        return self.error.code if self.error else None
