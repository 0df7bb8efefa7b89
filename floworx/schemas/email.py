"""
Pydantic schemas for the email and classification context evaluated by rules.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EmailIn(BaseModel):
    """Minimum email shape the predicates read."""

    id: Optional[str] = None
    from_address: str = Field(default="", alias="from")
    subject: Optional[str] = ""
    body: Optional[str] = ""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> Any:
        return None if value is None else str(value)

    @property
    def sender(self) -> str:
        return (self.from_address or "").strip().lower()


class Classification(BaseModel):
    category: Optional[str] = None
    urgency: Optional[str] = None
    sentiment: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class EvaluationContext(BaseModel):
    """Per-call context supplied by the classification pipeline. Never persisted."""

    classification: Optional[Classification] = None
    rule_value: Optional[Any] = Field(default=None, alias="ruleValue")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def for_rule(self, value: Any) -> "EvaluationContext":
        return self.model_copy(update={"rule_value": value})
