"""Intake payload and response schemas."""

from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator


class IntakePayload(BaseModel):
    """Lead intake form submission.

    Everything is free text; only ``email`` is required, and that check happens
    in the intake service so the client gets a flat ``Missing email`` error.
    """
    full_name: str = Field("", validation_alias=AliasChoices("full_name", "name"))
    email: str = ""
    phone: str = ""
    business_name: str = Field("", validation_alias=AliasChoices("business_name", "business"))
    website: str = ""
    industry: str = ""

    primary_goal: str = ""
    budget_range: str = ""
    timeline: str = ""
    bottleneck: str = ""

    intent: str = ""
    source: str = ""
    page_url: str = ""
    conversation_summary: str = ""

    model_config = {"extra": "allow", "populate_by_name": True}

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    def record(self) -> dict:
        """Intake as stored alongside the proposal (extra keys included)."""
        return self.model_dump()


class IntakeResponse(BaseModel):
    ok: bool = True
    pid: str
    id: str
    redirect_url: str
    stored: bool


class ProposalFetchResponse(BaseModel):
    ok: bool = True
    record: dict[str, Any]
