"""Proposal document schema used to validate model output.

Only the contract the summary page depends on is strict: a non-empty
executive summary and exactly three tiers, each with a name, a numeric monthly
price and a scope list. Everything else is accepted as the model wrote it.
"""

from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, StrictFloat, StrictInt, ValidationError, field_validator

Number = Union[StrictInt, StrictFloat]


class ProposalTier(BaseModel):
    name: str = Field(..., min_length=1)
    # Older prompts asked for "monthly_price"; both spellings land here.
    price_monthly: Number = Field(..., validation_alias=AliasChoices("price_monthly", "monthly_price"))
    activation_fee: Any = None
    why_fit: Any = ""
    scope: list[Any]
    timeline: Any = ""

    model_config = {"extra": "allow"}

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("tier name must not be blank")
        return value


class ProposalDocument(BaseModel):
    executive_summary: str
    pricing_logic: Optional[dict[str, Any]] = None
    tiers: list[ProposalTier] = Field(..., min_length=3, max_length=3)
    one_offs: list[Any] = Field(default_factory=list)
    next_steps: list[Any] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    @field_validator("executive_summary")
    @classmethod
    def _summary_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("executive_summary must not be empty")
        return value


def validate_proposal(obj: Any) -> tuple[dict | None, list[str]]:
    """Validate a decoded object against the proposal contract.

    Returns ``(document, [])`` with tier prices normalized to ``price_monthly``,
    or ``(None, problems)`` with one human-readable line per violation.
    """
    if not isinstance(obj, dict):
        return None, [f"expected a JSON object, got {type(obj).__name__}"]
    try:
        doc = ProposalDocument.model_validate(obj)
    except ValidationError as e:
        problems = []
        for err in e.errors():
            loc = ".".join(str(part) for part in err["loc"]) or "document"
            problems.append(f"{loc}: {err['msg']}")
        return None, problems
    return doc.model_dump(), []
