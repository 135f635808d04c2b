"""Proposal generation with a strict JSON contract.

Pipeline:
1. Render the proposal prompt (locked pricing + intake + literal schema)
2. Call the model at low temperature with a ``{`` prefill
3. Parse: strict JSON, then the first ``{`` .. last ``}`` slice
4. Validate against ``ProposalDocument``
5. On failure, one repair call carrying the bad output and the problems
6. Still invalid: ``ProposalGenerationFailed`` with both raw outputs

Nothing is ever synthesized locally: either the model produced a valid
three-tier document or the call fails.
"""

import json

import structlog

from zion.config import Settings, settings as default_settings
from zion.errors import ProposalGenerationFailed
from zion.schemas.intake import IntakePayload
from zion.schemas.proposal import validate_proposal
from zion.services.llm import LLMClient, render_prompt
from zion.services.pricing import PricingCatalog, get_pricing

logger = structlog.get_logger()

INTAKE_FIELDS = [
    "full_name", "email", "phone", "business_name", "website",
    "industry", "primary_goal", "budget_range", "timeline", "bottleneck",
    "intent", "page_url", "conversation_summary",
]


def extract_json_object(text: str):
    """Best-effort parse of the outermost ``{...}`` span in free text."""
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None


def parse_model_output(text: str):
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return extract_json_object(text)


def coerce_proposal(text: str) -> tuple[dict | None, list[str]]:
    """Parse then validate one raw model output."""
    obj = parse_model_output(text)
    if obj is None:
        return None, ["output is not parseable JSON"]
    return validate_proposal(obj)


def format_intake(intake: IntakePayload) -> str:
    data = intake.record()
    return "\n".join(f"{field}: {data.get(field) or ''}" for field in INTAKE_FIELDS)


def build_proposal_prompt(intake: IntakePayload, pricing: PricingCatalog) -> str:
    return render_prompt(
        "proposal_v1",
        studio=pricing.studio,
        pricing_lines=pricing.pricing_lines(),
        tier_names="/".join(pricing.tier_names),
        intake_lines=format_intake(intake),
        schema=pricing.schema_text(),
    )


def build_repair_prompt(previous_output: str, problems: list[str], pricing: PricingCatalog) -> str:
    return render_prompt(
        "proposal_repair_v1",
        problems="\n".join(f"- {p}" for p in problems[:10]),
        previous_output=previous_output or "(empty)",
        schema=pricing.schema_text(),
    )


class ProposalGenerator:
    def __init__(
        self,
        llm: LLMClient,
        config: Settings | None = None,
        pricing: PricingCatalog | None = None,
    ):
        config = config or default_settings
        self.llm = llm
        self.pricing = pricing or get_pricing()
        self.temperature = config.proposal_temperature
        self.max_tokens = config.proposal_max_tokens

    async def _attempt(self, prompt: str, task_type: str) -> str:
        result = await self.llm.complete(
            prompt,
            task_type=task_type,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            prefill="{",
        )
        return result["content"]

    async def generate(self, intake: IntakePayload) -> tuple[dict, str]:
        """Return ``(proposal, raw_text)`` or raise ``ProposalGenerationFailed``."""
        raw1 = await self._attempt(build_proposal_prompt(intake, self.pricing), "proposal")
        proposal, problems = coerce_proposal(raw1)
        if proposal is not None:
            return proposal, raw1

        logger.warning("proposal_invalid_attempting_repair", problems=problems[:5], raw_length=len(raw1))
        raw2 = await self._attempt(build_repair_prompt(raw1, problems, self.pricing), "proposal_repair")
        proposal, repair_problems = coerce_proposal(raw2)
        if proposal is not None:
            logger.info("proposal_repaired")
            return proposal, raw2

        logger.error("proposal_generation_failed", problems=repair_problems[:5])
        raise ProposalGenerationFailed(
            "Model returned an invalid proposal",
            raw1=raw1,
            raw2=raw2,
            problems=repair_problems,
        )
