"""Locked pricing catalog loaded from ``pricing.yaml``."""

import json
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

PRICING_PATH = Path(__file__).parent.parent / "pricing.yaml"


class TierPrice(BaseModel):
    name: str
    price_monthly: int


class OneOffPrice(BaseModel):
    name: str
    from_monthly: int
    setup_from: int


class PricingCatalog(BaseModel):
    studio: str = "Lumen Labs"
    currency: str = "USD"
    activation_fee: int
    tiers: list[TierPrice] = Field(..., min_length=3, max_length=3)
    one_offs: list[OneOffPrice]

    @property
    def tier_names(self) -> list[str]:
        return [t.name for t in self.tiers]

    def pricing_lines(self) -> str:
        tiers = ", ".join(f"{t.name} ${t.price_monthly:,}/mo" for t in self.tiers)
        offers = ", ".join(
            f"{o.name} from ${o.from_monthly:,}/mo + ${o.setup_from:,} setup" for o in self.one_offs
        )
        return (
            f"  {tiers}\n"
            f"  Activation Fee: ${self.activation_fee:,} (one-time)\n"
            f"  One-off modules: {offers}"
        )

    def schema_text(self) -> str:
        """Literal schema the model is asked to fill in."""
        skeleton = {
            "executive_summary": "string (5-10 sentences, executive tone)",
            "pricing_logic": {
                "temperature": "Cold|Warm|Hot",
                "recommended_plan": "|".join(self.tier_names + ["None"]),
                "reasoning": ["string", "..."],
            },
            "tiers": [
                {
                    "name": t.name,
                    "price_monthly": t.price_monthly,
                    "activation_fee": self.activation_fee,
                    "why_fit": "string",
                    "scope": ["string", "..."],
                    "timeline": "string",
                }
                for t in self.tiers
            ],
            "one_offs": [
                {"name": o.name, "from_monthly": o.from_monthly, "setup_from": o.setup_from, "notes": "string"}
                for o in self.one_offs
            ],
            "next_steps": ["string", "..."],
        }
        return (
            "Return ONLY a valid JSON object matching this schema. No markdown. No commentary.\n\n"
            + json.dumps(skeleton, indent=2)
        )


def load_pricing(path: Path | str = PRICING_PATH) -> PricingCatalog:
    with open(path, encoding="utf-8") as f:
        return PricingCatalog.model_validate(yaml.safe_load(f))


@lru_cache(maxsize=1)
def get_pricing() -> PricingCatalog:
    return load_pricing()
