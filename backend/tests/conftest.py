"""Shared fixtures: in-memory collaborators for the store, model and CRM."""

import copy
import json

import pytest

from zion.adapters.crm import build_crm_payload
from zion.errors import StoreRequestFailed
from zion.services.kv_store import KVStore, decode_document

VALID_PROPOSAL = {
    "executive_summary": "Acme books most of its work through referrals. A lead engine fixes that.",
    "pricing_logic": {
        "temperature": "Warm",
        "recommended_plan": "Elevate",
        "reasoning": ["Clear goal", "Budget fits mid tier"],
    },
    "tiers": [
        {"name": "Ignite", "price_monthly": 950, "activation_fee": 500, "why_fit": "Start small",
         "scope": ["Chat agent"], "timeline": "2 weeks"},
        {"name": "Elevate", "price_monthly": 1450, "activation_fee": 500, "why_fit": "Best fit",
         "scope": ["Chat agent", "CRM automations"], "timeline": "3 weeks"},
        {"name": "Luminary", "price_monthly": 2250, "activation_fee": 500, "why_fit": "Full stack",
         "scope": [], "timeline": "5 weeks"},
    ],
    "one_offs": [
        {"name": "Voice Agent", "from_monthly": 150, "setup_from": 497, "notes": "After-hours calls"},
    ],
    "next_steps": ["Book a strategy call", "Share CRM access"],
}


class MemoryStore(KVStore):
    """KV store double with TTL driven by a controllable clock."""

    backend = "memory"

    def __init__(self):
        self.now = 0.0
        self.data: dict[str, tuple[str, float]] = {}
        self.fail_puts = False

    async def put(self, key: str, document: dict, ttl: int, only_new: bool = False) -> bool:
        if self.fail_puts:
            raise StoreRequestFailed("KV pipeline failed: HTTP 500")
        if only_new and await self.get(key) is not None:
            return False
        self.data[key] = (json.dumps(document), self.now + ttl)
        return True

    async def get(self, key: str) -> dict | None:
        item = self.data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self.now >= expires_at:
            del self.data[key]
            return None
        return decode_document(value)

    async def ping(self) -> bool:
        return True


class FakeLLM:
    """Returns scripted completions in order; exceptions in the script are raised."""

    model = "test-model"
    is_configured = True

    def __init__(self, outputs):
        self.outputs = list(outputs)
        self.calls = []

    async def complete(self, prompt, task_type, system_prompt="", temperature=0.2, max_tokens=1024, prefill=""):
        self.calls.append({
            "prompt": prompt,
            "task_type": task_type,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "prefill": prefill,
        })
        out = self.outputs.pop(0)
        if isinstance(out, Exception):
            raise out
        return {"content": out, "model": self.model, "input_tokens": 10, "output_tokens": 20,
                "tokens": 30, "duration": 0.0}


class FakeForwarder:
    is_configured = True

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.sent = []

    async def forward(self, intake) -> dict:
        if self.error:
            raise self.error
        payload = build_crm_payload(intake)
        self.sent.append(payload)
        return payload


@pytest.fixture
def proposal_dict():
    return copy.deepcopy(VALID_PROPOSAL)


@pytest.fixture
def proposal_json(proposal_dict):
    return json.dumps(proposal_dict)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def make_llm():
    return FakeLLM


@pytest.fixture
def make_forwarder():
    return FakeForwarder
