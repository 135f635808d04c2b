"""Dependency providers for the request handlers.

Routes depend on these functions so tests can swap collaborators through
``app.dependency_overrides``.
"""

import json

from fastapi import Depends, Request

from zion.adapters.crm import LeadForwarder
from zion.config import Settings, settings
from zion.errors import ValidationError
from zion.services.dialogue import DialogueEngine
from zion.services.intake import IntakeService
from zion.services.kv_store import KVStore, create_store
from zion.services.llm import LLMClient
from zion.services.proposal import ProposalGenerator

_store: KVStore | None = None


def get_settings() -> Settings:
    return settings


def get_store() -> KVStore:
    global _store
    if _store is None:
        _store = create_store(settings)
    return _store


def get_llm() -> LLMClient:
    return LLMClient(settings)


def get_forwarder() -> LeadForwarder:
    return LeadForwarder.from_settings(settings)


def get_dialogue_engine() -> DialogueEngine:
    return DialogueEngine.from_settings(settings)


def get_intake_service(
    forwarder: LeadForwarder = Depends(get_forwarder),
    llm: LLMClient = Depends(get_llm),
    store: KVStore = Depends(get_store),
    config: Settings = Depends(get_settings),
) -> IntakeService:
    return IntakeService(forwarder, ProposalGenerator(llm, config), store, config)


async def read_json_body(request: Request) -> dict:
    """Decode the request body as a JSON object; an empty body is ``{}``."""
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON body")
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON body")
    return body
