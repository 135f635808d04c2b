"""Zion qualification dialogue endpoint.

Stateless: the caller sends ``notes`` back verbatim with every message.
"""

from fastapi import APIRouter, Depends
from pydantic import ValidationError as PydanticValidationError

from zion.api.deps import get_dialogue_engine, get_llm, get_settings, read_json_body
from zion.api.health import DIALOGUE_TURNS
from zion.config import Settings
from zion.errors import ValidationError
from zion.schemas.common import OkResponse
from zion.schemas.dialogue import DialogueTurnRequest, DialogueTurnResponse, Stage
from zion.services.dialogue import QUESTIONS, DialogueEngine, enrich_reply, normalize_message
from zion.services.llm import LLMClient

import structlog

logger = structlog.get_logger()
router = APIRouter(tags=["dialogue"])


@router.get("/zion")
async def dialogue_status(config: Settings = Depends(get_settings)):
    return {
        "status": "ok",
        "message": "Zion API is live. Use POST.",
        "model": config.model,
    }


@router.options("/zion", response_model=OkResponse)
async def dialogue_options():
    return OkResponse()


@router.post("/zion", response_model=DialogueTurnResponse)
async def dialogue_turn(
    body: dict = Depends(read_json_body),
    engine: DialogueEngine = Depends(get_dialogue_engine),
    llm: LLMClient = Depends(get_llm),
    config: Settings = Depends(get_settings),
):
    """Advance the qualification dialogue by one message."""
    try:
        req = DialogueTurnRequest.model_validate(body)
    except PydanticValidationError as e:
        field = ".".join(str(part) for part in e.errors()[0]["loc"]) or "body"
        raise ValidationError(f"Invalid field: {field}")
    if not normalize_message(req.message):
        raise ValidationError("Missing message")

    previous_question = QUESTIONS[req.notes.stage if req.notes else Stage.START]
    result = engine.step(req.message, req.notes)

    reply = result.reply
    if config.dialogue_llm_ack:
        reply = await enrich_reply(llm, req.message, previous_question, result, config)

    DIALOGUE_TURNS.labels(stage=result.notes.stage.value).inc()
    logger.info(
        "dialogue_turn",
        session_id=req.session_id, turn=req.turn,
        stage=result.notes.stage.value, capture_intent=result.capture_intent.value,
    )
    return DialogueTurnResponse(
        reply=reply,
        next_question=result.next_question,
        capture_intent=result.capture_intent,
        turn=req.turn + 1,
        session_id=req.session_id,
        notes=result.notes,
    )
