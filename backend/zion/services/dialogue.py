"""Deterministic qualification dialogue ("Zion").

The engine walks a fixed, forward-only sequence of questions:

    start -> goal -> business_type -> target_metric -> bottleneck -> capture

Each substantive answer fills the slot of the question it answers and moves
the stage to the next unfilled slot. Low-signal input ("ok", "idk", ...) does
not move anything; the same question is asked again. After
``max_questions`` answers, ``max_inputs`` messages, or once every slot is
filled, the dialogue locks into ``capture`` and keeps asking for contact
details until the client starts a new session.

Which question comes next and whether to ask for contact details is decided
here only. A model may rephrase the acknowledgement (``enrich_reply``) but
never steers the sequence.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from zion.config import Settings, settings as default_settings
from zion.schemas.dialogue import (
    CaptureIntent,
    DialogueNotes,
    DialogueSlots,
    Stage,
    TranscriptEntry,
)
from zion.services.llm import LLMClient, render_prompt
from zion.services.pricing import get_pricing

logger = structlog.get_logger()

LOW_SIGNAL_TOKENS = frozenset({
    "ok", "okay", "k", "kk", "yes", "yeah", "yep", "ya", "no", "nope", "nah",
    "idk", "i dont know", "i don't know", "dunno", "not sure", "unsure", "maybe",
    "hi", "hello", "hey", "sure", "cool", "thanks", "thank you", "lol", "hmm", "?",
})
MIN_ANSWER_LENGTH = 3

GOAL_QUESTION = (
    "What's the main outcome you want right now: more leads, more sales, "
    "more bookings, or time back from operations?"
)
QUESTIONS = {
    Stage.START: GOAL_QUESTION,
    Stage.GOAL: GOAL_QUESTION,
    Stage.BUSINESS_TYPE: "What kind of business do you run, and who are your customers?",
    Stage.TARGET_METRIC: "What number would make the next 90 days a win for you?",
    Stage.BOTTLENECK: "What's the biggest thing slowing that down today?",
    Stage.CAPTURE: "Where should I send your custom plan? Share your name and best email.",
}
CAPTURE_REPLY = "Perfect, I have enough to build your plan."

ACKNOWLEDGEMENTS = {
    "primary_goal": "Clear goal, that helps me aim the plan.",
    "business_type": "Good, that tells me who we're building for.",
    "target_metric": "A concrete target makes the plan measurable.",
    "bottleneck": "That's the constraint we'll design around.",
}
NUDGES = {
    Stage.START: "No problem, let's start simple.",
}
DEFAULT_NUDGE = "Even a rough answer helps me tailor this."

SLOT_FOR_STAGE = {
    Stage.GOAL: "primary_goal",
    Stage.BUSINESS_TYPE: "business_type",
    Stage.TARGET_METRIC: "target_metric",
    Stage.BOTTLENECK: "bottleneck",
}
QUESTION_STAGES = [Stage.GOAL, Stage.BUSINESS_TYPE, Stage.TARGET_METRIC, Stage.BOTTLENECK]

GOAL_LABELS = [
    (("lead",), "Generate more leads"),
    (("sale", "revenue"), "Increase sales"),
    (("booking", "appointment", "calendar"), "Fill the booking calendar"),
    (("automat",), "Automate operations"),
]
BUSINESS_PATTERN = re.compile(
    r"\b(we sell|we run|we are|we're|we do|i run|i own|i sell|my business|our business|"
    r"company|agency|clinic|studio|shop|store|restaurant|services?|contractor|firm|practice)\b",
    re.IGNORECASE,
)
METRIC_PATTERN = re.compile(r"\d|%|\bper (?:day|week|month|year)\b|\ba (?:week|month)\b|/mo\b", re.IGNORECASE)
BOTTLENECK_PATTERN = re.compile(
    r"\b(struggl\w*|bottleneck|slow\w*|problem|issue|can't|cannot|not enough|no time|"
    r"manual\w*|overwhelm\w*|miss\w*|follow[- ]?up)\b",
    re.IGNORECASE,
)

MAX_MESSAGE_LENGTH = 1000


@dataclass(frozen=True)
class DialogueStep:
    reply: str
    next_question: str
    capture_intent: CaptureIntent
    notes: DialogueNotes


def normalize_message(message) -> str:
    return " ".join(str(message or "").split())[:MAX_MESSAGE_LENGTH]


def is_low_signal(text: str) -> bool:
    cleaned = text.strip().lower().rstrip(".!?,;: ")
    if len(cleaned) < MIN_ANSWER_LENGTH or cleaned in LOW_SIGNAL_TOKENS:
        return True
    words = [w.strip(".!?,;:") for w in cleaned.split()]
    # "no thanks", "yes please", "ok cool"
    return len(words) <= 2 and words[0] in LOW_SIGNAL_TOKENS


def normalize_goal(text: str) -> str | None:
    lowered = text.lower()
    for keywords, label in GOAL_LABELS:
        if any(k in lowered for k in keywords):
            return label
    return None


def detect_slots(text: str) -> dict[str, str]:
    """Slots an opening message answers on its own."""
    found = {}
    goal = normalize_goal(text)
    if goal:
        found["primary_goal"] = goal
    if BUSINESS_PATTERN.search(text):
        found["business_type"] = text
    if METRIC_PATTERN.search(text):
        found["target_metric"] = text
    if BOTTLENECK_PATTERN.search(text):
        found["bottleneck"] = text
    return found


def next_open_stage(current: Stage, slots: DialogueSlots) -> Stage:
    for stage in QUESTION_STAGES:
        if stage.index > current.index and getattr(slots, SLOT_FOR_STAGE[stage]) is None:
            return stage
    return Stage.CAPTURE


class DialogueEngine:
    def __init__(self, max_questions: int = 3, max_inputs: int = 10):
        self.max_questions = max_questions
        self.max_inputs = max_inputs

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "DialogueEngine":
        config = config or default_settings
        return cls(config.dialogue_max_questions, config.dialogue_max_inputs)

    def step(self, message, notes: DialogueNotes | None = None, now: datetime | None = None) -> DialogueStep:
        notes = notes or DialogueNotes()
        timestamp = (now or datetime.now(timezone.utc)).isoformat()
        text = normalize_message(message)

        inputs = notes.inputs + 1
        entry = TranscriptEntry(turn=inputs, text=text, at=timestamp)
        base = {
            "inputs": inputs,
            "transcript": notes.with_entry(entry),
            "updated_at": timestamp,
        }

        if notes.capture_locked:
            return self._capture(notes.advance(Stage.CAPTURE, **base))

        if is_low_signal(text):
            if inputs >= self.max_inputs:
                logger.info("dialogue_input_ceiling_reached", inputs=inputs)
                return self._capture(notes.advance(Stage.CAPTURE, **base))
            held = notes.model_copy(update=base)
            return DialogueStep(
                reply=NUDGES.get(notes.stage, DEFAULT_NUDGE),
                next_question=QUESTIONS[notes.stage],
                capture_intent=CaptureIntent.NONE,
                notes=held,
            )

        filled = self._answer(notes.stage, text)
        slots = notes.slots.model_copy(
            update={k: v for k, v in filled.items() if getattr(notes.slots, k) is None}
        )
        answered = notes.questions_answered + 1
        stage = next_open_stage(notes.stage, slots)
        if answered >= self.max_questions or inputs >= self.max_inputs:
            stage = Stage.CAPTURE

        updated = notes.advance(stage, slots=slots, questions_answered=answered, **base)
        logger.info(
            "dialogue_advanced",
            from_stage=notes.stage.value, to_stage=stage.value,
            filled=sorted(filled), answered=answered,
        )
        if stage == Stage.CAPTURE:
            return self._capture(updated)

        first_slot = next(iter(filled))
        return DialogueStep(
            reply=ACKNOWLEDGEMENTS[first_slot],
            next_question=QUESTIONS[stage],
            capture_intent=CaptureIntent.NONE,
            notes=updated,
        )

    def _answer(self, stage: Stage, text: str) -> dict[str, str]:
        if stage == Stage.START:
            return detect_slots(text) or {"primary_goal": text}
        slot = SLOT_FOR_STAGE[stage]
        if slot == "primary_goal":
            return {slot: normalize_goal(text) or text}
        return {slot: text}

    @staticmethod
    def _capture(notes: DialogueNotes) -> DialogueStep:
        return DialogueStep(
            reply=CAPTURE_REPLY,
            next_question=QUESTIONS[Stage.CAPTURE],
            capture_intent=CaptureIntent.ASK_CONTACT,
            notes=notes,
        )


def describe_slots(slots: DialogueSlots) -> str:
    lines = [f"- {name}: {value}" for name, value in slots.model_dump().items() if value]
    return "\n".join(lines) or "- nothing yet"


async def enrich_reply(llm: LLMClient, message: str, answered_question: str, result: DialogueStep, config: Settings | None = None) -> str:
    """Let the model phrase the acknowledgement; fall back to the fixed one."""
    config = config or default_settings
    if result.capture_intent != CaptureIntent.NONE or not llm.is_configured:
        return result.reply
    try:
        prompt = render_prompt(
            "dialogue_ack_v1",
            studio=get_pricing().studio,
            question=answered_question,
            message=normalize_message(message),
            known=describe_slots(result.notes.slots),
        )
        completion = await llm.complete(
            prompt,
            task_type="dialogue_ack",
            temperature=0.5,
            max_tokens=config.dialogue_ack_max_tokens,
        )
    except Exception as e:
        logger.warning("dialogue_ack_fallback", error=str(e))
        return result.reply

    text = " ".join(completion["content"].split()).strip("\"' ")
    if not text or len(text) > 280 or "?" in text:
        logger.info("dialogue_ack_unusable", length=len(text))
        return result.reply
    return text
