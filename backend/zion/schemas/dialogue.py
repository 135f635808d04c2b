"""Qualification dialogue schemas.

``DialogueNotes`` is the whole dialogue state. The server keeps nothing between
turns: the client receives notes with every reply and sends them back verbatim
with its next message. Notes are frozen; the engine returns an updated copy.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

TRANSCRIPT_WINDOW = 20


class Stage(str, Enum):
    START = "start"
    GOAL = "goal"
    BUSINESS_TYPE = "business_type"
    TARGET_METRIC = "target_metric"
    BOTTLENECK = "bottleneck"
    CAPTURE = "capture"

    @property
    def index(self) -> int:
        return STAGE_ORDER.index(self)


STAGE_ORDER = [
    Stage.START,
    Stage.GOAL,
    Stage.BUSINESS_TYPE,
    Stage.TARGET_METRIC,
    Stage.BOTTLENECK,
    Stage.CAPTURE,
]


class CaptureIntent(str, Enum):
    NONE = "none"
    ASK_CONTACT = "ask_contact"


class TranscriptEntry(BaseModel):
    turn: int
    text: str
    at: str

    model_config = {"frozen": True}


class DialogueSlots(BaseModel):
    primary_goal: Optional[str] = None
    business_type: Optional[str] = None
    target_metric: Optional[str] = None
    bottleneck: Optional[str] = None

    model_config = {"frozen": True}


class DialogueNotes(BaseModel):
    stage: Stage = Stage.START
    slots: DialogueSlots = Field(default_factory=DialogueSlots)
    transcript: list[TranscriptEntry] = Field(default_factory=list)
    questions_answered: int = Field(0, ge=0)
    inputs: int = Field(0, ge=0)
    capture_locked: bool = False
    updated_at: Optional[str] = None

    model_config = {"frozen": True, "extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def _locked_means_capture(cls, data: Any) -> Any:
        # Notes come back from the client; capture and the lock always travel together.
        if isinstance(data, dict) and (data.get("capture_locked") is True or data.get("stage") == Stage.CAPTURE.value):
            data = {**data, "stage": Stage.CAPTURE.value, "capture_locked": True}
        return data

    def advance(self, stage: Stage, **changes: Any) -> "DialogueNotes":
        """Copy with a new stage. Moving backwards is a programming error."""
        if stage.index < self.stage.index:
            raise ValueError(f"dialogue cannot move back from {self.stage.value} to {stage.value}")
        if stage == Stage.CAPTURE:
            changes["capture_locked"] = True
        return self.model_copy(update={"stage": stage, **changes})

    def with_entry(self, entry: TranscriptEntry) -> list[TranscriptEntry]:
        return [*self.transcript, entry][-TRANSCRIPT_WINDOW:]


class DialogueTurnRequest(BaseModel):
    message: str = ""
    session_id: Optional[str] = None
    turn: int = Field(0, ge=0)
    notes: Optional[DialogueNotes] = None

    model_config = {"extra": "ignore"}


class DialogueTurnResponse(BaseModel):
    reply: str
    next_question: str
    capture_intent: CaptureIntent
    turn: int
    session_id: Optional[str] = None
    notes: DialogueNotes
