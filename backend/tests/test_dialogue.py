"""Tests for the qualification dialogue state machine."""

from datetime import datetime, timezone

import pytest

from zion.config import Settings
from zion.schemas.dialogue import TRANSCRIPT_WINDOW, CaptureIntent, DialogueNotes, Stage
from zion.services.dialogue import (
    ACKNOWLEDGEMENTS, CAPTURE_REPLY, QUESTIONS, DialogueEngine, enrich_reply, is_low_signal, normalize_goal,
)

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


def run(engine, messages, notes=None):
    results = []
    for message in messages:
        result = engine.step(message, notes, now=NOW)
        notes = result.notes
        results.append(result)
    return results


class TestLowSignal:
    @pytest.mark.parametrize("text", [
        "ok", "OK.", "yes", "idk", "not sure", "hi", "k", "??", "  ",
        "ok?", "idk?", "Not sure?!", "yes,", "no thanks", "yes please", "ok cool",
    ])
    def test_low_signal(self, text):
        assert is_low_signal(text)

    @pytest.mark.parametrize("text", ["more leads", "Acme", "We sell landscaping services", "ok so we sell roofing"])
    def test_substantive(self, text):
        assert not is_low_signal(text)


class TestGoalNormalization:
    @pytest.mark.parametrize("text,label", [
        ("I need more leads", "Generate more leads"),
        ("grow SALES", "Increase sales"),
        ("more revenue please", "Increase sales"),
        ("fill my booking calendar", "Fill the booking calendar"),
        ("we want to automate intake", "Automate operations"),
    ])
    def test_keyword_labels(self, text, label):
        assert normalize_goal(text) == label

    def test_unknown_goal(self):
        assert normalize_goal("be famous") is None


class TestDialogueEngine:
    def setup_method(self):
        self.engine = DialogueEngine(max_questions=3, max_inputs=10)

    def test_landscaping_first_turn(self):
        result = self.engine.step("We sell landscaping services to homeowners", None, now=NOW)
        assert result.capture_intent == CaptureIntent.NONE
        assert result.notes.stage == Stage.GOAL
        assert result.notes.slots.business_type == "We sell landscaping services to homeowners"
        assert result.next_question == QUESTIONS[Stage.GOAL]
        assert result.reply == ACKNOWLEDGEMENTS["business_type"]

    def test_goal_first_turn_moves_to_business_type(self):
        result = self.engine.step("More leads", None, now=NOW)
        assert result.notes.slots.primary_goal == "Generate more leads"
        assert result.notes.stage == Stage.BUSINESS_TYPE

    def test_unrecognised_opener_fills_goal(self):
        result = self.engine.step("Be the best in town", None, now=NOW)
        assert result.notes.slots.primary_goal == "Be the best in town"
        assert result.notes.stage == Stage.BUSINESS_TYPE

    def test_capture_on_third_answer(self):
        results = run(self.engine, ["More leads", "I run a bakery", "Twenty new wholesale accounts"])
        assert [r.capture_intent for r in results] == [
            CaptureIntent.NONE, CaptureIntent.NONE, CaptureIntent.ASK_CONTACT,
        ]
        final = results[-1]
        assert final.notes.stage == Stage.CAPTURE
        assert final.notes.capture_locked is True
        assert final.next_question == QUESTIONS[Stage.CAPTURE]
        assert final.reply == CAPTURE_REPLY

    def test_capture_is_sticky(self):
        results = run(self.engine, ["More leads", "I run a bakery", "Twenty accounts", "wait", "actually more sales"])
        for result in results[2:]:
            assert result.capture_intent == CaptureIntent.ASK_CONTACT
            assert result.notes.capture_locked is True
            assert result.next_question == QUESTIONS[Stage.CAPTURE]
            assert result.reply == CAPTURE_REPLY
        assert results[-1].notes.slots.primary_goal == "Generate more leads"

    def test_low_signal_does_not_advance(self):
        first = self.engine.step("More leads", None, now=NOW)
        second = self.engine.step("ok", first.notes, now=NOW)
        assert second.notes.stage == first.notes.stage
        assert second.next_question == first.next_question
        assert second.notes.slots == first.notes.slots
        assert second.notes.questions_answered == 1
        assert second.capture_intent == CaptureIntent.NONE

    def test_low_signal_on_fresh_session(self):
        result = self.engine.step("hi", None, now=NOW)
        assert result.notes.stage == Stage.START
        assert result.next_question == QUESTIONS[Stage.START]
        assert result.notes.questions_answered == 0

    def test_low_signal_does_not_count_as_answer(self):
        results = run(self.engine, ["More leads", "idk", "ok", "I run a bakery", "yes", "Thirty jobs a month"])
        assert [r.capture_intent for r in results].count(CaptureIntent.ASK_CONTACT) == 1
        assert results[-1].capture_intent == CaptureIntent.ASK_CONTACT

    def test_input_ceiling_forces_capture(self):
        engine = DialogueEngine(max_questions=3, max_inputs=4)
        results = run(engine, ["ok", "ok", "ok", "ok"])
        assert results[2].capture_intent == CaptureIntent.NONE
        assert results[3].capture_intent == CaptureIntent.ASK_CONTACT

    def test_stage_never_moves_backwards(self):
        results = run(self.engine, ["We sell landscaping services", "more leads", "ok", "50 jobs a month"])
        indexes = [r.notes.stage.index for r in results]
        assert indexes == sorted(indexes)

    def test_skips_slot_filled_by_opener(self):
        results = run(DialogueEngine(max_questions=5), ["We sell landscaping services", "more leads"])
        assert results[1].notes.stage == Stage.TARGET_METRIC

    def test_all_slots_filled_captures(self):
        engine = DialogueEngine(max_questions=10)
        results = run(engine, ["Be famous", "I run a bakery", "Ten orders a day", "Nobody answers the phone"])
        assert results[-1].capture_intent == CaptureIntent.ASK_CONTACT
        assert results[-1].notes.slots.bottleneck == "Nobody answers the phone"

    def test_transcript_append_only_and_windowed(self):
        engine = DialogueEngine(max_questions=100, max_inputs=100)
        notes = None
        for i in range(TRANSCRIPT_WINDOW + 5):
            notes = engine.step(f"message {i} ok", notes, now=NOW).notes
        assert len(notes.transcript) == TRANSCRIPT_WINDOW
        turns = [entry.turn for entry in notes.transcript]
        assert turns == sorted(turns)
        assert turns[-1] == TRANSCRIPT_WINDOW + 5
        assert notes.inputs == TRANSCRIPT_WINDOW + 5

    def test_timestamps(self):
        result = self.engine.step("More leads", None, now=NOW)
        assert result.notes.updated_at == NOW.isoformat()
        assert result.notes.transcript[0].at == NOW.isoformat()
        assert result.notes.transcript[0].turn == 1

    def test_input_notes_are_not_mutated(self):
        first = self.engine.step("More leads", None, now=NOW)
        snapshot = first.notes.model_dump()
        self.engine.step("I run a bakery", first.notes, now=NOW)
        assert first.notes.model_dump() == snapshot

    def test_notes_round_trip_through_json(self):
        first = self.engine.step("More leads", None, now=NOW)
        resent = DialogueNotes.model_validate_json(first.notes.model_dump_json())
        second = self.engine.step("I run a bakery", resent, now=NOW)
        assert second.notes.stage == Stage.TARGET_METRIC

    def test_locked_notes_coerced_to_capture(self):
        notes = DialogueNotes.model_validate({"stage": "goal", "capture_locked": True})
        assert notes.stage == Stage.CAPTURE
        result = self.engine.step("Tell me more", notes, now=NOW)
        assert result.capture_intent == CaptureIntent.ASK_CONTACT

    def test_capture_stage_implies_lock(self):
        notes = DialogueNotes.model_validate({"stage": "capture", "capture_locked": False})
        assert notes.capture_locked is True
        assert DialogueNotes(stage=Stage.CAPTURE).capture_locked is True

    @pytest.mark.parametrize("message", ["We run a bakery in town", "ok"])
    def test_unlocked_capture_notes_keep_asking_for_contact(self, message):
        notes = DialogueNotes.model_validate({"stage": "capture", "capture_locked": False})
        result = self.engine.step(message, notes, now=NOW)
        assert result.capture_intent == CaptureIntent.ASK_CONTACT
        assert result.next_question == QUESTIONS[Stage.CAPTURE]
        assert result.notes.capture_locked is True

    def test_acknowledgement_with_question_mark_does_not_advance(self):
        first = self.engine.step("More leads", None, now=NOW)
        for message in ["ok?", "no thanks", "yes please"]:
            held = self.engine.step(message, first.notes, now=NOW)
            assert held.notes.stage == Stage.BUSINESS_TYPE
            assert held.notes.questions_answered == 1
            assert held.notes.slots.business_type is None

    def test_advance_rejects_backwards(self):
        notes = DialogueNotes(stage=Stage.TARGET_METRIC)
        with pytest.raises(ValueError):
            notes.advance(Stage.GOAL)

    def test_from_settings(self):
        engine = DialogueEngine.from_settings(Settings(dialogue_max_questions=5, dialogue_max_inputs=7))
        assert engine.max_questions == 5
        assert engine.max_inputs == 7


class TestReplyEnrichment:
    def setup_method(self):
        self.result = DialogueEngine().step("More leads", None, now=NOW)

    @pytest.mark.asyncio
    async def test_model_acknowledgement_used(self, make_llm):
        llm = make_llm(["Leads are the lifeblood of a growing studio."])
        reply = await enrich_reply(llm, "More leads", QUESTIONS[Stage.START], self.result)
        assert reply == "Leads are the lifeblood of a growing studio."
        assert "More leads" in llm.calls[0]["prompt"]

    @pytest.mark.asyncio
    async def test_question_from_model_rejected(self, make_llm):
        llm = make_llm(["What industry are you in?"])
        reply = await enrich_reply(llm, "More leads", QUESTIONS[Stage.START], self.result)
        assert reply == self.result.reply

    @pytest.mark.asyncio
    async def test_model_failure_falls_back(self, make_llm):
        llm = make_llm([RuntimeError("boom")])
        reply = await enrich_reply(llm, "More leads", QUESTIONS[Stage.START], self.result)
        assert reply == self.result.reply

    @pytest.mark.asyncio
    async def test_capture_reply_never_enriched(self, make_llm):
        captured = run(DialogueEngine(max_questions=1), ["More leads"])[-1]
        llm = make_llm(["Should not be used."])
        reply = await enrich_reply(llm, "More leads", QUESTIONS[Stage.START], captured)
        assert reply == CAPTURE_REPLY
        assert llm.calls == []
