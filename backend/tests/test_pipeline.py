import gc
import weakref

import pytest

import tripchat.core.pipeline as pipeline_mod

from tripchat.agents.planner import PLAN_UNAVAILABLE
from tripchat.agents.responder import INTERNAL_ERROR_REPLY, RESET_REPLY, TURN_ERROR_REPLY, question_for
from tripchat.core.errors import TurnValidationError
from tripchat.core.logger import SessionLogger
from tripchat.core.pipeline import DialoguePipeline
from tripchat.core.session_store import InMemorySessionStore
from tripchat.core.types import Session


@pytest.fixture
def store(clock):
    return InMemorySessionStore(max_age_seconds=1800, max_history=20, clock=clock)


@pytest.fixture
def pipe(store, generator):
    return DialoguePipeline(store=store, generator=generator)


def test_pipeline_asks_then_plans_with_answer(pipe, generator):
    r1 = pipe.process("Where should I go in November, medium budget?")
    assert r1.done is False
    assert r1.intent == "destination_recommendations"
    assert r1.reply == question_for("interests")

    r2 = pipe.process("hiking, food", session_id=r1.session_id)
    assert r2.done is True
    assert r2.reply == "Here is your plan."
    assert r2.intent == "destination_recommendations"
    info = pipe.session_info(r1.session_id)
    assert info.conversation_context["interests"] == ["hiking", "food"]
    assert info.pending_field is None
    assert len(generator.calls) == 1


def test_pending_numeric_answer_parsed(pipe):
    r1 = pipe.process("What should I see in Rome? I love food")
    assert r1.intent == "local_attractions"
    assert r1.done is False
    assert pipe.session_info(r1.session_id).pending_field == "trip_length_days"
    assert r1.reply.endswith("(number of days)")

    r2 = pipe.process("5 days", session_id=r1.session_id)
    assert r2.done is True
    assert pipe.session_info(r1.session_id).conversation_context["trip_length_days"] == 5


def test_unparseable_answer_asks_same_field_again(pipe):
    r1 = pipe.process("What should I see in Rome? I love food")
    r2 = pipe.process("not sure yet", session_id=r1.session_id)
    assert r2.done is False
    assert r2.reply == r1.reply
    assert pipe.session_info(r1.session_id).pending_field == "trip_length_days"


def test_refinement_after_completed_plan(pipe, generator):
    r1 = pipe.process("Where should I go in November, medium budget?")
    pipe.process("hiking", session_id=r1.session_id)
    r3 = pipe.process("what about something cheaper", session_id=r1.session_id)

    assert r3.done is True
    assert r3.intent == "destination_recommendations"
    assert len(generator.calls) == 2
    assert '"budget": "low"' in generator.calls[-1][1]
    assert pipe.session_info(r1.session_id).previous_plans == 2


def test_turn_counter_and_context_flag(pipe):
    r1 = pipe.process("What should I pack for hiking in Patagonia in March for 10 days?")
    assert r1.conversation_turn == 1
    assert r1.has_context is False

    r2 = pipe.process("tell me more", session_id=r1.session_id)
    assert r2.conversation_turn == 2
    assert r2.has_context is True
    assert r2.intent == "follow_up"
    assert "Patagonia" in r2.reply


def test_reset_clears_session(pipe):
    r1 = pipe.process("Where should I go in November, medium budget?")
    r2 = pipe.process("start over", session_id=r1.session_id)
    assert r2.reply == RESET_REPLY
    assert r2.done is True
    info = pipe.session_info(r1.session_id)
    assert info.conversation_context == {}
    assert info.pending_field is None


def test_non_string_message_rejected(pipe):
    with pytest.raises(TurnValidationError):
        pipe.process(None)
    with pytest.raises(TurnValidationError):
        pipe.process(42, session_id="s1")


def test_generation_failure_still_completes_turn(store, failing_generator):
    pipe = DialoguePipeline(store=store, generator=failing_generator)
    r = pipe.process("What should I pack for Iceland in winter for 2 weeks?")
    assert r.reply == PLAN_UNAVAILABLE
    assert r.done is True


def test_invalid_stored_session_is_reset(pipe, store):
    store.set(Session(session_id="broken", pending_field="shoe_size"))
    r = pipe.process("hello", session_id="broken")
    assert r.reply == INTERNAL_ERROR_REPLY
    assert r.done is True
    assert store.get("broken").pending_field is None


def test_turn_failure_leaves_session_untouched(pipe, monkeypatch):
    r1 = pipe.process("Where should I go in November, medium budget?")

    def boom(state, logger):
        raise RuntimeError("graph exploded")

    monkeypatch.setattr(pipe, "_run_graph", boom)
    r2 = pipe.process("something else entirely", session_id=r1.session_id)
    assert r2.reply == TURN_ERROR_REPLY
    assert r2.done is True
    info = pipe.session_info(r1.session_id)
    assert info.conversation_turn == 1
    assert info.pending_field == "interests"


def test_history_capped_across_turns(pipe):
    sid = pipe.process("What should I pack for hiking in Patagonia in March for 10 days?").session_id
    for _ in range(12):
        pipe.process("tell me more", session_id=sid)
    history = pipe.history(sid)
    assert len(history) == 20
    assert history[-1].role == "assistant"


def test_idle_session_evicted(pipe, clock):
    r = pipe.process("What should I pack for hiking in Patagonia in March for 10 days?")
    assert pipe.history(r.session_id)
    clock.advance(31 * 60)
    assert pipe.history(r.session_id) is None
    assert pipe.session_info(r.session_id) is None


def test_clear_session_is_idempotent(pipe):
    r = pipe.process("Where should I go in November, medium budget?")
    pipe.clear_session(r.session_id)
    pipe.clear_session(r.session_id)
    assert pipe.history(r.session_id) is None


@pytest.mark.parametrize("message", ["cancel", "Start over!", "  never mind. ", "RESET"])
def test_bare_reset_phrases_reset(pipe, message):
    r1 = pipe.process("Where should I go in November, medium budget?")
    r2 = pipe.process(message, session_id=r1.session_id)
    assert r2.reply == RESET_REPLY


def test_reset_words_inside_a_request_do_not_reset(pipe, generator):
    r1 = pipe.process("Where should I go in November, medium budget?")
    r2 = pipe.process("I need to cancel my hotel, what should I pack for Rome?", session_id=r1.session_id)
    assert r2.reply != RESET_REPLY
    assert pipe.session_info(r1.session_id).conversation_turn == 2


def test_pending_answer_containing_reset_word_is_kept(pipe):
    r1 = pipe.process("What should I pack for my trip in July?")
    assert pipe.session_info(r1.session_id).pending_field == "destination"
    r2 = pipe.process("Reset Island resort", session_id=r1.session_id)
    assert r2.reply != RESET_REPLY
    assert pipe.session_info(r1.session_id).conversation_context["destination"] == "Reset Island resort"


def test_graph_is_compiled_once_per_pipeline(store, generator, monkeypatch):
    pipe = DialoguePipeline(store=store, generator=generator)

    def no_rebuild():
        raise AssertionError("graph rebuilt during a turn")

    monkeypatch.setattr(pipeline_mod, "build_dialogue_graph", no_rebuild)
    r1 = pipe.process("Where should I go in November, medium budget?")
    r2 = pipe.process("food", session_id=r1.session_id)
    assert r2.done is True


def test_expired_sessions_leave_nothing_behind(pipe, store, clock, monkeypatch):
    created = []

    class TrackedLogger(SessionLogger):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(weakref.ref(self))

    monkeypatch.setattr(pipeline_mod, "SessionLogger", TrackedLogger)
    for _ in range(50):
        pipe.process("Where should I go in November, medium budget?")

    clock.advance(31 * 60)
    assert store.sweep_expired() == 50
    gc.collect()
    assert len(created) == 50
    assert all(ref() is None for ref in created)
