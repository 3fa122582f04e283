import json

from tripchat.core.pipeline import DialoguePipeline
from tripchat.core.session_store import InMemorySessionStore


def read_events(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").strip().splitlines()]


def test_logs_are_written_per_session(logs_dir, generator):
    pipe = DialoguePipeline(store=InMemorySessionStore(), generator=generator)
    r = pipe.process("Where should I go in November, medium budget?")

    log_file = logs_dir / f"session_{r.session_id}.jsonl"
    assert log_file.exists()
    events = read_events(log_file)
    kinds = [e["event"] for e in events]
    assert kinds[0] == "user_message"
    assert "agent_step" in kinds
    assert kinds[-1] == "assistant_message"
    assert all(e["session_id"] == r.session_id for e in events)


def test_state_transitions_follow_the_machine(logs_dir, generator):
    pipe = DialoguePipeline(store=InMemorySessionStore(), generator=generator)
    r = pipe.process("What should I pack for hiking in Patagonia in March for 10 days?")

    transitions = [
        (e["payload"]["from"], e["payload"]["to"])
        for e in read_events(logs_dir / f"session_{r.session_id}.jsonl")
        if e["event"] == "state_transition"
    ]
    assert transitions == [
        ("idle", "routing"),
        ("routing", "checking_completeness"),
        ("checking_completeness", "planning"),
        ("planning", "idle"),
    ]


def test_generation_failure_is_logged(logs_dir, failing_generator):
    pipe = DialoguePipeline(store=InMemorySessionStore(), generator=failing_generator)
    r = pipe.process("What should I pack for Iceland in winter for 2 weeks?")

    errors = [e for e in read_events(logs_dir / f"session_{r.session_id}.jsonl") if e["event"] == "error"]
    assert errors
    assert errors[0]["payload"]["kind"] == "network"
