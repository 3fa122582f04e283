"""
Turn-level dialogue state machine.

    routing -> (follow_up) -> checking_completeness -> asking | planning -> END

Node names are the machine's states; TRANSITIONS is the full edge table.
A turn that resumes after a pending-field answer enters directly at
checking_completeness.

The graph is compiled once. The per-session planner, responder and logger
travel with each invocation under config["configurable"]["turn"].
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, TypedDict

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph

from tripchat.agents.planner import PlannerDispatch
from tripchat.agents.responder import UNSUPPORTED_REPLY, Responder
from tripchat.core.errors import UnknownIntentError
from tripchat.core.logger import SessionLogger
from tripchat.core.nlu import classify
from tripchat.core.normalize import is_missing_field
from tripchat.core.types import (
    FOLLOW_UP_INTENTS,
    INTENT_TO_REQUIRED_SLOTS,
    DialogueState,
    Entities,
    IntentName,
    PlanRecord,
    Session,
)


class TurnState(TypedDict):
    message: str
    session: Session
    resume: bool
    fsm_state: DialogueState
    intent: Optional[IntentName]
    entities: Entities
    extracted: Entities
    missing_field: Optional[str]
    reply: str
    done: bool


TRANSITIONS: Dict[str, Dict[str, str]] = {
    START: {"route": DialogueState.routing.value, "check": DialogueState.checking_completeness.value},
    DialogueState.routing.value: {
        "follow_up": DialogueState.follow_up.value,
        "check": DialogueState.checking_completeness.value,
    },
    DialogueState.follow_up.value: {"check": DialogueState.checking_completeness.value, "done": END},
    DialogueState.checking_completeness.value: {
        "ask": DialogueState.asking.value,
        "plan": DialogueState.planning.value,
    },
}


@dataclass(frozen=True)
class TurnContext:
    planner: PlannerDispatch
    responder: Responder
    logger: SessionLogger


def turn_config(planner: PlannerDispatch, responder: Responder, logger: SessionLogger) -> RunnableConfig:
    return {"configurable": {"turn": TurnContext(planner, responder, logger)}}


def _turn(config: RunnableConfig) -> TurnContext:
    return config["configurable"]["turn"]


def initial_turn_state(
    message: str,
    session: Session,
    resume: bool = False,
) -> TurnState:
    return TurnState(
        message=message,
        session=session,
        resume=resume,
        fsm_state=DialogueState.idle,
        intent=session.intent if resume else None,
        entities=session.context if resume else Entities(),
        extracted=Entities(),
        missing_field=None,
        reply="",
        done=False,
    )


def first_missing_field(intent: Optional[IntentName], entities: Entities) -> Optional[str]:
    """First required field (in declared order) that is still missing."""
    if intent is None:
        return None
    for field in INTENT_TO_REQUIRED_SLOTS.get(intent, []):
        if is_missing_field(field, entities.get(field)):
            return field
    return None


def decide_completeness(intent: Optional[IntentName], entities: Entities) -> Literal["ask", "plan"]:
    return "ask" if first_missing_field(intent, entities) else "plan"


def entry_edge(state: TurnState) -> str:
    return "check" if state["resume"] else "route"


def after_routing(state: TurnState) -> str:
    return "follow_up" if state["intent"] in FOLLOW_UP_INTENTS else "check"


def after_follow_up(state: TurnState) -> str:
    return "done" if state["done"] else "check"


def after_checking(state: TurnState) -> str:
    return "ask" if state["missing_field"] else "plan"


def _enter(state: TurnState, new_state: DialogueState, logger: SessionLogger) -> Dict[str, Any]:
    logger.state_transition(state["fsm_state"].value, new_state.value)
    return {"fsm_state": new_state}


def _reply(session: Session, text: str, intent: Optional[IntentName], entities: Optional[Entities]) -> None:
    session.add_turn("assistant", text, intent=intent.value if intent else None, entities=entities)


def routing_node(state: TurnState, config: RunnableConfig) -> Dict[str, Any]:
    logger = _turn(config).logger
    update = _enter(state, DialogueState.routing, logger)
    session = state["session"]
    result = classify(state["message"], session.context)
    session.add_turn("user", state["message"], intent=result.intent.value, entities=result.extracted)
    logger.step(
        "classifier",
        {"message": state["message"], "context": session.context.as_dict()},
        {
            "intent": result.intent.value,
            "entities": result.entities.as_dict(),
            "extracted": result.extracted.as_dict(),
            "is_continuation": result.is_continuation,
        },
    )
    if result.intent not in FOLLOW_UP_INTENTS:
        session.intent = result.intent
        session.context = result.entities
        session.pending_field = None
    update.update(
        session=session,
        intent=result.intent,
        entities=result.entities,
        extracted=result.extracted,
    )
    return update


def follow_up_node(state: TurnState, config: RunnableConfig) -> Dict[str, Any]:
    turn = _turn(config)
    update = _enter(state, DialogueState.follow_up, turn.logger)
    session = state["session"]
    last_plan = session.last_plan()

    if last_plan is None or state["intent"] == IntentName.follow_up:
        text = turn.responder.follow_up(last_plan)
        _reply(session, text, state["intent"], None)
        update.update(session=session, reply=text, done=True)
        return update

    # Refinement overlays the newly supplied fields onto the last plan
    refined = last_plan.entities.merged(state["extracted"])
    session.intent = last_plan.intent
    session.context = refined
    session.pending_field = None
    turn.logger.step(
        "follow_up",
        {"last_plan": last_plan.entities.as_dict(), "extracted": state["extracted"].as_dict()},
        {"intent": last_plan.intent.value, "entities": refined.as_dict()},
    )
    update.update(session=session, intent=last_plan.intent, entities=refined)
    return update


def checking_node(state: TurnState, config: RunnableConfig) -> Dict[str, Any]:
    update = _enter(state, DialogueState.checking_completeness, _turn(config).logger)
    update["missing_field"] = first_missing_field(state["intent"], state["entities"])
    return update


def asking_node(state: TurnState, config: RunnableConfig) -> Dict[str, Any]:
    turn = _turn(config)
    update = _enter(state, DialogueState.asking, turn.logger)
    session = state["session"]
    field = state["missing_field"]
    text = turn.responder.ask(field)
    session.pending_field = field
    _reply(session, text, state["intent"], None)
    update.update(session=session, reply=text, done=False)
    return update


def planning_node(state: TurnState, config: RunnableConfig) -> Dict[str, Any]:
    turn = _turn(config)
    update = _enter(state, DialogueState.planning, turn.logger)
    session = state["session"]
    intent, entities = state["intent"], state["entities"]
    session.pending_field = None
    try:
        text = turn.planner.plan(intent, entities, session.profile)
    except UnknownIntentError as ex:
        turn.logger.error("Unknown intent at planning time", intent=str(ex.intent))
        _reply(session, UNSUPPORTED_REPLY, None, None)
        update.update(session=session, reply=UNSUPPORTED_REPLY, done=True)
        return update

    session.plans.append(PlanRecord(intent=intent, entities=entities, result=text))
    _reply(session, text, intent, entities)
    update.update(session=session, reply=text, done=True)
    return update


def build_dialogue_graph():
    g = StateGraph(TurnState)
    g.add_node(DialogueState.routing.value, routing_node)
    g.add_node(DialogueState.follow_up.value, follow_up_node)
    g.add_node(DialogueState.checking_completeness.value, checking_node)
    g.add_node(DialogueState.asking.value, asking_node)
    g.add_node(DialogueState.planning.value, planning_node)

    g.add_conditional_edges(START, entry_edge, TRANSITIONS[START])
    g.add_conditional_edges(DialogueState.routing.value, after_routing, TRANSITIONS[DialogueState.routing.value])
    g.add_conditional_edges(DialogueState.follow_up.value, after_follow_up, TRANSITIONS[DialogueState.follow_up.value])
    g.add_conditional_edges(
        DialogueState.checking_completeness.value,
        after_checking,
        TRANSITIONS[DialogueState.checking_completeness.value],
    )
    g.add_edge(DialogueState.asking.value, END)
    g.add_edge(DialogueState.planning.value, END)
    return g.compile()
