from __future__ import annotations

import re
import time
import uuid
from typing import Any, List, Mapping, Optional

from tripchat.agents.planner import PlannerDispatch
from tripchat.agents.responder import INTERNAL_ERROR_REPLY, RESET_REPLY, TURN_ERROR_REPLY, Responder
from tripchat.core.errors import StateValidationError, TurnValidationError
from tripchat.core.logger import SessionLogger
from tripchat.core.nlu import parse_answer
from tripchat.core.session_store import InMemorySessionStore, SessionStore
from tripchat.core.types import (
    ChatResponse,
    DialogueState,
    Entities,
    Session,
    SessionInfo,
    StoreStats,
    Turn,
)
from tripchat.graph.dialogue_graph import TurnState, build_dialogue_graph, initial_turn_state, turn_config
from tripchat.llm.bedrock import BedrockGenerator, TextGenerator


# Only a bare reset phrase counts; "cancel my hotel" is an ordinary message
RESET_RE = re.compile(r"^\s*(?:cancel|never mind|reset|start over)\W*$", re.I)


class DialoguePipeline:
    def __init__(
        self,
        store: Optional[SessionStore] = None,
        generator: Optional[TextGenerator] = None,
        model_name: Optional[str] = None,
    ) -> None:
        self.store = store or InMemorySessionStore()
        self.generator = generator or BedrockGenerator()
        self.model_name = model_name
        self.started_at = time.time()
        self.graph = build_dialogue_graph()

    def _run_graph(self, state: TurnState, logger: SessionLogger) -> TurnState:
        planner = PlannerDispatch(self.generator, logger, self.model_name)
        return self.graph.invoke(state, turn_config(planner, Responder(logger), logger))

    def _is_cancel(self, text: str) -> bool:
        return bool(RESET_RE.match(text))

    def _load_session(self, session_id: str) -> Session:
        session = self.store.get(session_id)
        if session is None:
            return Session(session_id=session_id)
        session.check_invariants()
        return session

    def _answer_pending(self, session: Session, message: str, logger: SessionLogger) -> None:
        field = session.pending_field
        value = parse_answer(field, message)
        filled = Entities.model_validate({field: value}) if value is not None else Entities()
        session.add_turn("user", message, intent=session.intent.value, entities=filled)
        session.context = session.context.merged(filled)
        session.pending_field = None
        logger.step("pending_answer", {"field": field, "message": message}, {"value": filled.get(field)})

    def _respond(
        self,
        session: Session,
        reply: str,
        done: bool,
        intent: Optional[str],
        had_context: bool,
        logger: SessionLogger,
    ) -> ChatResponse:
        self.store.set(session)
        logger.assistant_message(reply)
        return ChatResponse(
            session_id=session.session_id,
            reply=reply,
            done=done,
            intent=intent,
            conversation_turn=session.turn,
            has_context=had_context,
        )

    def process(
        self,
        user_message: Any,
        session_id: str | None = None,
        profile: Optional[Mapping[str, Any]] = None,
    ) -> ChatResponse:
        if not isinstance(user_message, str):
            raise TurnValidationError("message is required and must be a string")

        sid = session_id or str(uuid.uuid4())
        logger = SessionLogger(sid)
        logger.user_message(user_message)

        try:
            session = self._load_session(sid)
        except StateValidationError as ex:
            logger.error("Stored session failed validation; resetting", detail=str(ex))
            session = Session(session_id=sid)
            return self._respond(session, INTERNAL_ERROR_REPLY, True, None, False, logger)

        had_context = bool(session.history)
        if profile:
            session.profile.update(profile)

        if self._is_cancel(user_message):
            session = Session(session_id=sid, profile=session.profile)
            logger.info("Reset command recognized; state reset")
            return self._respond(session, RESET_REPLY, True, None, had_context, logger)

        session.turn += 1
        resume = session.pending_field is not None
        try:
            if resume:
                self._answer_pending(session, user_message, logger)
            out = self._run_graph(initial_turn_state(user_message, session, resume=resume), logger)
            session = out["session"]
            session.check_invariants()
        except StateValidationError as ex:
            logger.error("Turn produced an invalid session; resetting", detail=str(ex))
            session = Session(session_id=sid, turn=session.turn, profile=session.profile)
            return self._respond(session, INTERNAL_ERROR_REPLY, True, None, had_context, logger)
        except Exception as ex:  # noqa: BLE001
            # Turn fails atomically: the stored snapshot is left untouched
            logger.error("Turn failed", detail=repr(ex))
            logger.assistant_message(TURN_ERROR_REPLY)
            return ChatResponse(
                session_id=sid,
                reply=TURN_ERROR_REPLY,
                done=True,
                intent=None,
                conversation_turn=max(session.turn - 1, 0),
                has_context=had_context,
            )

        logger.state_transition(out["fsm_state"].value, DialogueState.idle.value)
        intent = out["intent"].value if out["intent"] is not None else None
        return self._respond(session, out["reply"], out["done"], intent, had_context, logger)

    def history(self, session_id: str) -> Optional[List[Turn]]:
        return self.store.history(session_id)

    def clear_session(self, session_id: str) -> None:
        self.store.delete(session_id)

    def session_info(self, session_id: str) -> Optional[SessionInfo]:
        session = self.store.get(session_id)
        if session is None:
            return None
        return SessionInfo(
            session_id=session_id,
            conversation_turn=session.turn,
            conversation_context=session.context.as_dict(),
            history_length=len(session.history),
            last_intent=session.intent.value if session.intent else None,
            previous_plans=len(session.plans),
            pending_field=session.pending_field,
        )

    def stats(self) -> StoreStats:
        active = len(self.store) if hasattr(self.store, "__len__") else 0
        max_age = getattr(self.store, "max_age_seconds", 0.0)
        return StoreStats(
            active_sessions=active,
            max_age_minutes=max_age / 60,
            uptime_seconds=round(time.time() - self.started_at, 1),
        )
