from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from tripchat.core.config import get_settings
from tripchat.core.errors import GenerationEmptyError, GenerationError, UnknownIntentError
from tripchat.core.logger import SessionLogger
from tripchat.core.types import Entities, IntentName
from tripchat.llm.bedrock import TextGenerator

PLAN_UNAVAILABLE = "Plan unavailable right now."

DESTINATIONS_PROMPT = (
    "You are a travel assistant recommending destinations.\n"
    "Use the context (month or season, budget, interests, and any profile details) "
    "to suggest 3 destinations. For each give one line on why it fits and one practical tip.\n"
    "Answer in concise Markdown."
)

PACKING_PROMPT = (
    "You are a travel assistant writing a packing list.\n"
    "Use the destination, trip length and month or season in the context. "
    "Group items by category, account for the expected weather, and scale quantities to the trip length.\n"
    "Answer in concise Markdown."
)

ATTRACTIONS_PROMPT = (
    "You are a travel assistant planning local attractions.\n"
    "Use the destination, trip length and interests in the context to build a day-by-day outline "
    "with 2-3 attractions per day that match the interests.\n"
    "Answer in concise Markdown."
)

INTENT_TEMPLATES: Dict[IntentName, str] = {
    IntentName.destination_recommendations: DESTINATIONS_PROMPT,
    IntentName.packing_suggestions: PACKING_PROMPT,
    IntentName.local_attractions: ATTRACTIONS_PROMPT,
}


def template_for(intent: Any) -> str:
    try:
        return INTENT_TEMPLATES[IntentName(intent)]
    except (ValueError, KeyError):
        raise UnknownIntentError(intent) from None


def build_user_payload(entities: Entities, profile: Optional[Mapping[str, Any]] = None) -> str:
    ctx = {**dict(profile or {}), **entities.as_dict()}
    return "Context:\n" + json.dumps(ctx, indent=2, ensure_ascii=False, default=str)


class PlannerDispatch:
    def __init__(self, generator: TextGenerator, logger: SessionLogger, model_name: Optional[str] = None) -> None:
        self.generator = generator
        self.logger = logger
        self.model_name = model_name or get_settings().bedrock_model_id

    def plan(self, intent: Any, entities: Entities, profile: Optional[Mapping[str, Any]] = None) -> str:
        system = template_for(intent)
        payload = build_user_payload(entities, profile)
        try:
            text = self.generator.generate(system, payload, self.model_name)
            if not isinstance(text, str) or not text.strip():
                raise GenerationEmptyError("generator returned no text")
        except GenerationError as ex:
            self.logger.error("Generation failed", kind=ex.kind, detail=str(ex))
            text = PLAN_UNAVAILABLE
        except Exception as ex:  # noqa: BLE001
            self.logger.error("Generation failed", kind="unexpected", detail=repr(ex))
            text = PLAN_UNAVAILABLE
        self.logger.step(
            "planner",
            {"intent": IntentName(intent).value, "entities": entities.as_dict()},
            {"result": text},
        )
        return text
