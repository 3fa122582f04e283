from __future__ import annotations

from typing import Optional

from tripchat.core.logger import SessionLogger
from tripchat.core.types import PlanRecord

FIELD_QUESTIONS = {
    "destination": "Where are you going? (city/country/region)",
    "month_or_season": "When is the trip? (month or season)",
    "trip_length_days": "How many days is the trip?",
    "budget": "What's your budget? (low / medium / high)",
    "interests": "Any interests? (e.g., hiking, food, museums)",
}

FORMAT_HINTS = {
    "interests": " (comma-separated)",
    "trip_length_days": " (number of days)",
}

CLARIFY_REFERENCE = "I'm not sure what you're referring to. Can you clarify?"
UNSUPPORTED_REPLY = (
    "I can help with destination recommendations, packing suggestions, or local attractions. "
    "What would you like?"
)
INTERNAL_ERROR_REPLY = "I encountered an internal error. Please try again."
TURN_ERROR_REPLY = "I'm sorry, I encountered an error. Could you try asking again?"
RESET_REPLY = "Okay, I've reset this conversation. How can I help next?"


def question_for(field: str) -> str:
    return FIELD_QUESTIONS.get(field, f"Please provide {field.replace('_', ' ')}") + FORMAT_HINTS.get(field, "")


class Responder:
    def __init__(self, logger: SessionLogger) -> None:
        self.logger = logger

    def ask(self, field: str) -> str:
        content = question_for(field)
        self.logger.step("responder", {"missing_field": field}, {"reply": content})
        return content

    def follow_up(self, last_plan: Optional[PlanRecord]) -> str:
        if last_plan is None:
            content = CLARIFY_REFERENCE
        else:
            destination = last_plan.entities.destination or "the destination"
            content = f"Sure! What more would you like to know about your trip to {destination}?"
        self.logger.step(
            "responder",
            {"follow_up": True, "last_plan_intent": last_plan.intent.value if last_plan else None},
            {"reply": content},
        )
        return content
