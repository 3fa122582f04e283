from __future__ import annotations


class TripChatError(Exception):
    """Base class for every error raised by the dialogue manager."""


class TurnValidationError(TripChatError):
    """The inbound turn is malformed (missing or non-string message)."""


class ClassificationAmbiguity(TripChatError):
    """Reserved: the rule classifier is total and never raises this."""


class UnknownIntentError(TripChatError):
    def __init__(self, intent: object) -> None:
        super().__init__(f"Unknown intent: {intent}")
        self.intent = intent


class StateValidationError(TripChatError):
    """A session snapshot does not satisfy its structural invariants."""


class GenerationError(TripChatError):
    kind = "generation"


class GenerationNetworkError(GenerationError):
    kind = "network"


class GenerationStatusError(GenerationError):
    kind = "status"


class GenerationEmptyError(GenerationError):
    kind = "empty"
