from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from tripchat.core.normalize import BUDGET_SYNONYMS, capitalize_first, normalize_entities, to_positive_int
from tripchat.core.types import Entities, IntentName

MONTHS = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)
SEASONS = ("spring", "summer", "fall", "autumn", "winter")

DESTINATION_STOP_WORDS = frozenset(
    MONTHS + SEASONS + ("weekend", "trip", "vacation", "holiday", "holidays", "days", "weeks", "a", "the", "i")
)

# Checked in order after the preposition pattern finds nothing
KNOWN_PLACES = (
    "Patagonia", "Kyoto", "Tokyo", "Osaka", "Bali", "Iceland", "Alps", "Andes", "Rockies",
    "Sahara", "Lisbon", "Porto", "Seoul", "Bangkok", "New York", "London", "Paris", "Rome",
    "Barcelona", "Amsterdam", "Berlin", "Prague", "Vienna", "Budapest", "Istanbul",
    "Tel Aviv", "Athens", "Naples", "Sicily", "Madeira", "Azores", "Taipei", "San Francisco",
    "Los Angeles", "Chicago", "Sydney", "Melbourne", "Queenstown", "Cusco", "Machu Picchu", "Canada",
    "Japan", "France", "Italy", "Spain", "Germany", "Netherlands", "Portugal",
)

INTEREST_VOCABULARY = (
    "hiking", "museums", "food", "beach", "culture", "history", "nightlife",
    "shopping", "nature", "adventure", "art", "architecture",
)

_MONTH_ALT = "|".join(MONTHS)
_SEASON_ALT = "|".join(SEASONS)

_DESTINATION_PREP_RE = re.compile(r"\b(?:to|in|for)\s+([A-Z][\w'’.-]*(?:\s+[A-Z][\w'’.-]*){0,3})")
_DAYS_RE = re.compile(r"\b(\d{1,3})[\s-]*(?:days?|d)\b", re.I)
_WEEKS_RE = re.compile(r"\b(\d{1,2})[\s-]*(?:weeks?|w)\b", re.I)
_MONTH_RE = re.compile(rf"\b({_MONTH_ALT})\b", re.I)
_SEASON_RE = re.compile(rf"\b({_SEASON_ALT})\b", re.I)
_BUDGET_RE = re.compile(
    r"\b(" + "|".join(re.escape(w) for w in sorted(BUDGET_SYNONYMS, key=len, reverse=True)) + r")\b",
    re.I,
)
_INTEREST_RES = [(w, re.compile(rf"\b{w}\b", re.I)) for w in INTEREST_VOCABULARY]
_KNOWN_PLACE_RES = [(p, re.compile(rf"\b{re.escape(p)}\b", re.I)) for p in KNOWN_PLACES]

FOLLOW_UP_RE = re.compile(
    r"\b(more|tell me more|what about|how about|any other|also|additionally|instead|rather|"
    r"change|better|compare|versus|vs|prefer|cheaper|pricier|warmer|colder|shorter|longer|"
    r"that|those|it|them)\b",
    re.I,
)
PACKING_RE = re.compile(r"\b(pack|packing|luggage|suitcase|bring|clothing|clothes|gear|what to wear)\b", re.I)
ATTRACTIONS_RE = re.compile(
    r"\b(visit|visiting|attractions?|things to do|things|activities|restaurants?|museums?|sights?|see|do)\b"
    rf".*\b(?:in|at|around|near)\s+(?!(?:{_MONTH_ALT}|{_SEASON_ALT})\b)[a-z]",
    re.I,
)
GOING_TO_PLACE_RE = re.compile(r"\b(?i:go|going|visit|visiting|travel(?:l?ing)?|heading)\s+(?i:to)\s+[A-Z]")


@dataclass
class Classification:
    intent: IntentName
    entities: Entities
    extracted: Entities = field(default_factory=Entities)
    is_continuation: bool = False


def extract_destination(text: str) -> Optional[str]:
    for m in _DESTINATION_PREP_RE.finditer(text):
        words = m.group(1).split()
        if words[0].lower() in DESTINATION_STOP_WORDS:
            continue
        kept: List[str] = []
        for w in words:
            if w.lower() in DESTINATION_STOP_WORDS:
                break
            kept.append(w)
        candidate = " ".join(kept).rstrip(".'’-")
        if candidate:
            return candidate
    return infer_destination(text)


def infer_destination(text: str) -> Optional[str]:
    for place, rx in _KNOWN_PLACE_RES:
        if rx.search(text):
            return place
    return None


def extract_trip_length(text: str) -> Optional[int]:
    m = _DAYS_RE.search(text)
    if m:
        return to_positive_int(m.group(1))
    m = _WEEKS_RE.search(text)
    if m:
        weeks = to_positive_int(m.group(1))
        return weeks * 7 if weeks else None
    return None


def extract_month_or_season(text: str) -> Optional[str]:
    m = _MONTH_RE.search(text) or _SEASON_RE.search(text)
    return m.group(1).capitalize() if m else None


def extract_budget(text: str) -> Optional[str]:
    m = _BUDGET_RE.search(text)
    return BUDGET_SYNONYMS[m.group(1).lower()] if m else None


def extract_interests(text: str) -> List[str]:
    return [word for word, rx in _INTEREST_RES if rx.search(text)]


def extract_entities(text: str) -> Entities:
    raw: Dict[str, Any] = {
        "destination": extract_destination(text),
        "trip_length_days": extract_trip_length(text),
        "month_or_season": extract_month_or_season(text),
        "budget": extract_budget(text),
        "interests": extract_interests(text),
    }
    return Entities.model_validate({k: v for k, v in raw.items() if v})


def is_follow_up(text: str) -> bool:
    return bool(FOLLOW_UP_RE.search(text))


def detect_intent(text: str) -> IntentName:
    if PACKING_RE.search(text):
        return IntentName.packing_suggestions
    if ATTRACTIONS_RE.search(text) or GOING_TO_PLACE_RE.search(text):
        return IntentName.local_attractions
    return IntentName.destination_recommendations


def classify(text: str, context: Optional[Entities] = None) -> Classification:
    context = context or Entities()
    extracted = extract_entities(text)

    if is_follow_up(text) and not context.is_empty():
        if extracted.is_empty():
            return Classification(IntentName.follow_up, context, extracted, is_continuation=True)
        return Classification(IntentName.refinement, context.merged(extracted), extracted, is_continuation=True)

    # Packing questions without a place inherit the context destination through the merge
    return Classification(detect_intent(text), context.merged(extracted), extracted, is_continuation=False)


def parse_answer(field_name: str, answer: str) -> Optional[Any]:
    """Interpret a raw reply to a pending slot question. Returns None when unusable."""
    cleaned = (answer or "").strip()
    if not cleaned:
        return None
    if field_name == "trip_length_days":
        days = extract_trip_length(cleaned)
        if days is None:
            m = re.match(r"\s*(\d{1,3})\b", cleaned)
            days = to_positive_int(m.group(1)) if m else None
        return days
    if field_name == "interests":
        parsed = normalize_entities({"interests": cleaned}).get("interests")
        return parsed or None
    if field_name == "budget":
        return extract_budget(cleaned)
    if field_name == "month_or_season":
        return extract_month_or_season(cleaned) or capitalize_first(cleaned.rstrip(".!?"))
    if field_name == "destination":
        return cleaned.rstrip(".!?,;") or None
    return cleaned
