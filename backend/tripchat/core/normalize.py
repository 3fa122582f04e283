"""
Entity normalization.

Every entity value that reaches a session goes through `normalize_entities`
first. The function is total and idempotent: unknown keys and values that
cannot be coerced are dropped, never stored as None or empty.
"""
from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Mapping, Optional

ENTITY_FIELDS = ("destination", "trip_length_days", "month_or_season", "budget", "interests")

BUDGET_LEVELS = ("low", "medium", "high")

# Every word the budget regex recognises, bucketed into the three levels
BUDGET_SYNONYMS: Dict[str, str] = {
    "low": "low",
    "budget": "low",
    "cheap": "low",
    "cheaper": "low",
    "affordable": "low",
    "inexpensive": "low",
    "mid": "medium",
    "medium": "medium",
    "moderate": "medium",
    "midrange": "medium",
    "mid-range": "medium",
    "high": "high",
    "luxury": "high",
    "expensive": "high",
    "upscale": "high",
    "pricey": "high",
}


def to_positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer() and value > 0:
            return int(value)
        return None
    if isinstance(value, str):
        raw = value.strip()
        if re.fullmatch(r"\+?\d+", raw):
            n = int(raw)
            return n if n > 0 else None
        try:
            return to_positive_int(float(raw))
        except ValueError:
            return None
    return None


def to_clean_string(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def to_string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (set, frozenset)):
        items = sorted(str(v) for v in value)
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value if v is not None]
    else:
        return []
    seen: List[str] = []
    for item in items:
        cleaned = item.strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def to_budget(value: Any) -> Optional[str]:
    cleaned = to_clean_string(value).lower()
    return BUDGET_SYNONYMS.get(cleaned)


def capitalize_first(value: str) -> str:
    return value[:1].upper() + value[1:]


def normalize_entities(raw: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not raw:
        return {}
    out: Dict[str, Any] = {}

    if "destination" in raw:
        destination = to_clean_string(raw["destination"])
        if destination:
            out["destination"] = destination

    if "trip_length_days" in raw:
        days = to_positive_int(raw["trip_length_days"])
        if days is not None:
            out["trip_length_days"] = days

    if "month_or_season" in raw:
        when = to_clean_string(raw["month_or_season"])
        if when:
            out["month_or_season"] = capitalize_first(when)

    if "budget" in raw:
        budget = to_budget(raw["budget"])
        if budget:
            out["budget"] = budget

    if "interests" in raw:
        interests = to_string_list(raw["interests"])
        if interests:
            out["interests"] = interests

    return out


def is_missing_field(field: str, value: Any) -> bool:
    """Single source of truth for whether a slot still needs to be asked."""
    if field == "trip_length_days":
        return not (
            isinstance(value, (int, float))
            and not isinstance(value, bool)
            and math.isfinite(value)
            and value > 0
        )
    if field == "interests" or isinstance(value, (list, tuple, set)):
        return not isinstance(value, (list, tuple, set)) or len(value) == 0
    return not isinstance(value, str) or not value.strip()
