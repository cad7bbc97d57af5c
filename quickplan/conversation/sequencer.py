"""
Question Sequencer.

Pure functions of (preferences, discovered data, phase, history) that pick
the next question to ask. Nothing here mutates state or performs I/O, so
calling select_next_question twice without an intervening mutation yields a
question for the same field (only the issuance id differs).
"""

import logging
from typing import Any, Dict, List, Optional

from quickplan.conversation.catalog import (
    ACCOMMODATION_TYPES,
    ACTIVITIES,
    BUDGET_RANGE,
    DEFAULT_TRIP_NIGHTS,
    DISSATISFACTION_REASONS,
    KIDS_ACTIVITIES,
    PHASE_FIELDS,
    SUBREDDITS,
    TRIP_OCCASIONS,
    FieldSpec,
    get_field_spec,
    label_for,
    option_list,
)
from quickplan.conversation.schemas import (
    DiscoveredData,
    HistoryEntry,
    PreferenceSet,
    QuestionDescriptor,
    new_question_id,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Field state
# =============================================================================


def is_answered(prefs: PreferenceSet, field: str) -> bool:
    """True when the field's primary value is set (repeatable fields never are)."""
    spec = get_field_spec(field)
    if spec.repeatable or not spec.attrs:
        return False
    return getattr(prefs, spec.attrs[0]) is not None


def is_resolved(prefs: PreferenceSet, field: str) -> bool:
    """Answered or explicitly skipped."""
    return is_answered(prefs, field) or field in prefs.skipped


def is_applicable(field: str, prefs: PreferenceSet, discovered: DiscoveredData) -> bool:
    """Prerequisite conditions that gate whether a field is asked at all."""
    selected_areas = prefs.selected_areas or []

    if field == "accessibility_type":
        return prefs.has_accessibility_needs is True
    if field == "areas":
        return len(discovered.areas) > 0
    if field == "split":
        return len(selected_areas) >= 2
    if field == "hotel_preferences":
        return len(selected_areas) >= 1
    if field == "hotels":
        return is_answered(prefs, "hotel_preferences")
    if field in ("dietary_restrictions", "cuisine_preferences", "restaurants"):
        return prefs.dining_mode == "plan"
    if field == "experiences":
        return is_answered(prefs, "dining")
    return True


def eligible_categories(field: str, prefs: PreferenceSet, discovered: DiscoveredData) -> List[str]:
    """Categories a repeatable field fans out over, in ask order."""
    if field == "hotels":
        return [a for a in (prefs.selected_areas or []) if discovered.hotels.get(a)]
    if field == "restaurants":
        return [c for c in (prefs.cuisine_preferences or []) if discovered.restaurants.get(c)]
    if field == "experiences":
        return [t for t in (prefs.activities or []) if discovered.experiences.get(t)]
    return []


def pending_categories(field: str, prefs: PreferenceSet, discovered: DiscoveredData) -> List[str]:
    spec = get_field_spec(field)
    done = getattr(prefs, spec.completion_set)
    return [c for c in eligible_categories(field, prefs, discovered) if c not in done]


# =============================================================================
# Selection
# =============================================================================


def select_next_question(
    prefs: PreferenceSet,
    discovered: DiscoveredData,
    phase: str,
    history: List[HistoryEntry],
) -> Optional[QuestionDescriptor]:
    """
    Return the next question for the phase, or None when the phase has none left.

    Walks the phase's ordered field list and returns the first applicable
    field that is neither answered nor skipped. Repeatable fields are
    re-issued once per uncovered category.
    """
    for field in PHASE_FIELDS.get(phase, ()):
        if not is_applicable(field, prefs, discovered):
            continue

        spec = get_field_spec(field)
        if spec.repeatable:
            pending = pending_categories(field, prefs, discovered)
            if pending:
                return _build_question(spec, prefs, discovered, history, pending[0])
            continue

        if not is_resolved(prefs, field):
            return _build_question(spec, prefs, discovered, history)

    return None


def _build_question(
    spec: FieldSpec,
    prefs: PreferenceSet,
    discovered: DiscoveredData,
    history: List[HistoryEntry],
    category: Optional[str] = None,
) -> QuestionDescriptor:
    rounds = sum(1 for entry in history if entry.field == spec.name)
    return QuestionDescriptor(
        id=new_question_id(spec.name),
        field=spec.name,
        input_kind=spec.input_kind,
        input_config=_input_config(spec, prefs, discovered, category),
        prompt_text=_prompt_text(spec, prefs, discovered, category, rounds),
        required=spec.required,
        category=category,
    )


# =============================================================================
# Prompt text
# =============================================================================


def _category_label(field: str, category: str, discovered: DiscoveredData) -> str:
    if field == "hotels":
        area = discovered.area(category)
        return area.name if area else category
    return category.replace("_", " ")


def _prompt_text(
    spec: FieldSpec,
    prefs: PreferenceSet,
    discovered: DiscoveredData,
    category: Optional[str],
    rounds: int,
) -> str:
    if not spec.repeatable:
        if spec.name == "areas":
            nights = prefs.trip_length or DEFAULT_TRIP_NIGHTS
            if nights > 4:
                return (
                    f"{spec.prompt} With {nights} nights you could comfortably "
                    f"base yourself in up to {max_bases(nights)} areas."
                )
        if spec.name == "satisfaction" and rounds:
            return "Here's the updated itinerary! Is this closer to what you had in mind?"
        return spec.prompt

    label = _category_label(spec.name, category, discovered)
    eligible = eligible_categories(spec.name, prefs, discovered)
    position = eligible.index(category) + 1 if category in eligible else 1

    if rounds == 0 or len(eligible) <= 1:
        return spec.prompt.format(area=label, category=label)

    if spec.name == "hotels":
        return f"Now for {label} ({position} of {len(eligible)}). Which hotel catches your eye?"
    if spec.name == "restaurants":
        return (
            f"Next up, {label} ({position} of {len(eligible)} cuisine types). "
            f"Pick your favorites!"
        )
    return f"And for {label} ({position} of {len(eligible)}), anything you'd like to book?"


def max_bases(nights: int) -> int:
    """How many areas a trip of this length can reasonably be split across."""
    if nights <= 4:
        return 1
    if nights <= 7:
        return 2
    if nights <= 11:
        return 3
    return 4


# =============================================================================
# Input configuration
# =============================================================================


def _occasion_options(prefs: PreferenceSet) -> List[Dict[str, str]]:
    adults = prefs.adults or 2
    children = prefs.children or 0
    has_kids = children > 0
    is_group = adults >= 4

    allowed = {"vacation", "wedding", "workation", "wellness"}
    if adults == 2 and not has_kids:
        allowed.update({"honeymoon", "anniversary"})
    if adults == 1 and not has_kids:
        allowed.add("solo_adventure")
    if is_group and not has_kids:
        allowed.add("bachelor")
    if has_kids or is_group:
        allowed.add("family_reunion")
    return option_list(tuple(o for o in TRIP_OCCASIONS if o[0] in allowed))


def _accommodation_options(prefs: PreferenceSet) -> List[Dict[str, str]]:
    budget = prefs.budget_max or 200
    is_group = (prefs.adults or 2) >= 4
    has_kids = (prefs.children or 0) > 0
    romantic = prefs.trip_occasion in ("honeymoon", "anniversary")

    allowed = {"hotel", "eco_lodge"}
    if budget <= 100:
        allowed.add("hostel")
    if is_group or has_kids:
        allowed.add("vacation_rental")
    if is_group and budget >= 200:
        allowed.add("villa")
    if romantic or prefs.trip_occasion == "wellness" or budget >= 300:
        allowed.add("resort")
    if romantic or budget >= 200:
        allowed.add("boutique")
    return option_list(tuple(o for o in ACCOMMODATION_TYPES if o[0] in allowed))


def _suggested_subreddits(prefs: PreferenceSet) -> List[str]:
    budget = prefs.budget_max or 200
    has_kids = (prefs.children or 0) > 0
    suggested = ["travel"]
    if has_kids:
        suggested += ["familytravel", "travelwithkids"]
    elif prefs.adults == 1:
        suggested.append("solotravel")
    if budget >= 400 and not has_kids:
        suggested.append("luxurytravel")
    elif budget <= 150:
        suggested.append("budgettravel")
    return suggested


def suggest_splits(area_ids: List[str], names: Dict[str, str], nights: int) -> List[Dict[str, Any]]:
    """Candidate nights-per-area splits, best first."""
    if not area_ids:
        return []

    base, remainder = divmod(nights, len(area_ids))
    even = {a: base + (1 if i < remainder else 0) for i, a in enumerate(area_ids)}
    splits = [{"id": "even-split", "nights": even}]

    if len(area_ids) == 2 and nights >= 5:
        longer = -(-nights * 6 // 10)
        shorter = nights - longer
        first, second = area_ids
        splits.append({"id": "longer-first", "nights": {first: longer, second: shorter}})
        splits.append({"id": "longer-second", "nights": {first: shorter, second: longer}})

    for split in splits:
        split["label"] = " → ".join(
            f"{n} nights {names.get(a, a)}" for a, n in split["nights"].items()
        )
    return splits


def _input_config(
    spec: FieldSpec,
    prefs: PreferenceSet,
    discovered: DiscoveredData,
    category: Optional[str],
) -> Dict[str, Any]:
    name = spec.name
    nights = prefs.trip_length or DEFAULT_TRIP_NIGHTS

    if name == "dates":
        return {"max_days_ahead": 365, "allow_flexible_length": True}
    if name == "party":
        return {"max_adults": 20, "max_children": 10}
    if name == "trip_occasion":
        return {"options": _occasion_options(prefs), "allow_custom_text": True}
    if name == "budget":
        return dict(BUDGET_RANGE)
    if name == "accommodation_type":
        return {"options": _accommodation_options(prefs)}
    if name == "activities":
        options = ACTIVITIES
        if (prefs.children or 0) > 0:
            options = KIDS_ACTIVITIES + ACTIVITIES
        return {"options": option_list(options), "allow_custom_text": True, "allow_notes": True}
    if name == "subreddits":
        return {
            "options": option_list(SUBREDDITS),
            "preselected": _suggested_subreddits(prefs),
            "allow_custom_text": True,
        }
    if name == "areas":
        return {
            "candidates": [a.model_dump(by_alias=True) for a in discovered.areas],
            "max_selection": max_bases(nights),
        }
    if name == "split":
        selected = prefs.selected_areas or []
        names = {a.id: a.name for a in discovered.areas}
        return {
            "areas": [{"id": a, "name": names.get(a, a)} for a in selected],
            "trip_length": nights,
            "suggestions": suggest_splits(selected, names, nights),
        }
    if name == "hotels":
        return {
            "area_id": category,
            "area_name": _category_label(name, category, discovered),
            "candidates": [h.model_dump(by_alias=True) for h in discovered.hotels.get(category, [])],
        }
    if name == "restaurants":
        return {
            "cuisine": category,
            "cuisine_label": _category_label(name, category, discovered),
            "candidates": [
                r.model_dump(by_alias=True) for r in discovered.restaurants.get(category, [])
            ],
            "multi_select": True,
        }
    if name == "experiences":
        return {
            "activity_type": category,
            "candidates": [
                e.model_dump(by_alias=True) for e in discovered.experiences.get(category, [])
            ],
            "multi_select": True,
        }
    if name == "satisfaction":
        return {"reasons": option_list(DISSATISFACTION_REASONS), "allow_feedback": True}

    config: Dict[str, Any] = {}
    if spec.options:
        config["options"] = option_list(spec.options)
    if spec.allow_custom_text:
        config["allow_custom_text"] = True
    return config


def describe_option(field: str, option_id: str) -> str:
    """Human label for a stored option id."""
    return label_for(get_field_spec(field).options, option_id)
