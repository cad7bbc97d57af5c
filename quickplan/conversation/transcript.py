"""
Transcript and message formatting.

The transcript is an append-only list of TranscriptEntry records owned by
the ConversationContext. This module appends to it and renders the text of
assistant and user messages; it never edits or removes entries.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from quickplan.conversation.catalog import label_for, get_field_spec
from quickplan.conversation.schemas import (
    ConversationContext,
    DiscoveredData,
    QuestionDescriptor,
    TranscriptEntry,
)
from quickplan.shared.errors import NETWORK, RATE_LIMITED, SERVER, TIMEOUT


def append(
    ctx: ConversationContext,
    role: str,
    text: str,
    mood: Optional[str] = None,
    evidence: Optional[List[Dict[str, Any]]] = None,
) -> TranscriptEntry:
    entry = TranscriptEntry(
        id=f"msg-{uuid.uuid4()}",
        role=role,
        text=text,
        timestamp=datetime.now(timezone.utc).isoformat(),
        attached_evidence=evidence,
        mood=mood,
    )
    ctx.transcript.append(entry)
    return entry


# =============================================================================
# User answers
# =============================================================================


def _labels(question: QuestionDescriptor, ids: List[str]) -> List[str]:
    by_id = {o["id"]: o["label"] for o in question.input_config.get("options", [])}
    by_id.update({str(c["id"]): c.get("name", c["id"]) for c in question.input_config.get("candidates", [])})
    return [by_id.get(i, i.replace("_", " ")) for i in ids]


def render_answer(question: QuestionDescriptor, value: Any) -> str:
    """How a validated answer reads as a user chat bubble."""
    kind = question.input_kind

    if kind == "destination":
        return value.canonical_name
    if kind == "date_range":
        if value.start_date and value.end_date:
            return f"{value.start_date:%b %d} - {value.end_date:%b %d, %Y} ({value.trip_length} nights)"
        return f"About {value.trip_length} nights, dates flexible"
    if kind == "party":
        text = f"{value.adults} adult{'s' if value.adults != 1 else ''}"
        if value.children:
            text += f", {value.children} child{'ren' if value.children != 1 else ''}"
            if value.child_ages:
                text += f" (ages {', '.join(str(a) for a in value.child_ages)})"
        return text
    if kind == "budget":
        if value.min:
            return f"${value.min} - ${value.max} per night"
        return f"Up to ${value.max} per night"
    if kind == "yes_no":
        return "Yes" if value else "No"
    if kind in ("single_select", "hotel_select"):
        return _labels(question, [value])[0]
    if kind in ("multi_select", "area_select", "restaurant_select", "experience_select"):
        if not value:
            return "None of these"
        return ", ".join(_labels(question, value))
    if kind == "split":
        names = {a["id"]: a["name"] for a in question.input_config.get("areas", [])}
        return " → ".join(f"{n} nights {names.get(a, a)}" for a, n in value.items())
    if kind == "satisfaction":
        if value.satisfied:
            return "Looks great!"
        reasons = [label_for(get_field_spec("satisfaction").options, r) for r in value.reasons]
        text = f"Not quite: {', '.join(reasons)}"
        return f"{text}. {value.feedback}" if value.feedback else text
    return str(value)


def render_skip(question: QuestionDescriptor) -> str:
    return "Skip"


# =============================================================================
# Assistant messages
# =============================================================================


def acknowledgment(field: str, ctx: ConversationContext) -> Optional[str]:
    """Short reaction to key answers; None when the answer needs no comment."""
    prefs = ctx.preferences
    if field == "destination":
        return f"{prefs.destination_name}! Great choice."
    if field == "dates" and prefs.trip_length:
        return f"{prefs.trip_length} nights, perfect. Plenty of time to explore."
    if field == "party" and prefs.children:
        return "Traveling with kids, got it. I'll keep things family-friendly."
    if field == "pace" and prefs.pace == "chill":
        return "A relaxed trip it is. I'll leave room to breathe."
    if field == "pace" and prefs.pace == "packed":
        return "Action-packed! I'll make every day count."
    return None


def phase_message(phase: str, ctx: ConversationContext) -> Optional[str]:
    if phase == "enriching":
        return "Let me research the best options for your trip. This might take a moment..."
    if phase == "generating":
        return "Building your personalized itinerary..."
    if phase == "satisfied":
        return "Awesome! Your trip is all set. I'm saving your plan now."
    return None


def areas_found_message(count: int, destination: str) -> str:
    if count:
        return (
            f"Great news! I found {count} areas in {destination} that match what "
            f"you're looking for. Let me show you the best ones..."
        )
    return (
        f"I'm having trouble finding specific areas for {destination}. "
        f"Let's continue with general recommendations."
    )


_ZERO_RESULTS = {
    "hotels": "I couldn't find any hotels matching your preferences in those areas yet. "
              "Let me move on to the next step.",
    "restaurants": "I couldn't find restaurants for those cuisines near your hotels. "
                   "Let's continue with your itinerary.",
    "experiences": "I couldn't find tour options for those activities near your hotels. "
                   "Let's continue with your itinerary.",
}

_RESOURCE_NOUNS = {
    "areas": "areas to stay in",
    "hotels": "hotels",
    "restaurants": "restaurants",
    "experiences": "experiences",
    "itinerary": "your itinerary",
}


def zero_results_message(resource: str, destination: str = "") -> str:
    if resource == "areas":
        return areas_found_message(0, destination)
    return _ZERO_RESULTS.get(resource, f"I couldn't find any {resource}. Let's keep going.")


def failure_message(resource: str, failure_kind: str) -> str:
    """Apology tailored to why an enrichment call failed."""
    noun = _RESOURCE_NOUNS.get(resource, resource)
    tail = "Let's continue with the rest of your trip."
    if resource in ("restaurants", "experiences"):
        tail = "Let's continue with your itinerary."

    if failure_kind == TIMEOUT:
        return f"Finding {noun} is taking longer than expected. {tail}"
    if failure_kind == RATE_LIMITED:
        return f"Lots of people are planning trips right now, so I couldn't look up {noun}. {tail}"
    if failure_kind == NETWORK:
        return f"I couldn't reach my sources for {noun}. {tail}"
    if failure_kind == SERVER:
        return f"Having trouble finding {noun} right now. {tail}"
    return f"Something went wrong looking up {noun}. {tail}"


def itinerary_ready_message(is_fallback: bool) -> str:
    if is_fallback:
        return (
            "Had some trouble generating the itinerary, so I put together a simpler "
            "plan from your picks. Take a look!"
        )
    return "Your itinerary is ready! Take a look and let me know what you think."


DISSATISFACTION_MESSAGE = "Got it! Let me adjust the plan based on your feedback..."


def evidence_for_areas(discovered: DiscoveredData) -> List[Dict[str, Any]]:
    """Reddit-backed reasons attached to the areas message."""
    return [
        {"area_id": area.id, "name": area.name, "description": area.description}
        for area in discovered.areas
        if area.description
    ]
