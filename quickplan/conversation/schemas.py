"""
Schemas for the Quick Plan conversation.

Defines the phase and status vocabularies, the Preference Store, the
DiscoveredData bag, question/history/transcript records, and the
ConversationContext that owns all of them for one session.
"""

import uuid
from datetime import date
from typing import Any, Dict, List, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from quickplan.shared.contracts.enrichment import (
    AreaCandidate,
    ExperienceCandidate,
    HotelCandidate,
    Itinerary,
    RestaurantCandidate,
)


# =============================================================================
# Vocabularies
# =============================================================================

Phase = Literal["gathering", "enriching", "generating", "reviewing", "satisfied"]
PHASES = ("gathering", "enriching", "generating", "reviewing", "satisfied")


def phase_index(phase: str) -> int:
    """Position of a phase in the forward order."""
    return PHASES.index(phase)


EnrichmentKind = Literal["reddit", "areas", "hotels", "restaurants", "experiences", "pricing"]
ENRICHMENT_KINDS = ("reddit", "areas", "hotels", "restaurants", "experiences", "pricing")

EnrichmentStatus = Literal["pending", "loading", "done", "error"]
TERMINAL_STATUSES = ("done", "error")

# done and error share a rank: both are terminal and neither replaces the other
STATUS_RANK = {"pending": 0, "loading": 1, "done": 2, "error": 2}

ConfidenceLevel = Literal["unknown", "partial", "inferred", "confirmed", "complete"]
CONFIDENCE_LEVELS = ("unknown", "partial", "inferred", "confirmed", "complete")

Role = Literal["assistant", "user", "system"]
Mood = Literal["idle", "thinking", "typing", "celebrating", "concerned"]

# Sentinel recorded in the history ledger for an explicit skip
SKIPPED = "__skipped__"


# =============================================================================
# Preference Store
# =============================================================================


class Destination(BaseModel):
    """Where the traveler wants to go."""

    raw_input: str = Field(description="What the user typed")
    canonical_name: str = Field(description="Display name used in prompts and payloads")
    country: Optional[str] = Field(default=None, description="Country, when known")


class PreferenceSet(BaseModel):
    """
    Everything learned about the trip so far.

    A field is only written by an answer to its own question, by go-back
    clearing, by dissatisfaction re-entry, or by reset.
    """

    # Gathering
    destination: Optional[Destination] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    trip_length: Optional[int] = Field(default=None, description="Nights")
    adults: Optional[int] = None
    children: int = 0
    child_ages: List[int] = Field(default_factory=list)
    trip_occasion: Optional[str] = None
    has_accessibility_needs: Optional[bool] = None
    accessibility_needs: Optional[List[str]] = None
    budget_min: Optional[int] = Field(default=None, description="Per night")
    budget_max: Optional[int] = Field(default=None, description="Per night")
    accommodation_type: Optional[str] = None
    activities: Optional[List[str]] = None
    pace: Optional[str] = None
    vibe: Optional[str] = None
    subreddits: Optional[List[str]] = None
    user_notes: Optional[str] = None

    # Enriching (selections among discovered candidates)
    selected_areas: Optional[List[str]] = Field(default=None, description="Area ids")
    split: Optional[Dict[str, int]] = Field(default=None, description="Area id -> nights")
    hotel_preferences: Optional[List[str]] = None
    selected_hotels: Dict[str, str] = Field(
        default_factory=dict, description="Area id -> hotel id"
    )
    dining_mode: Optional[str] = None
    dietary_restrictions: Optional[List[str]] = None
    cuisine_preferences: Optional[List[str]] = None
    selected_restaurants: Dict[str, List[str]] = Field(
        default_factory=dict, description="Cuisine -> restaurant ids"
    )
    selected_experiences: Dict[str, List[str]] = Field(
        default_factory=dict, description="Activity type -> experience ids"
    )

    # Reviewing
    satisfied: Optional[bool] = None
    dissatisfaction_reasons: List[str] = Field(default_factory=list)
    avoid_touristy: bool = False
    must_include_activities: List[str] = Field(default_factory=list)
    custom_feedback: Optional[str] = None

    # Free-text notes keyed by field
    notes: Dict[str, str] = Field(default_factory=dict)

    # Explicitly skipped fields (never re-asked)
    skipped: Set[str] = Field(default_factory=set)

    # Per-category completion sets for repeatable fields
    hotel_areas_done: Set[str] = Field(default_factory=set)
    cuisines_done: Set[str] = Field(default_factory=set)
    activity_types_done: Set[str] = Field(default_factory=set)

    @property
    def destination_name(self) -> str:
        if self.destination is None:
            return ""
        return self.destination.canonical_name or self.destination.raw_input


class DiscoveredData(BaseModel):
    """Candidates returned by enrichment, distinct from the user's selections."""

    areas: List[AreaCandidate] = Field(default_factory=list)
    hotels: Dict[str, List[HotelCandidate]] = Field(
        default_factory=dict, description="Keyed by area id"
    )
    restaurants: Dict[str, List[RestaurantCandidate]] = Field(
        default_factory=dict, description="Keyed by cuisine"
    )
    experiences: Dict[str, List[ExperienceCandidate]] = Field(
        default_factory=dict, description="Keyed by activity type"
    )

    def area(self, area_id: str) -> Optional[AreaCandidate]:
        for candidate in self.areas:
            if candidate.id == area_id:
                return candidate
        return None


# =============================================================================
# Question / History / Transcript records
# =============================================================================


def new_question_id(field: str) -> str:
    return f"q-{field}-{uuid.uuid4().hex[:12]}"


class QuestionDescriptor(BaseModel):
    """A question issued to the presentation layer. Never mutated after issuance."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique per issuance")
    field: str = Field(description="Preference field this question fills")
    input_kind: str = Field(description="Widget the presentation layer should render")
    input_config: Dict[str, Any] = Field(default_factory=dict)
    prompt_text: str
    required: bool
    category: Optional[str] = Field(
        default=None, description="Area id / cuisine / activity for repeatable fields"
    )


class HistoryEntry(BaseModel):
    """One answered (or skipped) question."""

    question_id: str
    field: str
    value: Any = Field(description="Normalized answer, or SKIPPED")
    phase_at_answer_time: str
    category: Optional[str] = None

    @property
    def is_skip(self) -> bool:
        return isinstance(self.value, str) and self.value == SKIPPED


class TranscriptEntry(BaseModel):
    """One message in the conversation transcript."""

    id: str
    role: Role
    text: str
    timestamp: str = Field(description="ISO-8601 UTC")
    attached_evidence: Optional[List[Dict[str, Any]]] = None
    mood: Optional[Mood] = None


# =============================================================================
# Conversation context
# =============================================================================


def _initial_statuses() -> Dict[str, str]:
    return {kind: "pending" for kind in ENRICHMENT_KINDS}


class ConversationContext(BaseModel):
    """
    All mutable state for one conversation.

    Owned by a single orchestrator; reset() replaces it with a fresh instance
    rather than clearing it in place.
    """

    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    phase: str = "gathering"
    preferences: PreferenceSet = Field(default_factory=PreferenceSet)
    discovered: DiscoveredData = Field(default_factory=DiscoveredData)
    enrichment_status: Dict[str, str] = Field(default_factory=_initial_statuses)
    itinerary_status: str = "pending"
    itinerary: Optional[Itinerary] = None
    confidence: Dict[str, str] = Field(default_factory=dict)
    history: List[HistoryEntry] = Field(default_factory=list)
    transcript: List[TranscriptEntry] = Field(default_factory=list)
    current_question: Optional[QuestionDescriptor] = None

    def confidence_of(self, resource: str) -> str:
        return self.confidence.get(resource, "unknown")

    def any_loading(self) -> bool:
        statuses = list(self.enrichment_status.values()) + [self.itinerary_status]
        return any(status == "loading" for status in statuses)
