"""
Shared fixtures for the Quick Plan tests.

FakeGateway stands in for the Enrichment Gateway: it returns scripted
responses per endpoint, can be told to fail or stall, and records every call.
"""

import asyncio
import copy
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from quickplan.graph.config import (
    DEFAULT_CONFIG,
    DISCOVER_AREAS,
    EXPERIENCES,
    GENERATE_ITINERARY,
    HOTELS,
    RESTAURANTS,
)
from quickplan.graph.orchestrator import SKIP, QuickPlanOrchestrator
from quickplan.shared.errors import EnrichmentFailure, PersistenceFailure
from quickplan.shared.pacing import NoPacing
from quickplan.shared.persistence import InMemorySnapshotStore


# ============================================================================
# Scripted enrichment responses (Bali)
# ============================================================================


def _hotels(area_id: str) -> List[Dict[str, Any]]:
    return [
        {"id": f"{area_id}-h1", "name": f"{area_id.title()} Villas", "areaId": area_id,
         "lat": -8.6, "lng": 115.1, "rating": 4.6, "pricePerNight": 180},
        {"id": f"{area_id}-h2", "name": f"{area_id.title()} Retreat", "areaId": area_id,
         "lat": -8.5, "lng": 115.2, "rating": 4.4, "pricePerNight": 140},
    ]


def bali_responses() -> Dict[str, Any]:
    return {
        DISCOVER_AREAS: {
            "areas": [
                {"id": "seminyak", "name": "Seminyak", "description": "Beach clubs and dining",
                 "centerLat": -8.69, "centerLng": 115.16, "bestFor": ["beach"]},
                {"id": "ubud", "name": "Ubud", "description": "Rice terraces and temples",
                 "centerLat": -8.51, "centerLng": 115.26, "bestFor": ["cultural"]},
                {"id": "canggu", "name": "Canggu", "description": "Surf and cafes",
                 "centerLat": -8.65, "centerLng": 115.13, "bestFor": ["surf"]},
            ],
            "redditPostCount": 42,
            "llmAreasCount": 3,
        },
        HOTELS: {
            "hotelsByArea": {area: _hotels(area) for area in ("seminyak", "ubud", "canggu")}
        },
        RESTAURANTS: {
            "restaurantsByCuisine": {
                "local": [{"id": "warung-1", "name": "Warung Babi Guling", "cuisine": "local"}],
                "seafood": [
                    {"id": "jimbaran-1", "name": "Jimbaran Grill", "cuisine": "seafood"},
                    {"id": "jimbaran-2", "name": "Menega Cafe", "cuisine": "seafood"},
                ],
                "italian": [{"id": "trattoria-1", "name": "Trattoria", "cuisine": "italian"}],
            }
        },
        EXPERIENCES: {
            "experiencesByType": {
                "beach": [{"id": "exp-beach-1", "name": "Nusa Penida day trip", "activityType": "beach"}],
                "cultural": [{"id": "exp-cult-1", "name": "Temple tour", "activityType": "cultural"}],
                "hiking": [{"id": "exp-hike-1", "name": "Mount Batur sunrise", "activityType": "hiking"}],
            }
        },
        GENERATE_ITINERARY: {
            "itinerary": {
                "days": [{"day": 1, "area_id": "seminyak", "activities": []}],
                "stops": [{"area_id": "seminyak", "nights": 7}],
            }
        },
    }


class FakeGateway:
    """
    In-memory gateway with scripted responses.

    Args:
        responses: Body (or callable payload -> body) per endpoint
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses = bali_responses()
        if responses:
            self.responses.update(responses)
        self.failures: Dict[str, List[EnrichmentFailure]] = {}
        self.delays: Dict[str, float] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.invalidated: List[Optional[str]] = []
        self.settled: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    def fail(self, endpoint: str, kind: str, times: int = 1) -> None:
        """Queue failures for the next calls to an endpoint."""
        queued = self.failures.setdefault(endpoint, [])
        for _ in range(times):
            queued.append(EnrichmentFailure(kind, f"{endpoint} {kind}", endpoint=endpoint))

    def calls_to(self, endpoint: str) -> List[Dict[str, Any]]:
        return [payload for name, payload in self.calls if name == endpoint]

    async def fetch_json(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append((endpoint, copy.deepcopy(payload)))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(endpoint)
            if delay:
                await asyncio.sleep(delay)
            queued = self.failures.get(endpoint)
            if queued:
                raise queued.pop(0)
            response = self.responses[endpoint]
            if callable(response):
                response = response(payload)
            return copy.deepcopy(response)
        finally:
            self.in_flight -= 1
            self.settled.append(endpoint)

    def invalidate(self, endpoint: Optional[str] = None) -> None:
        self.invalidated.append(endpoint)

    async def aclose(self) -> None:
        self.closed = True


class FailingStore(InMemorySnapshotStore):
    """Snapshot store whose first writes fail."""

    def __init__(self, failures: int = 1):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    def save(self, snapshot):
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise PersistenceFailure("disk full")
        return super().save(snapshot)


# ============================================================================
# Conversation driver
# ============================================================================

DEFAULT_ANSWERS: Dict[str, Any] = {
    "destination": "bali",
    "dates": {"start_date": "2026-06-01", "end_date": "2026-06-08"},
    "party": {"adults": 2},
    "budget": {"min": 100, "max": 300},
    "activities": ["beach", "cultural"],
    "pace": "balanced",
    "areas": ["seminyak", "ubud"],
    "split": "even-split",
    "hotel_preferences": ["pool"],
    "dining": "plan",
    "cuisine_preferences": ["local", "seafood"],
    "satisfaction": {"satisfied": True},
}


def pick_value(question, answers: Dict[str, Any]) -> Any:
    """Answer from the script, first candidate for selections, else skip."""
    if question.field in answers:
        value = answers[question.field]
        return value(question) if callable(value) else value
    candidates = question.input_config.get("candidates", [])
    if question.input_kind == "hotel_select" and candidates:
        return candidates[0]["id"]
    if question.input_kind in ("restaurant_select", "experience_select"):
        return [candidates[0]["id"]] if candidates else []
    return SKIP


async def drive(
    orchestrator: QuickPlanOrchestrator,
    answers: Optional[Dict[str, Any]] = None,
    until: Optional[str] = None,
    max_steps: int = 60,
):
    """
    Answer questions until the `until` field is pending (or nothing is left).

    Returns:
        The pending question, or None when the conversation has no question
    """
    script = {**DEFAULT_ANSWERS, **(answers or {})}
    question = orchestrator.get_current_question() or await orchestrator.select_next_question()
    for _ in range(max_steps):
        if question is None or question.field == until:
            return question
        question = await orchestrator.handle_response(question.id, pick_value(question, script))
    raise AssertionError(f"conversation did not reach {until!r} in {max_steps} steps")


# ============================================================================
# Fixtures
# ============================================================================

TEST_CONFIG = replace(
    DEFAULT_CONFIG,
    auto_finalize_delay=None,
    retry_min_wait=0,
    retry_max_wait=0,
    pacing_delays={"acknowledgment": 0.0, "message": 0.0, "phase": 0.0},
)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def make_orchestrator(gateway, store) -> Callable[..., QuickPlanOrchestrator]:
    def _make(**overrides) -> QuickPlanOrchestrator:
        kwargs = {
            "config": TEST_CONFIG,
            "store": store,
            "pacer": NoPacing(),
            "session_id": "test-session-001",
        }
        kwargs.update(overrides)
        return QuickPlanOrchestrator(kwargs.pop("gateway", gateway), **kwargs)

    return _make


@pytest.fixture
def orchestrator(make_orchestrator) -> QuickPlanOrchestrator:
    return make_orchestrator()
