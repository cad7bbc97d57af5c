"""
Enrichment Pipeline Coordinator.

Decides which enrichment stage is due from the context alone, runs it
through the enrichment graph, and commits the settled outcomes to
DiscoveredData, EnrichmentStatus, confidence markers and the transcript.

Stages:
- areas: first thing in enriching (destination + raw preferences)
- hotels: once hotel preferences are answered, keyed on the selected areas
- dining: restaurants and experiences, requested together and joined
- itinerary: on entering generating; retried on transient failures, with a
  local fallback when generation still fails

Failures never propagate: they set the resource to error, degrade its
confidence to partial, and leave an apologetic message.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from quickplan.conversation import transcript
from quickplan.conversation.phases import (
    set_enrichment_status,
    set_itinerary_status,
    state_summary,
)
from quickplan.conversation.schemas import ConversationContext, PreferenceSet
from quickplan.conversation.sequencer import is_answered, is_resolved
from quickplan.enrichment.fallback import (
    build_fallback_itinerary,
    hotels_for_itinerary,
    nights_per_area,
)
from quickplan.enrichment.graph.build import failed_outcome, get_enrichment_graph
from quickplan.enrichment.graph.state import EnrichmentOutcome, EnrichmentRequest
from quickplan.graph.config import (
    DEFAULT_CONFIG,
    DISCOVER_AREAS,
    EXPERIENCES,
    GENERATE_ITINERARY,
    HOTELS,
    RESTAURANTS,
    OrchestratorConfig,
)
from quickplan.shared.contracts.enrichment import (
    DiscoverAreasResponse,
    ExperiencesResponse,
    GenerateItineraryResponse,
    HotelsResponse,
    RestaurantsResponse,
)
from quickplan.shared.errors import SERVER
from quickplan.shared.logging.config import log_state_transition
from quickplan.shared.logging.debug_logger import DebugLogger
from quickplan.shared.pacing import NoPacing, Pacer


logger = logging.getLogger(__name__)

# Statuses each resource drives
RESOURCE_KINDS = {
    "areas": ("reddit", "areas"),
    "hotels": ("hotels", "pricing"),
    "restaurants": ("restaurants",),
    "experiences": ("experiences",),
}

# Sets are excluded so the payload (and its cache fingerprint) is stable
_PAYLOAD_EXCLUDE = {"skipped", "hotel_areas_done", "cuisines_done", "activity_types_done", "notes"}

MIN_HOTEL_RATING = 4.0


# =============================================================================
# Due work
# =============================================================================


def due_stage(ctx: ConversationContext) -> Optional[str]:
    """The enrichment stage the current state calls for, if any."""
    prefs = ctx.preferences
    status = ctx.enrichment_status

    if ctx.phase == "enriching":
        if status["areas"] == "pending":
            return "areas"
        if (
            status["hotels"] == "pending"
            and prefs.selected_areas
            and is_answered(prefs, "hotel_preferences")
        ):
            return "hotels"
        if _dining_ready(prefs) and (
            status["restaurants"] == "pending" or status["experiences"] == "pending"
        ):
            return "dining"
        return None

    if ctx.phase == "generating" and ctx.itinerary_status == "pending":
        return "itinerary"
    return None


def _dining_ready(prefs: PreferenceSet) -> bool:
    if not is_answered(prefs, "dining"):
        return False
    if prefs.dining_mode != "plan":
        return True
    return is_resolved(prefs, "cuisine_preferences")


# =============================================================================
# Payloads
# =============================================================================


def preferences_payload(prefs: PreferenceSet) -> Dict[str, Any]:
    return prefs.model_dump(mode="json", exclude=_PAYLOAD_EXCLUDE, exclude_none=True)


def _areas_payload(ctx: ConversationContext, config: OrchestratorConfig) -> Dict[str, Any]:
    prefs = ctx.preferences
    return {
        "destination": prefs.destination_name,
        "preferences": preferences_payload(prefs),
        "subreddits": list(prefs.subreddits or config.default_subreddits),
    }


def _hotels_payload(ctx: ConversationContext) -> Dict[str, Any]:
    prefs = ctx.preferences
    area_ids = list(prefs.selected_areas or [])
    first_area = ctx.discovered.area(area_ids[0]) if area_ids else None
    payload: Dict[str, Any] = {
        "areaIds": area_ids,
        "destination": prefs.destination_name,
        "preferences": {
            "budgetMin": prefs.budget_min,
            "budgetMax": prefs.budget_max,
            "minRating": MIN_HOTEL_RATING,
            "hotelPreferences": list(prefs.hotel_preferences or []),
        },
        "coordinates": {
            "lat": first_area.center_lat if first_area else None,
            "lng": first_area.center_lng if first_area else None,
        },
        "adults": prefs.adults or 2,
        "children": prefs.children,
    }
    if prefs.start_date and prefs.end_date:
        payload["checkIn"] = prefs.start_date.isoformat()
        payload["checkOut"] = prefs.end_date.isoformat()
    return payload


def _hotel_anchors(ctx: ConversationContext) -> Dict[str, Dict[str, Any]]:
    anchors = {}
    for area_id, hotel in hotels_for_itinerary(ctx.preferences, ctx.discovered).items():
        anchors[area_id] = {"lat": hotel.get("lat"), "lng": hotel.get("lng"), "name": hotel.get("name")}
    return anchors


def _area_anchors(ctx: ConversationContext) -> List[Dict[str, Any]]:
    selected = ctx.preferences.selected_areas or []
    return [
        {"id": a.id, "name": a.name, "centerLat": a.center_lat, "centerLng": a.center_lng}
        for a in ctx.discovered.areas
        if a.id in selected
    ]


def _restaurants_payload(ctx: ConversationContext) -> Dict[str, Any]:
    prefs = ctx.preferences
    return {
        "cuisineTypes": list(prefs.cuisine_preferences or []),
        "destination": prefs.destination_name,
        "hotels": _hotel_anchors(ctx),
        "areas": _area_anchors(ctx),
        "dietaryRestrictions": [d for d in (prefs.dietary_restrictions or []) if d != "none"],
    }


def _experiences_payload(ctx: ConversationContext) -> Dict[str, Any]:
    prefs = ctx.preferences
    return {
        "activityTypes": list(prefs.activities or []),
        "destination": prefs.destination_name,
        "hotels": _hotel_anchors(ctx),
        "areas": _area_anchors(ctx),
    }


def _itinerary_payload(ctx: ConversationContext) -> Dict[str, Any]:
    prefs = ctx.preferences
    area_ids = list(prefs.selected_areas or [])
    preferences = preferences_payload(prefs)
    preferences["split"] = nights_per_area(prefs, area_ids)
    return {
        "preferences": preferences,
        "areas": [
            ctx.discovered.area(area_id).model_dump(by_alias=True)
            for area_id in area_ids
            if ctx.discovered.area(area_id) is not None
        ],
        "hotels": hotels_for_itinerary(prefs, ctx.discovered),
        "restaurants": {
            cuisine: [r.model_dump(by_alias=True) for r in restaurants]
            for cuisine, restaurants in ctx.discovered.restaurants.items()
        },
    }


def build_requests(
    ctx: ConversationContext, stage: str, config: OrchestratorConfig = DEFAULT_CONFIG
) -> Dict[str, EnrichmentRequest]:
    """Gateway requests for a stage, keyed by resource."""
    prefs = ctx.preferences
    status = ctx.enrichment_status

    if stage == "areas":
        return {"areas": {"endpoint": DISCOVER_AREAS, "payload": _areas_payload(ctx, config)}}
    if stage == "hotels":
        return {"hotels": {"endpoint": HOTELS, "payload": _hotels_payload(ctx)}}
    if stage == "dining":
        requests: Dict[str, EnrichmentRequest] = {}
        if status["restaurants"] == "pending" and prefs.dining_mode == "plan" and prefs.cuisine_preferences:
            requests["restaurants"] = {"endpoint": RESTAURANTS, "payload": _restaurants_payload(ctx)}
        if status["experiences"] == "pending" and prefs.activities:
            requests["experiences"] = {"endpoint": EXPERIENCES, "payload": _experiences_payload(ctx)}
        return requests
    if stage == "itinerary":
        return {"itinerary": {"endpoint": GENERATE_ITINERARY, "payload": _itinerary_payload(ctx)}}
    raise ValueError(f"Unknown enrichment stage: {stage}")


# =============================================================================
# Coordinator
# =============================================================================


class EnrichmentCoordinator:
    """
    Runs due enrichment stages for one conversation.

    Args:
        gateway: Object with an async fetch_json(endpoint, payload)
        config: Orchestrator configuration (retry policy, default subreddits)
        pacer: Pacing between revealed messages
        debug: Per-session debug log
    """

    def __init__(
        self,
        gateway: Any,
        config: OrchestratorConfig = DEFAULT_CONFIG,
        pacer: Optional[Pacer] = None,
        debug: Optional[DebugLogger] = None,
    ):
        self.gateway = gateway
        self.config = config
        self.pacer = pacer or NoPacing()
        self.debug = debug
        self.graph = get_enrichment_graph()

    async def run_due_work(self, ctx: ConversationContext) -> List[str]:
        """
        Run every stage the state calls for, in order.

        Each stage moves its statuses out of pending, so the loop ends once
        nothing more is due.

        Returns:
            Stages that ran
        """
        ran: List[str] = []
        stage = due_stage(ctx)
        while stage is not None and stage not in ran:
            await self.run_stage(ctx, stage)
            ran.append(stage)
            stage = due_stage(ctx)
        return ran

    async def run_stage(self, ctx: ConversationContext, stage: str) -> None:
        _log = f"[session={ctx.session_id}] [component=coordinator] [stage={stage}] "
        requests = build_requests(ctx, stage, self.config)

        # Resources with nothing to fetch settle immediately
        if stage == "dining":
            if "restaurants" not in requests:
                set_enrichment_status(ctx, "restaurants", "done")
            if "experiences" not in requests:
                set_enrichment_status(ctx, "experiences", "done")

        if not requests:
            logger.info(f"{_log}Nothing to request")
            return

        for resource in requests:
            self._mark_loading(ctx, resource)
        log_state_transition(
            "enrichment_started", state_summary(ctx), extra={"stage": stage, "resources": list(requests)}
        )
        logger.info(f"{_log}Requesting {list(requests)}")

        try:
            result = await self.graph.ainvoke(
                {
                    "session_id": ctx.session_id,
                    "stage": stage,
                    "requests": requests,
                    "outcomes": [],
                },
                config={
                    "configurable": {
                        "gateway": self.gateway,
                        "retry_policy": {
                            "max_attempts": self.config.itinerary_max_attempts,
                            "min_wait": self.config.retry_min_wait,
                            "max_wait": self.config.retry_max_wait,
                        },
                    }
                },
            )
        except Exception as e:
            logger.exception(f"{_log}Enrichment run failed: {e!r}")
            result = {"outcomes": []}

        # Commit in request order so transcript order does not depend on which call settled first
        outcomes = {outcome["resource"]: outcome for outcome in result.get("outcomes", [])}
        for resource in requests:
            # A request with no recorded outcome never settled; fail it as a server error
            outcome = outcomes.get(resource) or failed_outcome(
                resource, requests[resource]["endpoint"], SERVER, "no outcome recorded"
            )
            outcomes[resource] = outcome
            self._debug_outcome(outcome)
            await self.pacer.pause("message")
            self._commit(ctx, outcome)

        log_state_transition(
            "enrichment_settled",
            state_summary(ctx),
            extra={"stage": stage, "failed": [r for r, o in outcomes.items() if not o["ok"]]},
        )

    def _mark_loading(self, ctx: ConversationContext, resource: str) -> None:
        if resource == "itinerary":
            set_itinerary_status(ctx, "loading")
            return
        for kind in RESOURCE_KINDS[resource]:
            set_enrichment_status(ctx, kind, "loading")

    def _debug_outcome(self, outcome: EnrichmentOutcome) -> None:
        if self.debug is None:
            return
        self.debug.log_enrichment_call(
            kind=outcome["resource"],
            endpoint=outcome["endpoint"],
            duration_ms=outcome["duration_ms"],
            ok=outcome["ok"],
            failure_kind=outcome["failure_kind"],
            result_count=_result_count(outcome),
        )

    # -------------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------------

    def _commit(self, ctx: ConversationContext, outcome: EnrichmentOutcome) -> None:
        resource = outcome["resource"]
        if resource == "itinerary":
            self._commit_itinerary(ctx, outcome)
            return

        if outcome["ok"]:
            try:
                count = _COMMITTERS[resource](ctx, outcome["body"])
            except PydanticValidationError as e:
                logger.warning(
                    f"[session={ctx.session_id}] [component=coordinator] "
                    f"Malformed {resource} response: {e.error_count()} errors"
                )
                outcome = {**outcome, "ok": False, "failure_kind": SERVER}
            else:
                self._settle(ctx, resource, "done")
                if resource == "areas":
                    ctx.confidence["areas"] = "confirmed" if count else "unknown"
                    transcript.append(
                        ctx,
                        "assistant",
                        transcript.areas_found_message(count, ctx.preferences.destination_name),
                        mood="celebrating" if count else "idle",
                        evidence=transcript.evidence_for_areas(ctx.discovered) or None,
                    )
                elif count:
                    ctx.confidence[resource] = "confirmed"
                else:
                    ctx.confidence[resource] = "unknown"
                    transcript.append(ctx, "assistant", transcript.zero_results_message(resource), mood="concerned")
                return

        self._settle(ctx, resource, "error")
        ctx.confidence[resource] = "partial"
        transcript.append(
            ctx,
            "assistant",
            transcript.failure_message(resource, outcome["failure_kind"]),
            mood="concerned",
        )

    def _settle(self, ctx: ConversationContext, resource: str, status: str) -> None:
        for kind in RESOURCE_KINDS[resource]:
            set_enrichment_status(ctx, kind, status)

    def _commit_itinerary(self, ctx: ConversationContext, outcome: EnrichmentOutcome) -> None:
        itinerary = None
        if outcome["ok"]:
            try:
                itinerary = GenerateItineraryResponse.model_validate(outcome["body"]).itinerary
            except PydanticValidationError:
                itinerary = None

        if itinerary is not None:
            ctx.itinerary = itinerary
            set_itinerary_status(ctx, "done")
            ctx.confidence["itinerary"] = "confirmed"
        else:
            reason = outcome["failure_kind"] or "empty_response"
            ctx.itinerary = build_fallback_itinerary(ctx.preferences, ctx.discovered, reason=reason)
            set_itinerary_status(ctx, "error" if not outcome["ok"] else "done")
            ctx.confidence["itinerary"] = "partial"

        transcript.append(
            ctx,
            "assistant",
            transcript.itinerary_ready_message(ctx.itinerary.is_fallback),
            mood="celebrating",
        )


# =============================================================================
# Result committers (return the number of candidates found)
# =============================================================================


def _commit_areas(ctx: ConversationContext, body: Dict[str, Any]) -> int:
    response = DiscoverAreasResponse.model_validate(body)
    set_discovered_areas(ctx, response.areas)
    return len(response.areas)


def _commit_hotels(ctx: ConversationContext, body: Dict[str, Any]) -> int:
    response = HotelsResponse.model_validate(body)
    for area_id in ctx.preferences.selected_areas or []:
        set_discovered_hotels(ctx, area_id, response.hotels_by_area.get(area_id, []))
    return sum(len(hotels) for hotels in ctx.discovered.hotels.values())


def _commit_restaurants(ctx: ConversationContext, body: Dict[str, Any]) -> int:
    response = RestaurantsResponse.model_validate(body)
    for cuisine in ctx.preferences.cuisine_preferences or []:
        set_discovered_restaurants(ctx, cuisine, response.restaurants_by_cuisine.get(cuisine, []))
    return sum(len(found) for found in ctx.discovered.restaurants.values())


def _commit_experiences(ctx: ConversationContext, body: Dict[str, Any]) -> int:
    response = ExperiencesResponse.model_validate(body)
    for activity_type in ctx.preferences.activities or []:
        set_discovered_experiences(ctx, activity_type, response.experiences_by_type.get(activity_type, []))
    return sum(len(found) for found in ctx.discovered.experiences.values())


_COMMITTERS = {
    "areas": _commit_areas,
    "hotels": _commit_hotels,
    "restaurants": _commit_restaurants,
    "experiences": _commit_experiences,
}


def _result_count(outcome: EnrichmentOutcome) -> Optional[int]:
    body = outcome.get("body")
    if not outcome["ok"] or not isinstance(body, dict):
        return None
    for key in ("areas", "hotelsByArea", "restaurantsByCuisine", "experiencesByType"):
        value = body.get(key)
        if isinstance(value, list):
            return len(value)
        if isinstance(value, dict):
            return sum(len(v) for v in value.values() if isinstance(v, list))
    return None


# =============================================================================
# DiscoveredData setters
# =============================================================================


def set_discovered_areas(ctx: ConversationContext, areas: List[Any]) -> None:
    ctx.discovered.areas = list(areas)


def set_discovered_hotels(ctx: ConversationContext, area_id: str, hotels: List[Any]) -> None:
    ctx.discovered.hotels[area_id] = list(hotels)


def set_discovered_restaurants(ctx: ConversationContext, cuisine: str, restaurants: List[Any]) -> None:
    ctx.discovered.restaurants[cuisine] = list(restaurants)


def set_discovered_experiences(ctx: ConversationContext, activity_type: str, experiences: List[Any]) -> None:
    ctx.discovered.experiences[activity_type] = list(experiences)
