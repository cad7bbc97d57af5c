"""
Phase State Machine.

    gathering  --all gathering fields resolved-->        enriching
    enriching  --no question left, nothing loading-->    generating
    generating --itinerary settled (or fallback)-->      reviewing
    reviewing  --satisfied-->                            satisfied
    reviewing  --dissatisfied-->                         gathering | enriching | generating

next_phase() is pure and idempotent: it only reads the context. Side effects
of entering a phase (enrichment calls) are derived from state by the
coordinator, so evaluating a transition twice never triggers work twice.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional

from quickplan.conversation.schemas import (
    ENRICHMENT_KINDS,
    PHASES,
    STATUS_RANK,
    TERMINAL_STATUSES,
    ConversationContext,
    DiscoveredData,
    phase_index,
)
from quickplan.conversation.sequencer import select_next_question
from quickplan.shared.logging.config import log_state_transition


logger = logging.getLogger(__name__)


def state_summary(ctx: ConversationContext) -> Dict[str, object]:
    return {
        "session_id": ctx.session_id,
        "phase": ctx.phase,
        "enrichment_status": dict(ctx.enrichment_status),
        "itinerary_status": ctx.itinerary_status,
        "history_length": len(ctx.history),
    }


# =============================================================================
# Forward transitions
# =============================================================================


def next_phase(ctx: ConversationContext) -> Optional[str]:
    """
    Phase the conversation should move to now, or None to stay.

    The reviewing -> satisfied/re-entry edges are driven by the satisfaction
    answer, never by this function.
    """
    phase = ctx.phase
    if phase in ("gathering", "enriching"):
        pending = select_next_question(ctx.preferences, ctx.discovered, phase, ctx.history)
        if pending is not None:
            return None
        if phase == "gathering":
            return "enriching"
        # An error status counts as settled; only in-flight work blocks
        if ctx.any_loading():
            return None
        return "generating"

    if phase == "generating":
        if ctx.itinerary_status in TERMINAL_STATUSES and ctx.itinerary is not None:
            return "reviewing"
        return None

    return None


def move_to(ctx: ConversationContext, to_phase: str, reason: str) -> str:
    """Set the phase and log the transition. Returns the previous phase."""
    if to_phase not in PHASES:
        raise ValueError(f"Unknown phase: {to_phase}")
    from_phase = ctx.phase
    ctx.phase = to_phase
    event = "phase_advanced" if phase_index(to_phase) > phase_index(from_phase) else "phase_reverted"
    log_state_transition(
        event,
        state_summary(ctx),
        extra={"from": from_phase, "to": to_phase, "reason": reason, "session_id": ctx.session_id},
    )
    return from_phase


# =============================================================================
# Enrichment status bookkeeping
# =============================================================================


def set_enrichment_status(ctx: ConversationContext, kind: str, status: str) -> bool:
    """
    Move a resource's status forward. Regressions are ignored.

    Returns:
        True when the status changed
    """
    if kind not in ENRICHMENT_KINDS:
        raise ValueError(f"Unknown enrichment kind: {kind}")
    if status not in STATUS_RANK:
        raise ValueError(f"Unknown enrichment status: {status}")

    current = ctx.enrichment_status.get(kind, "pending")
    if current in TERMINAL_STATUSES or STATUS_RANK[status] < STATUS_RANK[current]:
        if status != current:
            logger.warning(
                f"[session={ctx.session_id}] [component=phases] "
                f"Ignoring status regression {kind}: {current} -> {status}"
            )
        return False
    if status == current:
        return False
    ctx.enrichment_status[kind] = status
    return True


def set_itinerary_status(ctx: ConversationContext, status: str) -> bool:
    current = ctx.itinerary_status
    if current in TERMINAL_STATUSES or STATUS_RANK[status] <= STATUS_RANK[current]:
        return False
    ctx.itinerary_status = status
    return True


def reset_statuses(ctx: ConversationContext, kinds: Iterable[str]) -> None:
    """Sanctioned reset back to pending (re-entry, go-back, reset)."""
    for kind in kinds:
        ctx.enrichment_status[kind] = "pending"


def clear_itinerary(ctx: ConversationContext) -> None:
    ctx.itinerary = None
    ctx.itinerary_status = "pending"
    ctx.confidence.pop("itinerary", None)


def clear_hotels(ctx: ConversationContext, keep_discovered: bool = False) -> None:
    prefs = ctx.preferences
    prefs.selected_hotels = {}
    prefs.hotel_areas_done = set()
    ctx.confidence["hotels"] = "unknown"
    if not keep_discovered:
        ctx.discovered.hotels = {}
        reset_statuses(ctx, ("hotels", "pricing"))


def clear_dining(ctx: ConversationContext) -> None:
    prefs = ctx.preferences
    prefs.selected_restaurants = {}
    prefs.cuisines_done = set()
    prefs.selected_experiences = {}
    prefs.activity_types_done = set()
    ctx.discovered.restaurants = {}
    ctx.discovered.experiences = {}
    reset_statuses(ctx, ("restaurants", "experiences"))


def reset_all_enrichment(ctx: ConversationContext) -> None:
    """Everything enrichment produced, plus the selections made from it."""
    prefs = ctx.preferences
    ctx.discovered = DiscoveredData()
    reset_statuses(ctx, ENRICHMENT_KINDS)
    for field in ("areas", "split", "hotel_preferences", "dining",
                  "dietary_restrictions", "cuisine_preferences"):
        prefs.skipped.discard(field)
    prefs.selected_areas = None
    prefs.split = None
    prefs.hotel_preferences = None
    prefs.dining_mode = None
    prefs.dietary_restrictions = None
    prefs.cuisine_preferences = None
    clear_hotels(ctx)
    clear_dining(ctx)
    for resource in ("areas", "hotels", "restaurants", "experiences"):
        ctx.confidence.pop(resource, None)
    clear_itinerary(ctx)


# =============================================================================
# Dissatisfaction re-entry
# =============================================================================


def _wrong_areas(ctx: ConversationContext, feedback: Optional[str]) -> str:
    prefs = ctx.preferences
    ctx.discovered.areas = []
    prefs.selected_areas = None
    prefs.split = None
    prefs.skipped.discard("split")
    ctx.confidence["areas"] = "unknown"
    reset_statuses(ctx, ("reddit", "areas"))
    clear_hotels(ctx)
    return "enriching"


def _wrong_vibe(ctx: ConversationContext, feedback: Optional[str]) -> str:
    ctx.preferences.vibe = None
    ctx.preferences.skipped.discard("vibe")
    ctx.confidence["vibe"] = "unknown"
    return "gathering"


def _too_packed(ctx: ConversationContext, feedback: Optional[str]) -> str:
    ctx.preferences.pace = "chill"
    return "generating"


def _too_chill(ctx: ConversationContext, feedback: Optional[str]) -> str:
    ctx.preferences.pace = "packed"
    return "generating"


def _hotel_wrong(ctx: ConversationContext, feedback: Optional[str]) -> str:
    clear_hotels(ctx)
    return "enriching"


def _dining_wrong(ctx: ConversationContext, feedback: Optional[str]) -> str:
    # Keep the dining mode and dietary restrictions; re-ask cuisines only
    prefs = ctx.preferences
    prefs.cuisine_preferences = None
    prefs.skipped.discard("cuisine_preferences")
    prefs.selected_restaurants = {}
    prefs.cuisines_done = set()
    ctx.discovered.restaurants = {}
    reset_statuses(ctx, ("restaurants",))
    ctx.confidence["dining"] = "confirmed"
    return "enriching"


def _too_touristy(ctx: ConversationContext, feedback: Optional[str]) -> str:
    ctx.preferences.avoid_touristy = True
    return "generating"


def _missing_activity(ctx: ConversationContext, feedback: Optional[str]) -> str:
    if feedback:
        ctx.preferences.must_include_activities.append(feedback)
    return "generating"


def _budget_exceeded(ctx: ConversationContext, feedback: Optional[str]) -> str:
    prefs = ctx.preferences
    if prefs.budget_max:
        prefs.budget_max = round(prefs.budget_max * 0.75)
        if prefs.budget_min and prefs.budget_min > prefs.budget_max:
            prefs.budget_min = prefs.budget_max
    clear_hotels(ctx)
    return "enriching"


def _other(ctx: ConversationContext, feedback: Optional[str]) -> str:
    if feedback:
        ctx.preferences.custom_feedback = feedback
    return "generating"


REASON_HANDLERS: Dict[str, Callable[[ConversationContext, Optional[str]], str]] = {
    "wrong_areas": _wrong_areas,
    "wrong_vibe": _wrong_vibe,
    "too_packed": _too_packed,
    "too_chill": _too_chill,
    "hotel_wrong": _hotel_wrong,
    "dining_wrong": _dining_wrong,
    "too_touristy": _too_touristy,
    "missing_activity": _missing_activity,
    "budget_exceeded": _budget_exceeded,
    "other": _other,
}


def reentry_phase(targets: List[str]) -> str:
    """Earliest phase any reason needs; generating when none do."""
    for phase in ("gathering", "enriching", "generating"):
        if phase in targets:
            return phase
    return "generating"


def apply_dissatisfaction(
    ctx: ConversationContext, reasons: List[str], feedback: Optional[str] = None
) -> str:
    """
    Reset exactly what the reasons implicate and re-enter the earliest phase.

    The itinerary is always cleared so it is regenerated once on the way back
    to reviewing. The satisfaction answer is cleared so it is asked again.

    Returns:
        The re-entry phase
    """
    targets = [REASON_HANDLERS.get(reason, _other)(ctx, feedback) for reason in reasons]
    target = reentry_phase(targets)

    clear_itinerary(ctx)
    ctx.preferences.satisfied = None
    move_to(ctx, target, reason=f"dissatisfied: {', '.join(reasons)}")
    return target


def apply_satisfaction(ctx: ConversationContext) -> None:
    ctx.confidence["itinerary"] = "complete"
    move_to(ctx, "satisfied", reason="user satisfied")
