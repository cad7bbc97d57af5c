"""
Unit tests for the Phase State Machine.

Tests forward transitions, forward-only enrichment statuses, and the
dissatisfaction re-entry rules.
"""

import pytest

from quickplan.conversation.phases import (
    REASON_HANDLERS,
    apply_dissatisfaction,
    apply_satisfaction,
    move_to,
    next_phase,
    reentry_phase,
    set_enrichment_status,
    set_itinerary_status,
)
from quickplan.conversation.schemas import (
    ConversationContext,
    Destination,
    DiscoveredData,
)
from quickplan.shared.contracts.enrichment import (
    AreaCandidate,
    ExperienceCandidate,
    HotelCandidate,
    Itinerary,
    RestaurantCandidate,
)


def _gathered_context() -> ConversationContext:
    ctx = ConversationContext(session_id="phases-test")
    prefs = ctx.preferences
    prefs.destination = Destination(raw_input="bali", canonical_name="Bali")
    prefs.trip_length = 7
    prefs.adults = 2
    prefs.budget_min = 100
    prefs.budget_max = 300
    prefs.activities = ["beach"]
    prefs.pace = "balanced"
    prefs.skipped.update({"trip_occasion", "accessibility", "accommodation_type", "vibe", "subreddits", "user_notes"})
    return ctx


def _reviewing_context() -> ConversationContext:
    """A context that reached review with every resource enriched."""
    ctx = _gathered_context()
    prefs = ctx.preferences
    ctx.discovered = DiscoveredData(
        areas=[AreaCandidate(id="seminyak", name="Seminyak")],
        hotels={"seminyak": [HotelCandidate(id="h1", name="Villa")]},
        restaurants={"seafood": [RestaurantCandidate(id="r1", name="Grill")]},
        experiences={"beach": [ExperienceCandidate(id="e1", name="Snorkel")]},
    )
    prefs.selected_areas = ["seminyak"]
    prefs.hotel_preferences = ["pool"]
    prefs.selected_hotels = {"seminyak": "h1"}
    prefs.hotel_areas_done = {"seminyak"}
    prefs.dining_mode = "plan"
    prefs.cuisine_preferences = ["seafood"]
    prefs.selected_restaurants = {"seafood": ["r1"]}
    prefs.cuisines_done = {"seafood"}
    prefs.selected_experiences = {"beach": ["e1"]}
    prefs.activity_types_done = {"beach"}
    prefs.skipped.add("dietary_restrictions")
    ctx.enrichment_status = {
        "reddit": "done", "areas": "done", "hotels": "done",
        "pricing": "done", "restaurants": "done", "experiences": "error",
    }
    ctx.itinerary = Itinerary(days=[{"day": 1}], stops=[])
    ctx.itinerary_status = "done"
    ctx.phase = "reviewing"
    return ctx


class TestNextPhase:
    """Tests for forward transitions."""

    def test_gathering_stays_while_questions_remain(self):
        ctx = ConversationContext()

        assert next_phase(ctx) is None

    def test_gathering_to_enriching_when_exhausted(self):
        assert next_phase(_gathered_context()) == "enriching"

    def test_enriching_waits_for_loading_resources(self):
        ctx = _reviewing_context()
        ctx.phase = "enriching"
        ctx.enrichment_status["restaurants"] = "loading"

        assert next_phase(ctx) is None

    def test_enriching_to_generating_with_errors_settled(self):
        ctx = _reviewing_context()
        ctx.phase = "enriching"

        assert next_phase(ctx) == "generating"

    def test_generating_to_reviewing_once_itinerary_settles(self):
        ctx = _reviewing_context()
        ctx.phase = "generating"
        ctx.itinerary_status = "loading"
        assert next_phase(ctx) is None

        ctx.itinerary_status = "error"
        assert next_phase(ctx) == "reviewing"

    def test_next_phase_is_idempotent(self):
        ctx = _gathered_context()

        assert next_phase(ctx) == next_phase(ctx) == "enriching"
        assert ctx.phase == "gathering"

    def test_reviewing_never_advances_on_its_own(self):
        assert next_phase(_reviewing_context()) is None

    def test_move_to_rejects_unknown_phase(self):
        with pytest.raises(ValueError):
            move_to(ConversationContext(), "done", reason="test")


class TestEnrichmentStatus:
    """Tests for forward-only status updates."""

    def test_forward_progression(self):
        ctx = ConversationContext()

        assert set_enrichment_status(ctx, "hotels", "loading") is True
        assert set_enrichment_status(ctx, "hotels", "done") is True
        assert ctx.enrichment_status["hotels"] == "done"

    def test_regression_is_ignored(self):
        ctx = ConversationContext()
        set_enrichment_status(ctx, "areas", "done")

        assert set_enrichment_status(ctx, "areas", "loading") is False
        assert set_enrichment_status(ctx, "areas", "pending") is False
        assert ctx.enrichment_status["areas"] == "done"

    def test_terminal_status_is_final(self):
        ctx = ConversationContext()
        set_enrichment_status(ctx, "restaurants", "error")

        assert set_enrichment_status(ctx, "restaurants", "done") is False
        assert ctx.enrichment_status["restaurants"] == "error"

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            set_enrichment_status(ConversationContext(), "flights", "done")

    def test_itinerary_status_forward_only(self):
        ctx = ConversationContext()
        assert set_itinerary_status(ctx, "loading") is True
        assert set_itinerary_status(ctx, "done") is True
        assert set_itinerary_status(ctx, "pending") is False


class TestDissatisfaction:
    """Tests for re-entry after a dissatisfied review."""

    def test_hotel_wrong_resets_hotels_only(self):
        ctx = _reviewing_context()

        target = apply_dissatisfaction(ctx, ["hotel_wrong"])

        assert target == "enriching"
        assert ctx.phase == "enriching"
        assert ctx.enrichment_status["hotels"] == "pending"
        assert ctx.enrichment_status["pricing"] == "pending"
        assert ctx.preferences.selected_hotels == {}
        assert ctx.preferences.hotel_areas_done == set()
        # Dining state untouched
        assert ctx.enrichment_status["restaurants"] == "done"
        assert ctx.enrichment_status["experiences"] == "error"
        assert ctx.preferences.selected_restaurants == {"seafood": ["r1"]}
        assert ctx.preferences.selected_experiences == {"beach": ["e1"]}
        assert "seafood" in ctx.discovered.restaurants

    def test_every_reentry_clears_the_itinerary(self):
        ctx = _reviewing_context()

        apply_dissatisfaction(ctx, ["too_packed"])

        assert ctx.itinerary is None
        assert ctx.itinerary_status == "pending"
        assert ctx.preferences.satisfied is None
        assert ctx.phase == "generating"
        assert ctx.preferences.pace == "chill"

    def test_earliest_phase_wins(self):
        ctx = _reviewing_context()

        target = apply_dissatisfaction(ctx, ["too_touristy", "wrong_vibe", "hotel_wrong"])

        assert target == "gathering"
        assert ctx.preferences.avoid_touristy is True
        assert ctx.preferences.vibe is None

    def test_wrong_areas_clears_areas_and_hotels(self):
        ctx = _reviewing_context()

        apply_dissatisfaction(ctx, ["wrong_areas"])

        assert ctx.discovered.areas == []
        assert ctx.preferences.selected_areas is None
        assert ctx.enrichment_status["areas"] == "pending"
        assert ctx.enrichment_status["hotels"] == "pending"

    def test_dining_wrong_reasks_cuisines(self):
        ctx = _reviewing_context()

        apply_dissatisfaction(ctx, ["dining_wrong"])

        assert ctx.preferences.dining_mode == "plan"
        assert ctx.preferences.cuisine_preferences is None
        assert ctx.preferences.selected_restaurants == {}
        assert ctx.enrichment_status["restaurants"] == "pending"
        assert ctx.enrichment_status["experiences"] == "error"

    def test_budget_exceeded_lowers_budget(self):
        ctx = _reviewing_context()

        apply_dissatisfaction(ctx, ["budget_exceeded"])

        assert ctx.preferences.budget_max == 225
        assert ctx.enrichment_status["hotels"] == "pending"

    def test_missing_activity_and_other_keep_feedback(self):
        ctx = _reviewing_context()
        apply_dissatisfaction(ctx, ["missing_activity"], feedback="cooking class")
        assert ctx.preferences.must_include_activities == ["cooking class"]

        ctx = _reviewing_context()
        apply_dissatisfaction(ctx, ["other"], feedback="more beaches")
        assert ctx.preferences.custom_feedback == "more beaches"

    def test_every_reason_has_a_handler(self):
        assert set(REASON_HANDLERS) == {
            "wrong_areas", "wrong_vibe", "too_packed", "too_chill", "hotel_wrong",
            "dining_wrong", "too_touristy", "missing_activity", "budget_exceeded", "other",
        }

    def test_reentry_phase_defaults_to_generating(self):
        assert reentry_phase([]) == "generating"
        assert reentry_phase(["generating", "enriching"]) == "enriching"

    def test_satisfaction_completes(self):
        ctx = _reviewing_context()

        apply_satisfaction(ctx)

        assert ctx.phase == "satisfied"
        assert ctx.confidence["itinerary"] == "complete"
