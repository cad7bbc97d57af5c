"""
Tests for the Enrichment Pipeline Coordinator.

Runs stages against FakeGateway and checks what gets committed: discovered
data, statuses, confidence markers and transcript messages.
"""

import pytest

from quickplan.conversation.schemas import ConversationContext, Destination
from quickplan.enrichment.coordinator import (
    EnrichmentCoordinator,
    build_requests,
    due_stage,
)
from quickplan.enrichment.fallback import build_fallback_itinerary, nights_per_area
from quickplan.graph.config import (
    DISCOVER_AREAS,
    EXPERIENCES,
    GENERATE_ITINERARY,
    HOTELS,
    RESTAURANTS,
)
from quickplan.shared.contracts.enrichment import AreaCandidate, HotelCandidate
from quickplan.shared.errors import NETWORK, RATE_LIMITED, SERVER, TIMEOUT
from quickplan.shared.logging.debug_logger import DebugLogger
from quickplan.shared.pacing import NoPacing
from quickplan.tests.conftest import TEST_CONFIG, FakeGateway


def _enriching_context() -> ConversationContext:
    ctx = ConversationContext(session_id="coordinator-test")
    prefs = ctx.preferences
    prefs.destination = Destination(raw_input="bali", canonical_name="Bali")
    prefs.trip_length = 7
    prefs.adults = 2
    prefs.budget_min = 100
    prefs.budget_max = 300
    prefs.activities = ["beach", "cultural"]
    prefs.pace = "balanced"
    ctx.phase = "enriching"
    return ctx


def _dining_context() -> ConversationContext:
    """Areas and hotels settled, dining answered with two cuisines."""
    ctx = _enriching_context()
    prefs = ctx.preferences
    prefs.selected_areas = ["seminyak"]
    prefs.hotel_preferences = ["pool"]
    prefs.dining_mode = "plan"
    prefs.cuisine_preferences = ["local", "seafood"]
    ctx.enrichment_status.update({"reddit": "done", "areas": "done", "hotels": "done", "pricing": "done"})
    return ctx


def _coordinator(gateway: FakeGateway) -> EnrichmentCoordinator:
    return EnrichmentCoordinator(gateway, TEST_CONFIG, NoPacing(), DebugLogger("coordinator-test"))


class TestDueStage:
    """Due work is derived from state alone."""

    def test_nothing_due_while_gathering(self):
        assert due_stage(ConversationContext()) is None

    def test_areas_due_on_entering_enriching(self):
        assert due_stage(_enriching_context()) == "areas"

    def test_hotels_due_after_hotel_preferences(self):
        ctx = _enriching_context()
        ctx.enrichment_status.update({"reddit": "done", "areas": "done"})
        ctx.preferences.selected_areas = ["seminyak"]
        assert due_stage(ctx) is None

        ctx.preferences.hotel_preferences = ["pool"]
        assert due_stage(ctx) == "hotels"

    def test_dining_waits_for_cuisines_when_planning(self):
        ctx = _dining_context()
        ctx.preferences.cuisine_preferences = None
        assert due_stage(ctx) is None

        ctx.preferences.skipped.add("cuisine_preferences")
        assert due_stage(ctx) == "dining"

    def test_itinerary_due_in_generating(self):
        ctx = _dining_context()
        ctx.phase = "generating"
        assert due_stage(ctx) == "itinerary"

        ctx.itinerary_status = "done"
        assert due_stage(ctx) is None


class TestPayloads:
    """Request bodies follow the endpoint contracts."""

    def test_hotels_payload(self):
        ctx = _dining_context()

        request = build_requests(ctx, "hotels")["hotels"]

        assert request["endpoint"] == HOTELS
        assert request["payload"]["areaIds"] == ["seminyak"]
        assert request["payload"]["preferences"]["budgetMax"] == 300
        assert "checkIn" not in request["payload"]

    def test_areas_payload_uses_default_subreddits(self):
        request = build_requests(_enriching_context(), "areas", TEST_CONFIG)["areas"]

        assert request["endpoint"] == DISCOVER_AREAS
        assert request["payload"]["destination"] == "Bali"
        assert request["payload"]["subreddits"] == ["travel", "solotravel"]
        assert "skipped" not in request["payload"]["preferences"]

    def test_dining_requests_both(self):
        requests = build_requests(_dining_context(), "dining")

        assert set(requests) == {"restaurants", "experiences"}
        assert requests["restaurants"]["payload"]["cuisineTypes"] == ["local", "seafood"]
        assert requests["experiences"]["payload"]["activityTypes"] == ["beach", "cultural"]

    def test_itinerary_payload_sends_selected_areas_only(self):
        ctx = _dining_context()
        ctx.discovered.areas = [
            AreaCandidate(id="canggu", name="Canggu"),
            AreaCandidate(id="seminyak", name="Seminyak"),
            AreaCandidate(id="ubud", name="Ubud"),
        ]

        request = build_requests(ctx, "itinerary")["itinerary"]

        assert request["endpoint"] == GENERATE_ITINERARY
        assert [area["id"] for area in request["payload"]["areas"]] == ["seminyak"]


class TestAreasStage:
    """Tests for area discovery."""

    @pytest.mark.asyncio
    async def test_commits_areas(self):
        gateway = FakeGateway()
        ctx = _enriching_context()

        ran = await _coordinator(gateway).run_due_work(ctx)

        assert ran == ["areas"]
        assert [a.id for a in ctx.discovered.areas] == ["seminyak", "ubud", "canggu"]
        assert ctx.enrichment_status["areas"] == "done"
        assert ctx.enrichment_status["reddit"] == "done"
        assert ctx.confidence["areas"] == "confirmed"
        assert "found 3 areas in Bali" in ctx.transcript[-1].text
        assert ctx.transcript[-1].attached_evidence

    @pytest.mark.asyncio
    async def test_zero_areas_is_done_with_apology(self):
        gateway = FakeGateway({DISCOVER_AREAS: {"areas": []}})
        ctx = _enriching_context()

        await _coordinator(gateway).run_due_work(ctx)

        assert ctx.enrichment_status["areas"] == "done"
        assert ctx.confidence["areas"] == "unknown"
        assert "trouble finding specific areas" in ctx.transcript[-1].text

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kind,phrase",
        [
            (TIMEOUT, "taking longer than expected"),
            (NETWORK, "couldn't reach"),
            (RATE_LIMITED, "Lots of people"),
            (SERVER, "Having trouble"),
        ],
    )
    async def test_failure_degrades_confidence(self, kind, phrase):
        gateway = FakeGateway()
        gateway.fail(DISCOVER_AREAS, kind)
        ctx = _enriching_context()

        await _coordinator(gateway).run_due_work(ctx)

        assert ctx.enrichment_status["areas"] == "error"
        assert ctx.confidence["areas"] == "partial"
        assert phrase in ctx.transcript[-1].text
        assert ctx.transcript[-1].mood == "concerned"
        assert len(gateway.calls_to(DISCOVER_AREAS)) == 1

    @pytest.mark.asyncio
    async def test_malformed_response_is_a_server_failure(self):
        gateway = FakeGateway({DISCOVER_AREAS: {"areas": [{"name": "No id"}]}})
        ctx = _enriching_context()

        await _coordinator(gateway).run_due_work(ctx)

        assert ctx.enrichment_status["areas"] == "error"
        assert ctx.discovered.areas == []


class TestHotelsStage:
    """Tests for hotel search."""

    @pytest.mark.asyncio
    async def test_hotels_keyed_by_selected_area(self):
        gateway = FakeGateway()
        ctx = _dining_context()
        ctx.enrichment_status.update({"hotels": "pending", "pricing": "pending"})
        ctx.preferences.dining_mode = None
        ctx.preferences.cuisine_preferences = None

        ran = await _coordinator(gateway).run_due_work(ctx)

        assert ran == ["hotels"]
        assert list(ctx.discovered.hotels) == ["seminyak"]
        assert ctx.enrichment_status["hotels"] == "done"
        assert ctx.enrichment_status["pricing"] == "done"

    @pytest.mark.asyncio
    async def test_no_hotels_found(self):
        gateway = FakeGateway({HOTELS: {"hotelsByArea": {}}})
        ctx = _dining_context()
        ctx.enrichment_status.update({"hotels": "pending", "pricing": "pending"})
        ctx.preferences.dining_mode = None

        await _coordinator(gateway).run_due_work(ctx)

        assert ctx.enrichment_status["hotels"] == "done"
        assert ctx.discovered.hotels == {"seminyak": []}
        assert "couldn't find any hotels" in ctx.transcript[-1].text

    @pytest.mark.asyncio
    async def test_unexpected_gateway_error_settles_as_error(self):
        def explode(payload):
            raise RuntimeError("connection pool closed")

        gateway = FakeGateway({HOTELS: explode})
        ctx = _dining_context()
        ctx.enrichment_status.update({"hotels": "pending", "pricing": "pending"})
        ctx.preferences.dining_mode = None

        ran = await _coordinator(gateway).run_due_work(ctx)

        assert ran == ["hotels"]
        assert ctx.enrichment_status["hotels"] == "error"
        assert ctx.enrichment_status["pricing"] == "error"
        assert ctx.confidence["hotels"] == "partial"
        assert "Having trouble finding hotels" in ctx.transcript[-1].text


class TestDiningStage:
    """Restaurants and experiences are fetched together and joined."""

    @pytest.mark.asyncio
    async def test_both_settle_before_returning(self):
        gateway = FakeGateway()
        gateway.delays = {RESTAURANTS: 0.05, EXPERIENCES: 0.01}
        ctx = _dining_context()

        await _coordinator(gateway).run_stage(ctx, "dining")

        assert gateway.max_in_flight == 2
        # Experiences settled first, both committed
        assert gateway.settled == [EXPERIENCES, RESTAURANTS]
        assert ctx.enrichment_status["restaurants"] == "done"
        assert ctx.enrichment_status["experiences"] == "done"
        assert set(ctx.discovered.restaurants) == {"local", "seafood"}
        assert set(ctx.discovered.experiences) == {"beach", "cultural"}

    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_the_other(self):
        gateway = FakeGateway()
        gateway.delays = {EXPERIENCES: 0.03}
        gateway.fail(RESTAURANTS, NETWORK)
        ctx = _dining_context()

        await _coordinator(gateway).run_stage(ctx, "dining")

        assert ctx.enrichment_status["restaurants"] == "error"
        assert ctx.confidence["restaurants"] == "partial"
        assert ctx.enrichment_status["experiences"] == "done"
        assert ctx.confidence["experiences"] == "confirmed"

    @pytest.mark.asyncio
    async def test_no_dining_plan_skips_restaurants(self):
        gateway = FakeGateway()
        ctx = _dining_context()
        ctx.preferences.dining_mode = "none"
        ctx.preferences.cuisine_preferences = None

        await _coordinator(gateway).run_due_work(ctx)

        assert gateway.calls_to(RESTAURANTS) == []
        assert len(gateway.calls_to(EXPERIENCES)) == 1
        assert ctx.enrichment_status["restaurants"] == "done"
        assert ctx.enrichment_status["experiences"] == "done"

    @pytest.mark.asyncio
    async def test_debug_log_records_each_call(self):
        gateway = FakeGateway()
        coordinator = _coordinator(gateway)

        await coordinator.run_stage(_dining_context(), "dining")

        kinds = [e["details"]["kind"] for e in coordinator.debug.entries if e["type"] == "enrichment"]
        assert sorted(kinds) == ["experiences", "restaurants"]


class TestItineraryStage:
    """Itinerary generation, retries and fallback."""

    def _generating_context(self) -> ConversationContext:
        ctx = _dining_context()
        ctx.enrichment_status.update({"restaurants": "done", "experiences": "done"})
        ctx.phase = "generating"
        return ctx

    @pytest.mark.asyncio
    async def test_generated_itinerary(self):
        gateway = FakeGateway()
        ctx = self._generating_context()

        await _coordinator(gateway).run_due_work(ctx)

        assert ctx.itinerary is not None
        assert ctx.itinerary.is_fallback is False
        assert ctx.itinerary_status == "done"
        assert ctx.confidence["itinerary"] == "confirmed"

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        gateway = FakeGateway()
        gateway.fail(GENERATE_ITINERARY, SERVER)
        ctx = self._generating_context()

        await _coordinator(gateway).run_due_work(ctx)

        assert len(gateway.calls_to(GENERATE_ITINERARY)) == 2
        assert ctx.itinerary.is_fallback is False

    @pytest.mark.asyncio
    async def test_timeout_is_not_retried(self):
        gateway = FakeGateway()
        gateway.fail(GENERATE_ITINERARY, TIMEOUT)
        ctx = self._generating_context()

        await _coordinator(gateway).run_due_work(ctx)

        assert len(gateway.calls_to(GENERATE_ITINERARY)) == 1
        assert ctx.itinerary.is_fallback is True

    @pytest.mark.asyncio
    async def test_fallback_after_retries_exhausted(self):
        gateway = FakeGateway()
        gateway.fail(GENERATE_ITINERARY, RATE_LIMITED, times=2)
        ctx = self._generating_context()
        ctx.discovered.hotels = {}

        await _coordinator(gateway).run_due_work(ctx)

        assert len(gateway.calls_to(GENERATE_ITINERARY)) == 2
        assert ctx.itinerary.is_fallback is True
        assert ctx.itinerary_status == "error"
        assert ctx.confidence["itinerary"] == "partial"
        assert "simpler plan" in ctx.transcript[-1].text

    @pytest.mark.asyncio
    async def test_empty_response_falls_back(self):
        gateway = FakeGateway({GENERATE_ITINERARY: {}})
        ctx = self._generating_context()

        await _coordinator(gateway).run_due_work(ctx)

        assert ctx.itinerary.is_fallback is True
        assert ctx.itinerary_status == "done"


class TestFallbackItinerary:
    """The local itinerary tolerates missing data."""

    def test_uses_first_hotel_when_none_selected(self):
        ctx = _dining_context()
        ctx.discovered.areas = [AreaCandidate(id="seminyak", name="Seminyak")]
        ctx.discovered.hotels = {
            "seminyak": [HotelCandidate(id="h1", name="First"), HotelCandidate(id="h2", name="Second")]
        }

        itinerary = build_fallback_itinerary(ctx.preferences, ctx.discovered, reason=SERVER)

        assert itinerary.is_fallback is True
        assert itinerary.stops[0]["hotel"]["name"] == "First"
        assert len(itinerary.days) == 7

    def test_nothing_discovered(self):
        ctx = _enriching_context()

        itinerary = build_fallback_itinerary(ctx.preferences, ctx.discovered)

        assert itinerary.days == []
        assert itinerary.is_fallback is True

    def test_even_split_when_none_given(self):
        ctx = _enriching_context()

        assert nights_per_area(ctx.preferences, ["a", "b"]) == {"a": 3, "b": 4}
