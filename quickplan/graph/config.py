"""
Configuration for the Quick Plan orchestrator.

Centralizes endpoint policies, pacing, retry and persistence settings so
behaviour can be tuned without touching the orchestrator wiring.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from dotenv import load_dotenv


# Enrichment endpoint names (relative to api_base_url)
DISCOVER_AREAS = "discover-areas"
HOTELS = "hotels"
RESTAURANTS = "restaurants"
EXPERIENCES = "experiences"
GENERATE_ITINERARY = "generate-itinerary"


@dataclass(frozen=True)
class EndpointPolicy:
    """
    Per-endpoint call policy.

    Attributes:
        timeout: Deadline for one attempt, in seconds
        cache_ttl: How long a successful result is reused, in seconds
            (0 disables caching)
    """

    timeout: float
    cache_ttl: float


def _default_endpoint_policies() -> Dict[str, EndpointPolicy]:
    # Windows follow data volatility: area discovery is stable for half an
    # hour, hotel prices move faster, generated itineraries barely at all.
    return {
        DISCOVER_AREAS: EndpointPolicy(timeout=45.0, cache_ttl=30 * 60),
        HOTELS: EndpointPolicy(timeout=30.0, cache_ttl=10 * 60),
        RESTAURANTS: EndpointPolicy(timeout=20.0, cache_ttl=15 * 60),
        EXPERIENCES: EndpointPolicy(timeout=20.0, cache_ttl=15 * 60),
        GENERATE_ITINERARY: EndpointPolicy(timeout=60.0, cache_ttl=2 * 60),
    }


@dataclass
class OrchestratorConfig:
    """
    Configuration for one orchestrator instance.

    Attributes:
        api_base_url: Base URL the enrichment endpoints hang off
        endpoints: Timeout and cache window per endpoint
        default_timeout: Deadline for endpoints without a policy
        default_subreddits: Subreddits searched when the user picks none
        default_trip_nights: Nights assumed when dates are unknown
        pacing_delays: Seconds per pacing beat (acknowledgment, message, phase)
        auto_finalize_delay: Seconds between "satisfied" and the automatic
            snapshot write; None disables the deferred finalize
        itinerary_max_attempts: Attempts for itinerary generation on
            rate-limit/server failures
        retry_min_wait / retry_max_wait: Backoff bounds in seconds
        snapshot_dir: Directory for finalized trip snapshots
        logs_dir: Optional directory for per-session debug logs
    """

    api_base_url: str = "http://localhost:3000/api/quick-plan"
    endpoints: Dict[str, EndpointPolicy] = field(default_factory=_default_endpoint_policies)
    default_timeout: float = 30.0

    default_subreddits: List[str] = field(default_factory=lambda: ["travel", "solotravel"])
    default_trip_nights: int = 7

    pacing_delays: Dict[str, float] = field(
        default_factory=lambda: {"acknowledgment": 0.6, "message": 0.3, "phase": 0.5}
    )
    auto_finalize_delay: Optional[float] = 1.5

    # Retry configuration (used by tenacity in enrichment/graph/build.py)
    itinerary_max_attempts: int = 2
    retry_min_wait: float = 0.5
    retry_max_wait: float = 4.0

    snapshot_dir: str = "snapshots"
    logs_dir: Optional[str] = None

    def policy_for(self, endpoint: str) -> EndpointPolicy:
        """Policy for an endpoint, falling back to no caching and the default timeout."""
        return self.endpoints.get(
            endpoint, EndpointPolicy(timeout=self.default_timeout, cache_ttl=0)
        )


# Default configuration instance
DEFAULT_CONFIG = OrchestratorConfig()


def get_config(
    api_base_url: Optional[str] = None,
    auto_finalize_delay: Optional[float] = None,
    itinerary_max_attempts: Optional[int] = None,
    snapshot_dir: Optional[str] = None,
    logs_dir: Optional[str] = None,
    pacing_delays: Optional[Dict[str, float]] = None,
) -> OrchestratorConfig:
    """
    Create a configuration with optional overrides.

    Args:
        api_base_url: Override for the enrichment base URL
        auto_finalize_delay: Override for the deferred finalize delay
        itinerary_max_attempts: Override for itinerary generation attempts
        snapshot_dir: Override for the snapshot directory
        logs_dir: Override for the debug log directory
        pacing_delays: Override for pacing beats

    Returns:
        OrchestratorConfig with specified overrides applied
    """
    return replace(
        DEFAULT_CONFIG,
        api_base_url=api_base_url or DEFAULT_CONFIG.api_base_url,
        auto_finalize_delay=auto_finalize_delay
        if auto_finalize_delay is not None
        else DEFAULT_CONFIG.auto_finalize_delay,
        itinerary_max_attempts=itinerary_max_attempts or DEFAULT_CONFIG.itinerary_max_attempts,
        snapshot_dir=snapshot_dir or DEFAULT_CONFIG.snapshot_dir,
        logs_dir=logs_dir if logs_dir is not None else DEFAULT_CONFIG.logs_dir,
        pacing_delays=pacing_delays
        if pacing_delays is not None
        else dict(DEFAULT_CONFIG.pacing_delays),
        endpoints=dict(DEFAULT_CONFIG.endpoints),
        default_subreddits=list(DEFAULT_CONFIG.default_subreddits),
    )


def load_config_from_env() -> OrchestratorConfig:
    """
    Build a configuration from environment variables (and a .env file).

    Reads QUICKPLAN_API_BASE_URL, QUICKPLAN_SNAPSHOT_DIR and QUICKPLAN_LOGS_DIR.
    """
    load_dotenv()
    return get_config(
        api_base_url=os.environ.get("QUICKPLAN_API_BASE_URL"),
        snapshot_dir=os.environ.get("QUICKPLAN_SNAPSHOT_DIR"),
        logs_dir=os.environ.get("QUICKPLAN_LOGS_DIR"),
    )
