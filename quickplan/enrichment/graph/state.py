"""
Enrichment graph state schema.

One run of the enrichment graph executes one stage (areas, hotels, dining or
itinerary). The router fans out to one node per requested resource; each node
appends its outcome, and the coordinator commits all outcomes after the join.
"""

import operator
from typing import Annotated, Any, Dict, List, Optional, TypedDict


class EnrichmentRequest(TypedDict):
    """One gateway call a stage wants made."""

    endpoint: str
    payload: Dict[str, Any]


class EnrichmentOutcome(TypedDict):
    """Settled result of one request (success or classified failure)."""

    resource: str
    endpoint: str
    ok: bool
    body: Optional[Dict[str, Any]]
    failure_kind: Optional[str]
    message: Optional[str]
    attempts: int
    duration_ms: float


class EnrichmentState(TypedDict):
    """
    State schema for the enrichment graph.

    requests is keyed by resource ("areas", "hotels", "restaurants",
    "experiences", "itinerary"). outcomes uses an add reducer so parallel
    branches merge instead of overwriting each other.
    """

    session_id: Optional[str]
    stage: str
    requests: Dict[str, EnrichmentRequest]
    outcomes: Annotated[List[EnrichmentOutcome], operator.add]
