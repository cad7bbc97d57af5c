"""
Routing logic for the enrichment graph.

Fans a stage out to one node per requested resource. Returning several node
names makes LangGraph run them in the same super-step, so independent calls
(restaurants and experiences) are outstanding at the same time and joined
before the graph finishes.
"""

import logging
from typing import List, Union

from langgraph.graph import END

from quickplan.enrichment.graph.state import EnrichmentState


logger = logging.getLogger(__name__)

RESOURCE_NODES = {
    "areas": "areas_node",
    "hotels": "hotels_node",
    "restaurants": "restaurants_node",
    "experiences": "experiences_node",
    "itinerary": "itinerary_node",
}


def route_requests(state: EnrichmentState) -> Union[List[str], str]:
    """
    Determine which fetch nodes to run for this stage.

    Args:
        state: Current enrichment state

    Returns:
        Node names to run in parallel, or END when nothing was requested
    """
    session_id = state.get("session_id", "unknown")
    stage = state.get("stage", "unknown")
    _log = f"[session={session_id}] [graph=enrichment] [router=route_requests] "

    nodes = [
        RESOURCE_NODES[resource]
        for resource in state.get("requests", {})
        if resource in RESOURCE_NODES
    ]

    if not nodes:
        logger.info(f"{_log}Stage '{stage}' has no requests -> END")
        return END

    logger.info(f"{_log}Stage '{stage}' fanning out to {nodes}")
    return nodes
