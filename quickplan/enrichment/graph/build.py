"""
Enrichment graph construction.

Builds the graph that runs one enrichment stage:

    START → route_requests()
              ├→ areas_node        ┐
              ├→ hotels_node       │
              ├→ restaurants_node  ├→ END (join)
              ├→ experiences_node  │
              └→ itinerary_node    ┘

The gateway and retry policy are passed per run through
config["configurable"], so one compiled graph serves every session.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from quickplan.enrichment.graph.router import RESOURCE_NODES, route_requests
from quickplan.enrichment.graph.state import EnrichmentState
from quickplan.shared.errors import SERVER, EnrichmentFailure


logger = logging.getLogger(__name__)

# Resources whose failures the caller retries (the gateway never does)
RETRIED_RESOURCES = ("itinerary",)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, EnrichmentFailure) and exc.is_transient


async def _fetch_with_retry(
    gateway: Any,
    endpoint: str,
    payload: Dict[str, Any],
    retry_policy: Dict[str, float],
) -> Tuple[Dict[str, Any], int]:
    """
    Call the gateway, retrying rate-limit and server failures.

    Returns:
        The response body and the number of attempts made
    """
    attempts = 0
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(int(retry_policy.get("max_attempts", 1))),
        wait=wait_exponential(
            multiplier=retry_policy.get("min_wait", 0.5),
            min=retry_policy.get("min_wait", 0.5),
            max=retry_policy.get("max_wait", 4.0),
        ),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    ):
        with attempt:
            attempts = attempt.retry_state.attempt_number
            body = await gateway.fetch_json(endpoint, payload)
    return body, attempts


def failed_outcome(
    resource: str,
    endpoint: str,
    kind: str,
    message: str,
    attempts: int = 1,
    started: Optional[float] = None,
) -> Dict[str, Any]:
    """Outcome record for a request that settled without a body."""
    duration_ms = (time.perf_counter() - started) * 1000 if started is not None else 0.0
    return {
        "resource": resource,
        "endpoint": endpoint,
        "ok": False,
        "body": None,
        "failure_kind": kind,
        "message": message,
        "attempts": attempts,
        "duration_ms": duration_ms,
    }


def _make_fetch_node(resource: str) -> Callable:
    """Create the node that performs one resource's gateway call."""

    async def fetch_node(state: EnrichmentState, config: RunnableConfig) -> Dict[str, Any]:
        session_id = state.get("session_id", "unknown")
        _log = f"[session={session_id}] [graph=enrichment] [node={resource}_node] "

        configurable = config.get("configurable", {})
        gateway = configurable["gateway"]
        request = state["requests"][resource]
        endpoint = request["endpoint"]

        logger.info(f"{_log}Entering node | endpoint={endpoint}")
        started = time.perf_counter()
        attempts = 1

        try:
            if resource in RETRIED_RESOURCES and configurable.get("retry_policy"):
                body, attempts = await _fetch_with_retry(
                    gateway, endpoint, request["payload"], configurable["retry_policy"]
                )
            else:
                body = await gateway.fetch_json(endpoint, request["payload"])
        except EnrichmentFailure as e:
            logger.warning(f"{_log}Failed | kind={e.kind}, {e.message}")
            return {"outcomes": [failed_outcome(resource, endpoint, e.kind, e.message, attempts, started)]}
        except Exception as e:
            # Unclassified errors (bad base URL, a faulty host gateway) settle like server failures
            logger.exception(f"{_log}Unexpected gateway error: {e!r}")
            return {"outcomes": [failed_outcome(resource, endpoint, SERVER, repr(e), attempts, started)]}

        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{_log}Settled in {duration_ms:.0f}ms")
        return {
            "outcomes": [
                {
                    "resource": resource,
                    "endpoint": endpoint,
                    "ok": True,
                    "body": body,
                    "failure_kind": None,
                    "message": None,
                    "attempts": attempts,
                    "duration_ms": duration_ms,
                }
            ]
        }

    fetch_node.__name__ = f"{resource}_node"
    return fetch_node


def create_enrichment_graph():
    """
    Create and compile the enrichment fan-out graph.

    Returns:
        Compiled LangGraph application. Invoke with
        config={"configurable": {"gateway": ..., "retry_policy": {...}}}.
    """
    graph = StateGraph(EnrichmentState)

    for resource, node_name in RESOURCE_NODES.items():
        graph.add_node(node_name, _make_fetch_node(resource))
        graph.add_edge(node_name, END)

    graph.add_conditional_edges(
        START,
        route_requests,
        list(RESOURCE_NODES.values()) + [END],
    )

    return graph.compile()


_compiled: Optional[Any] = None


def get_enrichment_graph():
    """Compiled graph shared by all coordinators."""
    global _compiled
    if _compiled is None:
        _compiled = create_enrichment_graph()
    return _compiled
