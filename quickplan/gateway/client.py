"""
Enrichment Gateway.

Single entry point for every external lookup. One attempt per call with:
- response caching by request fingerprint (per-endpoint TTL)
- in-flight deduplication (concurrent identical calls share one request)
- a per-endpoint deadline
- typed failure classification (timeout, network, rate_limited, server)

Retries are a caller decision and never happen here.
"""

import asyncio
import copy
import hashlib
import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from quickplan.graph.config import DEFAULT_CONFIG, EndpointPolicy, OrchestratorConfig
from quickplan.shared.errors import (
    NETWORK,
    RATE_LIMITED,
    SERVER,
    TIMEOUT,
    EnrichmentFailure,
)


logger = logging.getLogger(__name__)


def fingerprint(endpoint: str, payload: Dict[str, Any]) -> str:
    """Stable key for (endpoint, canonicalized payload)."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(f"{endpoint}|{canonical}".encode("utf-8")).hexdigest()


def _error_message(response: httpx.Response) -> str:
    """Pull a structured error out of a non-2xx body, else a generic message."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])

    return f"Request failed with status {response.status_code}"


class EnrichmentGateway:
    """
    Async fetch-style client for the enrichment endpoints.

    Args:
        base_url: URL the endpoint names are appended to
        policies: Timeout and cache window per endpoint
        client: Optional httpx.AsyncClient (tests pass one with a MockTransport)
        default_timeout: Deadline for endpoints without a policy
        clock: Monotonic clock used for cache expiry
    """

    def __init__(
        self,
        base_url: str,
        policies: Optional[Dict[str, EndpointPolicy]] = None,
        client: Optional[httpx.AsyncClient] = None,
        default_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip("/")
        self.policies = dict(policies or {})
        self.default_timeout = default_timeout
        self._clock = clock
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()
        self._cache: Dict[str, Tuple[str, float, Dict[str, Any]]] = {}
        self._in_flight: Dict[str, "asyncio.Task[Dict[str, Any]]"] = {}
        self.stats = {"total": 0, "deduped": 0, "cache_hits": 0, "errors": 0}

    @classmethod
    def from_config(
        cls,
        config: OrchestratorConfig = DEFAULT_CONFIG,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "EnrichmentGateway":
        return cls(
            base_url=config.api_base_url,
            policies=config.endpoints,
            client=client,
            default_timeout=config.default_timeout,
        )

    def policy_for(self, endpoint: str) -> EndpointPolicy:
        return self.policies.get(
            endpoint, EndpointPolicy(timeout=self.default_timeout, cache_ttl=0)
        )

    async def fetch_json(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST the payload to an endpoint and return the decoded JSON body.

        Raises:
            EnrichmentFailure: classified failure of the single attempt
        """
        self.stats["total"] += 1
        key = fingerprint(endpoint, payload)
        _log = f"[gateway] [endpoint={endpoint}] [key={key[:8]}] "

        cached = self._cache.get(key)
        if cached is not None:
            _, expires_at, result = cached
            if self._clock() < expires_at:
                self.stats["cache_hits"] += 1
                logger.debug(f"{_log}Cache hit")
                return copy.deepcopy(result)
            del self._cache[key]

        task = self._in_flight.get(key)
        if task is not None:
            self.stats["deduped"] += 1
            logger.debug(f"{_log}Joining in-flight request")
        else:
            task = asyncio.ensure_future(self._request(endpoint, payload, key))
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))

        # Shield so one caller being cancelled does not cancel the shared request
        result = await asyncio.shield(task)
        return copy.deepcopy(result)

    def _forget(self, key: str, task: "asyncio.Task[Dict[str, Any]]") -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _request(self, endpoint: str, payload: Dict[str, Any], key: str) -> Dict[str, Any]:
        policy = self.policy_for(endpoint)
        url = f"{self.base_url}/{endpoint}"
        _log = f"[gateway] [endpoint={endpoint}] [key={key[:8]}] "
        started = time.perf_counter()

        try:
            result = await asyncio.wait_for(self._post(endpoint, url, payload), policy.timeout)
        except asyncio.TimeoutError:
            self.stats["errors"] += 1
            logger.warning(f"{_log}Timed out after {policy.timeout}s")
            raise EnrichmentFailure(
                TIMEOUT, f"{endpoint} timed out after {policy.timeout:g}s", endpoint=endpoint
            )
        except EnrichmentFailure as e:
            self.stats["errors"] += 1
            logger.warning(f"{_log}Failed | kind={e.kind}, status={e.status_code}: {e.message}")
            raise

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(f"{_log}OK in {elapsed_ms}ms")

        if policy.cache_ttl > 0:
            self._cache[key] = (endpoint, self._clock() + policy.cache_ttl, result)
        return result

    async def _post(self, endpoint: str, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post(url, json=payload)
        except httpx.TimeoutException as e:
            raise EnrichmentFailure(TIMEOUT, f"{endpoint} timed out: {e}", endpoint=endpoint)
        except httpx.RequestError as e:
            raise EnrichmentFailure(NETWORK, f"{endpoint} unreachable: {e}", endpoint=endpoint)

        if response.status_code == 429:
            raise EnrichmentFailure(
                RATE_LIMITED, _error_message(response), endpoint=endpoint, status_code=429
            )
        if not response.is_success:
            raise EnrichmentFailure(
                SERVER,
                _error_message(response),
                endpoint=endpoint,
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            raise EnrichmentFailure(
                SERVER,
                f"{endpoint} returned a non-JSON body",
                endpoint=endpoint,
                status_code=response.status_code,
            )
        if not isinstance(body, dict):
            raise EnrichmentFailure(
                SERVER,
                f"{endpoint} returned {type(body).__name__}, expected an object",
                endpoint=endpoint,
                status_code=response.status_code,
            )
        return body

    def invalidate(self, endpoint: Optional[str] = None) -> None:
        """Drop cached results, for one endpoint or all of them."""
        if endpoint is None:
            self._cache.clear()
            return
        self._cache = {
            key: entry for key, entry in self._cache.items() if entry[0] != endpoint
        }

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
