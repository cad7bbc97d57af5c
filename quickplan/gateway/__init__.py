"""Enrichment Gateway: cached, deduplicated, classified calls to enrichment endpoints."""

from quickplan.gateway.client import EnrichmentGateway, fingerprint

__all__ = ["EnrichmentGateway", "fingerprint"]
