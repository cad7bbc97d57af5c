"""
Enrichment fan-out graph.

Runs the gateway calls of one enrichment stage in parallel and joins them:
    requests -> route_requests -> {resource}_node ... -> END
"""

from quickplan.enrichment.graph.build import create_enrichment_graph, get_enrichment_graph

__all__ = ["create_enrichment_graph", "get_enrichment_graph"]
