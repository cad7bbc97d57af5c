"""
Enrichment Pipeline Coordinator and its fan-out graph.
"""

from quickplan.enrichment.coordinator import EnrichmentCoordinator, due_stage

__all__ = ["EnrichmentCoordinator", "due_stage"]
