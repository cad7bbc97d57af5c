"""
Quick Plan: conversational trip-planning orchestrator.

This package contains:
- shared/: Common infrastructure (errors, logging, contracts, persistence, pacing)
- conversation/: Preferences, question sequencing, phases, history and transcript
- gateway/: Enrichment Gateway (cache, dedup, timeouts, failure classification)
- enrichment/: Enrichment pipeline coordinator and its fan-out graph
- graph/: Orchestrator facade, configuration and API
"""
