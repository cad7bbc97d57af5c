"""
Shared infrastructure.

Modules:
- errors: Error taxonomy
- logging: Structured JSON logging and per-session debug log
- contracts: Enrichment response and trip snapshot contracts
- persistence: Snapshot storage
- pacing: Delays between revealed messages
"""

from quickplan.shared.logging.config import setup_logging, log_state_transition

__all__ = [
    "setup_logging",
    "log_state_transition",
]
