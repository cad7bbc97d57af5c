"""Logging configuration and utilities."""

from quickplan.shared.logging.config import setup_logging, log_state_transition, StructuredFormatter
from quickplan.shared.logging.debug_logger import DebugLogger

__all__ = [
    "setup_logging",
    "log_state_transition",
    "StructuredFormatter",
    "DebugLogger",
]
