"""
Structured logging configuration.

State transitions (phase changes, enrichment start/settle, reset) are logged
as one JSON object per line so a session can be replayed from the logs by
filtering on session_id.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Root logger for the package; module loggers propagate into it
LOGGER_NAME = "quickplan"

# Transitions that indicate something was undone rather than progressed
_WARNING_EVENTS = ("phase_reverted",)


class StructuredFormatter(logging.Formatter):
    """
    Formats records as JSON.

    Records produced by log_state_transition carry a `transition` attribute;
    its event, session and state summary are lifted to the top level so they
    can be filtered without parsing nested objects.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        transition = getattr(record, "transition", None)
        if transition:
            entry["event"] = transition["event"]
            entry["session_id"] = transition.get("session_id")
            entry["state"] = transition["state"]
            if transition.get("extra"):
                entry["extra"] = transition["extra"]

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    logger_name: str = LOGGER_NAME,
) -> logging.Logger:
    """
    Send the package's logs to stdout (and optionally a file) as JSON lines.

    Replaces handlers previously installed on the package logger and stops
    propagation so records are not printed twice by a root basicConfig.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.handlers = []
    logger.propagate = False

    formatter = StructuredFormatter()
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def log_state_transition(
    event: str,
    summary: Dict[str, Any],
    extra: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a conversation state transition.

    Args:
        event: e.g. "phase_advanced", "phase_reverted", "enrichment_settled", "reset"
        summary: Output of phases.state_summary(): phase, statuses, ledger length
        extra: Event-specific context (from/to phase, stage, failed resources)
        logger: Defaults to the package logger
    """
    if logger is None:
        logger = logging.getLogger(LOGGER_NAME)

    level = logging.WARNING if event in _WARNING_EVENTS else logging.INFO
    if not logger.isEnabledFor(level):
        return

    extra = dict(extra or {})
    session_id = extra.pop("session_id", None) or summary.get("session_id")
    transition = {
        "event": event,
        "session_id": session_id,
        "state": {
            "phase": summary.get("phase"),
            "enrichment_status": summary.get("enrichment_status"),
            "itinerary_status": summary.get("itinerary_status"),
            "history_length": summary.get("history_length"),
        },
        "extra": extra,
    }

    logger.log(
        level,
        f"[session={session_id}] State transition: {event}",
        extra={"transition": transition},
    )
