"""
Debug logger for tracking enrichment calls, timing, and phase transitions.

Keeps an in-memory log per session (surfaced to the presentation layer's
debug drawer) and optionally mirrors it to a JSON Lines file in logs_dir.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


logger = logging.getLogger(__name__)


# Entry types shown in the debug drawer
ENTRY_TYPES = ("orchestrator", "enrichment", "phase", "navigation")


class DebugLogger:
    """
    Per-session debug log.

    Each entry records a timestamp, a type, a short action label, free-form
    details, and an optional duration for timed calls.
    """

    def __init__(self, session_id: str, logs_dir: Optional[str] = None):
        self.session_id = session_id
        self.entries: List[Dict[str, Any]] = []
        self.log_file: Optional[Path] = None

        if logs_dir:
            directory = Path(logs_dir)
            directory.mkdir(parents=True, exist_ok=True)
            self.log_file = directory / f"session_{session_id}.jsonl"

    def log(
        self,
        entry_type: str,
        action: str,
        details: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Append an entry and mirror it to disk when configured."""
        if entry_type not in ENTRY_TYPES:
            entry_type = "orchestrator"

        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": self.session_id,
            "type": entry_type,
            "action": action,
            "details": details or {},
        }
        if duration_ms is not None:
            entry["duration_ms"] = round(duration_ms, 2)

        self.entries.append(entry)
        self._write(entry)
        return entry

    def log_enrichment_call(
        self,
        kind: str,
        endpoint: str,
        duration_ms: float,
        ok: bool,
        failure_kind: Optional[str] = None,
        result_count: Optional[int] = None,
    ) -> None:
        """Record one settled enrichment call."""
        details: Dict[str, Any] = {"kind": kind, "endpoint": endpoint, "ok": ok}
        if failure_kind:
            details["failure_kind"] = failure_kind
        if result_count is not None:
            details["result_count"] = result_count
        self.log("enrichment", f"{kind} {'settled' if ok else 'failed'}", details, duration_ms)

    def log_transition(self, from_phase: str, to_phase: str, reason: str) -> None:
        self.log("phase", f"{from_phase} -> {to_phase}", {"reason": reason})

    def get_summary(self) -> Dict[str, Any]:
        """Counts per entry type plus total enrichment time."""
        counts: Dict[str, int] = {}
        enrichment_ms = 0.0
        for entry in self.entries:
            counts[entry["type"]] = counts.get(entry["type"], 0) + 1
            if entry["type"] == "enrichment":
                enrichment_ms += entry.get("duration_ms", 0.0)
        return {
            "session_id": self.session_id,
            "entries": len(self.entries),
            "by_type": counts,
            "enrichment_ms": round(enrichment_ms, 2),
        }

    def _write(self, entry: Dict[str, Any]) -> None:
        if self.log_file is None:
            return
        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            logger.warning(f"[session={self.session_id}] Debug log write failed: {e}")
