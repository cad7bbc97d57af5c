"""
Tests for structured state-transition logging and the per-session debug log.
"""

import json
import logging

from quickplan.conversation.phases import move_to, state_summary
from quickplan.conversation.schemas import ConversationContext
from quickplan.shared.logging import DebugLogger, StructuredFormatter, log_state_transition


def _transition_records(caplog):
    return [r for r in caplog.records if getattr(r, "transition", None)]


class TestStateTransitions:
    """log_state_transition records."""

    def test_advance_is_info_and_revert_is_warning(self, caplog):
        ctx = ConversationContext(session_id="log-test")
        caplog.set_level(logging.INFO, logger="quickplan")

        move_to(ctx, "enriching", reason="phase exhausted")
        move_to(ctx, "gathering", reason="went back to user_notes")

        records = _transition_records(caplog)
        assert [r.transition["event"] for r in records] == ["phase_advanced", "phase_reverted"]
        assert [r.levelno for r in records] == [logging.INFO, logging.WARNING]
        assert records[1].transition["extra"] == {
            "from": "enriching", "to": "gathering", "reason": "went back to user_notes",
        }

    def test_formatter_lifts_event_and_session(self, caplog):
        ctx = ConversationContext(session_id="log-test")
        caplog.set_level(logging.INFO, logger="quickplan")

        log_state_transition("reset", state_summary(ctx), extra={"previous_phase": "reviewing"})

        record = _transition_records(caplog)[0]
        entry = json.loads(StructuredFormatter().format(record))
        assert entry["event"] == "reset"
        assert entry["session_id"] == "log-test"
        assert entry["state"]["phase"] == "gathering"
        assert entry["state"]["history_length"] == 0
        assert entry["extra"] == {"previous_phase": "reviewing"}
        assert "[session=log-test]" in entry["message"]

    def test_plain_records_still_format(self):
        record = logging.LogRecord("quickplan.gateway", logging.INFO, "", 0, "OK in %dms", (12,), None)

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "OK in 12ms"
        assert "event" not in entry


class TestDebugLogger:
    """Per-session debug drawer entries."""

    def test_enrichment_call_entry(self):
        debug = DebugLogger("s1")

        debug.log_enrichment_call("hotels", "hotels", 12.345, ok=False, failure_kind="timeout")

        entry = debug.entries[0]
        assert entry["type"] == "enrichment"
        assert entry["action"] == "hotels failed"
        assert entry["details"]["failure_kind"] == "timeout"
        assert entry["duration_ms"] == 12.35

    def test_unknown_type_falls_back_to_orchestrator(self):
        debug = DebugLogger("s1")

        assert debug.log("bogus", "something")["type"] == "orchestrator"

    def test_summary(self):
        debug = DebugLogger("s1")
        debug.log_enrichment_call("areas", "discover-areas", 100.0, ok=True, result_count=3)
        debug.log_transition("gathering", "enriching", "phase exhausted")

        summary = debug.get_summary()

        assert summary["entries"] == 2
        assert summary["by_type"] == {"enrichment": 1, "phase": 1}
        assert summary["enrichment_ms"] == 100.0

    def test_mirrors_to_jsonl_file(self, tmp_path):
        debug = DebugLogger("s1", logs_dir=str(tmp_path / "logs"))

        debug.log("navigation", "went back", {"field": "dates"})

        lines = (tmp_path / "logs" / "session_s1.jsonl").read_text().splitlines()
        assert json.loads(lines[0])["details"] == {"field": "dates"}
