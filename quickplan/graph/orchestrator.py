"""
Quick Plan orchestrator.

The single object a presentation layer talks to. It owns one
ConversationContext and follows a strict two-step protocol:

1. apply a mutation (answer, skip, go back, reset) through apply_event()
2. separately, recompute the next question with select_next_question(),
   which runs any enrichment the new state calls for and advances the
   phase when the current one has no questions left

Mutations never query the sequencer, so navigation cannot fast-forward the
phase as a side effect.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from quickplan.conversation import history, transcript
from quickplan.conversation.answers import validate_answer
from quickplan.conversation.events import (
    Event,
    FieldAnswered,
    Reset,
    Skipped,
    Transition,
    WentBack,
    apply_event,
)
from quickplan.conversation.phases import (
    move_to,
    next_phase,
    set_enrichment_status as _set_enrichment_status,
    set_itinerary_status,
    state_summary,
)
from quickplan.conversation.schemas import (
    CONFIDENCE_LEVELS,
    PHASES,
    SKIPPED,
    ConversationContext,
    QuestionDescriptor,
    TranscriptEntry,
    phase_index,
)
from quickplan.conversation.sequencer import select_next_question as _select
from quickplan.enrichment import coordinator as enrichment
from quickplan.enrichment.coordinator import EnrichmentCoordinator
from quickplan.graph.config import DEFAULT_CONFIG, GENERATE_ITINERARY, OrchestratorConfig
from quickplan.graph.scheduler import DeferredActionScheduler
from quickplan.shared.contracts.enrichment import (
    AreaCandidate,
    ExperienceCandidate,
    HotelCandidate,
    Itinerary,
    RestaurantCandidate,
)
from quickplan.shared.contracts.snapshot import TripSnapshotV1
from quickplan.shared.errors import (
    DuplicateSubmissionError,
    PersistenceFailure,
    SequencingInvariantViolation,
    ValidationError,
)
from quickplan.shared.logging.config import log_state_transition
from quickplan.shared.logging.debug_logger import DebugLogger
from quickplan.shared.pacing import Pacer
from quickplan.shared.persistence import JsonFileSnapshotStore, SnapshotStore


logger = logging.getLogger(__name__)

# Answer value meaning "skip this question"
SKIP = SKIPPED

AUTO_FINALIZE = "auto_finalize"


class QuickPlanOrchestrator:
    """
    Conversation orchestrator for one trip-planning session.

    Args:
        gateway: Enrichment gateway (anything with async fetch_json)
        config: Orchestrator configuration
        store: Host-owned snapshot storage used by finalize()
        pacer: Pacing between revealed messages
        session_id: Optional fixed session id
    """

    def __init__(
        self,
        gateway: Any,
        config: Optional[OrchestratorConfig] = None,
        store: Optional[SnapshotStore] = None,
        pacer: Optional[Pacer] = None,
        session_id: Optional[str] = None,
    ):
        self.config = config or DEFAULT_CONFIG
        self.gateway = gateway
        self.store = store or JsonFileSnapshotStore(self.config.snapshot_dir)
        self.pacer = pacer or Pacer(self.config.pacing_delays)

        self._ctx = ConversationContext(session_id=session_id or str(uuid.uuid4()))
        self.debug = DebugLogger(self._ctx.session_id, self.config.logs_dir)
        self.coordinator = EnrichmentCoordinator(gateway, self.config, self.pacer, self.debug)
        self.scheduler = DeferredActionScheduler(lambda: self._ctx)

        self._processing = False
        self._trip_id: Optional[str] = None
        self._saved = False

    @property
    def session_id(self) -> str:
        return self._ctx.session_id

    @property
    def context(self) -> ConversationContext:
        return self._ctx

    def _log(self, action: str) -> str:
        return f"[session={self._ctx.session_id}] [component=orchestrator] [action={action}] "

    # =========================================================================
    # Next question
    # =========================================================================

    async def select_next_question(self) -> Optional[QuestionDescriptor]:
        """
        Run due enrichment, then return the next question.

        When the current phase has no questions left the phase machine is
        consulted; each advance is followed by another enrichment/sequencer
        pass. Returns None when nothing can be asked right now (satisfied,
        or waiting on a state change).
        """
        ctx = self._ctx
        start_phase = ctx.phase

        for _ in range(len(PHASES)):
            await self.coordinator.run_due_work(ctx)
            if ctx is not self._ctx:
                logger.info(f"{self._log('select')}Conversation reset while enriching; dropping result")
                return None

            question = _select(ctx.preferences, ctx.discovered, ctx.phase, ctx.history)
            if question is not None:
                self._check_not_regressed(start_phase)
                await self._issue(question)
                return question

            target = next_phase(ctx)
            if target is None:
                break
            await self._enter_phase(target)

        self._check_not_regressed(start_phase)
        ctx.current_question = None
        return None

    async def _issue(self, question: QuestionDescriptor) -> None:
        ctx = self._ctx
        previous = ctx.current_question
        ctx.current_question = question

        # Re-issuing the same pending field replaces the descriptor silently
        if previous is not None and (previous.field, previous.category) == (question.field, question.category):
            return
        await self.pacer.pause("message")
        transcript.append(ctx, "assistant", question.prompt_text, mood="idle")

    async def _enter_phase(self, target: str) -> None:
        ctx = self._ctx
        from_phase = move_to(ctx, target, reason="phase exhausted")
        self.debug.log_transition(from_phase, target, "phase exhausted")
        logger.info(f"{self._log('advance')}{from_phase} -> {target}")

        message = transcript.phase_message(target, ctx)
        if message:
            await self.pacer.pause("phase")
            transcript.append(ctx, "assistant", message, mood="thinking")

    def _check_not_regressed(self, before: str) -> None:
        ctx = self._ctx
        if phase_index(ctx.phase) < phase_index(before):
            self._revert_phase(before, "select_next_question regressed the phase")

    def _check_not_advanced(self, before: str, action: str) -> None:
        ctx = self._ctx
        if phase_index(ctx.phase) > phase_index(before):
            self._revert_phase(before, f"{action} advanced the phase")

    def _revert_phase(self, expected: str, message: str) -> None:
        ctx = self._ctx
        violation = SequencingInvariantViolation(message, expected=expected, actual=ctx.phase)
        logger.error(
            f"{self._log('guard')}{violation.code}: {message} "
            f"(expected={expected}, actual={ctx.phase}); reverting"
        )
        self.debug.log("phase", "invariant violation", violation.details)
        ctx.phase = expected

    # =========================================================================
    # Responses
    # =========================================================================

    def process_user_response(self, question_id: str, value: Any) -> Transition:
        """
        Apply an answer (or SKIP) to the pending question.

        Validates before mutating; on ValidationError nothing has changed.
        Does not compute the next question.
        """
        ctx = self._ctx
        question = ctx.current_question
        if question is None or question.id != question_id:
            raise ValidationError(
                f"Question {question_id} is not the pending question",
                field=question.field if question else None,
                code="QP_410",
            )

        if isinstance(value, str) and value == SKIP:
            before = ctx.phase
            transition = self._apply(Skipped(question))
            transcript.append(ctx, "user", transcript.render_skip(question))
            self.debug.log("navigation", "skipped", {"field": question.field, "category": question.category})
            self._check_not_advanced(before, "skip")
            return transition

        normalized = validate_answer(question, value, ctx)
        transcript.append(ctx, "user", transcript.render_answer(question, normalized))
        transition = self._apply(FieldAnswered(question, normalized))
        self.debug.log("orchestrator", "answered", {"field": question.field, "category": question.category})

        if transition.reentered:
            transcript.append(ctx, "assistant", transcript.DISSATISFACTION_MESSAGE, mood="thinking")
            self.debug.log_transition("reviewing", transition.reentered, "dissatisfied")
            invalidate = getattr(self.gateway, "invalidate", None)
            if invalidate is not None:
                invalidate(GENERATE_ITINERARY)
        return transition

    async def handle_response(self, question_id: str, value: Any) -> Optional[QuestionDescriptor]:
        """
        Guarded response handler: commit the answer, then compute the next question.

        Raises:
            DuplicateSubmissionError: a previous response is still being handled
            ValidationError: the answer was rejected (state unchanged)
        """
        if self._processing:
            raise DuplicateSubmissionError()
        self._processing = True
        try:
            ctx = self._ctx
            transition = self.process_user_response(question_id, value)

            entry = transition.entry
            if entry is not None and not entry.is_skip:
                ack = transcript.acknowledgment(entry.field, ctx)
                if ack:
                    await self.pacer.pause("acknowledgment")
                    transcript.append(ctx, "assistant", ack, mood="typing")

            if transition.satisfied:
                self.debug.log_transition("reviewing", "satisfied", "user satisfied")
                transcript.append(ctx, "assistant", transcript.phase_message("satisfied", ctx), mood="celebrating")
                if self.config.auto_finalize_delay is not None:
                    self.scheduler.schedule(AUTO_FINALIZE, self.config.auto_finalize_delay, self._auto_finalize)

            return await self.select_next_question()
        finally:
            self._processing = False

    def skip_current_question(self) -> Transition:
        """Skip the pending question (optional fields only)."""
        question = self._ctx.current_question
        if question is None:
            raise ValidationError("There is no pending question to skip")
        return self.process_user_response(question.id, SKIP)

    def _apply(self, event: Event) -> Transition:
        transition = apply_event(self._ctx, event)
        self._ctx = transition.context
        return transition

    # =========================================================================
    # Navigation
    # =========================================================================

    def go_to_previous_question(self) -> bool:
        """
        Undo the most recent answer.

        Returns:
            False when there is nothing to go back to (first question, or the
            review has been answered)
        """
        if self._processing:
            raise DuplicateSubmissionError("Cannot go back while a response is being processed")

        ctx = self._ctx
        before = ctx.phase
        transition = self._apply(WentBack())
        if not transition.accepted:
            return False

        self._check_not_advanced(before, "go back")
        self.debug.log(
            "navigation",
            "went back",
            {"field": transition.entry.field, "phase": ctx.phase, "history_length": len(ctx.history)},
        )
        return True

    async def go_back_and_select(self) -> Optional[QuestionDescriptor]:
        """
        Go back and compute the restored question under the response guard.

        Returns:
            The question to show, or None when there was nothing to go back to

        Raises:
            DuplicateSubmissionError: a response or navigation is still being handled
        """
        moved = self.go_to_previous_question()
        if not moved:
            return None
        self._processing = True
        try:
            return await self.select_next_question()
        finally:
            self._processing = False

    def can_go_back(self) -> bool:
        return history.can_go_back(self._ctx)

    def get_question_history(self) -> List[Dict[str, Any]]:
        return history.summarize(self._ctx)

    def reset(self) -> None:
        """Start over: cancel deferred actions and swap in a fresh context."""
        cancelled = self.scheduler.cancel_all()
        old = self._ctx
        self._apply(Reset())
        self._processing = False
        self._trip_id = None
        self._saved = False
        self.debug.log("orchestrator", "reset", {"cancelled_actions": cancelled})
        log_state_transition("reset", state_summary(self._ctx), extra={"previous_phase": old.phase})

    async def reset_and_select(self) -> Optional[QuestionDescriptor]:
        """
        Start over and compute the first question under the response guard.

        Raises:
            DuplicateSubmissionError: a response or navigation is still being handled
        """
        if self._processing:
            raise DuplicateSubmissionError("Cannot start over while a response is being processed")
        self.reset()
        self._processing = True
        try:
            return await self.select_next_question()
        finally:
            self._processing = False

    # =========================================================================
    # Accessors
    # =========================================================================

    def get_phase(self) -> str:
        return self._ctx.phase

    def get_current_question(self) -> Optional[QuestionDescriptor]:
        return self._ctx.current_question

    def get_state(self) -> Dict[str, Any]:
        state = self._ctx.model_dump(mode="json", by_alias=True)
        state["trip_id"] = self._trip_id if self._saved else None
        return state

    def get_messages(self) -> List[Dict[str, Any]]:
        return [entry.model_dump(mode="json") for entry in self._ctx.transcript]

    def get_debug_log(self) -> List[Dict[str, Any]]:
        return list(self.debug.entries)

    # =========================================================================
    # Transcript
    # =========================================================================

    def add_user_message(self, text: str) -> TranscriptEntry:
        return transcript.append(self._ctx, "user", text)

    def add_snoo_message(
        self,
        text: str,
        mood: str = "idle",
        evidence: Optional[List[Dict[str, Any]]] = None,
    ) -> TranscriptEntry:
        return transcript.append(self._ctx, "assistant", text, mood=mood, evidence=evidence)

    def add_user_note(self, field: str, note: str) -> None:
        if note.strip():
            self._ctx.preferences.notes[field] = note.strip()

    # =========================================================================
    # Enrichment setters
    # =========================================================================

    def set_discovered_areas(self, areas: List[Any]) -> None:
        enrichment.set_discovered_areas(self._ctx, [AreaCandidate.model_validate(a) for a in areas])

    def set_discovered_hotels(self, area_id: str, hotels: List[Any]) -> None:
        enrichment.set_discovered_hotels(self._ctx, area_id, [HotelCandidate.model_validate(h) for h in hotels])

    def set_discovered_restaurants(self, cuisine: str, restaurants: List[Any]) -> None:
        enrichment.set_discovered_restaurants(
            self._ctx, cuisine, [RestaurantCandidate.model_validate(r) for r in restaurants]
        )

    def set_discovered_experiences(self, activity_type: str, experiences: List[Any]) -> None:
        enrichment.set_discovered_experiences(
            self._ctx, activity_type, [ExperienceCandidate.model_validate(e) for e in experiences]
        )

    def set_itinerary(self, itinerary: Any) -> None:
        self._ctx.itinerary = Itinerary.model_validate(itinerary)
        set_itinerary_status(self._ctx, "done")

    def set_confidence(self, resource: str, level: str) -> None:
        if level not in CONFIDENCE_LEVELS:
            raise ValueError(f"Unknown confidence level: {level}")
        self._ctx.confidence[resource] = level

    def set_enrichment_status(self, kind: str, status: str) -> bool:
        """Forward-only; a regression is ignored and returns False."""
        return _set_enrichment_status(self._ctx, kind, status)

    # =========================================================================
    # Completion
    # =========================================================================

    def build_snapshot(self) -> TripSnapshotV1:
        ctx = self._ctx
        prefs = ctx.preferences
        if self._trip_id is None:
            self._trip_id = f"trip-{uuid.uuid4().hex[:12]}"
        return TripSnapshotV1(
            trip_id=self._trip_id,
            session_id=ctx.session_id,
            created_at=datetime.now(timezone.utc).isoformat(),
            destination=prefs.destination_name or None,
            start_date=prefs.start_date.isoformat() if prefs.start_date else None,
            end_date=prefs.end_date.isoformat() if prefs.end_date else None,
            preferences=enrichment.preferences_payload(prefs),
            itinerary=ctx.itinerary.model_dump(mode="json", by_alias=True) if ctx.itinerary else None,
            confidence=dict(ctx.confidence),
            transcript=[entry.model_dump(mode="json") for entry in ctx.transcript],
        )

    async def finalize(self) -> str:
        """
        Write the completed plan to host storage.

        Returns:
            The trip id

        Raises:
            ValidationError: the user has not accepted the itinerary yet
            PersistenceFailure: the write failed; state is kept so it can be retried
        """
        ctx = self._ctx
        if ctx.phase != "satisfied":
            raise ValidationError(
                f"Cannot finalize in phase '{ctx.phase}'", field="satisfaction", code="QP_412"
            )
        if self._saved:
            return self._trip_id

        self.scheduler.cancel(AUTO_FINALIZE)
        snapshot = self.build_snapshot()
        try:
            trip_id = self.store.save(snapshot)
        except PersistenceFailure:
            self._on_save_failed(snapshot.trip_id)
            raise
        except OSError as e:
            self._on_save_failed(snapshot.trip_id)
            raise PersistenceFailure(f"Could not save trip {snapshot.trip_id}: {e}") from e

        self._saved = True
        self.debug.log("orchestrator", "finalized", {"trip_id": trip_id})
        logger.info(f"{self._log('finalize')}Saved trip {trip_id}")
        transcript.append(ctx, "assistant", "Your trip is saved! Have an amazing time.", mood="celebrating")
        return trip_id

    def _on_save_failed(self, trip_id: str) -> None:
        logger.error(f"{self._log('finalize')}Saving trip {trip_id} failed")
        self.debug.log("orchestrator", "finalize failed", {"trip_id": trip_id})
        transcript.append(
            self._ctx,
            "assistant",
            "I couldn't save your trip just now. Everything you picked is still here, so try again.",
            mood="concerned",
        )

    async def _auto_finalize(self) -> None:
        try:
            await self.finalize()
        except PersistenceFailure as e:
            logger.warning(f"{self._log('auto_finalize')}{e.message}; waiting for a manual retry")

    @property
    def trip_id(self) -> Optional[str]:
        return self._trip_id if self._saved else None

    async def aclose(self, close_gateway: bool = True) -> None:
        """Cancel deferred actions; close the gateway unless it is shared."""
        self.scheduler.cancel_all()
        close = getattr(self.gateway, "aclose", None)
        if close_gateway and close is not None:
            await close()
