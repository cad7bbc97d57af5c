"""
Conversation events and the single transition function.

Every state change a user can cause is one of four events:

    FieldAnswered{question, value} | Skipped{question} | WentBack | Reset

apply_event() is the only place they are interpreted. It mutates (or, for
Reset, replaces) the context and reports what happened; it never asks the
sequencer for the next question. Recomputing the next question is always a
separate step taken by the caller.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from quickplan.conversation import history
from quickplan.conversation.answers import mark_skipped, write_answer
from quickplan.conversation.phases import apply_dissatisfaction, apply_satisfaction
from quickplan.conversation.schemas import (
    SKIPPED,
    ConversationContext,
    HistoryEntry,
    QuestionDescriptor,
)
from quickplan.shared.errors import ValidationError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldAnswered:
    """A validated answer to the pending question."""

    question: QuestionDescriptor
    value: Any


@dataclass(frozen=True)
class Skipped:
    question: QuestionDescriptor


@dataclass(frozen=True)
class WentBack:
    pass


@dataclass(frozen=True)
class Reset:
    pass


Event = Union[FieldAnswered, Skipped, WentBack, Reset]


@dataclass
class Transition:
    """
    Outcome of applying one event.

    Attributes:
        context: The live context after the event (a new instance for Reset)
        accepted: False when the event was a no-op (e.g. nothing to go back to)
        entry: History entry added or removed by the event
        reentered: Phase re-entered after a dissatisfied review
        satisfied: True when the review was accepted
    """

    context: ConversationContext
    accepted: bool = True
    entry: Optional[HistoryEntry] = None
    reentered: Optional[str] = None
    satisfied: bool = False


def apply_event(ctx: ConversationContext, event: Event) -> Transition:
    """Apply one event to the context."""
    if isinstance(event, FieldAnswered):
        return _on_answer(ctx, event)
    if isinstance(event, Skipped):
        return _on_skip(ctx, event)
    if isinstance(event, WentBack):
        return _on_back(ctx)
    if isinstance(event, Reset):
        return _on_reset(ctx)
    raise TypeError(f"Unhandled conversation event: {event!r}")


def _on_answer(ctx: ConversationContext, event: FieldAnswered) -> Transition:
    question = event.question
    entry = history.record(ctx, question, event.value)
    write_answer(ctx.preferences, question.field, event.value, question.category)
    ctx.current_question = None

    if question.field != history.COMMIT_FIELD:
        return Transition(context=ctx, entry=entry)

    if event.value.satisfied:
        apply_satisfaction(ctx)
        return Transition(context=ctx, entry=entry, satisfied=True)

    target = apply_dissatisfaction(ctx, list(event.value.reasons), event.value.feedback)
    return Transition(context=ctx, entry=entry, reentered=target)


def _on_skip(ctx: ConversationContext, event: Skipped) -> Transition:
    question = event.question
    if question.required:
        raise ValidationError(f"{question.field} is required and cannot be skipped", field=question.field)

    entry = history.record(ctx, question, SKIPPED)
    mark_skipped(ctx.preferences, question.field, question.category)
    ctx.current_question = None
    return Transition(context=ctx, entry=entry)


def _on_back(ctx: ConversationContext) -> Transition:
    entry = history.go_back(ctx)
    return Transition(context=ctx, accepted=entry is not None, entry=entry)


def _on_reset(ctx: ConversationContext) -> Transition:
    logger.info(f"[session={ctx.session_id}] [component=events] Reset to a fresh conversation")
    return Transition(context=ConversationContext(session_id=ctx.session_id))
