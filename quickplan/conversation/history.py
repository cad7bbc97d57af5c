"""
History / Navigation Ledger.

Append-only log of answered and skipped questions. Going back pops the most
recent entry and undoes exactly what that answer caused: the field value,
any enrichment it triggered, and the phase advance that followed it.
"""

import logging
from typing import Any, List, Optional

from quickplan.conversation.answers import clear_answer
from quickplan.conversation.phases import (
    clear_dining,
    clear_hotels,
    clear_itinerary,
    move_to,
    reset_all_enrichment,
)
from quickplan.conversation.schemas import (
    ConversationContext,
    HistoryEntry,
    QuestionDescriptor,
)


logger = logging.getLogger(__name__)

# Fields whose answer triggers a downstream enrichment stage
_HOTEL_TRIGGERS = ("hotel_preferences",)
_DINING_TRIGGERS = ("dining", "dietary_restrictions", "cuisine_preferences")

# Answering this commits the review; the ledger cannot be unwound past it
COMMIT_FIELD = "satisfaction"


def record(ctx: ConversationContext, question: QuestionDescriptor, value: Any) -> HistoryEntry:
    """Append an entry for an answered (or SKIPPED) question."""
    entry = HistoryEntry(
        question_id=question.id,
        field=question.field,
        value=value,
        phase_at_answer_time=ctx.phase,
        category=question.category,
    )
    ctx.history.append(entry)
    return entry


def can_go_back(ctx: ConversationContext) -> bool:
    if len(ctx.history) <= 1:
        return False
    return ctx.history[-1].field != COMMIT_FIELD


def go_back(ctx: ConversationContext) -> Optional[HistoryEntry]:
    """
    Undo the most recent answer.

    Returns:
        The removed entry, or None when there is nothing to undo
    """
    if not can_go_back(ctx):
        return None

    entry = ctx.history.pop()
    _log = f"[session={ctx.session_id}] [component=history] "
    logger.info(
        f"{_log}Going back | field={entry.field}, category={entry.category}, "
        f"answered_in={entry.phase_at_answer_time}, now={ctx.phase}"
    )

    clear_answer(ctx.preferences, entry.field, entry.category)

    if entry.field in _HOTEL_TRIGGERS:
        clear_hotels(ctx)
    elif entry.field in _DINING_TRIGGERS:
        clear_dining(ctx)

    target = entry.phase_at_answer_time
    if target != ctx.phase:
        # Enrichment answered before this entry (e.g. ahead of a review
        # re-entry into gathering) is still backed by the ledger
        if target == "gathering" and not _answered_past_gathering(ctx):
            reset_all_enrichment(ctx)
        clear_itinerary(ctx)
        move_to(ctx, target, reason=f"went back to {entry.field}")

    ctx.current_question = None
    return entry


def _answered_past_gathering(ctx: ConversationContext) -> bool:
    return any(entry.phase_at_answer_time != "gathering" for entry in ctx.history)


def answered_fields(ctx: ConversationContext) -> List[str]:
    """Fields in answer order, skips included."""
    return [entry.field for entry in ctx.history]


def summarize(ctx: ConversationContext) -> List[dict]:
    return [
        {
            "question_id": entry.question_id,
            "field": entry.field,
            "category": entry.category,
            "skipped": entry.is_skip,
            "phase": entry.phase_at_answer_time,
        }
        for entry in ctx.history
    ]
