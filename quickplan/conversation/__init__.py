"""
Conversation layer: preference store, question sequencing, phases, history
and transcript for one Quick Plan session.
"""

from quickplan.conversation.events import (
    FieldAnswered,
    Reset,
    Skipped,
    WentBack,
    apply_event,
)
from quickplan.conversation.schemas import ConversationContext, QuestionDescriptor
from quickplan.conversation.sequencer import select_next_question

__all__ = [
    "ConversationContext",
    "QuestionDescriptor",
    "FieldAnswered",
    "Skipped",
    "WentBack",
    "Reset",
    "apply_event",
    "select_next_question",
]
