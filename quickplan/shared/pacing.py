"""
Pacing between message reveals.

Purely cosmetic: the presentation layer feels more natural when the assistant
does not answer instantly. Tests inject NoPacing so they run with zero delay.
"""

import asyncio
from typing import Dict, Optional


DEFAULT_DELAYS: Dict[str, float] = {
    "acknowledgment": 0.6,
    "message": 0.3,
    "phase": 0.5,
}


class Pacer:
    """Sleeps for a named beat before a message is revealed."""

    def __init__(self, delays: Optional[Dict[str, float]] = None):
        self.delays = dict(DEFAULT_DELAYS)
        if delays:
            self.delays.update(delays)

    async def pause(self, beat: str = "message") -> None:
        delay = self.delays.get(beat, 0.0)
        if delay > 0:
            await asyncio.sleep(delay)


class NoPacing(Pacer):
    """Pacer that never waits."""

    def __init__(self):
        super().__init__({beat: 0.0 for beat in DEFAULT_DELAYS})

    async def pause(self, beat: str = "message") -> None:
        return None
