"""Process-wide pause/resume latch for dump transfers."""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class PauseGate:
    """
    Broadcast latch that suspends every dump loop before its next read.

    While paused, ``wait()`` blocks on a shared event; ``resume()`` sets it,
    releasing all waiters together, and drops it so the gate is open again.
    Change feeds never consult the gate.
    """

    def __init__(self) -> None:
        self._resumed: asyncio.Event | None = None

    @property
    def is_paused(self) -> bool:
        return self._resumed is not None

    def pause(self) -> None:
        """Install the suspension point; no-op when already paused."""
        if self._resumed is None:
            self._resumed = asyncio.Event()
            logger.info("Dump pause requested")

    def resume(self) -> None:
        """Release every waiting dump loop; no-op when not paused."""
        if self._resumed is not None:
            resumed, self._resumed = self._resumed, None
            resumed.set()
            logger.info("Dump resume requested")

    async def wait(self) -> None:
        """Block until resumed; returns immediately when not paused."""
        resumed = self._resumed
        if resumed is not None:
            await resumed.wait()


PAUSE_GATE = PauseGate()


def pause_all_bootstraps() -> None:
    """Pause every running dump before its next cursor read."""
    PAUSE_GATE.pause()


def resume_all_bootstraps() -> None:
    """Resume every paused dump."""
    PAUSE_GATE.resume()
