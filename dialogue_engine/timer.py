"""Per-turn countdown timer."""

import asyncio
import logging

from .types import TimeoutCallback

logger = logging.getLogger(__name__)


class TurnTimer:
    """Single countdown clock for the active turn.

    The timer ticks on the running event loop. When the countdown reaches
    zero it calls ``on_expire`` exactly once with the token it was started
    with, then stays stopped until ``start`` is called again. Starting the
    timer cancels any countdown still in progress, so at most one countdown
    is ever live. A duration of zero or less disables the timer.
    """

    def __init__(self, duration: float = 90.0, tick: float = 1.0):
        if tick <= 0:
            raise ValueError("Timer tick must be positive")
        self.duration = duration
        self.tick = tick
        self.remaining: float = duration
        self._task: asyncio.Task[None] | None = None

    @property
    def enabled(self) -> bool:
        return self.duration > 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, on_expire: TimeoutCallback, token: int) -> None:
        """(Re)start the countdown for the turn identified by ``token``."""
        self.stop()
        self.remaining = self.duration
        if not self.enabled:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(on_expire, token)
        )

    def stop(self) -> None:
        """Cancel the countdown if one is running."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, on_expire: TimeoutCallback, token: int) -> None:
        while self.remaining > 0:
            await asyncio.sleep(min(self.tick, self.remaining))
            self.remaining = max(0.0, self.remaining - self.tick)

        # Detach before firing so a restart from inside the callback
        # does not cancel the callback itself.
        self._task = None
        logger.debug(f"Turn timer expired for state version {token}")
        try:
            await on_expire(token)
        except Exception as e:
            logger.error(f"Turn timeout handler failed: {type(e).__name__}: {e}")
