"""
Debounced async callbacks.

Collapses bursts of calls into one invocation after a quiet period. Used by
the settings store so that a flurry of edits produces a single write.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Run an async callback once, `delay` seconds after the last `trigger()`.

    Each trigger restarts the countdown while it is still counting. A callback
    that is already running is never interrupted: a trigger that arrives
    meanwhile runs it again afterwards, and `flush()` waits for it before
    running whatever is still pending.
    """

    def __init__(self, callback: Callable[[], Awaitable[None]], delay: float, name: str = "debounced"):
        self._callback = callback
        self._delay = delay
        self._name = name
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._pending = False
        self._running = False

    @property
    def pending(self) -> bool:
        return self._pending

    @property
    def running(self) -> bool:
        return self._running

    def _sleeping(self) -> bool:
        return self._task is not None and not self._task.done() and not self._running

    def trigger(self) -> None:
        """Schedule the callback, restarting the delay if one is already waiting."""
        self._pending = True
        if self._task and not self._task.done():
            if self._running:
                return
            self._task.cancel()
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while self._pending:
            try:
                await asyncio.sleep(self._delay)
            except asyncio.CancelledError:
                return
            await self._invoke()

    async def _invoke(self) -> None:
        async with self._lock:
            if not self._pending:
                return
            self._pending = False
            self._running = True
            try:
                await self._callback()
            except Exception as e:
                logger.error(f"Debounced callback {self._name} failed: {e}", exc_info=True)
            finally:
                self._running = False

    async def flush(self) -> None:
        """Run the pending callback now, after any run already in flight."""
        if self._sleeping():
            self._task.cancel()
        await self._invoke()

    def cancel(self) -> None:
        """Drop any pending run without invoking it. A running callback finishes."""
        self._pending = False
        if self._sleeping():
            self._task.cancel()
