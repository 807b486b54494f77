from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

LOGGER = logging.getLogger(__name__)

DEFAULT_IDLE_DELAY_MS = 3000


class IdlePromptTimer:
    """Cancellable one-shot timer; at most one pending fire at a time.

    ``schedule`` replaces any pending timer. When the timer fires it detaches
    itself before running the callback, so the callback may schedule the next
    idle period without cancelling its own task.
    """

    def __init__(
        self,
        on_fire: Callable[[], Awaitable[None]],
        *,
        delay_ms: int = DEFAULT_IDLE_DELAY_MS,
    ) -> None:
        self._on_fire = on_fire
        self._delay_ms = delay_ms
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, delay_ms: int | None = None) -> None:
        self.cancel()
        delay = self._delay_ms if delay_ms is None else delay_ms
        self._task = asyncio.create_task(self._run(delay / 1000))

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._task = None
        try:
            await self._on_fire()
        except Exception:
            LOGGER.exception("Idle prompt failed")
