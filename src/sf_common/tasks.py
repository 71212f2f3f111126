"""Fire-and-forget dispatch for post-commit side effects.

Confirmation notifications and invoice drafts run after the order (or the
payment transition) is committed. A failing side effect is logged at
WARNING and never reaches the request that triggered it.

Tasks are tracked in a set so they are not garbage-collected mid-flight,
and drained on shutdown (see src/main.py lifespan).
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class SideEffectDispatcher:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(
        self, label: str, fn: Callable[..., Awaitable[Any]], *args: Any
    ) -> None:
        """Schedule fn(*args) on the running loop and return immediately."""
        task = asyncio.create_task(self._run(label, fn, *args), name=f"side-effect:{label}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, label: str, fn: Callable[..., Awaitable[Any]], *args: Any) -> None:
        try:
            await fn(*args)
        except Exception:
            logger.warning("Side effect failed: %s", label, exc_info=True)
        else:
            logger.debug("Side effect done: %s", label)

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for in-flight side effects; anything still running after timeout is abandoned."""
        if not self._tasks:
            return
        _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still_running:
            logger.warning("Abandoning %d side effects at shutdown", len(still_running))


dispatcher = SideEffectDispatcher()
