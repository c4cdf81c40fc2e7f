"""Fire-and-forget task registry used for best-effort remote mirroring."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Dict, Set

LOGGER = logging.getLogger("lessonsync.sync.background")


class BackgroundTasks:
    """Detached asyncio tasks whose failures are logged, never raised to the caller.

    References are held until each task finishes so the event loop does not
    garbage-collect them mid-flight.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task[Any]] = set()
        self._latest: Dict[str, int] = {}
        self.failures: int = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, label: str) -> asyncio.Task[Any] | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.warning("No running event loop; dropping background task", extra={"label": label})
            coro.close()
            return None
        task = loop.create_task(coro, name=label)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def spawn_latest(
        self,
        key: str,
        revision: int,
        factory: Callable[[], Coroutine[Any, Any, Any]],
        *,
        label: str,
    ) -> asyncio.Task[Any] | None:
        """Spawn a mirror for ``key`` that is skipped if a newer revision was queued first."""

        self._latest[key] = max(revision, self._latest.get(key, revision))

        async def _guarded() -> None:
            if revision < self._latest.get(key, revision):
                LOGGER.info(
                    "Skipping superseded mirror",
                    extra={"label": label, "revision": revision, "latest": self._latest.get(key)},
                )
                return
            await factory()

        return self.spawn(_guarded(), label=label)

    async def drain(self) -> None:
        """Wait for every pending task, including ones spawned while waiting."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _finished(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.failures += 1
            LOGGER.warning(
                "Background task failed",
                extra={"label": task.get_name(), "error": str(exc)},
                exc_info=exc,
            )


__all__ = ["BackgroundTasks"]
