"""Best-effort background writes (fire-and-forget).

Contract: a submitted job is scheduled on the running event loop and the
caller never waits for it. A failing job is logged and discarded; it can
never fail or delay the request that submitted it. Outstanding jobs are
awaited by drain() during application shutdown, before the database engine
is disposed.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Set

from allyhub.core.metrics import metrics

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[object]]


class BackgroundJobs:
    def __init__(self) -> None:
        # Strong references keep pending tasks from being garbage collected
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def _run(self, factory: JobFactory, op: str) -> None:
        try:
            await factory()
            metrics.increment_event(f"background.{op}.ok")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            metrics.increment_event(f"background.{op}.failed")
            logger.warning("background_job_failed op=%s err=%s", op, exc)

    def submit(self, factory: JobFactory, *, op: str = "job") -> bool:
        """Schedule factory() on the running loop without waiting.

        Returns False (and drops the job) when no loop is running.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("background_loop_missing for %s", op)
            return False
        task = loop.create_task(self._run(factory, op), name=f"background:{op}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for outstanding jobs; cancel whatever is still running after timeout."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        done, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning("background_jobs_cancelled count=%s", len(still_running))


background_jobs = BackgroundJobs()

__all__ = ["BackgroundJobs", "background_jobs"]
