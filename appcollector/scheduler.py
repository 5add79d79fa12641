"""Concurrency-bounded execution of independent async tasks."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from .constants import DEFAULT_CONCURRENCY

logger = logging.getLogger(__name__)

T = TypeVar("T")

TaskFactory = Callable[[], Awaitable[T]]

SCHEDULER_MODES = ("chunked", "sliding")


@dataclass(frozen=True)
class TaskFailure:
    """Marker left in the result list for a task that raised."""

    index: int
    error: BaseException

    def __str__(self) -> str:
        return f"task {self.index} failed: {self.error}"


def is_failure(result: Any) -> bool:
    """True if *result* is a failure marker produced by the scheduler."""
    return isinstance(result, TaskFailure)


class BoundedScheduler:
    """
    Run a homogeneous set of tasks with at most ``limit`` in flight.

    Tasks are passed as zero-argument factories so that nothing starts before
    the scheduler admits it. A task that raises never aborts its siblings; its
    slot in the returned list holds a TaskFailure instead. Results keep the
    input order.

    Modes:
        chunked: consecutive batches of ``limit`` tasks; the next batch starts
            only once every task of the current one has settled.
        sliding: a semaphore-bounded pool that starts a new task as soon as
            any running one settles.
    """

    def __init__(self, limit: int = DEFAULT_CONCURRENCY, mode: str = "chunked"):
        if limit < 1:
            raise ValueError(f"Concurrency limit must be at least 1, got {limit}")
        if mode not in SCHEDULER_MODES:
            raise ValueError(f"Unknown scheduler mode '{mode}'. Use one of: {', '.join(SCHEDULER_MODES)}")
        self.limit = limit
        self.mode = mode

    async def run(self, factories: Sequence[TaskFactory[T]]) -> list[T | TaskFailure]:
        """Execute all tasks and return one result or failure per task."""
        if not factories:
            return []

        if self.mode == "sliding":
            results = await self._run_sliding(factories)
        else:
            results = await self._run_chunked(factories)

        failed = sum(1 for r in results if is_failure(r))
        if failed:
            logger.warning("%d of %d tasks failed", failed, len(results))
        return results

    @staticmethod
    async def _start(factory: TaskFactory[T]) -> T:
        # A factory that raises before returning its awaitable fails only its own slot
        return await factory()

    async def _run_chunked(self, factories: Sequence[TaskFactory[T]]) -> list[T | TaskFailure]:
        results: list[T | TaskFailure] = []
        total_chunks = (len(factories) + self.limit - 1) // self.limit

        for start in range(0, len(factories), self.limit):
            chunk = factories[start:start + self.limit]
            logger.debug("Processing chunk %d of %d", start // self.limit + 1, total_chunks)
            settled = await asyncio.gather(*(self._start(f) for f in chunk), return_exceptions=True)
            results.extend(self._wrap(start + offset, outcome) for offset, outcome in enumerate(settled))

        return results

    async def _run_sliding(self, factories: Sequence[TaskFactory[T]]) -> list[T | TaskFailure]:
        semaphore = asyncio.Semaphore(self.limit)

        async def _guarded(factory: TaskFactory[T]) -> T:
            async with semaphore:
                return await self._start(factory)

        settled = await asyncio.gather(*(_guarded(f) for f in factories), return_exceptions=True)
        return [self._wrap(index, outcome) for index, outcome in enumerate(settled)]

    @staticmethod
    def _wrap(index: int, outcome: Any) -> Any:
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, BaseException):
            logger.error("Task %d raised: %s", index, outcome, exc_info=outcome)
            return TaskFailure(index=index, error=outcome)
        return outcome
