"""Optimistic-concurrency retry loop.

A read-modify-write against the store is expressed as a zero-argument
coroutine function that re-reads the object on every call.  When the
conditional write loses against a concurrent writer (``ConflictError``), the
whole function runs again after a short jittered backoff.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass

from loguru import logger

from workspace_operator.controller.store.base import ConflictError


@dataclass(frozen=True)
class Backoff:
    """Exponential backoff schedule with jitter and a per-step cap."""

    steps: int = 10
    duration: float = 0.01
    factor: float = 2.0
    jitter: float = 0.1
    cap: float = 1.0

    def delays(self) -> Iterator[float]:
        delay = self.duration
        for _ in range(self.steps):
            yield min(delay, self.cap) * (1 + random.uniform(0, self.jitter))  # noqa: S311
            delay *= self.factor


DEFAULT_BACKOFF = Backoff()


async def retry_on_conflict[T](
    fn: Callable[[], Awaitable[T]],
    *,
    backoff: Backoff = DEFAULT_BACKOFF,
    description: str = "update",
) -> T:
    """Run *fn* until it completes without a ``ConflictError``.

    Raises the last ``ConflictError`` once ``backoff.steps`` attempts are
    exhausted; callers at the reconcile layer requeue in that case.
    """
    attempt = 0
    for delay in backoff.delays():
        attempt += 1
        try:
            return await fn()
        except ConflictError:
            if attempt >= backoff.steps:
                logger.warning("Conflict retries exhausted for {} after {} attempts", description, attempt)
                raise
            logger.debug("Conflict on {} (attempt {}), retrying in {:.3f}s", description, attempt, delay)
            await asyncio.sleep(delay)
    msg = f"{description}: backoff schedule has no steps"
    raise ValueError(msg)
