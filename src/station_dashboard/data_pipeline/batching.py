"""Run many independent async operations in paced, bounded batches."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import AsyncIterator, Awaitable, Callable, Generic, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(slots=True)
class BatchOutcome(Generic[T, R]):
    """Settled result of one item, aligned with its position in the input."""

    item: T
    ok: bool
    value: R | None = None
    reason: BaseException | None = None

    @property
    def timed_out(self) -> bool:
        return isinstance(self.reason, TimeoutError)


async def _settle(
    item: T,
    worker: Callable[[T], Awaitable[R]],
    timeout: float | None,
) -> BatchOutcome[T, R]:
    try:
        if timeout is None:
            value = await worker(item)
        else:
            # wait_for cancels only this worker when it expires
            value = await asyncio.wait_for(worker(item), timeout=timeout)
    except Exception as error:
        return BatchOutcome(item=item, ok=False, reason=error)
    return BatchOutcome(item=item, ok=True, value=value)


async def iter_batches(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    batch_size: int = 10,
    inter_batch_delay: float = 0.1,
    timeout: float | None = None,
) -> AsyncIterator[list[BatchOutcome[T, R]]]:
    """Yield the settled outcomes of each batch, in input order.

    At most ``batch_size`` workers run at once. The pacing delay is awaited
    only between batches, so a caller that stops iterating never starts (or
    waits for) the remaining ones.
    """

    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    for start in range(0, len(items), batch_size):
        batch = items[start : start + batch_size]
        settled = await asyncio.gather(*(_settle(item, worker, timeout) for item in batch))
        yield list(settled)
        if start + batch_size < len(items) and inter_batch_delay > 0:
            await asyncio.sleep(inter_batch_delay)


async def run_batched(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    batch_size: int = 10,
    inter_batch_delay: float = 0.1,
    timeout: float | None = None,
) -> list[BatchOutcome[T, R]]:
    """Run ``worker`` over every item and return one outcome per item.

    Failures and timeouts become failed outcomes instead of aborting the
    batch; ``result[i]`` always belongs to ``items[i]``.
    """

    outcomes: list[BatchOutcome[T, R]] = []
    async for settled in iter_batches(
        items,
        worker,
        batch_size=batch_size,
        inter_batch_delay=inter_batch_delay,
        timeout=timeout,
    ):
        failures = sum(1 for outcome in settled if not outcome.ok)
        logger.debug("Batch of %d settled with %d failures", len(settled), failures)
        outcomes.extend(settled)
    return outcomes


__all__ = ["BatchOutcome", "iter_batches", "run_batched"]
