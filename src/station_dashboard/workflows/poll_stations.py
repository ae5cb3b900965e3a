"""Workflow that re-runs the aggregation pipeline on a fixed interval."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from station_dashboard.data_pipeline.aggregation import AggregationPipeline
from station_dashboard.data_pipeline.records import StationRecord

logger = logging.getLogger(__name__)

CycleCallback = Callable[[list[StationRecord]], Awaitable[None] | None]


class StationPoller:
    """Timer-driven re-invocation of :meth:`AggregationPipeline.aggregate`.

    A failed station is simply fetched again on the next cycle; there is no
    retry inside a cycle.
    """

    def __init__(
        self,
        pipeline: AggregationPipeline,
        *,
        interval_seconds: float = 60.0,
        on_cycle: CycleCallback | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.interval_seconds = interval_seconds
        self.on_cycle = on_cycle
        self.cycles = 0
        self._stop = asyncio.Event()

    def stop(self) -> None:
        self._stop.set()

    async def run_once(self, *, force_rescan: bool = False) -> list[StationRecord]:
        records = await self.pipeline.aggregate(force_rescan=force_rescan)
        self.cycles += 1
        if self.on_cycle is not None:
            result = self.on_cycle(records)
            if asyncio.iscoroutine(result):
                await result
        return records

    async def run(self, *, max_cycles: int | None = None, force_rescan: bool = False) -> None:
        """Poll until :meth:`stop` is called or ``max_cycles`` cycles ran.

        ``force_rescan`` only applies to the first cycle.
        """

        self._stop.clear()
        rescan = force_rescan
        ran = 0
        while not self._stop.is_set():
            records = await self.run_once(force_rescan=rescan)
            rescan = False
            ran += 1
            logger.info("Poll cycle %d returned %d stations", self.cycles, len(records))
            if max_cycles is not None and ran >= max_cycles:
                break
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except TimeoutError:
                continue


__all__ = ["StationPoller"]
