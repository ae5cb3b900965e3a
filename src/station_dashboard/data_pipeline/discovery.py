"""Work out which station ids are live for the current aggregation cycle."""

from __future__ import annotations

from contextlib import aclosing
import logging
import time
from typing import Awaitable, Callable

from station_dashboard.config import Settings

from .batching import iter_batches

logger = logging.getLogger(__name__)

Probe = Callable[[int], Awaitable[bool]]


class DiscoveryCache:
    """Discovered ids kept for a bounded time.

    The timestamp and the ids are stored as one tuple so a read always sees a
    matching pair.
    """

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: tuple[float, list[int]] | None = None

    def get(self) -> list[int] | None:
        entry = self._entry
        if entry is None:
            return None
        stored_at, ids = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            self._entry = None
            return None
        return list(ids)

    def store(self, ids: list[int]) -> None:
        self._entry = (self._clock(), list(ids))

    def invalidate(self) -> None:
        self._entry = None


class StationDiscoverer:
    """Resolve the station ids to poll.

    Configured ids win. Without them the numeric id range is probed in paced
    batches, stopping once ``failure_streak_limit`` consecutive ids fail after
    at least one station was found. That stop assumes ids are clustered at the
    start of the range: a station sitting beyond a larger gap is not found.
    """

    def __init__(self, probe: Probe, settings: Settings, *, cache: DiscoveryCache | None = None) -> None:
        self._probe = probe
        self._settings = settings
        self.cache = cache or DiscoveryCache(settings.discovery.cache_ttl_seconds)

    def configured_ids(self) -> list[int]:
        config = self._settings.discovery
        unique = list(dict.fromkeys(config.station_ids))
        return sorted(unique[: config.max_active_stations])

    def force_rescan(self) -> None:
        self.cache.invalidate()

    async def discover(self, *, force_rescan: bool = False) -> list[int]:
        configured = self.configured_ids()
        if configured:
            return configured

        if force_rescan:
            self.force_rescan()
        cached = self.cache.get()
        if cached is not None:
            logger.debug("Using %d cached station ids", len(cached))
            return cached

        found = await self.probe_range()
        if found:
            self.cache.store(found)
        return found

    async def probe_range(self) -> list[int]:
        discovery = self._settings.discovery
        batching = self._settings.batching
        candidates = list(range(discovery.min_station_id, discovery.max_station_id + 1))

        found: list[int] = []
        streak = 0
        stopped_at: int | None = None
        batches = iter_batches(
            candidates,
            self._probe,
            batch_size=batching.batch_size,
            inter_batch_delay=batching.inter_batch_delay_seconds,
            timeout=self._settings.telemetry.request_timeout_seconds,
        )
        async with aclosing(batches):
            async for outcomes in batches:
                for outcome in outcomes:
                    if outcome.ok and outcome.value:
                        found.append(outcome.item)
                        streak = 0
                        continue
                    streak += 1
                    if streak >= discovery.failure_streak_limit and found:
                        stopped_at = outcome.item
                        break
                if stopped_at is not None:
                    break

        if stopped_at is not None:
            logger.info(
                "Discovery stopped at id %d after %d consecutive failures",
                stopped_at,
                discovery.failure_streak_limit,
            )
        found = sorted(set(found))[: discovery.max_discovered_stations]
        logger.info(
            "Discovered %d stations in range %d-%d",
            len(found),
            discovery.min_station_id,
            discovery.max_station_id,
        )
        return found


__all__ = ["DiscoveryCache", "StationDiscoverer"]
