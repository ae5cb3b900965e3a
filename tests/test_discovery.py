from __future__ import annotations

import asyncio

from station_dashboard.data_pipeline.discovery import DiscoveryCache, StationDiscoverer

LIVE_STATIONS = {2, 3, 7, 8}


class RecordingProbe:
    def __init__(self, live: set[int], *, fail_with: Exception | None = None) -> None:
        self.live = live
        self.fail_with = fail_with
        self.calls: list[int] = []

    async def __call__(self, station_id: int) -> bool:
        self.calls.append(station_id)
        if station_id in self.live:
            return True
        if self.fail_with is not None:
            raise self.fail_with
        return False


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_configured_ids_skip_probing(settings) -> None:
    settings.discovery.station_ids = [8, 3, 3, 2, 7, 9]
    probe = RecordingProbe(LIVE_STATIONS)

    found = asyncio.run(StationDiscoverer(probe, settings).discover())

    assert found == [2, 3, 7, 8]
    assert probe.calls == []


def test_range_probe_stops_after_failure_streak(settings) -> None:
    probe = RecordingProbe(LIVE_STATIONS)

    found = asyncio.run(StationDiscoverer(probe, settings).discover())

    assert found == [2, 3, 7, 8]
    # ids 9-13 are the stopping streak; batch two (11-20) was already in flight
    assert max(probe.calls) == 20
    assert sorted(probe.calls) == list(range(1, 21))


def test_probe_errors_count_as_failures(settings) -> None:
    probe = RecordingProbe(LIVE_STATIONS, fail_with=RuntimeError("HTTP 404"))

    found = asyncio.run(StationDiscoverer(probe, settings).discover())

    assert found == [2, 3, 7, 8]
    assert max(probe.calls) == 20


def test_streak_before_first_station_does_not_stop(settings) -> None:
    probe = RecordingProbe({30})

    found = asyncio.run(StationDiscoverer(probe, settings).discover())

    assert found == [30]
    assert max(probe.calls) == 40


def test_discovered_ids_are_capped(settings) -> None:
    settings.discovery.max_discovered_stations = 2
    probe = RecordingProbe(LIVE_STATIONS)

    assert asyncio.run(StationDiscoverer(probe, settings).discover()) == [2, 3]


def test_results_are_cached_until_rescan(settings) -> None:
    probe = RecordingProbe(LIVE_STATIONS)
    discoverer = StationDiscoverer(probe, settings)

    asyncio.run(discoverer.discover())
    first_sweep = len(probe.calls)
    assert asyncio.run(discoverer.discover()) == [2, 3, 7, 8]
    assert len(probe.calls) == first_sweep

    asyncio.run(discoverer.discover(force_rescan=True))
    assert len(probe.calls) == 2 * first_sweep


def test_empty_discovery_is_not_cached(settings) -> None:
    probe = RecordingProbe(set())
    discoverer = StationDiscoverer(probe, settings)

    assert asyncio.run(discoverer.discover()) == []
    assert len(probe.calls) == 50
    asyncio.run(discoverer.discover())
    assert len(probe.calls) == 100


def test_cache_expires_after_ttl() -> None:
    clock = FakeClock()
    cache = DiscoveryCache(60, clock=clock)

    cache.store([2, 3])
    clock.now = 59.0
    assert cache.get() == [2, 3]
    clock.now = 60.0
    assert cache.get() is None


def test_cache_invalidate_and_copy() -> None:
    cache = DiscoveryCache(60, clock=FakeClock())
    cache.store([2, 3])

    cached = cache.get()
    cached.append(99)
    assert cache.get() == [2, 3]

    cache.invalidate()
    assert cache.get() is None
