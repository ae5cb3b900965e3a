from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from station_dashboard.data_pipeline.aggregation import (
    AggregationPipeline,
    describe_failure,
    select_for_display,
)
from station_dashboard.data_pipeline.records import StationRecord, error_record
from station_dashboard.data_sources.telemetry import (
    StationNotFoundError,
    TelemetryClient,
    TelemetryClientError,
)

NOW = datetime(2025, 11, 18, 14, 0, tzinfo=timezone.utc)

PAYLOADS = {
    2: {"code": 200, "arrResponse": {"Nome": "Norte", "Última Leitura": "18/11/2025 10:00:00", "Temperatura": "24 °C"}},
    3: {"code": 200, "arrResponse": {"Nome": "Sul", "Última Leitura": "18/11/2025 10:05:00", "Temperatura": "25 °C"}},
    7: {"code": 200, "arrResponse": {"Nome": "Leste", "Temperatura": "26 °C"}},
}


def telemetry_handler(request: httpx.Request) -> httpx.Response:
    station_id = int(request.url.path.rsplit("/", 1)[-1])
    if station_id == 8:
        raise httpx.ReadTimeout("no answer", request=request)
    if station_id not in PAYLOADS:
        return httpx.Response(404)
    return httpx.Response(200, json=PAYLOADS[station_id])


def make_pipeline(settings) -> AggregationPipeline:
    client = TelemetryClient(settings=settings.telemetry, transport=httpx.MockTransport(telemetry_handler))
    return AggregationPipeline(settings, client=client, clock=lambda: NOW)


def run_closing(pipeline: AggregationPipeline, operation):
    async def run():
        try:
            return await operation()
        finally:
            await pipeline.aclose()

    return asyncio.run(run())


def record(station_id: int, hour: int | None, *, error: str | None = None) -> StationRecord:
    if error is not None:
        return error_record(station_id, error)
    timestamp = None if hour is None else datetime(2025, 11, 18, hour, tzinfo=timezone.utc)
    return StationRecord(station_id=station_id, name=f"S{station_id}", timestamp=timestamp)


def test_aggregate_orders_valid_stations_and_keeps_failures(settings) -> None:
    settings.discovery.station_ids = [2, 3, 7, 8]
    pipeline = make_pipeline(settings)

    records = run_closing(pipeline, pipeline.aggregate)

    assert [item.station_id for item in records] == [7, 3, 2, 8]
    assert records[0].timestamp == NOW
    assert records[1].timestamp == datetime(2025, 11, 18, 13, 5, tzinfo=timezone.utc)
    assert records[2].temperature == pytest.approx(24.0)
    assert records[3].error == "timeout after 10s"
    assert records[3].temperature is None


def test_aggregate_discovers_when_no_ids_configured(settings) -> None:
    pipeline = make_pipeline(settings)

    records = run_closing(pipeline, pipeline.aggregate)

    # station 8 times out during probing too, so only acknowledged ids survive
    assert [item.station_id for item in records] == [7, 3, 2]


def test_fetch_station_reports_missing_station(settings) -> None:
    pipeline = make_pipeline(settings)

    found = run_closing(pipeline, lambda: pipeline.fetch_station(42))

    assert found.is_error
    assert found.error == "station not found"


def test_aggregate_without_stations_returns_empty(settings) -> None:
    class NoStations:
        async def discover(self, *, force_rescan: bool = False) -> list[int]:
            return []

    pipeline = AggregationPipeline(settings, discoverer=NoStations())

    assert asyncio.run(pipeline.aggregate()) == []


def test_aggregate_swallows_unexpected_failures(settings) -> None:
    class BrokenDiscoverer:
        async def discover(self, *, force_rescan: bool = False) -> list[int]:
            raise RuntimeError("boom")

    pipeline = AggregationPipeline(settings, discoverer=BrokenDiscoverer())

    assert asyncio.run(pipeline.aggregate()) == []


def test_aggregate_passes_rescan_to_discovery(settings) -> None:
    calls: list[bool] = []

    class Discoverer:
        async def discover(self, *, force_rescan: bool = False) -> list[int]:
            calls.append(force_rescan)
            return []

    pipeline = AggregationPipeline(settings, discoverer=Discoverer())
    asyncio.run(pipeline.aggregate(force_rescan=True))

    assert calls == [True]


def test_select_for_display_caps_and_keeps_everything() -> None:
    records = [
        record(1, 9),
        record(2, None, error="station not found"),
        record(3, 12),
        record(4, None),
        record(5, 11),
    ]

    ordered = select_for_display(records, max_active=2)

    assert [item.station_id for item in ordered] == [3, 5, 1, 2, 4]


def test_select_for_display_is_stable_for_equal_timestamps() -> None:
    records = [record(1, 10), record(2, 10), record(3, 10)]

    assert [item.station_id for item in select_for_display(records, 3)] == [1, 2, 3]


def test_select_for_display_puts_missing_timestamps_last() -> None:
    records = [record(1, None), record(2, 8)]

    assert [item.station_id for item in select_for_display(records, 4)] == [2, 1]


@pytest.mark.parametrize(
    ("reason", "expected"),
    [
        (StationNotFoundError("station 9 not found"), "station not found"),
        (TimeoutError(), "timeout after 2.5s"),
        (TelemetryClientError("HTTP 500: Internal Server Error"), "fetch failed: HTTP 500: Internal Server Error"),
        (RuntimeError(), "fetch failed: RuntimeError"),
    ],
)
def test_describe_failure(reason, expected) -> None:
    assert describe_failure(reason, timeout=2.5) == expected


def test_non_finite_upstream_numbers_become_missing(settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = b'{"code": 200, "arrResponse": {"Nome": "Oeste", "Temperatura": NaN, "Umidade": Infinity, "Vento": 3}}'
        return httpx.Response(200, content=body, headers={"Content-Type": "application/json"})

    client = TelemetryClient(settings=settings.telemetry, transport=httpx.MockTransport(handler))
    pipeline = AggregationPipeline(settings, client=client, clock=lambda: NOW)

    found = run_closing(pipeline, lambda: pipeline.fetch_station(4))

    assert found.error is None
    assert found.temperature is None
    assert found.humidity is None
    assert found.wind_speed == pytest.approx(3.0)
    json.dumps(found.to_dict(), allow_nan=False)
