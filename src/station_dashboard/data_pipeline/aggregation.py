"""Discover, fetch, normalise and order the stations shown by the dashboard."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Callable, Sequence

import httpx

from station_dashboard.config import Settings
from station_dashboard.data_sources.telemetry import StationNotFoundError, TelemetryClient

from .batching import BatchOutcome, run_batched
from .discovery import StationDiscoverer
from .records import StationRecord, error_record, map_station_payload

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)
_LOGGED_FAILURES = 3


def describe_failure(reason: BaseException | None, *, timeout: float | None = None) -> str:
    """Turn a failed fetch into the message carried by its error record."""

    if isinstance(reason, StationNotFoundError):
        return "station not found"
    if isinstance(reason, TimeoutError):
        return f"timeout after {timeout:g}s" if timeout else "timeout"
    detail = str(reason) if reason is not None and str(reason) else type(reason).__name__
    return f"fetch failed: {detail}"


def select_for_display(records: Sequence[StationRecord], max_active: int) -> list[StationRecord]:
    """Order records so the most recent valid stations come first.

    The first ``max_active`` slots hold the valid records with the newest
    timestamps (missing timestamps count as oldest). Every other record, errors
    and overflow alike, follows in its original order so nothing is dropped.
    """

    valid = [(index, record) for index, record in enumerate(records) if not record.is_error]
    valid.sort(key=lambda pair: pair[1].timestamp or _OLDEST, reverse=True)
    selected = valid[: max(0, max_active)]
    chosen = {index for index, _ in selected}
    rest = [record for index, record in enumerate(records) if index not in chosen]
    return [record for _, record in selected] + rest


class AggregationPipeline:
    """One discover → fetch → normalise → select run per call.

    The pipeline owns the discovery cache (through its discoverer) and a shared
    HTTP connection pool; timers and re-polling live outside of it.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client: TelemetryClient | None = None,
        discoverer: StationDiscoverer | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings
        self.client = client or TelemetryClient(settings=settings.telemetry)
        self.discoverer = discoverer or StationDiscoverer(self._probe, settings)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._http: httpx.AsyncClient | None = None

    def _session(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = self.client.open()
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _probe(self, station_id: int) -> bool:
        return await self.client.probe(self._session(), station_id)

    async def _fetch(self, station_id: int) -> Any:
        return await self.client.fetch_payload(self._session(), station_id)

    def _to_record(self, outcome: BatchOutcome[int, Any], now: datetime) -> StationRecord:
        if outcome.ok:
            return map_station_payload(outcome.item, outcome.value, now=now)
        message = describe_failure(outcome.reason, timeout=self.settings.telemetry.request_timeout_seconds)
        return error_record(outcome.item, message)

    async def fetch_records(self, station_ids: Sequence[int]) -> list[StationRecord]:
        """Fetch and map every station; failures become error records."""

        now = self._clock()
        outcomes = await run_batched(
            list(station_ids),
            self._fetch,
            batch_size=self.settings.batching.batch_size,
            inter_batch_delay=self.settings.batching.inter_batch_delay_seconds,
            timeout=self.settings.telemetry.request_timeout_seconds,
        )
        records = [self._to_record(outcome, now) for outcome in outcomes]

        failed = [record for record in records if record.is_error]
        for position, record in enumerate(failed):
            level = logging.INFO if position < _LOGGED_FAILURES else logging.DEBUG
            logger.log(level, "Station %d failed: %s", record.station_id, record.error)
        logger.info(
            "Fetched %d stations: %d ok, %d failed",
            len(records),
            len(records) - len(failed),
            len(failed),
        )
        return records

    async def fetch_station(self, station_id: int) -> StationRecord:
        records = await self.fetch_records([station_id])
        return records[0]

    async def aggregate(self, *, force_rescan: bool = False) -> list[StationRecord]:
        """Run one aggregation cycle; never raises for upstream problems."""

        try:
            station_ids = await self.discoverer.discover(force_rescan=force_rescan)
            if not station_ids:
                logger.warning("No stations available for this cycle")
                return []
            records = await self.fetch_records(station_ids)
            return select_for_display(records, self.settings.discovery.max_active_stations)
        except Exception:
            logger.exception("Aggregation cycle failed")
            return []


__all__ = ["AggregationPipeline", "describe_failure", "select_for_display"]
