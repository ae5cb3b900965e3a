"""Async client for the upstream weather-station telemetry API."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Mapping

import httpx

from station_dashboard.config import TelemetryConfig

logger = logging.getLogger(__name__)


class TelemetryClientError(RuntimeError):
    """Raised when a station cannot be read from the telemetry API."""


class StationNotFoundError(TelemetryClientError):
    """Raised when the telemetry API answers 404 for a station id."""


class TelemetryTimeoutError(TelemetryClientError, TimeoutError):
    """Raised when the telemetry API does not answer within the timeout."""


def is_station_acknowledgement(payload: Any) -> bool:
    """Tell whether ``payload`` is the envelope of an existing station."""

    return isinstance(payload, Mapping) and payload.get("code") == 200 and bool(payload.get("arrResponse"))


@dataclass
class TelemetryClient:
    """Small helper around the ``GET <base>/<station_id>`` endpoint.

    The HTTP connection pool lives in an ``httpx.AsyncClient`` opened with
    :meth:`open`; one is shared by all requests of an aggregation cycle.
    """

    settings: TelemetryConfig
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self._headers = {"User-Agent": self.settings.user_agent, "Accept": "application/json"}

    def open(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=httpx.Timeout(self.settings.request_timeout_seconds),
            transport=self.transport,
        )

    def station_url(self, station_id: int) -> str:
        return f"{self.settings.base_url.rstrip('/')}/{station_id}"

    async def fetch_payload(self, http: httpx.AsyncClient, station_id: int) -> Any:
        """Return the decoded JSON body for ``station_id``.

        Raises:
            StationNotFoundError: the API answered 404
            TelemetryTimeoutError: the request timed out
            TelemetryClientError: any other transport or decoding failure
        """

        url = self.station_url(station_id)
        try:
            response = await http.get(url)
        except httpx.TimeoutException as error:
            raise TelemetryTimeoutError(f"timeout requesting station {station_id}") from error
        except httpx.HTTPError as error:
            raise TelemetryClientError(f"could not reach telemetry API: {error}") from error

        if response.status_code == 404:
            raise StationNotFoundError(f"station {station_id} not found")
        if not response.is_success:
            raise TelemetryClientError(f"HTTP {response.status_code}: {response.reason_phrase}")
        if not response.content.strip():
            raise TelemetryClientError("empty response from telemetry API")
        try:
            return response.json()
        except ValueError as error:
            logger.debug("Malformed body for station %s: %r", station_id, response.text[:200])
            raise TelemetryClientError(f"malformed JSON from telemetry API: {error}") from error

    async def probe(self, http: httpx.AsyncClient, station_id: int) -> bool:
        """Lightweight existence check used by discovery."""

        payload = await self.fetch_payload(http, station_id)
        return is_station_acknowledgement(payload)


__all__ = [
    "StationNotFoundError",
    "TelemetryClient",
    "TelemetryClientError",
    "TelemetryTimeoutError",
    "is_station_acknowledgement",
]
