"""Data source clients for the station dashboard."""

from .telemetry import (
    StationNotFoundError,
    TelemetryClient,
    TelemetryClientError,
    TelemetryTimeoutError,
)

__all__ = [
    "StationNotFoundError",
    "TelemetryClient",
    "TelemetryClientError",
    "TelemetryTimeoutError",
]
