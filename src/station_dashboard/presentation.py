"""Recency classification and display helpers shared by the API and the dashboard."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from station_dashboard.data_pipeline.parsing import SOURCE_UTC_OFFSET, format_instant
from station_dashboard.data_pipeline.records import StationRecord

DEFAULT_RECENCY_WINDOW = timedelta(minutes=10)
MISSING_TIME_LABEL = "Data não disponível"

SENSOR_DISPLAY: list[tuple[str, str, str, int]] = [
    ("temperature", "🌡️ Temperatura", "°C", 1),
    ("humidity", "💧 Umidade", "%", 1),
    ("pressure", "📊 Pressão", "hPa", 1),
    ("wind_speed", "🌬️ Vento", "km/h", 1),
    ("wind_direction", "🧭 Direção", "°", 0),
    ("noise", "🔊 Ruído", "dB", 1),
    ("illuminance", "☀️ Iluminância", "lux", 0),
    ("rainfall", "🌧️ Chuva Total", "mm", 1),
    ("pm25", "🌫️ PM2.5", "μg/m³", 0),
    ("pm10", "🌫️ PM10", "μg/m³", 0),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_active(
    record: StationRecord,
    now: datetime | None = None,
    window: timedelta = DEFAULT_RECENCY_WINDOW,
) -> bool:
    """A station is active when it has no error and read within ``window``."""

    if record.is_error or record.timestamp is None:
        return False
    return (now or _utcnow()) - record.timestamp <= window


def is_disconnected(
    record: StationRecord,
    now: datetime | None = None,
    window: timedelta = DEFAULT_RECENCY_WINDOW,
) -> bool:
    return not is_active(record, now, window)


def _most_recent_first(records: list[StationRecord]) -> list[StationRecord]:
    oldest = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(records, key=lambda record: record.timestamp or oldest, reverse=True)


def partition_by_status(
    records: Iterable[StationRecord],
    now: datetime | None = None,
    window: timedelta = DEFAULT_RECENCY_WINDOW,
) -> tuple[list[StationRecord], list[StationRecord]]:
    """Split records into ``(active, disconnected)``, each most recent first."""

    now = now or _utcnow()
    active: list[StationRecord] = []
    disconnected: list[StationRecord] = []
    for record in records:
        (active if is_active(record, now, window) else disconnected).append(record)
    return _most_recent_first(active), _most_recent_first(disconnected)


def summarize_status(
    records: Iterable[StationRecord],
    now: datetime | None = None,
    window: timedelta = DEFAULT_RECENCY_WINDOW,
) -> dict[str, Any]:
    """Build the payload served by the status endpoint."""

    now = now or _utcnow()
    stations = [
        {
            "station_id": record.station_id,
            "online": not record.is_error,
            "active": is_active(record, now, window),
            "last_reading": format_instant(record.timestamp),
        }
        for record in records
    ]
    return {
        "total_stations": len(stations),
        "online_stations": sum(1 for station in stations if station["online"]),
        "active_stations": sum(1 for station in stations if station["active"]),
        "stations": stations,
    }


def format_reading_time(timestamp: datetime | None) -> str:
    """Render a reading time the way the stations report it (UTC-3)."""

    if timestamp is None:
        return MISSING_TIME_LABEL
    return timestamp.astimezone(SOURCE_UTC_OFFSET).strftime("%d/%m/%Y, %H:%M:%S")


def format_sensor_value(value: float | None, decimals: int) -> str:
    if value is None:
        return "—"
    return f"{value:.{decimals}f}"


__all__ = [
    "DEFAULT_RECENCY_WINDOW",
    "SENSOR_DISPLAY",
    "format_reading_time",
    "format_sensor_value",
    "is_active",
    "is_disconnected",
    "partition_by_status",
    "summarize_status",
]
