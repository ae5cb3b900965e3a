"""Canonical station record and the mapping from raw telemetry payloads."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any, Mapping

from .parsing import extract_number, format_instant, normalize_timestamp

INVALID_PAYLOAD = "invalid payload"

# Any of these marks a payload as an envelope; only arrResponse carries the reading.
ENVELOPE_KEYS: tuple[str, ...] = ("code", "arrResponse", "response", "dados")

TIMESTAMP_KEYS: tuple[str, ...] = (
    "Última Leitura",
    "Ultima Leitura",
    "ultima_leitura",
    "last_reading",
    "timestamp",
)

NAME_KEYS: tuple[str, ...] = ("Nome", "nome", "name")

# Accepted payload keys per sensor, checked in order.
SENSOR_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "temperature": ("Temperatura", "temperatura", "temperature"),
    "humidity": ("Umidade", "umidade", "humidity"),
    "pressure": ("Pressão Atmosférica", "Pressao Atmosferica", "pressao", "pressure"),
    "wind_speed": ("Vento", "Velocidade do Vento", "vento_velocidade", "wind_speed"),
    "wind_direction": ("Direção do Vento", "Direcao do Vento", "vento_direcao", "wind_direction"),
    "noise": ("Ruído", "Ruido", "ruido", "noise"),
    "illuminance": ("Luminosidade", "Iluminância", "iluminancia", "illuminance"),
    "rainfall": ("Chuva", "Chuva Total", "chuva_total", "rainfall"),
    "pm25": ("PM2.5", "PM2,5", "pm25"),
    "pm10": ("PM10", "pm10"),
}

SENSOR_FIELDS: tuple[str, ...] = tuple(SENSOR_FIELD_ALIASES)

_READING_KEYS = frozenset(
    key for aliases in (TIMESTAMP_KEYS, *SENSOR_FIELD_ALIASES.values()) for key in aliases
)


def default_station_name(station_id: int) -> str:
    return f"Station {station_id}"


@dataclass(slots=True)
class StationRecord:
    """Normalised snapshot of one station for one aggregation cycle.

    A record with a non-null ``error`` is an error record: its sensor fields are
    always ``None`` and must not be trusted by downstream consumers.
    """

    station_id: int
    name: str
    timestamp: datetime | None = None
    temperature: float | None = None
    humidity: float | None = None
    pressure: float | None = None
    wind_speed: float | None = None
    wind_direction: float | None = None
    noise: float | None = None
    illuminance: float | None = None
    rainfall: float | None = None
    pm25: float | None = None
    pm10: float | None = None
    location: str | None = None
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def with_location(self, location: str | None) -> StationRecord:
        return replace(self, location=location)

    def to_dict(self) -> dict[str, Any]:
        data = {item.name: getattr(self, item.name) for item in fields(self)}
        data["timestamp"] = format_instant(self.timestamp)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StationRecord:
        """Rebuild a record from its :meth:`to_dict` form."""

        station_id = int(data["station_id"])
        known = {item.name for item in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        values["station_id"] = station_id
        values["name"] = values.get("name") or default_station_name(station_id)
        values["timestamp"] = normalize_timestamp(values.get("timestamp"))
        return cls(**values)


def error_record(station_id: int, message: str, *, name: str | None = None) -> StationRecord:
    """Build the error record reported for a station that could not be read."""

    return StationRecord(
        station_id=station_id,
        name=name or default_station_name(station_id),
        error=message,
    )


def _first_present(reading: Mapping[str, Any], keys: tuple[str, ...]) -> tuple[bool, Any]:
    for key in keys:
        if key in reading:
            return True, reading[key]
    return False, None


def _first_value(reading: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = reading.get(key)
        if value not in (None, ""):
            return value
    return None


def unwrap_payload(payload: Any) -> tuple[Mapping[str, Any] | None, str | None]:
    """Resolve the reading mapping inside ``payload``.

    Returns ``(reading, None)`` on success and ``(None, message)`` when the
    payload is unusable. Envelopes (anything with ``code`` or a response
    container key) must carry ``code == 200`` and a non-empty ``arrResponse``;
    flat payloads must carry at least one known reading key.
    """

    if not isinstance(payload, Mapping) or not payload:
        return None, INVALID_PAYLOAD

    if any(key in payload for key in ENVELOPE_KEYS):
        code = payload.get("code")
        if code != 200:
            return None, INVALID_PAYLOAD if code is None else f"{INVALID_PAYLOAD} (code: {code})"
        reading = payload.get("arrResponse")
        if not isinstance(reading, Mapping) or not reading:
            return None, INVALID_PAYLOAD
        return reading, None

    if not _READING_KEYS.intersection(payload):
        return None, INVALID_PAYLOAD
    return payload, None


def map_station_payload(
    station_id: int,
    payload: Any,
    *,
    now: datetime | None = None,
) -> StationRecord:
    """Map one raw upstream payload into a :class:`StationRecord`.

    A missing last-reading field falls back to ``now`` so a fresh payload is
    not reported as stale; a present but malformed one becomes ``None``.
    """

    reading, problem = unwrap_payload(payload)
    if reading is None:
        return error_record(station_id, problem or INVALID_PAYLOAD)

    has_timestamp, raw_timestamp = _first_present(reading, TIMESTAMP_KEYS)
    if has_timestamp and raw_timestamp not in (None, ""):
        timestamp = normalize_timestamp(raw_timestamp)
    else:
        timestamp = now or datetime.now(timezone.utc)

    name = _first_value(reading, NAME_KEYS)
    sensors = {
        field_name: extract_number(_first_value(reading, aliases))
        for field_name, aliases in SENSOR_FIELD_ALIASES.items()
    }
    return StationRecord(
        station_id=station_id,
        name=str(name).strip() if name is not None else default_station_name(station_id),
        timestamp=timestamp,
        **sensors,
    )


__all__ = [
    "INVALID_PAYLOAD",
    "SENSOR_FIELDS",
    "SENSOR_FIELD_ALIASES",
    "StationRecord",
    "default_station_name",
    "error_record",
    "map_station_payload",
    "unwrap_payload",
]
