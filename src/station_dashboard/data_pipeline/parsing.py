"""Normalisation of the loosely formatted values reported by the stations."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import math
import re
from typing import Any

SOURCE_UTC_OFFSET = timezone(timedelta(hours=-3))
SOURCE_OFFSET_SUFFIX = "-03:00"

_NUMBER_PATTERN = re.compile(r"[-+]?\d+(?:\.\d+)?")


def extract_number(value: Any) -> float | None:
    """Return the first number found in ``value`` or ``None``.

    Strings such as ``"28,6 °C"`` or ``"1015 hPa"`` carry a unit and may use a
    decimal comma. ``None`` means the sensor value is absent; it is never
    conflated with a reading of zero. Non-finite values read as absent.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    else:
        match = _NUMBER_PATTERN.search(str(value).replace(",", "."))
        if match is None:
            return None
        number = float(match.group(0))
    return number if math.isfinite(number) else None


def _parse_iso(text: str) -> datetime | None:
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=SOURCE_UTC_OFFSET)
    return parsed.astimezone(timezone.utc)


def _parse_source_local(text: str) -> datetime | None:
    parts = text.split()
    if len(parts) != 2:
        return None
    date_part, time_part = parts
    date_fields = date_part.split("/")
    time_fields = time_part.split(":")
    if len(date_fields) != 3 or len(time_fields) not in (2, 3):
        return None
    if not all(item.isdigit() for item in (*date_fields, *time_fields)):
        return None

    day, month, year = date_fields
    clock = ":".join(item.zfill(2) for item in time_fields)
    iso_text = f"{year.zfill(4)}-{month.zfill(2)}-{day.zfill(2)}T{clock}{SOURCE_OFFSET_SUFFIX}"
    try:
        return datetime.fromisoformat(iso_text).astimezone(timezone.utc)
    except ValueError:
        return None


def normalize_timestamp(
    raw: Any,
    *,
    lenient: bool = False,
    now: datetime | None = None,
) -> datetime | None:
    """Convert a station timestamp into an absolute UTC instant.

    Accepts ISO-8601 strings and the station-local ``DD/MM/YYYY HH:MM:SS``
    format, which is always read at a fixed UTC-3 offset (no DST). When the
    value cannot be interpreted the strict form returns ``None`` and the
    lenient form returns ``now``.
    """

    parsed: datetime | None = None
    if isinstance(raw, datetime):
        parsed = raw if raw.tzinfo else raw.replace(tzinfo=SOURCE_UTC_OFFSET)
        parsed = parsed.astimezone(timezone.utc)
    elif isinstance(raw, str) and raw.strip():
        text = raw.strip()
        parsed = _parse_iso(text) if "T" in text else _parse_source_local(text)

    if parsed is None and lenient:
        return now or datetime.now(timezone.utc)
    return parsed


def format_instant(value: datetime | None) -> str | None:
    """Render an instant as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""

    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


__all__ = [
    "SOURCE_UTC_OFFSET",
    "extract_number",
    "format_instant",
    "normalize_timestamp",
]
