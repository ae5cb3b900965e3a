"""JSON file backed store for the station locations shown on the dashboard."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class LocationStoreError(RuntimeError):
    """Raised when the locations file cannot be written."""


def default_location_name(station_id: int | str) -> str:
    return f"Estação {station_id}"


class LocationStore:
    """Station metadata (name, address, coordinates) keyed by station id."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def ensure_file(self) -> None:
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("{}\n", encoding="utf-8")

    def read_all(self) -> dict[str, dict[str, Any]]:
        """Return every stored location; an unreadable file reads as empty."""

        try:
            self.ensure_file()
            text = self.path.read_text(encoding="utf-8")
            data = json.loads(text or "{}")
        except (OSError, json.JSONDecodeError) as error:
            logger.error("Could not read locations from %s: %s", self.path, error)
            return {}
        if not isinstance(data, dict):
            logger.error("Ignoring locations file %s: expected a JSON object", self.path)
            return {}
        return data

    def get(self, station_id: int | str) -> dict[str, Any] | None:
        location = self.read_all().get(str(station_id))
        if location is None:
            return None
        return {"id": str(station_id), **location}

    def upsert(
        self,
        station_id: int | str,
        *,
        nome: str | None = None,
        endereco: str | None = None,
        latitude: float | str | None = None,
        longitude: float | str | None = None,
    ) -> dict[str, Any]:
        """Create or replace the location of ``station_id`` and persist it."""

        key = str(station_id)
        locations = self.read_all()
        locations[key] = {
            "nome": nome or default_location_name(key),
            "endereco": endereco or "",
            "latitude": latitude if latitude not in (None, "") else "",
            "longitude": longitude if longitude not in (None, "") else "",
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as handle:
                json.dump(locations, handle, ensure_ascii=False, indent=2)
        except OSError as error:
            raise LocationStoreError(f"Could not write locations to {self.path}") from error
        return {"id": key, **locations[key]}


__all__ = ["LocationStore", "LocationStoreError", "default_location_name"]
