"""Read access to the per-station history log kept by the collector service."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100
ERROR_COLUMNS = ("erro", "error")


def history_file_name(station_id: int) -> str:
    return f"backup_estacao_{station_id}.jsonl"


class HistoryLog:
    """JSON-lines history files, one per station, under ``data_dir``."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)

    def path_for(self, station_id: int) -> Path:
        return self.data_dir / history_file_name(station_id)

    def load_frame(self, station_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> pd.DataFrame:
        """Load the last ``limit`` lines of a station log, error lines removed.

        Returns an empty frame when the log is missing or unreadable.
        """

        path = self.path_for(station_id)
        if not path.exists():
            return pd.DataFrame()
        try:
            frame = pd.read_json(path, lines=True, convert_dates=False)
        except ValueError as error:
            logger.warning("Could not read history for station %d: %s", station_id, error)
            return pd.DataFrame()

        if limit > 0:
            frame = frame.tail(limit)
        for column in ERROR_COLUMNS:
            if column in frame.columns:
                frame = frame[frame[column].isna()]
        return frame.reset_index(drop=True)

    def read(self, station_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> list[dict[str, Any]]:
        frame = self.load_frame(station_id, limit)
        if frame.empty:
            return []
        # NaN is not valid JSON
        frame = frame.astype(object).where(frame.notna(), None)
        return frame.to_dict(orient="records")


__all__ = ["DEFAULT_HISTORY_LIMIT", "HistoryLog", "history_file_name"]
