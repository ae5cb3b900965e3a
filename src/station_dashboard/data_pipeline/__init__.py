"""Station discovery and aggregation pipeline."""

from .aggregation import AggregationPipeline, describe_failure, select_for_display
from .batching import BatchOutcome, iter_batches, run_batched
from .discovery import DiscoveryCache, StationDiscoverer
from .history import HistoryLog
from .parsing import extract_number, format_instant, normalize_timestamp
from .records import (
    SENSOR_FIELD_ALIASES,
    SENSOR_FIELDS,
    StationRecord,
    error_record,
    map_station_payload,
)

__all__ = [
    # Orchestration
    "AggregationPipeline",
    "describe_failure",
    "select_for_display",
    # Batched fetching
    "BatchOutcome",
    "iter_batches",
    "run_batched",
    # Discovery
    "DiscoveryCache",
    "StationDiscoverer",
    # History log
    "HistoryLog",
    # Normalisation
    "SENSOR_FIELDS",
    "SENSOR_FIELD_ALIASES",
    "StationRecord",
    "error_record",
    "extract_number",
    "format_instant",
    "map_station_payload",
    "normalize_timestamp",
]
