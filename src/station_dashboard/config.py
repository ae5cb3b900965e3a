"""Application configuration models and helpers."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from functools import lru_cache
import logging
import os
from pathlib import Path
import tomllib
from typing import Any, Mapping

logger = logging.getLogger(__name__)

DEFAULT_STATION_IDS = [2, 3, 7, 8]
MAX_ACTIVE_STATIONS_LIMIT = 50


@dataclass
class TelemetryConfig:
    """Settings required to reach the upstream station telemetry API."""

    base_url: str = "https://iothub.eletromidia.com.br/api/v1/estacoes_mets"
    request_timeout_seconds: float = 10.0
    user_agent: str = "EstacaoMeteorologica-Dashboard/1.0"


@dataclass
class DiscoveryConfig:
    """Which station ids to poll and how to find them when none are configured."""

    min_station_id: int = 1
    max_station_id: int = 50
    max_active_stations: int = 4
    station_ids: list[int] = field(default_factory=lambda: list(DEFAULT_STATION_IDS))
    max_discovered_stations: int = 50
    failure_streak_limit: int = 5
    cache_ttl_seconds: float = 3600.0


@dataclass
class BatchingConfig:
    """Backpressure applied to the upstream API during a sweep."""

    batch_size: int = 10
    inter_batch_delay_seconds: float = 0.1


@dataclass
class PollingConfig:
    interval_seconds: float = 60.0
    recency_window_minutes: float = 10.0


@dataclass
class StorageConfig:
    """Settings describing where the external collaborators keep their files."""

    data_dir: Path = Path("data")
    locations_path: Path = Path("data/locations.json")


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class Settings:
    """Top level application settings object."""

    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    batching: BatchingConfig = field(default_factory=BatchingConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def normalise(self) -> None:
        self.storage.data_dir = self.storage.data_dir.expanduser().resolve()
        self.storage.locations_path = self.storage.locations_path.expanduser().resolve()
        self.telemetry.base_url = self.telemetry.base_url.rstrip("/")
        self.discovery.max_active_stations = max(
            1, min(MAX_ACTIVE_STATIONS_LIMIT, int(self.discovery.max_active_stations))
        )
        self.batching.batch_size = max(1, int(self.batching.batch_size))


def parse_station_ids(raw: str) -> list[int]:
    """Parse a comma separated id list, skipping anything that is not an integer."""

    ids: list[int] = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            ids.append(int(chunk))
        except ValueError:
            logger.warning("Ignoring invalid station id %r in configuration", chunk)
    return ids


def _apply_mapping(target: Any, updates: Mapping[str, Any]) -> None:
    for key, value in updates.items():
        if not hasattr(target, key):
            continue
        current = getattr(target, key)
        if is_dataclass(current) and isinstance(value, Mapping):
            _apply_mapping(current, value)
        else:
            target_field = next((f for f in fields(type(target)) if f.name == key), None)
            if target_field is not None and target_field.type == "Path":
                setattr(target, key, Path(value))
            else:
                setattr(target, key, value)


def _load_toml_settings(path: Path) -> Mapping[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _load_env_file(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    data: dict[str, str] = {}
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or "=" not in stripped:
                continue
            key, value = stripped.split("=", 1)
            data[key.strip()] = value.strip().strip('"').strip("'")
    return data


# The first key present wins; legacy deployment names come before the SD_ ones.
_ENV_MAPPING: dict[tuple[str, str], tuple[str, ...]] = {
    ("telemetry", "base_url"): ("API_BASE_URL", "SD_API_BASE_URL"),
    ("telemetry", "request_timeout_seconds"): ("SD_REQUEST_TIMEOUT_SECONDS",),
    ("telemetry", "user_agent"): ("SD_USER_AGENT",),
    ("discovery", "min_station_id"): ("ESTACOES_MIN",),
    ("discovery", "max_station_id"): ("ESTACOES_MAX",),
    ("discovery", "max_active_stations"): (
        "MAX_ESTACOES_ATIVAS",
        "ESTACOES_ATIVAS",
        "NUM_ESTACOES_ATIVAS",
    ),
    ("discovery", "station_ids"): ("ESTACOES_ATIVAS_IDS", "ACTIVE_STATIONS"),
    ("discovery", "max_discovered_stations"): ("SD_MAX_DISCOVERED_STATIONS",),
    ("discovery", "failure_streak_limit"): ("SD_FAILURE_STREAK_LIMIT",),
    ("discovery", "cache_ttl_seconds"): ("SD_DISCOVERY_CACHE_TTL_SECONDS",),
    ("batching", "batch_size"): ("SD_BATCH_SIZE",),
    ("batching", "inter_batch_delay_seconds"): ("SD_INTER_BATCH_DELAY_SECONDS",),
    ("polling", "interval_seconds"): ("SD_POLL_INTERVAL_SECONDS",),
    ("polling", "recency_window_minutes"): ("SD_RECENCY_WINDOW_MINUTES",),
    ("storage", "data_dir"): ("DATA_DIR",),
    ("storage", "locations_path"): ("SD_LOCATIONS_PATH",),
    ("logging", "level"): ("SD_LOG_LEVEL",),
}


def _coerce_env_value(current: Any, attribute: str, raw_value: str) -> Any:
    if attribute == "station_ids":
        return parse_station_ids(raw_value)
    if isinstance(current, Path):
        return Path(raw_value)
    if isinstance(current, int):
        return int(raw_value.strip())
    if isinstance(current, float):
        return float(raw_value.strip())
    return raw_value


def _apply_env_overrides(settings: Settings, env: Mapping[str, str]) -> None:
    for (section_name, attribute), env_keys in _ENV_MAPPING.items():
        env_key = next((key for key in env_keys if key in env), None)
        if env_key is None:
            continue
        section = getattr(settings, section_name)
        try:
            value = _coerce_env_value(getattr(section, attribute), attribute, env[env_key])
        except ValueError:
            logger.warning("Ignoring invalid value %r for %s", env[env_key], env_key)
            continue
        setattr(section, attribute, value)


def build_settings(
    env: Mapping[str, str] | None = None,
    *,
    project_root: Path | None = None,
) -> Settings:
    """Build settings from defaults, the TOML file, ``.env`` and ``env``."""

    settings = Settings()

    root = project_root or Path(__file__).resolve().parents[2]
    toml_overrides = _load_toml_settings(root / "configs" / "settings.toml")
    if toml_overrides:
        _apply_mapping(settings, toml_overrides)

    env_values = dict(_load_env_file(root / ".env"))
    env_values.update(os.environ if env is None else env)
    _apply_env_overrides(settings, env_values)

    settings.normalise()
    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return build_settings()


def configure_logging(level: str | None = None) -> None:
    """Install the process-wide logging format used by the entrypoints."""

    logging.basicConfig(
        level=(level or get_settings().logging.level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


__all__ = [
    "BatchingConfig",
    "DiscoveryConfig",
    "LoggingConfig",
    "PollingConfig",
    "Settings",
    "StorageConfig",
    "TelemetryConfig",
    "build_settings",
    "configure_logging",
    "get_settings",
    "parse_station_ids",
]
