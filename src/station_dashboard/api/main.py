"""FastAPI backend serving aggregated station data to the dashboard."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta
from functools import lru_cache
import logging
from typing import Any, AsyncIterator, Awaitable, Callable

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from station_dashboard.config import configure_logging, get_settings
from station_dashboard.data_pipeline import AggregationPipeline, HistoryLog, StationRecord
from station_dashboard.presentation import summarize_status
from station_dashboard.storage.local import LocationStore, LocationStoreError

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "GET, POST, PUT, OPTIONS",
}


class StationReading(BaseModel):
    station_id: int = Field(description="Station identifier in the telemetry API")
    name: str
    location: str | None = Field(None, description="Address from the locations store")
    timestamp: str | None = Field(None, description="Last reading as a UTC instant")
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
    error: str | None = Field(None, description="Set when the station could not be read")


class LocationPayload(BaseModel):
    id: int | str | None = None
    nome: str | None = None
    endereco: str | None = None
    latitude: float | str | None = None
    longitude: float | str | None = None


@lru_cache(maxsize=1)
def get_pipeline() -> AggregationPipeline:
    return AggregationPipeline(get_settings())


@lru_cache(maxsize=1)
def get_location_store() -> LocationStore:
    return LocationStore(get_settings().storage.locations_path)


@lru_cache(maxsize=1)
def get_history_log() -> HistoryLog:
    return HistoryLog(get_settings().storage.data_dir)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    yield
    if get_pipeline.cache_info().currsize:
        await get_pipeline().aclose()


app = FastAPI(title="Station Dashboard API", version="1.0.0", lifespan=lifespan)


@app.middleware("http")
async def add_cors_headers(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    # Preflight requests reach the OPTIONS route below.
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=CORS_HEADERS)


def _serialize(records: list[StationRecord], store: LocationStore) -> list[dict[str, Any]]:
    locations = store.read_all()
    serialized = []
    for record in records:
        location = locations.get(str(record.station_id)) or {}
        if location.get("endereco"):
            record = record.with_location(location["endereco"])
        serialized.append(record.to_dict())
    return serialized


@app.options("/api/{path:path}", include_in_schema=False)
async def preflight(path: str) -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


@app.get("/api/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api/dados", response_model=list[StationReading])
async def get_station_data(
    rescan: bool = Query(False, description="Ignore cached discovery results"),
    pipeline: AggregationPipeline = Depends(get_pipeline),
    store: LocationStore = Depends(get_location_store),
) -> Any:
    """Aggregated readings, most recent active stations first."""
    try:
        records = await pipeline.aggregate(force_rescan=rescan)
        return _serialize(records, store)
    except Exception as error:
        logger.exception("Failed to serve station data")
        return _error_response(500, str(error) or "Erro ao ler dados das estações")


@app.get("/api/dados/{station_id}", response_model=StationReading)
async def get_single_station(
    station_id: int,
    pipeline: AggregationPipeline = Depends(get_pipeline),
    store: LocationStore = Depends(get_location_store),
) -> Any:
    try:
        record = await pipeline.fetch_station(station_id)
        return _serialize([record], store)[0]
    except Exception as error:
        logger.exception("Failed to serve station %d", station_id)
        return _error_response(500, str(error) or "Erro ao ler dados da estação")


@app.get("/api/historico/{station_id}")
async def get_history(
    station_id: int,
    limite: int = Query(100, ge=1, description="Number of most recent lines to return"),
    history: HistoryLog = Depends(get_history_log),
) -> Any:
    try:
        return history.read(station_id, limite)
    except Exception as error:
        logger.exception("Failed to read history for station %d", station_id)
        return _error_response(500, str(error) or "Erro ao ler histórico")


@app.get("/api/status")
async def get_status(pipeline: AggregationPipeline = Depends(get_pipeline)) -> Any:
    try:
        records = await pipeline.aggregate()
        window = timedelta(minutes=pipeline.settings.polling.recency_window_minutes)
        return summarize_status(records, window=window)
    except Exception as error:
        logger.exception("Failed to build status")
        return _error_response(500, str(error) or "Erro ao obter status")


@app.get("/api/locations")
async def list_locations(store: LocationStore = Depends(get_location_store)) -> dict[str, Any]:
    return store.read_all()


@app.get("/api/locations/{station_id}")
async def get_location(station_id: str, store: LocationStore = Depends(get_location_store)) -> Any:
    location = store.get(station_id)
    if location is None:
        return _error_response(404, "Estação não encontrada")
    return location


@app.post("/api/locations")
@app.put("/api/locations")
async def save_location(
    payload: LocationPayload,
    store: LocationStore = Depends(get_location_store),
) -> Any:
    if payload.id in (None, ""):
        return _error_response(400, "ID da estação é obrigatório")
    try:
        saved = store.upsert(
            payload.id,
            nome=payload.nome,
            endereco=payload.endereco,
            latitude=payload.latitude,
            longitude=payload.longitude,
        )
    except LocationStoreError as error:
        logger.error("%s", error)
        return _error_response(500, "Erro ao salvar localização")
    return {"success": True, "message": "Localização atualizada com sucesso", "data": saved}


def run() -> None:
    import os

    import uvicorn

    configure_logging()
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    run()
