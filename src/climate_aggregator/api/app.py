"""FastAPI app exposing zonal aggregation, time series and normals endpoints."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from datetime import date
from typing import Any, Literal, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field, model_validator

from climate_aggregator.contracts import (
    DatasetDescriptor,
    Feature,
    FilterClause,
    MappedCalendar,
    PeriodSpec,
    PeriodType,
)
from climate_aggregator.datasets.catalog import get_dataset, get_series_dataset, list_datasets
from climate_aggregator.errors import (
    ClimateAggregatorError,
    NoDataError,
    RemoteEvaluationError,
    RequestCancelledError,
)
from climate_aggregator.ingest.factory import create_engine
from climate_aggregator.ingest.features import GeoJSONFeatureProvider
from climate_aggregator.ingest.interfaces import RasterEngine
from climate_aggregator.orchestrate.pipeline import Pipeline, PipelineConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PeriodRequest(BaseModel):
    """Requested time range, granularity and labelling."""

    start: date
    end: date
    period_type: Literal["hourly", "daily", "weekly", "monthly"] = "daily"
    time_zone: str = "UTC"
    calendar: str | None = None
    calendar_labels: dict[str, str] | None = None

    @model_validator(mode="after")
    def validate_period(self) -> "PeriodRequest":
        """Validate ordering and time zone."""
        if self.start > self.end:
            raise ValueError("start must be <= end")
        try:
            ZoneInfo(self.time_zone)
        except ZoneInfoNotFoundError as exc:
            raise ValueError(f"unknown time zone: {self.time_zone}") from exc
        if self.calendar and self.calendar_labels is None:
            raise ValueError("calendar_labels are required for a non-Gregorian calendar")
        return self

    def to_contract(self) -> PeriodSpec:
        """Convert API model into PeriodSpec contract."""
        if self.calendar and self.calendar_labels is not None:
            return PeriodSpec(
                self.start,
                self.end,
                self.time_zone,
                PeriodType(self.period_type),
                MappedCalendar(self.calendar, self.calendar_labels),
            )
        return PeriodSpec(self.start, self.end, self.time_zone, PeriodType(self.period_type))


class FilterRequest(BaseModel):
    type: str
    arguments: list[Any] = Field(default_factory=list)

    def to_contract(self) -> FilterClause:
        return FilterClause.from_dict(self.model_dump())


class ValuesRequest(BaseModel):
    """Request schema for reducing a catalog dataset over features."""

    dataset: str
    period: PeriodRequest
    features: dict[str, Any]


class SeriesRequest(BaseModel):
    """Request schema for a single-geometry series or normals query."""

    dataset: str
    period: PeriodRequest
    geometry: dict[str, Any]
    filters: list[FilterRequest] = Field(default_factory=list)


class CacheKeyRequest(BaseModel):
    dataset: str
    period: PeriodRequest
    feature: dict[str, Any]
    filters: list[FilterRequest] = Field(default_factory=list)


class ReducedRecordResponse(BaseModel):
    featureId: str
    period: str
    value: Any


class CacheKeyResponse(BaseModel):
    key: str


def _catalog_descriptor(dataset_id: str) -> DatasetDescriptor:
    entry = get_dataset(dataset_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"unknown dataset: {dataset_id}")
    return entry.descriptor


def _series_descriptor(name: str) -> DatasetDescriptor:
    descriptor = get_series_dataset(name)
    if descriptor is None:
        raise HTTPException(status_code=404, detail=f"unknown series dataset: {name}")
    return descriptor


def _to_http_error(exc: Exception) -> HTTPException:
    """Map pipeline errors onto HTTP status codes."""
    if isinstance(exc, NoDataError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValueError):
        # UnsupportedGranularityError and the other validation errors
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, RemoteEvaluationError):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, RequestCancelledError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


async def _run(awaitable: Awaitable[T]) -> T:
    try:
        return await awaitable
    except (ClimateAggregatorError, ValueError) as exc:
        context = exc.context() if isinstance(exc, ClimateAggregatorError) else {}
        logger.warning("Request failed: %s %s", exc, context)
        raise _to_http_error(exc) from exc


def create_app(
    engine_mode: str | None = None,
    config: PipelineConfig | None = None,
    engine: RasterEngine | None = None,
) -> FastAPI:
    """Create and configure the FastAPI app.

    `engine` takes precedence over `engine_mode`.
    """
    app = FastAPI(title="Climate Aggregator API", version="0.1.0")

    pipeline = Pipeline(engine or create_engine(engine_mode), config or PipelineConfig.from_env())
    app.state.pipeline = pipeline

    @app.get("/datasets")
    def get_datasets() -> list[dict[str, str]]:
        """List the datasets offered for import."""
        return [entry.to_dict() for entry in list_datasets()]

    @app.post("/values", response_model=list[ReducedRecordResponse])
    async def post_values(payload: ValuesRequest) -> list[ReducedRecordResponse]:
        """Reduce a catalog dataset over every feature and period."""
        dataset = _catalog_descriptor(payload.dataset)
        try:
            features = GeoJSONFeatureProvider(payload.features).get_features()
            period = payload.period.to_contract()
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        records = await _run(pipeline.get_earth_engine_data(dataset, period, features))
        return [ReducedRecordResponse(**r.to_dict()) for r in records]

    @app.post("/timeseries")
    async def post_timeseries(payload: SeriesRequest) -> list[dict[str, Any]]:
        """Time series for one geometry."""
        dataset = _series_descriptor(payload.dataset)
        try:
            filters = [f.to_contract() for f in payload.filters]
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        points = await _run(
            pipeline.get_time_series_data(dataset, payload.period.to_contract(), payload.geometry, filters)
        )
        return [p.to_dict() for p in points]

    @app.post("/normals")
    async def post_normals(payload: SeriesRequest) -> list[dict[str, Any]]:
        """Monthly climate normals for one geometry."""
        dataset = _series_descriptor(payload.dataset)
        normals = await _run(pipeline.get_climate_normals(dataset, payload.period.to_contract(), payload.geometry))
        return [n.to_dict() for n in normals]

    @app.post("/projections")
    async def post_projections(payload: SeriesRequest) -> list[dict[str, Any]]:
        """Yearly model means for a climate projection dataset."""
        dataset = _series_descriptor(payload.dataset)
        records = await _run(
            pipeline.get_climate_projections(dataset, payload.period.to_contract(), payload.geometry)
        )
        return [r.to_dict() for r in records]

    @app.post("/cache-key", response_model=CacheKeyResponse)
    def post_cache_key(payload: CacheKeyRequest) -> CacheKeyResponse:
        """Cache key a values request would be stored under."""
        try:
            dataset = get_series_dataset(payload.dataset) or _catalog_descriptor(payload.dataset)
            feature = Feature.from_geojson(payload.feature)
            filters = [f.to_contract() for f in payload.filters]
        except (KeyError, ValueError) as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        key = pipeline.get_cache_key(dataset, payload.period.to_contract(), feature, filters)
        return CacheKeyResponse(key=key)

    return app


app = create_app()
