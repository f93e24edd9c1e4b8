"""Aggregation pipeline: period-bucketed, spatially reduced series from a raster engine."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

from climate_aggregator.contracts import (
    ClimateNormal,
    DatasetDescriptor,
    Feature,
    FilterClause,
    PeriodSpec,
    ProjectionRecord,
    ReducedRecord,
    SeriesPoint,
    SourceQuery,
    ValueParser,
)
from climate_aggregator.errors import NoDataError, UnsupportedGranularityError
from climate_aggregator.ingest.cache import LRUCache
from climate_aggregator.ingest.chunked import PAGE_SIZE, fetch_all, gather_in_order
from climate_aggregator.ingest.interfaces import CancelToken, RasterEngine
from climate_aggregator.keys import build_cache_key, has_stable_key
from climate_aggregator.reduce.reducers import compose, compose_for, period_reduction
from climate_aggregator.reduce.scale import POINT_SCALE_M, is_polygon, resolve_collection_scale
from climate_aggregator.time.bucketing import plan_buckets
from climate_aggregator.time.periods import request_window, years_in

logger = logging.getLogger(__name__)

# CMIP6 models averaged for climate projections.
CMIP6_MODELS: tuple[str, ...] = (
    "ACCESS-CM2",
    "ACCESS-ESM1-5",
    "BCC-CSM2-MR",
    "CESM2",
    "CESM2-WACCM",
    "CMCC-CM2-SR5",
    "CMCC-ESM2",
    "CNRM-CM6-1",
    "CNRM-ESM2-1",
    "CanESM5",
)


@dataclass(frozen=True)
class PipelineConfig:
    """Runtime configuration for the aggregation pipeline."""

    page_size: int = PAGE_SIZE
    # 0 disables the in-memory series cache
    cache_size: int = 256

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """
        Build PipelineConfig from environment variables.

        Optional:
          - CLIMATE_PAGE_SIZE
          - CLIMATE_CACHE_SIZE
        """
        return cls(
            page_size=int(os.environ.get("CLIMATE_PAGE_SIZE", PAGE_SIZE)),
            cache_size=int(os.environ.get("CLIMATE_CACHE_SIZE", 256)),
        )


def _parse(value: Any, parser: ValueParser | None) -> Any:
    if value is None or parser is None:
        return value
    if isinstance(value, Mapping):
        return {k: _parse(v, parser) for k, v in value.items()}
    return parser(value)


def _period_context(period: PeriodSpec) -> str:
    return f"{period.start.isoformat()}/{period.end.isoformat()}"


class Pipeline:
    """Public aggregation operations over one raster engine."""

    def __init__(self, engine: RasterEngine, config: PipelineConfig | None = None) -> None:
        self._engine = engine
        self._config = config or PipelineConfig()
        self._cache: LRUCache[str, list[SeriesPoint]] | None = (
            LRUCache(self._config.cache_size) if self._config.cache_size > 0 else None
        )

    async def _require_images(self, source: SourceQuery, period: PeriodSpec, cancel: CancelToken | None) -> int:
        count = await self._engine.count_images(source, cancel=cancel)
        if count == 0:
            logger.warning("No images in %s for %s", source.dataset_id, _period_context(period))
            raise NoDataError(dataset_id=source.dataset_id, period=_period_context(period))
        logger.info("Found %d images in %s for %s", count, source.dataset_id, _period_context(period))
        return count

    async def get_earth_engine_data(
        self,
        dataset: DatasetDescriptor,
        period: PeriodSpec,
        features: Sequence[Feature],
        cancel: CancelToken | None = None,
    ) -> list[ReducedRecord]:
        """Reduce the dataset over every feature and period bucket.

        Multi-band datasets fetch every band concurrently and combine the
        per-band results, in band order, with the dataset's bands parser.
        """
        features = list(features)
        if not dataset.bands:
            return await self._get_values(dataset, period, features, cancel)

        cancel = cancel or CancelToken()
        results = await gather_in_order(
            [self._get_values(dataset.for_band(band), period, features, cancel) for band in dataset.bands],
            cancel,
        )
        if dataset.bands_parser is None:
            return results[0]
        return dataset.bands_parser(results)

    async def _get_values(
        self,
        dataset: DatasetDescriptor,
        period: PeriodSpec,
        features: list[Feature],
        cancel: CancelToken | None,
    ) -> list[ReducedRecord]:
        effective = dataset.for_time_zone() if period.time_zone != "UTC" else dataset
        try:
            plan = plan_buckets(period, effective.period_type)
        except UnsupportedGranularityError as exc:
            exc.dataset_id = effective.dataset_id
            raise

        start, end = request_window(period)
        source = SourceQuery(effective.dataset_id, effective.band_names, effective.period_type, start, end)
        await self._require_images(source, period, cancel)

        reducer = compose_for(effective)
        scale = await resolve_collection_scale(
            self._engine, source, reducer, [f.geometry for f in features], cancel=cancel
        )
        result_set = self._engine.reduce_regions(
            source, plan, period_reduction(effective), reducer, scale, features
        )
        rows = await fetch_all(result_set, self._config.page_size, cancel=cancel)
        logger.info("Reduced %d values for %d features", len(rows), len(features))

        return [
            ReducedRecord(
                feature_id=str(row["ou"]),
                period=period.calendar.label(str(row["period"])),
                value=_parse(row.get("value"), effective.value_parser),
            )
            for row in rows
        ]

    async def get_time_series_data(
        self,
        dataset: DatasetDescriptor,
        period: PeriodSpec,
        geometry: Feature | Mapping[str, Any],
        filters: Sequence[FilterClause] | None = None,
        cancel: CancelToken | None = None,
    ) -> list[SeriesPoint]:
        """Time series for one geometry, optionally rolled up to `dataset.aggregation_period`.

        Results for a Feature are cached under its cache key, unless the
        dataset's parsers are lambdas or closures.
        """
        feature = geometry if isinstance(geometry, Feature) else None
        geom = feature.geometry if feature is not None else geometry
        filters = tuple(filters or ())

        key = None
        if feature is not None and self._cache is not None and has_stable_key(dataset):
            key = build_cache_key(feature, dataset, period, filters)
            cached = self._cache.peek(key)
            if cached is not None:
                logger.debug("Series cache hit for %s", key)
                return list(cached)

        native = dataset.period_type
        output = dataset.aggregation_period or native
        plan = plan_buckets(replace(period, period_type=output), native)

        start, end = request_window(period)
        source = SourceQuery(dataset.dataset_id, dataset.band_names, native, start, end, filters)
        await self._require_images(source, period, cancel)

        reducer = compose_for(dataset)
        scale = await resolve_collection_scale(
            self._engine, source, reducer, [geom], single_geometry=True, cancel=cancel
        )
        rows = await self._engine.reduce_region_series(
            source, plan, period_reduction(dataset), reducer, scale, geom, cancel=cancel
        )

        points = []
        for row in rows:
            values = {k: _parse(v, dataset.value_parser) for k, v in row.items() if k != "period"}
            points.append(SeriesPoint(period=period.calendar.label(str(row["period"])), values=values))

        if key is not None:
            self._cache.put(key, list(points))
        return points

    async def get_climate_normals(
        self,
        dataset: DatasetDescriptor,
        period: PeriodSpec,
        geometry: Mapping[str, Any],
        cancel: CancelToken | None = None,
    ) -> list[ClimateNormal]:
        """Monthly means for each calendar month, averaged across the period's years."""
        years = years_in(period)
        start = datetime(years[0], 1, 1, tzinfo=UTC)
        end = datetime(years[-1] + 1, 1, 1, tzinfo=UTC)
        source = SourceQuery(dataset.dataset_id, dataset.band_names, dataset.period_type, start, end)
        await self._require_images(source, period, cancel)

        if is_polygon(geometry):
            scale = await resolve_collection_scale(
                self._engine, source, compose("mean"), [geometry], single_geometry=True, cancel=cancel
            )
        else:
            scale = POINT_SCALE_M

        rows = await self._engine.monthly_means(source, years, scale, geometry, cancel=cancel)
        normals = [
            ClimateNormal(
                month=int(row["month"]),
                values={k: _parse(v, dataset.value_parser) for k, v in row.items() if k != "month"},
            )
            for row in rows
        ]
        return sorted(normals, key=lambda n: n.month)

    async def get_climate_projections(
        self,
        dataset: DatasetDescriptor,
        period: PeriodSpec,
        geometry: Mapping[str, Any],
        models: Sequence[str] = CMIP6_MODELS,
        cancel: CancelToken | None = None,
    ) -> list[ProjectionRecord]:
        """Yearly mean per climate model for the dataset's scenario."""
        if not dataset.scenario:
            raise ValueError("climate projections need a dataset scenario")

        years = years_in(period)
        source = SourceQuery(
            dataset.dataset_id,
            dataset.band_names,
            dataset.period_type,
            datetime(years[0], 1, 1, tzinfo=UTC),
            datetime(years[-1] + 1, 1, 1, tzinfo=UTC),
            (FilterClause("eq", ("scenario", dataset.scenario)),),
        )
        await self._require_images(source, period, cancel)

        rows = await self._engine.model_year_means(source, models, dataset.scenario, years, geometry, cancel=cancel)
        band = dataset.band_names[0]
        return [
            ProjectionRecord(
                year=int(row["year"]),
                model=str(row["model"]),
                value=_parse(row.get(band), dataset.value_parser),
            )
            for row in rows
        ]

    def get_cache_key(
        self,
        dataset: DatasetDescriptor,
        period: PeriodSpec,
        feature: Feature,
        filters: Sequence[FilterClause] | None = None,
    ) -> str:
        return build_cache_key(feature, dataset, period, filters)
