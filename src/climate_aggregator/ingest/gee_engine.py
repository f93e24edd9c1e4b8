"""
Raster engine backed by Google Earth Engine (GEE).

Server-side expressions are built here and evaluated with `getInfo` on a
worker thread, so concurrent requests from one event loop stay in flight
together.

Important:
- Must be opt-in. Default app/tests use the mock engine.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from typing import Any

from climate_aggregator.contracts import BucketPlan, Feature, FilterClause, PeriodBucket, ReducerName, SourceQuery
from climate_aggregator.errors import RemoteEvaluationError
from climate_aggregator.ingest.gee_client import GeeConfig, config_from_env, init_ee
from climate_aggregator.ingest.interfaces import CancelToken, PeriodReduction, RasterEngine, check_cancelled
from climate_aggregator.reduce.reducers import CompositeReducer
from climate_aggregator.time.periods import EE_DATE_FORMATS

logger = logging.getLogger(__name__)

# Collection reductions that keep band names, one per enumerated reducer.
COLLECTION_REDUCERS: dict[ReducerName, Callable[[Any, Any], Any]] = {
    ReducerName.MEAN: lambda ee, c: c.mean(),
    ReducerName.MIN: lambda ee, c: c.min(),
    ReducerName.MAX: lambda ee, c: c.max(),
    ReducerName.SUM: lambda ee, c: c.sum(),
    ReducerName.MEDIAN: lambda ee, c: c.median(),
    ReducerName.FIRST: lambda ee, c: c.reduce(ee.Reducer.first()).regexpRename("_first$", ""),
    ReducerName.COUNT: lambda ee, c: c.count(),
    ReducerName.STD_DEV: lambda ee, c: c.reduce(ee.Reducer.stdDev()).regexpRename("_stdDev$", ""),
}

FILTER_FACTORIES: dict[str, Callable[..., Any]] = {
    "eq": lambda ee, *args: ee.Filter.eq(*args),
    "neq": lambda ee, *args: ee.Filter.neq(*args),
    "gt": lambda ee, *args: ee.Filter.gt(*args),
    "lt": lambda ee, *args: ee.Filter.lt(*args),
    "gte": lambda ee, *args: ee.Filter.gte(*args),
    "lte": lambda ee, *args: ee.Filter.lte(*args),
    "calendarRange": lambda ee, *args: ee.Filter.calendarRange(*args),
    "date": lambda ee, *args: ee.Filter.date(*args),
}


def _millis(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


class GeeResultSet:
    """Feature collection of reduced records, read with `toList` pages."""

    def __init__(self, engine: GeeRasterEngine, collection: Any) -> None:
        self._engine = engine
        self._collection = collection

    async def size(self, cancel: CancelToken | None = None) -> int:
        return int(await self._engine.evaluate(self._collection.size(), cancel))

    async def page(self, limit: int, offset: int = 0, cancel: CancelToken | None = None) -> list[dict[str, Any]]:
        logger.debug("Requesting records %d-%d", offset, offset + limit)
        data = await self._engine.evaluate(self._collection.toList(limit, offset), cancel)
        return [dict(f.get("properties") or {}) for f in data]


class GeeRasterEngine(RasterEngine):
    """Earth Engine-backed raster engine."""

    def __init__(self, gee: Any | None = None, cfg: GeeConfig | None = None) -> None:
        self._cfg = cfg
        self._ee = gee

    def _ensure_ee(self) -> Any:
        if self._ee is not None:
            return self._ee
        cfg = self._cfg or config_from_env()
        self._ee = init_ee(cfg)
        return self._ee

    async def evaluate(self, expression: Any, cancel: CancelToken | None = None) -> Any:
        """Evaluate a server-side expression without blocking the event loop."""
        ee = self._ensure_ee()
        check_cancelled(cancel)
        try:
            value = await asyncio.to_thread(expression.getInfo)
        except ee.EEException as exc:
            raise RemoteEvaluationError(str(exc)) from exc
        check_cancelled(cancel)
        return value

    def _filter(self, ee: Any, clause: FilterClause) -> Any:
        return FILTER_FACTORIES[clause.type](ee, *clause.arguments)

    def _collection(self, source: SourceQuery) -> Any:
        ee = self._ensure_ee()
        collection = ee.ImageCollection(source.dataset_id).select(list(source.bands))
        if source.start is not None and source.end is not None:
            collection = collection.filterDate(ee.Date(_millis(source.start)), ee.Date(_millis(source.end)))
        for clause in source.filters:
            collection = collection.filter(self._filter(ee, clause))
        return collection

    def _collapse(self, ee: Any, collection: Any, buckets: Sequence[PeriodBucket], period_reduction: PeriodReduction) -> Any:
        """One aggregate image per bucket; buckets without images are dropped."""
        images = []
        for bucket in buckets:
            window = collection.filterDate(ee.Date(_millis(bucket.start)), ee.Date(_millis(bucket.end)))
            parts = [COLLECTION_REDUCERS[name](ee, window.select(band)) for band, name in period_reduction]
            image = parts[0] if len(parts) == 1 else ee.Image.cat(parts)
            images.append(
                image.set(
                    {
                        "system:time_start": _millis(bucket.start),
                        "system:time_end": _millis(bucket.end),
                        "period": bucket.period_id,
                    }
                )
            )
        first_band = period_reduction[0][0]
        # empty windows reduce to images without bands
        return ee.ImageCollection.fromImages(images).filter(ee.Filter.listContains("system:band_names", first_band))

    def _apply_plan(self, collection: Any, plan: BucketPlan, period_reduction: PeriodReduction) -> Any:
        ee = self._ensure_ee()
        if plan.is_identity:
            date_format = EE_DATE_FORMATS[plan.output_period_type]
            return collection.map(lambda image: image.set("period", image.date().format(date_format, plan.time_zone)))
        for stage in plan.stages:
            collection = self._collapse(ee, collection, stage, period_reduction)
        return collection

    async def count_images(self, source: SourceQuery, cancel: CancelToken | None = None) -> int:
        return int(await self.evaluate(self._collection(source).size(), cancel))

    async def nominal_scale(self, source: SourceQuery, cancel: CancelToken | None = None) -> float:
        scale = self._collection(source).first().select(0).projection().nominalScale()
        return float(await self.evaluate(scale, cancel))

    def reduce_regions(
        self,
        source: SourceQuery,
        plan: BucketPlan,
        period_reduction: PeriodReduction,
        reducer: CompositeReducer,
        scale: float,
        features: Sequence[Feature],
    ) -> GeeResultSet:
        ee = self._ensure_ee()
        collection = self._apply_plan(self._collection(source), plan, period_reduction)
        feature_collection = ee.FeatureCollection(
            [ee.Feature(ee.Geometry(dict(f.geometry)), {"id": f.id}) for f in features]
        )
        ee_reducer = reducer.to_ee(ee)
        keys = list(reducer.feature_keys(source.bands))

        def reduce_image(image: Any) -> Any:
            period = image.get("period")

            def to_record(feature: Any) -> Any:
                value = feature.get(keys[0]) if len(keys) == 1 else feature.toDictionary(keys)
                return ee.Feature(None, {"ou": feature.get("id"), "period": period, "value": value})

            return image.reduceRegions(collection=feature_collection, reducer=ee_reducer, scale=scale).map(to_record)

        return GeeResultSet(self, ee.FeatureCollection(collection.map(reduce_image)).flatten())

    async def reduce_region_series(
        self,
        source: SourceQuery,
        plan: BucketPlan,
        period_reduction: PeriodReduction,
        reducer: CompositeReducer,
        scale: float,
        geometry: Mapping[str, Any],
        cancel: CancelToken | None = None,
    ) -> list[dict[str, Any]]:
        ee = self._ensure_ee()
        collection = self._apply_plan(self._collection(source), plan, period_reduction)
        ee_geometry = ee.Geometry(dict(geometry))
        ee_reducer = reducer.to_ee(ee)

        series = ee.FeatureCollection(
            collection.map(
                lambda image: ee.Feature(
                    None, image.reduceRegion(reducer=ee_reducer, geometry=ee_geometry, scale=scale)
                ).set("period", image.get("period"))
            )
        )
        data = await self.evaluate(series, cancel)
        return [dict(f.get("properties") or {}) for f in data["features"]]

    async def monthly_means(
        self,
        source: SourceQuery,
        years: Sequence[int],
        scale: float,
        geometry: Mapping[str, Any],
        cancel: CancelToken | None = None,
    ) -> list[dict[str, Any]]:
        ee = self._ensure_ee()
        collection = self._collection(source).filter(ee.Filter.calendarRange(years[0], years[-1], "year"))
        ee_geometry = ee.Geometry(dict(geometry))

        normals = ee.FeatureCollection(
            [
                ee.Feature(
                    None,
                    collection.filter(ee.Filter.calendarRange(month, month, "month"))
                    .mean()
                    .reduceRegion(reducer=ee.Reducer.mean(), geometry=ee_geometry, scale=scale, bestEffort=True),
                ).set("month", month)
                for month in range(1, 13)
            ]
        )
        data = await self.evaluate(normals, cancel)
        return [dict(f.get("properties") or {}) for f in data["features"]]

    async def model_year_means(
        self,
        source: SourceQuery,
        models: Sequence[str],
        scenario: str,
        years: Sequence[int],
        geometry: Mapping[str, Any],
        cancel: CancelToken | None = None,
    ) -> list[dict[str, Any]]:
        ee = self._ensure_ee()
        collection = self._collection(source).filter(ee.Filter.eq("scenario", scenario))
        year_list = ee.List.sequence(years[0], years[-1], 1)
        ee_geometry = ee.Geometry(dict(geometry))
        scale = collection.first().select(0).projection().nominalScale()

        def by_model(model: Any) -> Any:
            model_collection = collection.filter(ee.Filter.eq("model", model))

            def by_year(year: Any) -> Any:
                return (
                    model_collection.filter(ee.Filter.calendarRange(year, year, "year"))
                    .mean()
                    .set("system:time_start", ee.Date.fromYMD(year, 1, 1).millis())
                    .set("system:time_end", ee.Date.fromYMD(year, 12, 31).millis())
                    .set("model", model)
                    .set("year", year)
                )

            return ee.ImageCollection.fromImages(year_list.map(by_year))

        images = ee.ImageCollection(ee.FeatureCollection(ee.List(list(models)).map(by_model)).flatten())
        means = ee.FeatureCollection(
            images.map(
                lambda image: ee.Feature(
                    None,
                    image.reduceRegion(reducer=ee.Reducer.mean(), geometry=ee_geometry, scale=scale, bestEffort=True),
                )
                .set("year", image.get("year"))
                .set("model", image.get("model"))
            )
        )
        data = await self.evaluate(means, cancel)
        return [dict(f.get("properties") or {}) for f in data["features"]]
