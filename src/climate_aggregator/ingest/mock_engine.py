"""Deterministic in-memory raster engine for local/offline flows and tests.

Images are uniform rasters: every pixel of a band holds the same value, unless
a per-feature override is given. A region reduction therefore sees a single
pixel value.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from math import fsum, pi, sin
from typing import Any
from zlib import crc32
from zoneinfo import ZoneInfo

from climate_aggregator.contracts import BucketPlan, Feature, FilterClause, PeriodType, ReducerName, SourceQuery
from climate_aggregator.errors import RemoteEvaluationError
from climate_aggregator.ingest.interfaces import CancelToken, PeriodReduction, RasterEngine, check_cancelled
from climate_aggregator.reduce.reducers import CompositeReducer
from climate_aggregator.time.periods import month_bounds, period_id

logger = logging.getLogger(__name__)

PY_REDUCERS: dict[ReducerName, Callable[[list[float]], float]] = {
    ReducerName.MEAN: statistics.fmean,
    ReducerName.MIN: min,
    ReducerName.MAX: max,
    ReducerName.SUM: fsum,
    ReducerName.MEDIAN: statistics.median,
    ReducerName.FIRST: lambda values: values[0],
    ReducerName.COUNT: lambda values: float(len(values)),
    ReducerName.STD_DEV: statistics.pstdev,
}

# Synthetic datasets: ~0.1 degree pixels.
SYNTHETIC_SCALE_M = 11_132.0

_NATIVE_STEPS: dict[PeriodType, timedelta] = {
    PeriodType.HOURLY: timedelta(hours=1),
    PeriodType.DAILY: timedelta(days=1),
    PeriodType.WEEKLY: timedelta(weeks=1),
}


@dataclass(frozen=True)
class MockImage:
    """One uniform raster at a point in time."""

    time_start: datetime
    values: Mapping[str, float]
    properties: Mapping[str, Any] = field(default_factory=dict)
    feature_values: Mapping[str, Mapping[str, float]] = field(default_factory=dict)

    def value(self, band: str, feature_id: str | None = None) -> float | None:
        if feature_id is not None and band in self.feature_values.get(feature_id, {}):
            return self.feature_values[feature_id][band]
        return self.values.get(band)


@dataclass(frozen=True)
class MockCollection:
    """Registered image collection with a fixed pixel size."""

    dataset_id: str
    images: tuple[MockImage, ...]
    scale: float = SYNTHETIC_SCALE_M


def synthetic_value(band: str, moment: datetime) -> float:
    """Deterministic seasonal/diurnal value for a band at a UTC moment."""
    base = 270.0 + (crc32(band.encode("utf-8")) % 30)
    seasonal = 8.0 * sin(2.0 * pi * moment.timetuple().tm_yday / 365.25)
    diurnal = 3.0 * sin(2.0 * pi * moment.hour / 24.0)
    return round(base + seasonal + diurnal, 4)


def synthetic_collection(source: SourceQuery) -> MockCollection:
    """Images at the native cadence covering the source window."""
    if source.start is None or source.end is None:
        return MockCollection(source.dataset_id, ())

    if source.period_type is PeriodType.MONTHLY:
        current = source.start.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    elif source.period_type is PeriodType.HOURLY:
        current = source.start.replace(minute=0, second=0, microsecond=0)
    else:
        current = source.start.replace(hour=0, minute=0, second=0, microsecond=0)

    images: list[MockImage] = []
    while current < source.end:
        if current >= source.start:
            images.append(MockImage(current, {band: synthetic_value(band, current) for band in source.bands}))
        if source.period_type is PeriodType.MONTHLY:
            current = datetime.combine(month_bounds(current.date())[1], current.timetz())
        else:
            current = current + _NATIVE_STEPS[source.period_type]
    return MockCollection(source.dataset_id, tuple(images))


def _matches(image: MockImage, clause: FilterClause) -> bool:
    args = clause.arguments
    if clause.type == "calendarRange":
        start, end = args[0], args[1]
        field_name = args[2] if len(args) > 2 else "day_of_year"
        moment = image.time_start
        value = {
            "year": moment.year,
            "month": moment.month,
            "day_of_month": moment.day,
            "day_of_year": moment.timetuple().tm_yday,
            "hour": moment.hour,
        }[field_name]
        return start <= value <= end
    if clause.type == "date":
        start = datetime.fromisoformat(str(args[0])).replace(tzinfo=UTC)
        end = datetime.fromisoformat(str(args[1])).replace(tzinfo=UTC) if len(args) > 1 else None
        return image.time_start >= start and (end is None or image.time_start < end)

    name, expected = args[0], args[1]
    actual = image.properties.get(name)
    if actual is None:
        return False
    return {
        "eq": actual == expected,
        "neq": actual != expected,
        "gt": actual > expected,
        "lt": actual < expected,
        "gte": actual >= expected,
        "lte": actual <= expected,
    }[clause.type]


def reduce_region_values(reducer: CompositeReducer, bands: Sequence[str], pixel: Mapping[str, float | None]) -> dict[str, float | None]:
    """Apply a composite reducer to one pixel, keyed the way the remote engine keys outputs."""

    def run(name: ReducerName, band: str) -> float | None:
        value = pixel.get(band)
        return None if value is None else PY_REDUCERS[name]([value])

    if not reducer.is_combined:
        return {band: run(reducer.reducers[0], band) for band in bands}
    if not reducer.shared_inputs:
        return {output: run(name, band) for output, name, band in zip(reducer.outputs, reducer.reducers, bands)}
    keys = reducer.region_keys(bands)
    values = [run(name, band) for band in bands for name in reducer.reducers]
    return dict(zip(keys, values))


class MockResultSet:
    """List-backed result set that records every page request."""

    def __init__(self, records: list[dict[str, Any]], fail_offsets: frozenset[int] = frozenset()) -> None:
        self._records = records
        self._fail_offsets = fail_offsets
        self.page_requests: list[tuple[int, int]] = []

    async def size(self, cancel: CancelToken | None = None) -> int:
        check_cancelled(cancel)
        await asyncio.sleep(0)
        return len(self._records)

    async def page(self, limit: int, offset: int = 0, cancel: CancelToken | None = None) -> list[dict[str, Any]]:
        check_cancelled(cancel)
        self.page_requests.append((limit, offset))
        await asyncio.sleep(0)
        if offset in self._fail_offsets:
            raise RemoteEvaluationError(f"page at offset {offset} failed")
        check_cancelled(cancel)
        return [dict(r) for r in self._records[offset : offset + limit]]


class MockRasterEngine(RasterEngine):
    """Raster engine over registered or synthetic in-memory collections."""

    def __init__(
        self,
        collections: Mapping[str, MockCollection] | None = None,
        synthesize: bool = True,
    ) -> None:
        self._collections = dict(collections or {})
        self._synthesize = synthesize
        self.result_sets: list[MockResultSet] = []
        self.calls: list[str] = []

    def _collection(self, source: SourceQuery) -> MockCollection:
        if source.dataset_id in self._collections:
            return self._collections[source.dataset_id]
        if self._synthesize:
            return synthetic_collection(source)
        return MockCollection(source.dataset_id, ())

    def _images(self, source: SourceQuery) -> list[MockImage]:
        images = []
        for image in self._collection(source).images:
            if source.start is not None and image.time_start < source.start:
                continue
            if source.end is not None and image.time_start >= source.end:
                continue
            if not any(band in image.values for band in source.bands):
                continue
            if all(_matches(image, clause) for clause in source.filters):
                images.append(image)
        return sorted(images, key=lambda image: image.time_start)

    def _apply_plan(
        self,
        images: list[MockImage],
        plan: BucketPlan,
        period_reduction: PeriodReduction,
    ) -> list[tuple[str, MockImage]]:
        if plan.is_identity:
            tz = ZoneInfo(plan.time_zone)
            return [(period_id(image.time_start.astimezone(tz), plan.output_period_type), image) for image in images]

        current = images
        labelled: list[tuple[str, MockImage]] = []
        for stage in plan.stages:
            labelled = []
            for bucket in stage:
                inside = [image for image in current if bucket.start <= image.time_start < bucket.end]
                if not inside:
                    continue
                values = _collapse(inside, period_reduction, None)
                feature_ids = {fid for image in inside for fid in image.feature_values}
                feature_values = {fid: _collapse(inside, period_reduction, fid) for fid in sorted(feature_ids)}
                collapsed = MockImage(bucket.start, values, {"period": bucket.period_id}, feature_values)
                labelled.append((bucket.period_id, collapsed))
            current = [image for _, image in labelled]
        return labelled

    async def count_images(self, source: SourceQuery, cancel: CancelToken | None = None) -> int:
        check_cancelled(cancel)
        self.calls.append("count_images")
        await asyncio.sleep(0)
        return len(self._images(source))

    async def nominal_scale(self, source: SourceQuery, cancel: CancelToken | None = None) -> float:
        check_cancelled(cancel)
        self.calls.append("nominal_scale")
        await asyncio.sleep(0)
        if not self._images(source):
            raise RemoteEvaluationError(f"collection {source.dataset_id} is empty")
        return self._collection(source).scale

    def reduce_regions(
        self,
        source: SourceQuery,
        plan: BucketPlan,
        period_reduction: PeriodReduction,
        reducer: CompositeReducer,
        scale: float,
        features: Sequence[Feature],
    ) -> MockResultSet:
        self.calls.append("reduce_regions")
        records: list[dict[str, Any]] = []
        for period, image in self._apply_plan(self._images(source), plan, period_reduction):
            for feature in features:
                pixel = {b: image.value(b, feature.id) for b in source.bands}
                outputs = reduce_region_values(reducer, source.bands, pixel)
                value = next(iter(outputs.values())) if len(outputs) == 1 else outputs
                records.append({"ou": feature.id, "period": period, "value": value})
        logger.debug("Mock reduction of %s produced %d records", source.dataset_id, len(records))
        result_set = MockResultSet(records)
        self.result_sets.append(result_set)
        return result_set

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
        check_cancelled(cancel)
        self.calls.append("reduce_region_series")
        await asyncio.sleep(0)
        rows = []
        for period, image in self._apply_plan(self._images(source), plan, period_reduction):
            pixel = {band: image.value(band) for band in source.bands}
            rows.append({"period": period, **reduce_region_values(reducer, source.bands, pixel)})
        return rows

    async def monthly_means(
        self,
        source: SourceQuery,
        years: Sequence[int],
        scale: float,
        geometry: Mapping[str, Any],
        cancel: CancelToken | None = None,
    ) -> list[dict[str, Any]]:
        check_cancelled(cancel)
        self.calls.append("monthly_means")
        await asyncio.sleep(0)
        images = [image for image in self._images(source) if years[0] <= image.time_start.year <= years[-1]]
        rows = []
        for month in range(1, 13):
            in_month = [image for image in images if image.time_start.month == month]
            rows.append({"month": month, **_band_means(in_month, source.bands)})
        return rows

    async def model_year_means(
        self,
        source: SourceQuery,
        models: Sequence[str],
        scenario: str,
        years: Sequence[int],
        geometry: Mapping[str, Any],
        cancel: CancelToken | None = None,
    ) -> list[dict[str, Any]]:
        check_cancelled(cancel)
        self.calls.append("model_year_means")
        await asyncio.sleep(0)
        images = [image for image in self._images(source) if image.properties.get("scenario") == scenario]
        rows = []
        for model in models:
            for year in years:
                selected = [
                    image
                    for image in images
                    if image.properties.get("model") == model and image.time_start.year == year
                ]
                rows.append({"model": model, "year": year, **_band_means(selected, source.bands)})
        return rows


def _collapse(images: Sequence[MockImage], period_reduction: PeriodReduction, feature_id: str | None) -> dict[str, float]:
    out: dict[str, float] = {}
    for band, name in period_reduction:
        values = [v for v in (image.value(band, feature_id) for image in images) if v is not None]
        if values:
            out[band] = PY_REDUCERS[name](values)
    return out


def _band_means(images: Sequence[MockImage], bands: Sequence[str]) -> dict[str, float | None]:
    out: dict[str, float | None] = {}
    for band in bands:
        values = [v for v in (image.value(band) for image in images) if v is not None]
        out[band] = statistics.fmean(values) if values else None
    return out
