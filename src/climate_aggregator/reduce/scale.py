"""Sampling scale resolution for spatial reductions over small geometries.

Areal min/max reductions can return no value when no pixel center falls
inside a polygon smaller than a pixel. The scale is then shrunk to half the
side of a square with the polygon's area.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from math import sqrt
from typing import Any

from pyproj import Geod
from shapely.geometry import shape

from climate_aggregator.contracts import ORDER_STATISTIC_REDUCERS, SourceQuery
from climate_aggregator.ingest.interfaces import CancelToken, RasterEngine
from climate_aggregator.reduce.reducers import CompositeReducer

logger = logging.getLogger(__name__)

_GEOD = Geod(ellps="WGS84")

# Climate normals over points sample at this fixed scale (meters).
POINT_SCALE_M = 1.0


def is_polygon(geometry: Mapping[str, Any]) -> bool:
    return "Polygon" in str(geometry["type"])


def geodesic_area(geometry: Mapping[str, Any]) -> float:
    """Return the geodesic area of a GeoJSON (multi)polygon in square meters."""
    area, _ = _GEOD.geometry_area_perimeter(shape(geometry))
    return abs(area)


def corrected_scale(baseline: float, area: float) -> float:
    """Shrink `baseline` to `sqrt(area) / 2` when `area` is below one pixel."""
    if area < baseline * baseline:
        return sqrt(area) / 2
    return baseline


def resolve_scale(
    baseline: float,
    reducer: CompositeReducer,
    geometries: Sequence[Mapping[str, Any]],
    *,
    single_geometry: bool = False,
) -> float:
    """Resolve the scale for reducing `geometries` with `reducer`.

    Order-statistic reducers use the smallest polygon among all geometries.
    Other reducers are only corrected for a single polygon geometry.
    Points never trigger a correction.
    """
    polygons = [g for g in geometries if is_polygon(g)]
    if not polygons:
        return baseline

    if any(r in ORDER_STATISTIC_REDUCERS for r in reducer.reducers):
        area = min(geodesic_area(g) for g in polygons)
    elif single_geometry and len(geometries) == 1:
        area = geodesic_area(polygons[0])
    else:
        return baseline

    scale = corrected_scale(baseline, area)
    if scale != baseline:
        logger.info("Geometry smaller than a pixel (%.1f m2), scale %.1f m -> %.2f m", area, baseline, scale)
    return scale


async def resolve_collection_scale(
    engine: RasterEngine,
    source: SourceQuery,
    reducer: CompositeReducer,
    geometries: Sequence[Mapping[str, Any]],
    *,
    single_geometry: bool = False,
    cancel: CancelToken | None = None,
) -> float:
    """Look up the native scale of the first image in `source` and resolve it."""
    baseline = await engine.nominal_scale(source, cancel=cancel)
    return resolve_scale(baseline, reducer, geometries, single_geometry=single_geometry)
