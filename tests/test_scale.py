"""Tests for sampling scale resolution over small geometries."""

from __future__ import annotations

from math import sqrt

import pytest

from climate_aggregator.reduce.reducers import compose
from climate_aggregator.reduce.scale import corrected_scale, geodesic_area, resolve_scale

BASELINE = 11_132.0


def _square(lon: float, lat: float, size: float) -> dict:
    return {
        "type": "Polygon",
        "coordinates": [[[lon, lat], [lon + size, lat], [lon + size, lat + size], [lon, lat + size], [lon, lat]]],
    }


SMALL = _square(36.8, -1.3, 0.001)
LARGE = _square(36.0, -2.0, 1.0)
POINT = {"type": "Point", "coordinates": [36.8, -1.3]}


def test_corrected_scale_shrinks_below_one_pixel() -> None:
    """Areas under one pixel should resolve to sqrt(A)/2; others keep the baseline."""
    assert corrected_scale(1000.0, 250_000.0) == pytest.approx(250.0)
    assert corrected_scale(1000.0, 1_000_000.0) == 1000.0
    assert corrected_scale(1000.0, 4_000_000.0) == 1000.0


def test_geodesic_area_of_one_degree_cell() -> None:
    """A one-degree cell near the equator should measure about 12,300 square km."""
    assert geodesic_area(_square(0.0, 0.0, 1.0)) == pytest.approx(1.23e10, rel=0.01)


def test_order_statistic_uses_smallest_polygon() -> None:
    """min/max reducers should correct the scale for the smallest polygon."""
    scale = resolve_scale(BASELINE, compose("min"), [LARGE, SMALL])
    assert scale == pytest.approx(sqrt(geodesic_area(SMALL)) / 2)
    assert scale < BASELINE


def test_mean_over_several_geometries_keeps_baseline() -> None:
    """Non order-statistic reducers over several geometries should keep the baseline."""
    assert resolve_scale(BASELINE, compose("mean"), [LARGE, SMALL]) == BASELINE


def test_mean_over_single_polygon_is_corrected() -> None:
    """A single small polygon should be corrected for any reducer."""
    scale = resolve_scale(BASELINE, compose("mean"), [SMALL], single_geometry=True)
    assert scale == pytest.approx(sqrt(geodesic_area(SMALL)) / 2)


def test_points_never_trigger_correction() -> None:
    """Point geometries should leave the scale unchanged."""
    assert resolve_scale(BASELINE, compose("max"), [POINT]) == BASELINE
    assert resolve_scale(BASELINE, compose("mean"), [POINT], single_geometry=True) == BASELINE
