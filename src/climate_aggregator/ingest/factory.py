"""Raster engine factory with lazy GEE imports."""

from __future__ import annotations

import os

from climate_aggregator.ingest.interfaces import RasterEngine
from climate_aggregator.ingest.mock_engine import MockRasterEngine


def _resolve_mode(mode: str | None) -> str:
    """Resolve engine mode from argument or environment."""
    raw = mode or os.getenv("CLIMATE_ENGINE_MODE", "mock")
    resolved = raw.strip().lower()
    if resolved not in {"mock", "gee"}:
        raise ValueError("engine mode must be one of: mock, gee")
    return resolved


def create_engine(mode: str | None = None) -> RasterEngine:
    """Create a raster engine for the selected mode."""
    resolved = _resolve_mode(mode)
    if resolved == "mock":
        return MockRasterEngine()

    from climate_aggregator.ingest.gee_engine import GeeRasterEngine

    return GeeRasterEngine()
