"""Tests for the in-memory LRU result cache and GeoJSON feature provider."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from climate_aggregator.ingest.cache import LRUCache
from climate_aggregator.ingest.features import GeoJSONFeatureProvider


def test_lru_cache_evicts_least_recently_used() -> None:
    """Reading a key should protect it from the next eviction."""
    cache: LRUCache[str, int] = LRUCache(2)
    cache.put("a", 1)
    cache.put("b", 2)
    assert cache.peek("a") == 1

    cache.put("c", 3)

    assert "a" in cache
    assert "b" not in cache
    assert len(cache) == 2
    assert cache.peek("b") is None


def test_lru_cache_needs_positive_capacity() -> None:
    """Zero capacity should be rejected."""
    with pytest.raises(ValueError):
        LRUCache(0)


def test_feature_provider_reads_collection(tmp_path: Path) -> None:
    """Features should be read in document order."""
    path = tmp_path / "ous.geojson"
    path.write_text(
        json.dumps(
            {
                "type": "FeatureCollection",
                "features": [
                    {"type": "Feature", "id": "b", "geometry": {"type": "Point", "coordinates": [0, 0]}},
                    {"type": "Feature", "properties": {"id": "a"}, "geometry": {"type": "Point", "coordinates": [1, 1]}},
                ],
            }
        ),
        encoding="utf-8",
    )

    assert [f.id for f in GeoJSONFeatureProvider.from_path(path).get_features()] == ["b", "a"]


def test_feature_provider_rejects_duplicates() -> None:
    """Duplicate feature ids should be rejected."""
    point = {"type": "Point", "coordinates": [0, 0]}
    provider = GeoJSONFeatureProvider(
        {"type": "FeatureCollection", "features": [{"id": "a", "geometry": point}, {"id": "a", "geometry": point}]}
    )
    with pytest.raises(ValueError):
        provider.get_features()
    with pytest.raises(ValueError):
        GeoJSONFeatureProvider({"type": "Feature"})
