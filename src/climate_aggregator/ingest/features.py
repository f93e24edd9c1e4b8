"""GeoJSON-backed feature provider."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from climate_aggregator.contracts import Feature
from climate_aggregator.ingest.interfaces import FeatureProvider


class GeoJSONFeatureProvider(FeatureProvider):
    """Features from a GeoJSON FeatureCollection, in document order."""

    def __init__(self, collection: Mapping[str, Any]) -> None:
        if collection.get("type") != "FeatureCollection":
            raise ValueError("expected a GeoJSON FeatureCollection")
        self._collection = collection

    @classmethod
    def from_path(cls, path: str | Path) -> GeoJSONFeatureProvider:
        with open(path, encoding="utf-8") as f:
            return cls(json.load(f))

    def get_features(self) -> list[Feature]:
        features = [Feature.from_geojson(item) for item in self._collection.get("features", [])]
        seen: set[str] = set()
        for feature in features:
            if feature.id in seen:
                raise ValueError(f"duplicate feature id: {feature.id}")
            seen.add(feature.id)
        return features
