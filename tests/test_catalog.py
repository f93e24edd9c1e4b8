"""Tests for the dataset catalog and value parsers."""

from __future__ import annotations

import pytest

from climate_aggregator.contracts import ReducedRecord
from climate_aggregator.datasets.calc import (
    precipitation_parser,
    relative_humidity,
    relative_humidity_parser,
    temperature_parser,
)
from climate_aggregator.datasets.catalog import SERIES_DATASETS, get_dataset, get_series_dataset, list_datasets


def test_temperature_parser_converts_kelvin() -> None:
    """Kelvin should become Celsius rounded to one decimal."""
    assert temperature_parser(273.15) == 0.0
    assert temperature_parser(300.0) == 26.9


def test_precipitation_parser_converts_meters() -> None:
    """Meters should become millimeters."""
    assert precipitation_parser(0.0123) == pytest.approx(12.3)


def test_relative_humidity_is_saturated_at_dewpoint() -> None:
    """Air at its dewpoint should be at 100% relative humidity."""
    assert relative_humidity(20.0, 20.0) == pytest.approx(100.0)
    assert relative_humidity(20.0, 10.0) == pytest.approx(52.54, abs=0.01)


def test_relative_humidity_parser_joins_by_feature_and_period() -> None:
    """Band results should be matched per feature and period, not by position."""
    dewpoints = [ReducedRecord("a", "20230101", 283.15), ReducedRecord("b", "20230101", 283.15)]
    temperatures = [ReducedRecord("b", "20230101", 293.15), ReducedRecord("a", "20230101", 283.15)]

    records = relative_humidity_parser([dewpoints, temperatures])

    assert [(r.feature_id, r.value) for r in records] == [("b", 52.5), ("a", 100.0)]


def test_relative_humidity_parser_keeps_missing_values() -> None:
    """Missing band values should produce a null, not drop the record."""
    records = relative_humidity_parser([[], [ReducedRecord("a", "20230101", 290.0)]])
    assert records == [ReducedRecord("a", "20230101", None)]


def test_catalog_entries() -> None:
    """Catalog ids are unique and resolvable."""
    entries = list_datasets()
    assert len({e.id for e in entries}) == len(entries)
    for entry in entries:
        assert get_dataset(entry.id) is entry
        assert entry.to_dict()["periodType"] == "daily"
    assert get_dataset("unknown") is None


def test_series_datasets_by_name() -> None:
    """Series descriptors are looked up by short name."""
    assert get_series_dataset("era5Daily") is SERIES_DATASETS["era5Daily"]
    assert get_series_dataset("era5Hourly") is None
