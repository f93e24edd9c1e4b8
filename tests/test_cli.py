"""CLI tests for the climate_aggregator entrypoint."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from climate_aggregator.__main__ import build_parser, main

TEMPERATURE = "ECMWF/ERA5_LAND/DAILY_AGGR/temperature_2m"


def test_values_command_prints_records(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """`values` should reduce a GeoJSON file and print JSON records."""
    path = tmp_path / "features.geojson"
    path.write_text(
        json.dumps(
            {
                "type": "FeatureCollection",
                "features": [
                    {"type": "Feature", "id": "ou1", "geometry": {"type": "Point", "coordinates": [36.8, -1.3]}}
                ],
            }
        ),
        encoding="utf-8",
    )

    code = main(
        [
            "--engine",
            "mock",
            "values",
            "--dataset",
            TEMPERATURE,
            "--start",
            "2023-01-01",
            "--end",
            "2023-01-03",
            "--features",
            str(path),
        ]
    )

    assert code == 0
    rows = json.loads(capsys.readouterr().out)
    assert [r["period"] for r in rows] == ["20230101", "20230102", "20230103"]
    assert {r["featureId"] for r in rows} == {"ou1"}


def test_normals_command(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """`normals` should print twelve monthly records."""
    path = tmp_path / "point.json"
    path.write_text(json.dumps({"type": "Point", "coordinates": [36.8, -1.3]}), encoding="utf-8")

    code = main(
        ["normals", "--dataset", "era5MonthlyNormals", "--start", "2020-01-01", "--end", "2020-12-31", "--geometry", str(path)]
    )

    assert code == 0
    assert len(json.loads(capsys.readouterr().out)) == 12


def test_pipeline_errors_exit_nonzero(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Unsupported granularities should exit with status 1 and print the error."""
    path = tmp_path / "features.geojson"
    path.write_text(json.dumps({"type": "FeatureCollection", "features": []}), encoding="utf-8")

    code = main(
        [
            "values",
            "--dataset",
            TEMPERATURE,
            "--start",
            "2023-01-01",
            "--end",
            "2023-01-01",
            "--period-type",
            "hourly",
            "--features",
            str(path),
        ]
    )

    assert code == 1
    assert "hourly" in capsys.readouterr().err


def test_unknown_dataset_is_rejected() -> None:
    """An unknown dataset should be an argument error."""
    with pytest.raises(SystemExit):
        build_parser().parse_args(["values", "--dataset", "nope", "--start", "2023-01-01", "--end", "2023-01-02", "--features", "x"])
