"""Command-line entrypoint for climate_aggregator."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from datetime import date
from typing import Any

from climate_aggregator.contracts import DatasetDescriptor, PeriodSpec, PeriodType
from climate_aggregator.datasets.catalog import get_dataset, get_series_dataset
from climate_aggregator.errors import ClimateAggregatorError
from climate_aggregator.ingest.factory import create_engine
from climate_aggregator.ingest.features import GeoJSONFeatureProvider
from climate_aggregator.orchestrate.pipeline import Pipeline, PipelineConfig

logger = logging.getLogger("climate_aggregator")


def _parse_iso_date(value: str) -> date:
    """Parse an ISO date string."""
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date: {value}") from exc


def _load_json(path: str) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _resolve_dataset(name: str) -> DatasetDescriptor:
    descriptor = get_series_dataset(name)
    if descriptor is not None:
        return descriptor
    entry = get_dataset(name)
    if entry is None:
        raise argparse.ArgumentTypeError(f"unknown dataset: {name}")
    return entry.descriptor


def build_parser() -> argparse.ArgumentParser:
    """Create and return the top-level CLI parser."""
    parser = argparse.ArgumentParser(
        prog="climate_aggregator",
        description="Aggregate Earth Engine climate data over features and periods.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--engine", choices=["mock", "gee"], default=None)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--dataset", type=_resolve_dataset, required=True)
    common.add_argument("--start", type=_parse_iso_date, required=True)
    common.add_argument("--end", type=_parse_iso_date, required=True)
    common.add_argument("--period-type", choices=[p.value for p in PeriodType], default="daily")
    common.add_argument("--time-zone", default="UTC")

    subparsers = parser.add_subparsers(dest="command")
    values = subparsers.add_parser(
        "values",
        parents=[common],
        help="Reduce a catalog dataset over every feature of a GeoJSON FeatureCollection.",
    )
    values.add_argument("--features", required=True, help="Path to a GeoJSON FeatureCollection.")

    for name, help_text in (
        ("timeseries", "Time series for one GeoJSON geometry."),
        ("normals", "Monthly climate normals for one GeoJSON geometry."),
    ):
        sub = subparsers.add_parser(name, parents=[common], help=help_text)
        sub.add_argument("--geometry", required=True, help="Path to a GeoJSON geometry.")

    return parser


async def _run(args: argparse.Namespace) -> list[dict[str, Any]]:
    pipeline = Pipeline(create_engine(args.engine), PipelineConfig.from_env())
    period = PeriodSpec(args.start, args.end, args.time_zone, PeriodType(args.period_type))

    if args.command == "values":
        features = GeoJSONFeatureProvider.from_path(args.features).get_features()
        records = await pipeline.get_earth_engine_data(args.dataset, period, features)
        return [r.to_dict() for r in records]

    geometry = _load_json(args.geometry)
    if args.command == "timeseries":
        points = await pipeline.get_time_series_data(args.dataset, period, geometry)
        return [p.to_dict() for p in points]
    normals = await pipeline.get_climate_normals(args.dataset, period, geometry)
    return [n.to_dict() for n in normals]


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI application."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.command is None:
        parser.print_help()
        return 0

    try:
        rows = asyncio.run(_run(args))
    except (ClimateAggregatorError, ValueError) as exc:
        logger.error("%s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1

    json.dump(rows, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
