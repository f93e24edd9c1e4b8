"""Stable cache keys for (feature, dataset, period, filter) requests."""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from typing import Any

from climate_aggregator.contracts import DatasetDescriptor, Feature, FilterClause, PeriodSpec

KEY_DELIMITER = "|"
NAME_DELIMITER = ","


def _json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True, default=str)


def _filter_segment(clause: FilterClause) -> str:
    return f"{clause.type}{_json(list(clause.arguments))}"


def _names(spec: str | Sequence[str]) -> str:
    # reducer names come from a fixed registry and never contain the delimiter
    return spec if isinstance(spec, str) else NAME_DELIMITER.join(spec)


def callable_name(fn: Callable[..., Any] | None) -> str | None:
    """Qualified name of a parser, or None when there is no parser."""
    if fn is None:
        return None
    return f"{fn.__module__}.{fn.__qualname__}"


def is_stable_callable(fn: Callable[..., Any] | None) -> bool:
    """Whether `fn` is identified by its qualified name (not a lambda or closure)."""
    return fn is None or "<" not in fn.__qualname__


def has_stable_key(dataset: DatasetDescriptor) -> bool:
    """Whether equal keys for `dataset` are guaranteed to mean equal results."""
    return is_stable_callable(dataset.value_parser) and is_stable_callable(dataset.bands_parser)


def build_cache_key(
    feature: Feature,
    dataset: DatasetDescriptor,
    period: PeriodSpec,
    filters: Sequence[FilterClause] | None = None,
) -> str:
    """Derive the cache key for one request.

    Segments: feature id, dataset id, band names, start, end, requested period
    type, output period type, time zone, calendar, spatial reducers, period
    reducers and parser names, then one segment per filter clause in the given
    order.
    """
    segments = [
        feature.id,
        dataset.dataset_id,
        _json(list(dataset.band_names)),
        period.start.isoformat(),
        period.end.isoformat(),
        period.period_type.value,
        (dataset.aggregation_period or dataset.period_type).value,
        period.time_zone,
        period.calendar.name,
        _names(dataset.reducer),
        _names(dataset.effective_period_reducer),
        _json([callable_name(dataset.value_parser), callable_name(dataset.bands_parser)]),
    ]
    segments.extend(_filter_segment(clause) for clause in filters or ())
    # segments containing the delimiter are JSON-quoted
    return KEY_DELIMITER.join(json.dumps(s) if KEY_DELIMITER in s else s for s in segments)
