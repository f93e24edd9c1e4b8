"""Period bucketing: output buckets and downsampling stages for a request."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import date, timedelta
from zoneinfo import ZoneInfo

from climate_aggregator.contracts import BucketPlan, PeriodBucket, PeriodSpec, PeriodType
from climate_aggregator.errors import UnsupportedGranularityError
from climate_aggregator.time.periods import local_midnight_utc, next_period_start, period_id, request_window

logger = logging.getLogger(__name__)


def iter_day_periods(first: date, stop: date, period_type: PeriodType) -> Iterator[tuple[date, date]]:
    """Yield local-date periods `[start, end)` covering `[first, stop)`, clipped at both ends."""
    current = first
    while current < stop:
        nxt = min(next_period_start(current, period_type), stop)
        yield current, nxt
        current = nxt


def _hourly_buckets(period: PeriodSpec) -> tuple[PeriodBucket, ...]:
    tz = ZoneInfo(period.time_zone)
    start, end = request_window(period)
    step = timedelta(hours=1)
    buckets: list[PeriodBucket] = []
    current = start
    while current < end:
        buckets.append(PeriodBucket(current, current + step, period_id(current.astimezone(tz), PeriodType.HOURLY)))
        current += step
    return tuple(buckets)


def compute_buckets(period: PeriodSpec, period_type: PeriodType | None = None) -> tuple[PeriodBucket, ...]:
    """Return contiguous, non-overlapping buckets exactly covering the request window."""
    resolved = PeriodType(period_type or period.period_type)
    if resolved is PeriodType.HOURLY:
        return _hourly_buckets(period)

    stop = period.end + timedelta(days=1)
    return tuple(
        PeriodBucket(
            start=local_midnight_utc(first, period.time_zone),
            end=local_midnight_utc(last, period.time_zone),
            period_id=period_id(first, resolved),
        )
        for first, last in iter_day_periods(period.start, stop, resolved)
    )


def plan_buckets(period: PeriodSpec, native: PeriodType) -> BucketPlan:
    """Plan the buckets for `period` given the dataset's native granularity.

    Identity bucketing when the requested and native period types match. Going
    from hourly to weekly or monthly collapses hours into local days first.
    """
    requested = period.period_type
    native = PeriodType(native)
    if requested.rank < native.rank:
        raise UnsupportedGranularityError(
            f"cannot produce {requested} periods from {native} data",
            period=requested.value,
        )

    buckets = compute_buckets(period, requested)
    if requested is native:
        stages: tuple[tuple[PeriodBucket, ...], ...] = ()
    elif native is PeriodType.HOURLY and requested in (PeriodType.WEEKLY, PeriodType.MONTHLY):
        stages = (compute_buckets(period, PeriodType.DAILY), buckets)
    else:
        stages = (buckets,)

    logger.debug(
        "Planned %d %s buckets from %s data in %d stage(s)",
        len(buckets),
        requested,
        native,
        len(stages),
    )
    return BucketPlan(buckets=buckets, stages=stages, output_period_type=requested, time_zone=period.time_zone)
