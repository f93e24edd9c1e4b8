"""Deterministic period boundary and period id helpers."""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from climate_aggregator.contracts import PeriodSpec, PeriodType

# Joda-style patterns for formatting native image dates on the remote engine.
EE_DATE_FORMATS: dict[PeriodType, str] = {
    PeriodType.HOURLY: "YYYYMMddHH",
    PeriodType.DAILY: "YYYYMMdd",
    PeriodType.WEEKLY: "xxxx'W'w",
    PeriodType.MONTHLY: "YYYYMM",
}


def local_midnight_utc(day: date, time_zone: str) -> datetime:
    """Return the UTC instant of local midnight starting `day` in `time_zone`."""
    return datetime.combine(day, time(0), tzinfo=ZoneInfo(time_zone)).astimezone(UTC)


def request_window(period: PeriodSpec) -> tuple[datetime, datetime]:
    """Return the UTC window `[start, end)` covering the inclusive local dates of `period`.

    The end date is advanced by one day so the last day is included.
    """
    start = local_midnight_utc(period.start, period.time_zone)
    end = local_midnight_utc(period.end + timedelta(days=1), period.time_zone)
    return start, end


def month_bounds(day: date) -> tuple[date, date]:
    """Return month period bounds as [start, end) for an input date."""
    start = day.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def next_period_start(day: date, period_type: PeriodType) -> date:
    """Return the first day of the period following the one containing `day`."""
    if period_type is PeriodType.DAILY:
        return day + timedelta(days=1)
    if period_type is PeriodType.WEEKLY:
        # ISO weeks start on Monday
        return day + timedelta(days=7 - day.weekday())
    if period_type is PeriodType.MONTHLY:
        return month_bounds(day)[1]
    raise ValueError(f"no day-aligned periods for {period_type}")


def period_id(moment: date | datetime, period_type: PeriodType) -> str:
    """Return the Gregorian period id for a local date or datetime."""
    if period_type is PeriodType.HOURLY:
        if not isinstance(moment, datetime):
            raise TypeError("hourly period ids need a datetime")
        return moment.strftime("%Y%m%d%H")
    if period_type is PeriodType.DAILY:
        return moment.strftime("%Y%m%d")
    if period_type is PeriodType.WEEKLY:
        iso_year, iso_week, _ = moment.isocalendar()
        return f"{iso_year}W{iso_week}"
    if period_type is PeriodType.MONTHLY:
        return moment.strftime("%Y%m")
    raise ValueError(f"unknown period type: {period_type}")


def years_in(period: PeriodSpec) -> list[int]:
    """Calendar years touched by the period, in order."""
    return list(range(period.start.year, period.end.year + 1))
