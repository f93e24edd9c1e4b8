"""Core data contracts for the climate aggregation pipeline."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import StrEnum
from typing import Any, Protocol

from climate_aggregator.errors import UnknownFilterError, UnknownReducerError


class PeriodType(StrEnum):
    """Period granularities, ordered from finest to coarsest."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def rank(self) -> int:
        """Granularity rank; higher is coarser."""
        return _PERIOD_RANKS[self]


_PERIOD_RANKS = {
    PeriodType.HOURLY: 0,
    PeriodType.DAILY: 1,
    PeriodType.WEEKLY: 2,
    PeriodType.MONTHLY: 3,
}


class ReducerName(StrEnum):
    """Reducers understood by the remote raster engine."""

    MEAN = "mean"
    MIN = "min"
    MAX = "max"
    SUM = "sum"
    MEDIAN = "median"
    FIRST = "first"
    COUNT = "count"
    STD_DEV = "stdDev"


ORDER_STATISTIC_REDUCERS = frozenset({ReducerName.MIN, ReducerName.MAX})
_REDUCER_VALUES = frozenset(r.value for r in ReducerName)

FILTER_TYPES = frozenset({"eq", "neq", "gt", "lt", "gte", "lte", "calendarRange", "date"})

ValueParser = Callable[[float], float]
BandsParser = Callable[[list[Any]], Any]
ReducerSpec = str | tuple[str, ...]


def _as_reducer_spec(value: str | Sequence[str]) -> ReducerSpec:
    """Normalize a reducer name or list of names, validating every name."""
    names = (value,) if isinstance(value, str) else tuple(value)
    if not names:
        raise UnknownReducerError("reducer list must not be empty")
    for name in names:
        if name not in _REDUCER_VALUES:
            raise UnknownReducerError(f"unknown reducer: {name!r}")
    if isinstance(value, str):
        return value
    return names


def _as_band_spec(value: str | Sequence[str]) -> str | tuple[str, ...]:
    if isinstance(value, str):
        return value
    bands = tuple(value)
    if not bands:
        raise ValueError("band list must not be empty")
    return bands


@dataclass(frozen=True, slots=True)
class TimeZoneOverride:
    """Alternate source used to resolve local-time periods (usually hourly data)."""

    dataset_id: str
    band: str | tuple[str, ...]
    period_type: PeriodType
    period_reducer: str | None = None


@dataclass(frozen=True, slots=True)
class BandDescriptor:
    """One fan-out band of a multi-band dataset, with optional overrides."""

    band: str
    reducer: str | None = None
    time_zone: TimeZoneOverride | None = None


@dataclass(frozen=True, slots=True)
class DatasetDescriptor:
    """Description of a remote image collection and how to reduce it."""

    dataset_id: str
    band: str | tuple[str, ...] = ""
    reducer: ReducerSpec = "mean"
    period_type: PeriodType = PeriodType.DAILY
    period_reducer: ReducerSpec | None = None
    value_parser: ValueParser | None = None
    bands_parser: BandsParser | None = None
    time_zone: TimeZoneOverride | None = None
    shared_inputs: bool | None = None
    aggregation_period: PeriodType | None = None
    bands: tuple[BandDescriptor, ...] = ()
    scenario: str | None = None
    name: str = ""

    def __post_init__(self) -> None:
        """Validate reducer and band invariants."""
        object.__setattr__(self, "band", _as_band_spec(self.band) if self.band else self.band)
        object.__setattr__(self, "reducer", _as_reducer_spec(self.reducer))
        if self.period_reducer is not None:
            object.__setattr__(self, "period_reducer", _as_reducer_spec(self.period_reducer))
        object.__setattr__(self, "period_type", PeriodType(self.period_type))
        object.__setattr__(self, "bands", tuple(self.bands))

        if isinstance(self.reducer, tuple) and len(self.reducer) > 1 and self.shared_inputs is None:
            raise ValueError("a list of reducers requires shared_inputs to be True or False")
        if len(self.bands) > 1 and self.bands_parser is None:
            raise ValueError("multi-band datasets require a bands_parser")
        if not self.band and not self.bands:
            raise ValueError("dataset needs a band or a list of bands")

    @property
    def band_names(self) -> tuple[str, ...]:
        """Band names as a tuple, whatever the declared shape."""
        if self.bands:
            return tuple(b.band for b in self.bands)
        return (self.band,) if isinstance(self.band, str) else self.band

    @property
    def reducer_names(self) -> tuple[str, ...]:
        return (self.reducer,) if isinstance(self.reducer, str) else self.reducer

    @property
    def effective_period_reducer(self) -> ReducerSpec:
        """Reducer used for collapsing finer periods; defaults to `reducer`."""
        return self.period_reducer if self.period_reducer is not None else self.reducer

    def for_band(self, band: BandDescriptor) -> DatasetDescriptor:
        """Return a single-band descriptor for one fan-out band."""
        return replace(
            self,
            band=band.band,
            reducer=band.reducer or self.reducer,
            time_zone=band.time_zone or self.time_zone,
            bands=(),
            bands_parser=None,
            shared_inputs=None if band.reducer else self.shared_inputs,
        )

    def for_time_zone(self) -> DatasetDescriptor:
        """Merge the time-zone sub-descriptor over this descriptor, if any."""
        tz = self.time_zone
        if tz is None:
            return self
        return replace(
            self,
            dataset_id=tz.dataset_id,
            band=tz.band,
            period_type=tz.period_type,
            period_reducer=tz.period_reducer or self.period_reducer,
            time_zone=None,
        )


class Calendar(Protocol):
    """Labels Gregorian period ids in a target calendar."""

    name: str

    def label(self, period_id: str) -> str:
        """Return the calendar-specific label for a Gregorian period id."""


@dataclass(frozen=True, slots=True)
class GregorianCalendar:
    """Identity calendar: Gregorian ids are already the labels."""

    name: str = "gregory"

    def label(self, period_id: str) -> str:
        return period_id


@dataclass(frozen=True, slots=True)
class MappedCalendar:
    """Calendar backed by a Gregorian-id to label mapping table."""

    name: str
    table: Mapping[str, str] = field(default_factory=dict)

    def label(self, period_id: str) -> str:
        try:
            return self.table[period_id]
        except KeyError:
            raise ValueError(f"no {self.name} label for period {period_id}") from None


@dataclass(frozen=True, slots=True)
class PeriodSpec:
    """Requested time range (inclusive dates) and output granularity."""

    start: date
    end: date
    time_zone: str = "UTC"
    period_type: PeriodType = PeriodType.DAILY
    calendar: Calendar = field(default_factory=GregorianCalendar)

    def __post_init__(self) -> None:
        """Validate ordering and normalize the period type."""
        if isinstance(self.start, datetime) or isinstance(self.end, datetime):
            raise TypeError("start and end must be dates, not datetimes")
        if self.end < self.start:
            raise ValueError("end must be on or after start")
        object.__setattr__(self, "period_type", PeriodType(self.period_type))


@dataclass(frozen=True, slots=True)
class PeriodBucket:
    """Half-open UTC window `[start, end)` with its Gregorian period id."""

    start: datetime
    end: datetime
    period_id: str


@dataclass(frozen=True, slots=True)
class BucketPlan:
    """Output buckets plus the downsampling stages producing them.

    `stages` is empty for identity bucketing, in which case every native image
    is its own bucket.
    """

    buckets: tuple[PeriodBucket, ...]
    stages: tuple[tuple[PeriodBucket, ...], ...] = ()
    output_period_type: PeriodType = PeriodType.DAILY
    time_zone: str = "UTC"

    @property
    def is_identity(self) -> bool:
        return not self.stages


@dataclass(frozen=True, slots=True)
class Feature:
    """A feature to reduce values for; geometry is a GeoJSON mapping."""

    id: str
    geometry: Mapping[str, Any]

    @classmethod
    def from_geojson(cls, data: Mapping[str, Any]) -> Feature:
        """Build a feature from a GeoJSON Feature, taking `id` or `properties.id`."""
        feature_id = data.get("id") or (data.get("properties") or {}).get("id")
        if feature_id is None:
            raise ValueError("feature has no id")
        return cls(id=str(feature_id), geometry=data["geometry"])

    @property
    def geometry_type(self) -> str:
        return str(self.geometry["type"])

    @property
    def is_polygon(self) -> bool:
        return "Polygon" in self.geometry_type


@dataclass(frozen=True, slots=True)
class FilterClause:
    """Ad-hoc collection filter, e.g. `calendarRange(1, 3, "month")`."""

    type: str
    arguments: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        if self.type not in FILTER_TYPES:
            raise UnknownFilterError(f"unknown filter type: {self.type!r}")
        object.__setattr__(self, "arguments", tuple(self.arguments))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FilterClause:
        """Build a clause from `{"type": ..., "arguments": [...]}`."""
        return cls(type=str(data["type"]), arguments=tuple(data.get("arguments", ())))


@dataclass(frozen=True, slots=True)
class SourceQuery:
    """Selection of a remote image collection: bands, UTC window and filters."""

    dataset_id: str
    bands: tuple[str, ...]
    period_type: PeriodType
    start: datetime | None = None
    end: datetime | None = None
    filters: tuple[FilterClause, ...] = ()


@dataclass(frozen=True, slots=True)
class ReducedRecord:
    """One reduced value for a feature and period."""

    feature_id: str
    period: str
    value: Any

    def to_dict(self) -> dict[str, Any]:
        return {"featureId": self.feature_id, "period": self.period, "value": self.value}


@dataclass(frozen=True, slots=True)
class SeriesPoint:
    """One time-series step for a single geometry; values keyed by output name."""

    period: str
    values: dict[str, Any]

    @property
    def value(self) -> Any:
        """The single value, for one-output reducers."""
        if len(self.values) != 1:
            raise ValueError("series point has more than one output")
        return next(iter(self.values.values()))

    def to_dict(self) -> dict[str, Any]:
        return {"period": self.period, **self.values}


@dataclass(frozen=True, slots=True)
class ClimateNormal:
    """Average of one calendar month across a range of years."""

    month: int
    values: dict[str, Any]

    @property
    def value(self) -> Any:
        if len(self.values) != 1:
            raise ValueError("climate normal has more than one band")
        return next(iter(self.values.values()))

    def to_dict(self) -> dict[str, Any]:
        return {"month": self.month, **self.values}


@dataclass(frozen=True, slots=True)
class ProjectionRecord:
    """Yearly mean of one climate model for a projection scenario."""

    year: int
    model: str
    value: Any

    def to_dict(self) -> dict[str, Any]:
        return {"year": self.year, "model": self.model, "value": self.value}
