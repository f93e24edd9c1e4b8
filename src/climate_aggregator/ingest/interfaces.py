"""Remote raster engine interfaces consumed by the aggregation pipeline."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol

from climate_aggregator.contracts import BucketPlan, Feature, ReducerName, SourceQuery
from climate_aggregator.errors import RequestCancelledError

if TYPE_CHECKING:
    from climate_aggregator.reduce.reducers import CompositeReducer

PeriodReduction = tuple[tuple[str, ReducerName], ...]


class CancelToken:
    """Cooperative cancellation flag shared by every remote call of one request."""

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled") -> None:
        self._cancelled = True
        self.reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelledError(f"request cancelled: {self.reason}")


def check_cancelled(cancel: CancelToken | None) -> None:
    """Raise RequestCancelledError when `cancel` is set."""
    if cancel is not None:
        cancel.raise_if_cancelled()


class ResultSet(Protocol):
    """Server-side collection of reduced records, read page by page."""

    async def size(self, cancel: CancelToken | None = None) -> int:
        """Return the total number of records."""

    async def page(self, limit: int, offset: int = 0, cancel: CancelToken | None = None) -> list[dict[str, Any]]:
        """Return up to `limit` records starting at `offset`."""


class RasterEngine(Protocol):
    """Interface to a remote raster analytics engine."""

    async def count_images(self, source: SourceQuery, cancel: CancelToken | None = None) -> int:
        """Return the number of images selected by `source`."""

    async def nominal_scale(self, source: SourceQuery, cancel: CancelToken | None = None) -> float:
        """Return the native pixel size in meters of the first selected image."""

    def reduce_regions(
        self,
        source: SourceQuery,
        plan: BucketPlan,
        period_reduction: PeriodReduction,
        reducer: CompositeReducer,
        scale: float,
        features: Sequence[Feature],
    ) -> ResultSet:
        """Reduce every bucket image over every feature.

        Records are `{"ou": feature id, "period": Gregorian period id, "value": v}`,
        ordered by bucket then feature.
        """

    async def reduce_region_series(
        self,
        source: SourceQuery,
        plan: BucketPlan,
        period_reduction: PeriodReduction,
        reducer: CompositeReducer,
        scale: float,
        geometry: Mapping[str, Any],
        cancel: CancelToken | None = None,
    ) -> list[dict[str, Any]]:
        """Reduce every bucket image over one geometry; rows carry `period` and output keys."""

    async def monthly_means(
        self,
        source: SourceQuery,
        years: Sequence[int],
        scale: float,
        geometry: Mapping[str, Any],
        cancel: CancelToken | None = None,
    ) -> list[dict[str, Any]]:
        """Return 12 rows `{"month": m, band: mean, ...}` averaged across `years`."""

    async def model_year_means(
        self,
        source: SourceQuery,
        models: Sequence[str],
        scenario: str,
        years: Sequence[int],
        geometry: Mapping[str, Any],
        cancel: CancelToken | None = None,
    ) -> list[dict[str, Any]]:
        """Return rows `{"model", "year", band: mean}` for every model and year."""


class FeatureProvider(Protocol):
    """Supplies the ordered features a caller wants values for."""

    def get_features(self) -> list[Feature]:
        """Return features with unique ids."""
