"""Error kinds raised by the aggregation pipeline."""

from __future__ import annotations

from typing import Any


class ClimateAggregatorError(RuntimeError):
    """Base error carrying request context for user-facing messages."""

    def __init__(
        self,
        message: str,
        *,
        dataset_id: str | None = None,
        period: Any | None = None,
        feature_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.dataset_id = dataset_id
        self.period = period
        self.feature_id = feature_id

    def context(self) -> dict[str, Any]:
        """Return the non-empty context fields."""
        items = {"datasetId": self.dataset_id, "period": self.period, "featureId": self.feature_id}
        return {k: v for k, v in items.items() if v is not None}


class NoDataError(ClimateAggregatorError):
    """The filtered collection for the requested period has no images."""

    def __init__(self, message: str = "No data found for the selected period", **context: Any) -> None:
        super().__init__(message, **context)


class RemoteEvaluationError(ClimateAggregatorError):
    """The remote engine failed while evaluating an expression."""


class UnsupportedGranularityError(ClimateAggregatorError, ValueError):
    """Requested period type is finer than the dataset's native period type."""


class UnknownReducerError(ClimateAggregatorError, ValueError):
    """Reducer name is not in the reducer registry."""


class UnknownFilterError(ClimateAggregatorError, ValueError):
    """Filter type is not supported by the remote engine."""


class RequestCancelledError(ClimateAggregatorError):
    """The request was cancelled through its CancelToken."""


class EarthEngineUnavailableError(ClimateAggregatorError):
    """earthengine-api is missing or not configured."""
