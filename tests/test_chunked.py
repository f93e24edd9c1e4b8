"""Tests for paginated result retrieval and ordered fan-out."""

from __future__ import annotations

import asyncio

import pytest

from climate_aggregator.errors import RemoteEvaluationError, RequestCancelledError
from climate_aggregator.ingest.chunked import fetch_all, gather_in_order
from climate_aggregator.ingest.interfaces import CancelToken
from climate_aggregator.ingest.mock_engine import MockResultSet


def _records(n: int) -> list[dict]:
    return [{"ou": f"ou{i}", "period": "20230101", "value": i} for i in range(n)]


async def test_large_result_is_fetched_in_ordered_chunks() -> None:
    """12,000 records with a 5,000 page size should take exactly three page requests."""
    result_set = MockResultSet(_records(12_000))
    records = await fetch_all(result_set, 5000)

    assert len(records) == 12_000
    assert [r["value"] for r in records] == list(range(12_000))
    assert sorted(result_set.page_requests) == [(5000, 0), (5000, 5000), (5000, 10_000)]


async def test_small_result_is_fetched_in_one_request() -> None:
    """Results within the page size should be read with a single request."""
    result_set = MockResultSet(_records(10))
    records = await fetch_all(result_set)

    assert len(records) == 10
    assert result_set.page_requests == [(5000, 0)]


async def test_failing_chunk_raises_single_error_and_cancels() -> None:
    """A failing chunk should surface its own error, not an ExceptionGroup."""
    cancel = CancelToken()
    result_set = MockResultSet(_records(12_000), fail_offsets=frozenset({5000}))

    with pytest.raises(RemoteEvaluationError):
        await fetch_all(result_set, 5000, cancel=cancel)
    assert cancel.cancelled


async def test_cancelled_token_stops_fetching() -> None:
    """A token cancelled before the call should raise RequestCancelledError."""
    cancel = CancelToken()
    cancel.cancel("user aborted")

    with pytest.raises(RequestCancelledError):
        await fetch_all(MockResultSet(_records(3)), cancel=cancel)


async def test_gather_in_order_keeps_input_order() -> None:
    """Results should follow input order, not completion order."""

    async def delayed(value: int, delay: float) -> int:
        await asyncio.sleep(delay)
        return value

    results = await gather_in_order([delayed(1, 0.02), delayed(2, 0.0), delayed(3, 0.01)])
    assert results == [1, 2, 3]


def test_non_positive_page_size_is_rejected() -> None:
    """Page size must be positive."""
    with pytest.raises(ValueError):
        asyncio.run(fetch_all(MockResultSet([]), 0))
