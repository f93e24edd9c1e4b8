"""Paginated retrieval of result sets larger than the per-request item cap."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine, Sequence
from math import ceil
from typing import Any, TypeVar

from climate_aggregator.ingest.interfaces import CancelToken, ResultSet, check_cancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Maximum number of items the remote engine returns for one request.
PAGE_SIZE = 5000


async def fetch_all(result_set: ResultSet, page_size: int = PAGE_SIZE, cancel: CancelToken | None = None) -> list[Any]:
    """Fetch every record of `result_set`, in the order of a single unpaginated read.

    Pages are requested concurrently and concatenated by page index. The first
    failing page cancels the others and its error is raised as is.
    """
    if page_size <= 0:
        raise ValueError("page_size must be positive")

    count = await result_set.size(cancel=cancel)
    if count <= page_size:
        return await result_set.page(page_size, 0, cancel=cancel)

    chunks = ceil(count / page_size)
    logger.info("Fetching %d records in %d chunks of %d", count, chunks, page_size)

    pages = await gather_in_order(
        [result_set.page(page_size, chunk * page_size, cancel=cancel) for chunk in range(chunks)],
        cancel,
    )
    records: list[Any] = []
    for page in pages:
        records.extend(page)
    return records


async def gather_in_order(coros: Sequence[Coroutine[Any, Any, T]], cancel: CancelToken | None = None) -> list[T]:
    """Run `coros` concurrently and return their results in input order.

    The first failure cancels the remaining tasks, sets `cancel` and is raised
    on its own rather than wrapped in an ExceptionGroup.
    """
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(coro) for coro in coros]
    except ExceptionGroup as exc:
        if cancel is not None:
            cancel.cancel("concurrent request failed")
        raise exc.exceptions[0] from None

    check_cancelled(cancel)
    return [task.result() for task in tasks]
