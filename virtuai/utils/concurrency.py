"""Bounded-concurrency helpers for provider fan-out.

Fragment embedding may run several provider calls at once when
``Settings.embed_concurrency`` is above one.  Every call still passes
through a semaphore so a single ingestion run never exceeds the configured
cap, which keeps tenants inside their provider rate limits.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

_T = TypeVar("_T")


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` slots at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many awaitables run simultaneously.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input awaitables, regardless of
        completion order.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


def first_failure(results: list[_T | BaseException]) -> tuple[int, BaseException] | None:
    """Return ``(index, exception)`` for the lowest-index failure, if any."""
    for idx, result in enumerate(results):
        if isinstance(result, BaseException):
            return idx, result
    return None
