import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, List, Optional, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def ledger_limiter(max_concurrency: int) -> asyncio.Semaphore:
    """Semaphore that caps concurrent ledger calls; share one across nested fan-outs."""
    return asyncio.Semaphore(max(1, max_concurrency))


async def gather_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    max_concurrency: int = 8,
    limiter: Optional[asyncio.Semaphore] = None,
    return_exceptions: bool = False,
) -> List[Any]:
    """
    Run `worker` over `items` concurrently with at most `max_concurrency` in flight.

    Pass `limiter` to draw from a semaphore shared with other fan-outs instead
    of a fresh one; workers must not themselves wait on the same limiter.
    Results come back in input order regardless of completion order. With
    `return_exceptions=True` failures are returned in place of results (as
    `asyncio.gather` does) so callers can see which items completed.
    """

    semaphore = limiter if limiter is not None else ledger_limiter(max_concurrency)

    async def _run(item: T) -> R:
        async with semaphore:
            return await worker(item)

    return await asyncio.gather(*(_run(item) for item in items), return_exceptions=return_exceptions)
