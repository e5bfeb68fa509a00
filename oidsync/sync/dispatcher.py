"""OID Sync — Batch Dispatcher.

Splits a work list into contiguous chunks and runs them strictly one after
another. Inside a chunk, items run concurrently up to ``max_concurrency``.
A pacing delay separates consecutive chunks to respect the remote rate limit.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from oidsync.core.logging import get_logger

logger = get_logger("sync.dispatcher")

T = TypeVar("T")


@dataclass
class ItemOutcome(Generic[T]):
    item: T
    result: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class DispatchReport(Generic[T]):
    """What happened to each item, chunk by chunk."""

    chunk_sizes: List[int] = field(default_factory=list)
    outcomes: List[ItemOutcome[T]] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Contiguous slices of at most ``size``; the last may be shorter."""
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BatchDispatcher:
    """Chunked, concurrency-bounded, paced execution of a per-item action."""

    def __init__(
        self,
        max_concurrency: int,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be positive, got {max_concurrency}")
        self.max_concurrency = max_concurrency
        self._sleep = sleep

    async def run(
        self,
        items: Sequence[T],
        chunk_size: int,
        inter_chunk_delay_ms: int,
        action: Callable[[T], Awaitable[Any]],
    ) -> DispatchReport[T]:
        """Process every item. Returns once the last chunk has finished.

        An exception from ``action`` is recorded on that item's outcome and
        does not cancel its siblings.
        """
        report: DispatchReport[T] = DispatchReport()
        if not items:
            logger.info("No items to process")
            return report

        chunks = chunked(items, chunk_size)
        logger.info(
            f"Processing {len(items)} items in {len(chunks)} chunks of up to {chunk_size} "
            f"(max {self.max_concurrency} in flight)"
        )
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _guarded(item: T) -> ItemOutcome[T]:
            async with semaphore:
                try:
                    return ItemOutcome(item=item, result=await action(item))
                except Exception as e:
                    return ItemOutcome(item=item, error=e)

        for index, chunk in enumerate(chunks, 1):
            logger.info(f"Processing chunk {index}/{len(chunks)} of {len(chunk)} items")
            outcomes = await asyncio.gather(*(_guarded(item) for item in chunk))
            report.chunk_sizes.append(len(chunk))
            report.outcomes.extend(outcomes)
            failed = sum(1 for o in outcomes if not o.ok)
            logger.info(
                f"Completed chunk {index}/{len(chunks)}: "
                f"{len(chunk) - failed} succeeded, {failed} failed"
            )

            if index < len(chunks) and inter_chunk_delay_ms > 0:
                await self._sleep(inter_chunk_delay_ms / 1000)

        logger.info(f"Completed processing all {len(chunks)} chunks")
        return report
