"""Cooperative batching against rate-limited providers."""

import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence, TypeVar

from newsdesk.models.outcome import Outcome

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_in_batches(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[Outcome]],
    batch_size: int,
    delay: float,
    label: str = "item",
) -> List[Outcome]:
    """Run ``worker`` over ``items`` in concurrent batches.

    Items within a batch run concurrently; batches run one after another with
    ``delay`` seconds between them. A worker that raises instead of returning
    an Outcome is recorded as failed so its siblings still complete.

    Args:
        items: Units of work
        worker: Coroutine returning the Outcome of one unit
        batch_size: Units per batch
        delay: Seconds to sleep between batches
        label: Name used in log lines and fallback outcomes

    Returns:
        One Outcome per item, in input order
    """
    outcomes: List[Outcome] = []
    batch_size = max(1, batch_size)
    total_batches = (len(items) + batch_size - 1) // batch_size

    for index, start in enumerate(range(0, len(items), batch_size), 1):
        if index > 1 and delay > 0:
            logger.debug(f"Waiting {delay:.1f}s before {label} batch {index}")
            await asyncio.sleep(delay)

        batch = items[start : start + batch_size]
        logger.info(
            f"Processing {label} batch {index}/{total_batches} ({len(batch)} {label}s)"
        )
        results = await asyncio.gather(
            *(worker(unit) for unit in batch), return_exceptions=True
        )
        for position, result in enumerate(results, start):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.error(f"Unhandled error processing {label} #{position}: {result}")
                outcomes.append(Outcome.failed(f"{label} #{position}", result))
            else:
                outcomes.append(result)

    return outcomes
