"""
Bounded async fan-out: at most `limit` tasks in flight, each worker pausing
`gap` seconds between items, failures recorded instead of raised.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Sequence, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

WorkerResult = Union[None, R, List[R]]


@dataclass
class ItemFailure(Generic[T]):
    index: int
    item: T
    error: BaseException

    @property
    def reason(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"


@dataclass
class BatchOutcome(Generic[T, R]):
    results: List[R] = field(default_factory=list)
    failures: List[ItemFailure[T]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


async def run_limited(
    inputs: Sequence[T],
    worker: Callable[[T], Awaitable[WorkerResult]],
    limit: int = 2,
    gap: float = 0.26,
) -> BatchOutcome[T, R]:
    """
    Run `worker` over `inputs` with `min(limit, len(inputs))` workers.
    A worker may return None, one value, or a list/tuple (flattened in order).
    Output order across items follows completion, not input order.
    """
    outcome: BatchOutcome[T, R] = BatchOutcome()
    if not inputs:
        return outcome
    next_index = 0

    async def _worker() -> None:
        nonlocal next_index
        while True:
            i = next_index
            if i >= len(inputs):
                return
            next_index += 1
            item = inputs[i]
            try:
                result = await worker(item)
            except Exception as e:
                logger.warning("Item %d (%r) failed: %s", i, item, e)
                outcome.failures.append(ItemFailure(index=i, item=item, error=e))
            else:
                if isinstance(result, (list, tuple)):
                    outcome.results.extend(result)
                elif result is not None:
                    outcome.results.append(result)
            if gap > 0:
                await asyncio.sleep(gap)

    await asyncio.gather(*[_worker() for _ in range(min(max(limit, 1), len(inputs)))])
    return outcome
