"""Bounded concurrent fan-out across independent targets."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class FanOutResult(Generic[R]):
    """Per-target results of a fan-out. Failures are collected, never raised."""

    succeeded: dict[str, R] = field(default_factory=dict)
    failed: dict[str, BaseException] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """True when every target succeeded."""
        return not self.failed

    def outcomes(self) -> dict[str, str]:
        """Outcome strings suitable for PartialFailureError."""
        result = {key: "ok" for key in self.succeeded}
        result.update({key: str(exc) or type(exc).__name__ for key, exc in self.failed.items()})
        return result


async def fan_out(
    items: Iterable[T],
    func: Callable[[T], Awaitable[R]],
    key: Callable[[T], str] = str,
    limit: int = 10,
) -> FanOutResult[R]:
    """
    Run func for every item with at most `limit` running at once.

    Args:
        items: Targets to process
        func: Coroutine function applied to each target
        key: Maps a target to its result key (address, shard name)
        limit: Worker concurrency limit

    Returns:
        FanOutResult keyed by target
    """
    targets = list(items)
    semaphore = asyncio.Semaphore(max(1, limit))

    async def run(item: T) -> Any:
        async with semaphore:
            return await func(item)

    results = await asyncio.gather(*(run(t) for t in targets), return_exceptions=True)

    outcome: FanOutResult[R] = FanOutResult()
    for item, result in zip(targets, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            outcome.failed[key(item)] = result
        else:
            outcome.succeeded[key(item)] = result
    return outcome
