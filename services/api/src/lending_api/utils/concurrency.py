"""All-settled fan-out helper."""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, TypeVar

T = TypeVar("T")


@dataclass
class Settled(Generic[T]):
    """Outcome of one task: exactly one of value / error is meaningful."""

    label: Any
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def settle_all(tasks: list[tuple[Any, Awaitable[T]]]) -> list[Settled[T]]:
    """
    Run labelled awaitables concurrently and wait for every one of them.

    A failing task never cancels the others. Results come back in task-list
    order regardless of completion order.
    """
    if not tasks:
        return []

    results = await asyncio.gather(*(aw for _, aw in tasks), return_exceptions=True)

    settled: list[Settled[T]] = []
    for (label, _), result in zip(tasks, results):
        if isinstance(result, Exception):
            settled.append(Settled(label=label, error=result))
        elif isinstance(result, BaseException):
            # Cancellation and interpreter exits are not task failures
            raise result
        else:
            settled.append(Settled(label=label, value=result))
    return settled


async def gather_or_cancel(*aws: Awaitable[Any]) -> list[Any]:
    """
    Like asyncio.gather, but the first failure cancels the siblings still running.

    For calls that are only useful together; the first error is re-raised as is.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise
