"""
Fan-out barrier shared by parallel branches, revision rounds and parallel
sub-agents.
"""

from typing import Awaitable, List, Sequence, TypeVar
import asyncio

T = TypeVar("T")


async def gather_all(awaitables: Sequence[Awaitable[T]]) -> List[T]:
    """
    Run awaitables concurrently and return every result in input order.

    All-or-nothing: on the first failure the still-running siblings are
    cancelled and awaited, then that failure is re-raised unchanged. Callers
    therefore never see a partial result set.

    Raises:
        Exception: The first exception raised by any awaitable
    """
    tasks = [asyncio.ensure_future(aw) for aw in awaitables]
    if not tasks:
        return []

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        await _cancel(tasks)
        raise

    if pending:
        await _cancel(pending)

    for task in tasks:
        if task in done and not task.cancelled() and task.exception() is not None:
            raise task.exception()

    return [task.result() for task in tasks]


async def _cancel(tasks):
    for task in tasks:
        task.cancel()
    # Wait for cancellation
    await asyncio.gather(*tasks, return_exceptions=True)
