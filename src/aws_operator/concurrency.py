"""Bounded fan-out with first-error-wins joining.

Used by resources that issue a few independent cloud reads at once. The
join never leaks work past its own return: every spawned task has finished,
successfully or by cancellation, before the caller resumes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Any


async def join_first_error(*aws: Awaitable[Any]) -> list[Any]:
    """Run awaitables concurrently and join them.

    Args:
        *aws: A small, fixed number of awaitables.

    Returns:
        Results in argument order.

    Raises:
        The first exception by completion order. Remaining tasks are
        cancelled and awaited before it is raised; their results and
        errors are discarded.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        # Outer cancellation (pass deadline, shutdown) reaches every child
        await _cancel_and_wait(tasks)
        raise

    # Tasks completing in the same loop iteration share a done set;
    # argument order breaks the tie.
    for task in tasks:
        if task not in done or task.cancelled():
            continue
        error = task.exception()
        if error is not None:
            await _cancel_and_wait(list(pending))
            raise error

    return [t.result() for t in tasks]


async def _cancel_and_wait(tasks: list[asyncio.Future[Any]]) -> None:
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
