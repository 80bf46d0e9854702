"""Cooperative cancellation helpers.

Callers pass an asyncio.Event as a cancellation token; setting it asks the
operation to stop at its next checkpoint.
"""

import asyncio
from typing import Optional, Sequence

from knowledge_garden.services.exceptions import OperationCancelledError


def raise_if_cancelled(cancel: Optional[asyncio.Event], what: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError(f"{what} cancelled by caller")


async def join_tasks(
    tasks: Sequence[asyncio.Task],
    cancel: Optional[asyncio.Event],
    timeout: Optional[float],
    what: str = "Operation",
) -> set[asyncio.Task]:
    """Wait for tasks until all finish, the deadline passes, or cancel fires.

    Returns the tasks still unfinished at the deadline. Unfinished tasks are
    cancelled and awaited before returning; a fired token raises
    OperationCancelledError.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None
    cancel_waiter = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
    pending: set[asyncio.Task] = set(tasks)
    try:
        while pending:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                break
            waiting = pending | ({cancel_waiter} if cancel_waiter is not None else set())
            done, _ = await asyncio.wait(
                waiting, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            if cancel_waiter is not None and cancel_waiter in done:
                raise OperationCancelledError(f"{what} cancelled by caller")
            if not done:
                break
            pending -= done
        return set(pending)
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()
        unfinished = [task for task in tasks if not task.done()]
        for task in unfinished:
            task.cancel()
        if unfinished:
            await asyncio.gather(*unfinished, return_exceptions=True)
