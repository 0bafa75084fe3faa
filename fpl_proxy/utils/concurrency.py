"""Concurrency primitives for outbound FPL traffic.

Two patterns are exposed:

1. **UpstreamScheduler** -- a FIFO queue in front of every upstream call.
   It caps how many calls are in flight at once and holds each freed slot
   for a fixed spacing delay before handing it to the next task, so bursts
   from many browsers reach the FPL API as a steady trickle.

2. **gather_tagged** -- fan-out helper for the aggregate endpoints: run one
   coroutine per key, keep every outcome (value or exception) paired with
   its key, and log failures without aborting the batch.

Everything here runs on a single event loop.  ``_active`` and ``_queue``
are only touched between suspension points, so no lock is needed; a port
to threads would have to guard both.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Hashable, TypeVar

import structlog

from fpl_proxy.utils.errors import QueueFullError
from fpl_proxy.utils.logging import get_logger

_T = TypeVar("_T")
_K = TypeVar("_K", bound=Hashable)

_logger: structlog.BoundLogger = get_logger(__name__)


class UpstreamScheduler:
    """Bounded-concurrency, spaced, strictly FIFO task runner.

    Parameters
    ----------
    max_concurrent:
        Upper bound on slots in use.  A slot is in use from dispatch until
        the spacing delay after its task finished has elapsed.
    spacing_ms:
        Milliseconds a slot rests after its task completes.  Measured from
        completion, so a slow upstream call throttles the next one further.
    max_queue_size:
        Maximum number of tasks waiting for a slot.  ``0`` means unbounded.
    """

    def __init__(
        self,
        max_concurrent: int = 2,
        spacing_ms: float = 250,
        max_queue_size: int = 0,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = max_concurrent
        self._spacing_s = max(spacing_ms, 0) / 1000.0
        self._max_queue_size = max_queue_size
        self._queue: deque[tuple[Callable[[], Awaitable[Any]], asyncio.Future[Any]]] = deque()
        self._active = 0
        self._workers: dict[asyncio.Task[None], asyncio.Future[Any]] = {}

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    async def schedule(self, task: Callable[[], Awaitable[_T]]) -> _T:
        """Queue *task* and return (or raise) exactly what it returns (or raises).

        If the caller stops waiting, the task still runs when its turn comes
        and its result is dropped; the slot accounting never depends on the
        caller.

        Raises
        ------
        QueueFullError
            When ``max_queue_size`` tasks are already waiting.
        """
        if self._max_queue_size and len(self._queue) >= self._max_queue_size:
            _logger.warning(
                "scheduler_queue_full",
                pending=len(self._queue),
                limit=self._max_queue_size,
            )
            raise QueueFullError(
                f"{len(self._queue)} upstream requests already waiting",
                provider_name="scheduler",
            )

        future: asyncio.Future[_T] = asyncio.get_running_loop().create_future()
        self._queue.append((task, future))
        self._dispatch()
        return await future

    async def aclose(self) -> None:
        """Cancel running workers and fail everything still queued."""
        while self._queue:
            _, future = self._queue.popleft()
            future.cancel()
        workers = list(self._workers)
        for worker, future in list(self._workers.items()):
            worker.cancel()
            # A worker cancelled before its first step never reaches _run.
            future.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _dispatch(self) -> None:
        """Start queued tasks, head first, while slots are free."""
        while self._active < self._max_concurrent and self._queue:
            task, future = self._queue.popleft()
            self._active += 1
            worker = asyncio.create_task(self._run(task, future))
            self._workers[worker] = future
            worker.add_done_callback(self._forget_worker)

    def _forget_worker(self, worker: asyncio.Task[None]) -> None:
        self._workers.pop(worker, None)

    async def _run(
        self,
        task: Callable[[], Awaitable[Any]],
        future: asyncio.Future[Any],
    ) -> None:
        cancelled = False
        try:
            result = await task()
        except asyncio.CancelledError:
            cancelled = True
            future.cancel()
            raise
        except Exception as exc:
            if not future.done():
                future.set_exception(exc)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            try:
                if self._spacing_s and not cancelled:
                    await asyncio.sleep(self._spacing_s)
            finally:
                self._active -= 1
                self._dispatch()


async def gather_tagged(
    keys: list[_K],
    fn: Callable[[_K], Awaitable[_T]],
    logger: structlog.BoundLogger | None = None,
    error_msg: str = "fan_out_item_failed",
) -> list[tuple[_K, _T | BaseException]]:
    """Run ``fn(key)`` for every key concurrently and pair each outcome with its key.

    Implements the **fan-out / collect** pattern used by the aggregate
    endpoints:
    1. Fan out -- one coroutine per key, all started at once
    2. Bound -- concurrency is bounded by whatever ``fn`` awaits (the
       upstream scheduler), not here
    3. Collect -- values and exceptions come back in key order; failures
       are logged, never re-raised

    Returns
    -------
    list[tuple[key, value | BaseException]]
        One pair per key, in the order of *keys*.
    """
    if logger is None:
        logger = _logger

    outcomes = await asyncio.gather(*(fn(key) for key in keys), return_exceptions=True)

    for key, outcome in zip(keys, outcomes):
        if isinstance(outcome, BaseException):
            logger.warning(error_msg, key=key, error=str(outcome))

    return list(zip(keys, outcomes))
