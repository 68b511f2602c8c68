"""
Bounded Worker Pool for Multimail.

A thread pool with a core size, a maximum size, a bounded queue and an
abort policy. Slow synchronous transport I/O runs here, off the
caller's thread or event loop.

Submission rules, in order:
1. Fewer than `core_pool_size` threads: start a thread for the job
2. Queue has room: queue the job
3. Fewer than `maximum_pool_size` threads: start a thread for the job
4. Otherwise: reject with PoolSaturationError (nothing is queued)

Threads beyond the core size exit after `keep_alive_seconds` idle.
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
from concurrent.futures import Executor, Future
from typing import TYPE_CHECKING, Any, Callable

from .errors import PoolSaturationError

if TYPE_CHECKING:
    from .config.schemas import WorkerPoolSettings

logger = logging.getLogger(__name__)


class _WorkItem:
    __slots__ = ("future", "fn", "args", "kwargs")

    def __init__(self, future: Future, fn: Callable[..., Any], args: tuple, kwargs: dict):
        self.future = future
        self.fn = fn
        self.args = args
        self.kwargs = kwargs

    def run(self) -> None:
        if not self.future.set_running_or_notify_cancel():
            return
        try:
            result = self.fn(*self.args, **self.kwargs)
        except BaseException as exc:
            self.future.set_exception(exc)
        else:
            self.future.set_result(result)


class BoundedThreadPool(Executor):
    """
    Fixed-bounds thread pool executor.

    Example:
        pool = BoundedThreadPool(core_pool_size=2, maximum_pool_size=4, queue_capacity=10)
        future = pool.submit(client.send, message)
        future.result()
        pool.shutdown()
    """

    def __init__(
        self,
        core_pool_size: int = 5,
        maximum_pool_size: int = 50,
        keep_alive_seconds: float = 10.0,
        queue_capacity: int = 200,
        thread_name_prefix: str = "multimail-worker",
    ):
        """
        Initialize pool. No threads are started until work arrives.

        Args:
            core_pool_size: Threads kept alive while idle
            maximum_pool_size: Upper bound on threads
            keep_alive_seconds: Idle time before a surplus thread exits
            queue_capacity: Maximum number of queued jobs
            thread_name_prefix: Prefix for worker thread names
        """
        if core_pool_size < 0:
            raise ValueError("core_pool_size must be >= 0")
        if maximum_pool_size < 1 or maximum_pool_size < core_pool_size:
            raise ValueError("maximum_pool_size must be >= 1 and >= core_pool_size")
        if queue_capacity < 1:
            raise ValueError("queue_capacity must be >= 1")
        if keep_alive_seconds < 0:
            raise ValueError("keep_alive_seconds must be >= 0")

        self._core = core_pool_size
        self._max = maximum_pool_size
        self._keep_alive = keep_alive_seconds
        self._capacity = queue_capacity
        self._prefix = thread_name_prefix

        self._queue: queue.Queue[_WorkItem | None] = queue.Queue(maxsize=queue_capacity)
        self._lock = threading.Lock()
        self._workers: set[threading.Thread] = set()
        self._counter = itertools.count(1)
        self._shutdown = False
        self._active = 0
        self._completed = 0
        self._largest = 0

    @classmethod
    def from_settings(cls, settings: WorkerPoolSettings) -> BoundedThreadPool:
        return cls(
            core_pool_size=settings.core_pool_size,
            maximum_pool_size=settings.maximum_pool_size,
            keep_alive_seconds=settings.keep_alive_seconds,
            queue_capacity=settings.capacity,
        )

    # ==================== Submission ====================

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        """
        Schedule `fn(*args, **kwargs)`.

        Raises:
            PoolSaturationError: If the pool is at maximum size and the queue is full
            RuntimeError: If the pool has been shut down
        """
        with self._lock:
            if self._shutdown:
                raise RuntimeError("cannot schedule new work after shutdown")

            item = _WorkItem(Future(), fn, args, kwargs)

            if len(self._workers) < self._core:
                self._spawn(item)
                return item.future

            try:
                self._queue.put_nowait(item)
            except queue.Full:
                if len(self._workers) < self._max:
                    self._spawn(item)
                    return item.future
                logger.warning(
                    f"Worker pool saturated: threads={len(self._workers)}/{self._max}, "
                    f"queued={self._queue.qsize()}/{self._capacity}"
                )
                raise PoolSaturationError(self._max, self._capacity) from None

            if not self._workers:
                # core_pool_size == 0: something must drain the queue
                self._spawn(None)
            return item.future

    def _spawn(self, first: _WorkItem | None) -> None:
        thread = threading.Thread(
            target=self._worker,
            args=(first,),
            name=f"{self._prefix}-{next(self._counter)}",
            daemon=True,
        )
        self._workers.add(thread)
        self._largest = max(self._largest, len(self._workers))
        thread.start()
        logger.debug(f"Started worker {thread.name} (pool size {len(self._workers)})")

    # ==================== Worker loop ====================

    def _run(self, item: _WorkItem) -> None:
        with self._lock:
            self._active += 1
        try:
            item.run()
        finally:
            with self._lock:
                self._active -= 1
                self._completed += 1

    def _retire(self, thread: threading.Thread) -> None:
        self._workers.discard(thread)
        logger.debug(f"Worker {thread.name} exiting (pool size {len(self._workers)})")

    def _worker(self, first: _WorkItem | None) -> None:
        me = threading.current_thread()
        item = first
        while True:
            if item is not None:
                self._run(item)
                item = None

            with self._lock:
                surplus = len(self._workers) > self._core

            try:
                if surplus:
                    item = self._queue.get(timeout=self._keep_alive)
                else:
                    item = self._queue.get()
            except queue.Empty:
                with self._lock:
                    if len(self._workers) > self._core or self._shutdown:
                        self._retire(me)
                        # submit() may have queued work after our get() timed out
                        if not self._shutdown and not self._queue.empty() and not self._workers:
                            self._spawn(None)
                        return
                continue

            if item is None:
                with self._lock:
                    self._retire(me)
                return

    # ==================== Lifecycle ====================

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        """
        Stop accepting work and stop the worker threads.

        Queued jobs still run unless `cancel_futures` is True.
        """
        with self._lock:
            first_call = not self._shutdown
            self._shutdown = True
            workers = list(self._workers)

        if cancel_futures:
            while True:
                try:
                    pending = self._queue.get_nowait()
                except queue.Empty:
                    break
                if pending is not None:
                    pending.future.cancel()

        if first_call:
            for _ in workers:
                self._queue.put(None)

        if wait:
            for thread in workers:
                if thread is not threading.current_thread():
                    thread.join()

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def stats(self) -> dict[str, Any]:
        """Snapshot of pool sizing and activity."""
        with self._lock:
            return {
                "pool_size": len(self._workers),
                "core_pool_size": self._core,
                "maximum_pool_size": self._max,
                "largest_pool_size": self._largest,
                "active_count": self._active,
                "queued": self._queue.qsize(),
                "queue_capacity": self._capacity,
                "completed_count": self._completed,
                "keep_alive_seconds": self._keep_alive,
            }

    def __repr__(self) -> str:
        return (
            f"BoundedThreadPool(core={self._core}, max={self._max}, "
            f"capacity={self._capacity}, keep_alive={self._keep_alive}s)"
        )
