"""Bounded task queue drained by a pool of worker threads.

Confirmation watchers are scheduled here instead of being fired off as
loose threads: the queue bounds how much work may pile up (callers get
``queue.Full`` when it stays full), and ``shutdown`` stops intake and
lets the workers drain what is already queued.

Jobs run in a copy of the submitter's ``contextvars`` context so log
records keep the originating request id.
"""

import contextvars
import logging
import queue
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger("orders.workers")

_STOP = object()


class WorkerPool:
    """Fixed set of daemon threads consuming a bounded FIFO queue.

    The threads are started lazily on the first ``submit`` so the pool can
    be created in a process that forks afterwards (gunicorn preload).

    Args:
        name: Prefix for thread names and log records.
        workers: Number of worker threads.
        maxsize: Queue capacity; 0 means unbounded.
        after_job: Optional callable run in the worker thread after every
            job, e.g. to close per-thread database connections.
    """

    def __init__(
        self,
        name: str,
        workers: int,
        maxsize: int = 0,
        after_job: Optional[Callable[[], None]] = None,
    ):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.name = name
        self.workers = workers
        self.after_job = after_job
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._closed = False
        self._active = 0

    @property
    def running(self) -> bool:
        with self._lock:
            return bool(self._threads) and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def queued(self) -> int:
        return self._queue.qsize()

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    def _start(self) -> None:
        # caller holds self._lock
        for i in range(self.workers):
            t = threading.Thread(target=self._loop, name=f"{self.name}-{i}", daemon=True)
            t.start()
            self._threads.append(t)

    def submit(self, fn: Callable[..., Any], *args: Any, timeout: Optional[float] = None) -> None:
        """Queue ``fn(*args)`` for execution on a worker thread.

        Blocks up to ``timeout`` seconds while the queue is full.

        Raises:
            RuntimeError: ``POOL_CLOSED`` after ``shutdown`` was called.
            queue.Full: When no slot frees up within ``timeout``.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("POOL_CLOSED")
            if not self._threads:
                self._start()
        ctx = contextvars.copy_context()
        self._queue.put((ctx, fn, args), block=True, timeout=timeout)

    def _loop(self) -> None:
        while True:
            job = self._queue.get()
            if job is _STOP:
                self._queue.task_done()
                return
            ctx, fn, args = job
            with self._lock:
                self._active += 1
            try:
                ctx.run(fn, *args)
            except Exception:
                logger.exception("job failed", extra={"pool": self.name})
            finally:
                with self._lock:
                    self._active -= 1
                if self.after_job is not None:
                    try:
                        self.after_job()
                    except Exception:
                        logger.exception("after_job hook failed", extra={"pool": self.name})
                self._queue.task_done()

    def join(self) -> None:
        """Block until every queued job has been processed."""
        self._queue.join()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> bool:
        """Stop accepting work and let the workers drain the queue.

        Stop markers are queued behind the pending jobs, so everything that
        was submitted before the call still runs.

        Args:
            wait: Join the worker threads before returning.
            timeout: Upper bound in seconds for the whole join.

        Returns:
            bool: True when every worker exited in time (or ``wait`` is
            False), False when some were still busy at the deadline.
        """
        with self._lock:
            already_closed = self._closed
            self._closed = True
            threads = list(self._threads)
        if not threads:
            return True
        if not already_closed:
            for _ in threads:
                # blocking put: stop markers must not be dropped
                self._queue.put(_STOP)
        logger.info(
            "pool shutting down",
            extra={"pool": self.name, "queued": self.queued, "wait": wait},
        )
        if not wait:
            return True

        deadline = None if timeout is None else time.monotonic() + timeout
        for t in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            t.join(remaining)
        return not any(t.is_alive() for t in threads)
