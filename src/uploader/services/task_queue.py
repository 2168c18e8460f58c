from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any

from uploader.errors import QueueClosedError

logger = logging.getLogger(__name__)

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 10


@dataclass(frozen=True)
class QueueStats:
    queued: int
    running: int
    concurrency: int
    paused: bool
    accepting: bool


@dataclass(frozen=True)
class DrainResult:
    drained: bool
    aborted: int
    still_running: int


@dataclass
class _Job:
    name: str
    fn: Callable[[], Any]
    future: Future


class TaskQueue:
    """Fixed pool of worker threads consuming a FIFO of jobs.

    ``drain_and_stop`` stops intake and waits for the backlog. When the
    timeout elapses, jobs that have not started are cancelled and never run;
    jobs already running are left to finish on their (daemon) worker thread
    and are reported in ``still_running``.
    """

    def __init__(self, concurrency: int = 3, name: str = "uploads") -> None:
        if not MIN_CONCURRENCY <= concurrency <= MAX_CONCURRENCY:
            raise ValueError(
                f"concurrency must be between {MIN_CONCURRENCY} and {MAX_CONCURRENCY}"
            )
        self._concurrency = concurrency
        self._name = name
        self._pending: deque[_Job] = deque()
        self._running = 0
        self._paused = False
        self._accepting = True
        self._cond = threading.Condition()
        self._workers = [
            threading.Thread(target=self._work, name=f"{name}-worker-{index}", daemon=True)
            for index in range(concurrency)
        ]
        for worker in self._workers:
            worker.start()

    def enqueue(self, job: Callable[[], Any], name: str | None = None) -> Future:
        future: Future = Future()
        with self._cond:
            if not self._accepting:
                raise QueueClosedError(f"Queue {self._name} is no longer accepting jobs")
            job_name = name or getattr(job, "__name__", "job")
            self._pending.append(_Job(name=job_name, fn=job, future=future))
            self._cond.notify()
        return future

    def stats(self) -> QueueStats:
        with self._cond:
            return QueueStats(
                queued=len(self._pending),
                running=self._running,
                concurrency=self._concurrency,
                paused=self._paused,
                accepting=self._accepting,
            )

    def pause(self) -> None:
        with self._cond:
            self._paused = True
        logger.info(f"Queue {self._name} paused")

    def resume(self) -> None:
        with self._cond:
            self._paused = False
            self._cond.notify_all()
        logger.info(f"Queue {self._name} resumed")

    def drain_and_stop(self, timeout: float) -> DrainResult:
        deadline = time.monotonic() + timeout
        with self._cond:
            self._accepting = False
            self._paused = False
            self._cond.notify_all()
            while self._pending or self._running:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._cond.wait(remaining)
            drained = not self._pending and not self._running
            aborted = 0
            while self._pending:
                job = self._pending.popleft()
                job.future.cancel()
                aborted += 1
            still_running = self._running
            self._cond.notify_all()
        if drained:
            logger.info(f"Queue {self._name} drained and stopped")
        else:
            logger.warning(
                f"Queue {self._name} drain timed out after {timeout}s: "
                f"{aborted} queued jobs aborted, {still_running} still running"
            )
        return DrainResult(drained=drained, aborted=aborted, still_running=still_running)

    def _work(self) -> None:
        while True:
            with self._cond:
                while self._accepting and (self._paused or not self._pending):
                    self._cond.wait()
                if not self._pending:
                    return
                job = self._pending.popleft()
                if not job.future.set_running_or_notify_cancel():
                    continue
                self._running += 1
            try:
                job.future.set_result(job.fn())
            except Exception as exc:
                logger.exception(f"Job {job.name} failed")
                job.future.set_exception(exc)
            finally:
                with self._cond:
                    self._running -= 1
                    self._cond.notify_all()
