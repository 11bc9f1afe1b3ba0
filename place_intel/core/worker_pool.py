"""
Async Worker Pool for background side effects

Fire-and-forget work (telemetry snapshot writes) is queued here so that the
intelligence build never waits on it. Work for the same key is routed to
the same worker, queues are bounded, and a full queue drops work instead
of applying backpressure to the caller.

Usage:
    pool = AsyncWorkerPool(num_workers=1, queue_size=256, name="telemetry")
    await pool.start()
    pool.submit_nowait(venue_key, sink.write, snapshot)
    await pool.stop()
"""

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class WorkerPoolStats:
    """Statistics for worker pool monitoring"""
    total_submitted: int = 0
    total_processed: int = 0
    total_errors: int = 0
    total_dropped: int = 0
    max_processing_time_ms: float = 0.0
    started_at: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            "total_submitted": self.total_submitted,
            "total_processed": self.total_processed,
            "total_errors": self.total_errors,
            "total_dropped": self.total_dropped,
            "max_processing_time_ms": self.max_processing_time_ms,
            "uptime_seconds": (
                (datetime.now(timezone.utc) - self.started_at).total_seconds()
                if self.started_at else 0
            ),
        }


@dataclass
class WorkItem:
    """Represents a unit of work"""
    key: str
    func: Callable
    args: tuple
    kwargs: dict
    submitted_at: float = field(default_factory=time.monotonic)


class AsyncWorkerPool:
    """
    Bounded async worker pool with key affinity.
    """

    def __init__(self, num_workers: int = 1, queue_size: int = 256, name: str = "background"):
        self.num_workers = num_workers
        self.queue_size = queue_size
        self.name = name

        self.queues: List[asyncio.Queue] = []
        self.workers: List[asyncio.Task] = []
        self.running = False
        self.stats = WorkerPoolStats()

    def _get_worker_index(self, key: str) -> int:
        digest = hashlib.md5(key.encode()).hexdigest()
        return int(digest, 16) % self.num_workers

    async def start(self):
        """Start the worker tasks on the running loop."""
        if self.running:
            return

        self.running = True
        self.stats.started_at = datetime.now(timezone.utc)
        self.queues = [asyncio.Queue(maxsize=self.queue_size) for _ in range(self.num_workers)]
        self.workers = [
            asyncio.create_task(self._worker_loop(i)) for i in range(self.num_workers)
        ]
        logger.info(f"Worker pool '{self.name}' started with {self.num_workers} workers")

    async def stop(self, timeout: float = 5.0):
        """
        Stop the pool, letting queued work drain for up to timeout seconds.
        """
        if not self.running:
            return

        self.running = False
        for queue in self.queues:
            try:
                queue.put_nowait(None)
            except asyncio.QueueFull:
                pass

        try:
            await asyncio.wait_for(
                asyncio.gather(*self.workers, return_exceptions=True),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Worker pool '{self.name}' shutdown timed out, cancelling workers")
            for worker in self.workers:
                worker.cancel()

        logger.info(
            f"Worker pool '{self.name}' stopped. "
            f"Processed: {self.stats.total_processed}, Errors: {self.stats.total_errors}, "
            f"Dropped: {self.stats.total_dropped}"
        )

    def submit_nowait(self, key: str, func: Callable, *args, **kwargs) -> bool:
        """
        Queue work without waiting.

        Returns:
            True if queued, False if the pool is stopped or the queue is full
        """
        if not self.running:
            return False

        self.stats.total_submitted += 1
        queue = self.queues[self._get_worker_index(key)]
        try:
            queue.put_nowait(WorkItem(key=key, func=func, args=args, kwargs=kwargs))
            return True
        except asyncio.QueueFull:
            self.stats.total_dropped += 1
            return False

    async def _worker_loop(self, worker_id: int):
        queue = self.queues[worker_id]

        while True:
            try:
                work = await queue.get()
            except asyncio.CancelledError:
                break

            if work is None:
                break

            start = time.monotonic()
            try:
                result = work.func(*work.args, **work.kwargs)
                if asyncio.iscoroutine(result):
                    await result
                self.stats.total_processed += 1
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.stats.total_errors += 1
                logger.error(
                    f"Worker {worker_id} of '{self.name}' failed on {work.key[:16]}: {e}",
                    exc_info=True,
                )
            finally:
                elapsed_ms = (time.monotonic() - start) * 1000
                self.stats.max_processing_time_ms = max(self.stats.max_processing_time_ms, elapsed_ms)
                queue.task_done()

    async def join(self):
        """Wait until every queued item has been processed."""
        for queue in self.queues:
            await queue.join()

    def get_queue_depths(self) -> List[int]:
        return [q.qsize() for q in self.queues]

    def get_stats(self) -> Dict:
        stats = self.stats.to_dict()
        stats["queue_depths"] = self.get_queue_depths()
        return stats
