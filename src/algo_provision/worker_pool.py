"""Bounded thread pool for provisioning several devices at once."""

import queue
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from algo_provision.logging_config import get_logger


@dataclass
class WorkItem:
    """Work item for the queue."""
    index: int
    address: str
    work_func: Callable
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)


class WorkerThread(threading.Thread):
    """Worker thread that processes items from the queue."""

    def __init__(self, worker_id: int, work_queue: queue.Queue):
        """
        Initialize worker thread.

        Args:
            worker_id: Unique worker identifier
            work_queue: Queue to pull work items from
        """
        super().__init__(daemon=True, name=f"Worker-{worker_id}")
        self.worker_id = worker_id
        self.work_queue = work_queue
        self.logger = get_logger(f"algo_provision.worker.{worker_id}")

    def run(self):
        """Main worker loop; exits on a None poison pill."""
        self.logger.debug(f"Worker {self.worker_id} started")

        while True:
            work_item: Optional[WorkItem] = self.work_queue.get()
            try:
                if work_item is None:
                    break

                self.logger.debug(
                    f"Worker {self.worker_id} processing device #{work_item.index} ({work_item.address})"
                )
                try:
                    work_item.work_func(*work_item.args, **work_item.kwargs)
                except Exception as e:
                    # work_func records its own outcome; anything escaping is a bug
                    self.logger.error(
                        f"Worker {self.worker_id} error processing {work_item.address}: {e}",
                        exc_info=True
                    )
            finally:
                self.work_queue.task_done()

        self.logger.debug(f"Worker {self.worker_id} stopped")


class WorkerPool:
    """Manages a fixed number of worker threads."""

    def __init__(self, num_workers: int):
        """
        Initialize worker pool.

        Args:
            num_workers: Number of worker threads
        """
        self.num_workers = max(1, num_workers)
        self.work_queue: queue.Queue = queue.Queue()
        self.workers: list[WorkerThread] = []
        self.logger = get_logger("algo_provision.worker_pool")
        self._lock = threading.Lock()
        self._running = False

    def start(self):
        """Start all worker threads."""
        with self._lock:
            if self._running:
                self.logger.warning("Worker pool already running")
                return

            self.logger.info(f"Starting worker pool with {self.num_workers} workers")
            for i in range(self.num_workers):
                worker = WorkerThread(i, self.work_queue)
                worker.start()
                self.workers.append(worker)
            self._running = True

    def submit(self, index: int, address: str, work_func: Callable, *args, **kwargs) -> None:
        """Queue work for the pool."""
        if not self._running:
            raise RuntimeError("Cannot submit work: worker pool not running")
        self.work_queue.put(WorkItem(index=index, address=address, work_func=work_func,
                                     args=args, kwargs=kwargs))

    def join(self):
        """Block until every submitted item has been processed."""
        self.work_queue.join()

    def stop(self, timeout: float = 30.0):
        """Stop all worker threads after the queue drains."""
        with self._lock:
            if not self._running:
                return

            for _ in self.workers:
                self.work_queue.put(None)
            for worker in self.workers:
                worker.join(timeout=timeout / len(self.workers))
                if worker.is_alive():
                    self.logger.warning(f"Worker {worker.worker_id} did not stop gracefully")

            self.workers.clear()
            self._running = False
            self.logger.info("Worker pool stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    @property
    def is_running(self) -> bool:
        return self._running
