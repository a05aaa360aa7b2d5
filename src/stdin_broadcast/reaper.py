from __future__ import annotations

import logging
import queue
from threading import Lock, Thread, current_thread

from stdin_broadcast.registry import WorkerRegistry

logger = logging.getLogger(__name__)

_SENTINEL = object()


class Reaper:
    """Reclaims finished workers off the accept loop's path.

    Workers report their own exit through `notify`. The reaper thread sleeps
    on that completion queue and, each time it wakes, drains every worker
    that has finished so far. `reap` runs the same drain from any thread.
    """

    def __init__(self, registry: WorkerRegistry, join_timeout: float = 1.0):
        self.registry = registry
        self.join_timeout = join_timeout
        self.reaped = 0
        self._finished: queue.Queue = queue.Queue()
        self._drain_lock = Lock()
        self._thr: Thread | None = None

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._thr = Thread(target=self._loop, name="reaper", daemon=True)
        self._thr.start()

    def stop(self) -> None:
        self._finished.put(_SENTINEL)
        if self._thr is not None:
            self._thr.join(timeout=self.join_timeout)
            self._thr = None
        self.reap()

    def notify(self, worker) -> None:
        self._finished.put(worker)

    def reap(self) -> int:
        """Drain every finished worker without waiting for more."""
        count, stopping = self._drain()
        if stopping and self._thr is not None and current_thread() is not self._thr:
            # hand the sentinel back to the reaper thread
            self._finished.put(_SENTINEL)
        return count

    def _loop(self) -> None:
        logger.debug("reaper started")
        stopping = False
        while not stopping:
            first = self._finished.get()
            _, stopping = self._drain(first)
        logger.debug("reaper stopped")

    def _drain(self, first=None) -> tuple[int, bool]:
        count, stopping = 0, False
        with self._drain_lock:
            item = first if first is not None else self._next()
            while item is not None:
                if item is _SENTINEL:
                    stopping = True
                else:
                    self._reclaim(item)
                    count += 1
                item = self._next()
        return count, stopping

    def _next(self):
        try:
            return self._finished.get_nowait()
        except queue.Empty:
            return None

    def _reclaim(self, worker) -> None:
        self.registry.remove(worker)
        if worker is not current_thread():
            worker.join(timeout=self.join_timeout)
        self.reaped += 1
        logger.info("reaped %s (%d live)", worker.name, len(self.registry))
