from __future__ import annotations

from threading import Lock
from typing import Generic, TypeVar

W = TypeVar("W")


class WorkerRegistry(Generic[W]):
    """Live connection workers, shared by the accept loop, reaper and broadcaster."""

    def __init__(self) -> None:
        self.lock = Lock()
        self._workers: dict[int, W] = {}  # id(worker) -> worker

    def add(self, worker: W) -> None:
        with self.lock:
            self._workers[id(worker)] = worker

    def remove(self, worker: W) -> bool:
        """Drop a worker; returns False when it was not registered."""
        with self.lock:
            return self._workers.pop(id(worker), None) is not None

    def snapshot(self) -> list[W]:
        with self.lock:
            return list(self._workers.values())

    def __contains__(self, worker: object) -> bool:
        with self.lock:
            return self._workers.get(id(worker)) is worker

    def __len__(self) -> int:
        with self.lock:
            return len(self._workers)
