from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

from stdin_broadcast.common import DEFAULT_BACKLOG, DEFAULT_SERVICE, AcceptError
from stdin_broadcast.listener import Listener
from stdin_broadcast.reaper import Reaper
from stdin_broadcast.registry import WorkerRegistry
from stdin_broadcast.resolver import resolve
from stdin_broadcast.worker import ConnectionWorker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerConfig:
    host: str | None = None
    port: str = DEFAULT_SERVICE
    backlog: int = DEFAULT_BACKLOG
    write_timeout: float | None = None
    accept_backoff: float = 0.05


def open_tcp_listener(config: ServerConfig) -> Listener:
    """Resolve, bind and listen. Startup errors propagate to the caller."""
    listener = Listener()
    listener.bind(resolve(config.port, config.host))
    listener.listen(config.backlog)
    return listener


class BroadcastServer:
    """Accept loop: one isolated worker per accepted connection.

    `listener` is anything with `accept()` returning a PeerConnection and a
    `close()` that wakes a blocked accept.
    """

    def __init__(self, listener, config: ServerConfig | None = None, registry: WorkerRegistry | None = None):
        self.listener = listener
        self.config = config or ServerConfig()
        self.registry = registry if registry is not None else WorkerRegistry()
        self.reaper = Reaper(self.registry)
        self.accepted = 0
        self._closing = threading.Event()
        self._thr: threading.Thread | None = None

    def serve_forever(self) -> None:
        self.reaper.start()
        while not self._closing.is_set():
            try:
                peer = self.listener.accept()
            except AcceptError as e:
                if self._closing.is_set():
                    break
                logger.warning("%s", e)
                time.sleep(self.config.accept_backoff)
                continue

            logger.info("server: got connection from %s", peer.address)
            worker = ConnectionWorker(peer, on_exit=self.reaper.notify, write_timeout=self.config.write_timeout)
            self.registry.add(worker)
            try:
                worker.start()
            except RuntimeError as e:
                logger.error("server: cannot start worker for %s: %s", peer.address, e)
                self.registry.remove(worker)
                peer.sock.close()
                continue
            self.accepted += 1
        logger.debug("accept loop finished")

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._thr = threading.Thread(target=self.serve_forever, name="accept-loop", daemon=True)
        self._thr.start()

    def shutdown(self, timeout: float = 2.0) -> None:
        if self._closing.is_set():
            return
        self._closing.set()
        self.listener.close()
        if self._thr is not None:
            self._thr.join(timeout=timeout)

        workers = self.registry.snapshot()
        for w in workers:
            w.stop()
        deadline = time.monotonic() + timeout
        for w in workers:
            w.done.wait(max(0.0, deadline - time.monotonic()))
        self.reaper.stop()
        logger.info("server: shut down (%d connections served)", self.accepted)
