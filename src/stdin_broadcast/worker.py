from __future__ import annotations

import logging
import queue
import socket
import threading
from typing import Callable

from stdin_broadcast.common import WriteError
from stdin_broadcast.listener import PeerConnection

logger = logging.getLogger(__name__)

_STOP = object()


class ConnectionWorker(threading.Thread):
    """Relays broadcast frames to one peer.

    The worker is the only owner of the peer socket. Frames arrive through
    `deliver` and are written in order. A peer watcher thread reads from the
    socket so a disconnect ends the worker without waiting for the next write.
    Whatever happens inside `run`, the socket is closed and `on_exit` is called
    with the worker.
    """

    def __init__(
        self,
        peer: PeerConnection,
        on_exit: Callable[["ConnectionWorker"], None] | None = None,
        write_timeout: float | None = None,
    ) -> None:
        super().__init__(name=f"worker-{peer.address}", daemon=True)
        self.peer = peer
        self.on_exit = on_exit
        self.write_timeout = write_timeout
        self.done = threading.Event()
        self.frames_sent = 0
        self._inbox: queue.Queue = queue.Queue()
        self._stopping = threading.Event()

    def deliver(self, frame: bytes) -> bool:
        """Queue a frame for the peer; dropped once the worker is stopping."""
        if self._stopping.is_set():
            return False
        self._inbox.put(frame)
        return True

    def stop(self) -> None:
        if not self._stopping.is_set():
            self._stopping.set()
            self._inbox.put(_STOP)

    def run(self) -> None:
        sock = self.peer.sock
        try:
            if self.write_timeout is not None:
                sock.settimeout(self.write_timeout)
            threading.Thread(
                target=self._watch_peer, name=f"{self.name}-watch", daemon=True
            ).start()
            self._relay(sock)
        except WriteError as e:
            logger.info("worker %s: %s", self.peer.address, e)
        except Exception:
            logger.exception("worker %s crashed", self.peer.address)
        finally:
            self._stopping.set()
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()
            logger.info("worker %s: closed after %d frames", self.peer.address, self.frames_sent)
            try:
                if self.on_exit is not None:
                    self.on_exit(self)
            finally:
                self.done.set()

    def _relay(self, sock: socket.socket) -> None:
        while True:
            frame = self._inbox.get()
            if frame is _STOP:
                return
            try:
                sock.sendall(frame)
            except socket.timeout as e:
                raise WriteError(f"send timed out after {self.write_timeout}s") from e
            except OSError as e:
                raise WriteError(f"send: {e}") from e
            self.frames_sent += 1

    def _watch_peer(self) -> None:
        sock = self.peer.sock
        while not self._stopping.is_set():
            try:
                data = sock.recv(4096)
            except socket.timeout:
                continue
            except OSError:
                break
            if not data:
                break
        if not self._stopping.is_set():
            logger.info("worker %s: peer disconnected", self.peer.address)
        self.stop()
