from __future__ import annotations

import logging
import os
import socket

import openziti
from openziti import zitilib

from stdin_broadcast.common import DEFAULT_BACKLOG, AcceptError, BindError, ListenError
from stdin_broadcast.listener import ListenerState, PeerConnection

logger = logging.getLogger(__name__)


def load_context(identity_path: str) -> openziti.ZitiContext:
    ctx, err = openziti.load(identity_path)
    if err != 0:
        raise ListenError(
            f"Failed to load Ziti identity from {identity_path!r} (err={err}). "
            "Ensure the identity JSON exists and is readable."
        )
    return ctx


class ZitiListener:
    """Accepts peers on a Ziti service name instead of an IP:port.

    There is no public listener; only identities authorized for the service
    can connect. Accepted peers are handed out as ordinary sockets, so the
    accept loop and workers are the same as for plain TCP.
    """

    def __init__(self, service: str) -> None:
        self.service = service
        self.state = ListenerState.UNBOUND
        self._fd: int | None = None

    @classmethod
    def open(cls, identity_path: str, service: str, backlog: int = DEFAULT_BACKLOG) -> "ZitiListener":
        ctx = load_context(identity_path)
        listener = cls(service)
        listener.bind(ctx)
        listener.listen(backlog)
        return listener

    def bind(self, ctx: openziti.ZitiContext) -> None:
        if self.state is not ListenerState.UNBOUND:
            raise BindError(f"cannot bind a listener that is {self.state.value}")
        try:
            fd = zitilib.ziti_socket(socket.SOCK_STREAM)
            zitilib.bind(fd, ctx._ctx, service=self.service)
        except Exception as e:
            self.state = ListenerState.CLOSED
            raise BindError(f"ziti bind {self.service!r}: {e}") from e
        self._fd = fd
        self.state = ListenerState.BOUND

    def listen(self, backlog: int = DEFAULT_BACKLOG) -> None:
        if self.state is not ListenerState.BOUND or self._fd is None:
            raise ListenError(f"cannot listen on a listener that is {self.state.value}")
        try:
            zitilib.listen(self._fd, backlog)
        except Exception as e:
            self.close()
            raise ListenError(f"ziti listen {self.service!r}: {e}") from e
        self.state = ListenerState.LISTENING
        logger.info("hosting service %r (no public TCP listener)", self.service)

    def accept(self) -> PeerConnection:
        if self.state is not ListenerState.LISTENING or self._fd is None:
            raise AcceptError(f"cannot accept on a listener that is {self.state.value}")
        try:
            client_fd, peer = zitilib.accept(self._fd)
        except Exception as e:
            raise AcceptError(f"ziti accept: {e}") from e
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM, 0, client_fd)
        return PeerConnection(f"ziti:{peer}", sock)

    def close(self) -> None:
        if self.state is ListenerState.CLOSED:
            return
        self.state = ListenerState.CLOSED
        fd, self._fd = self._fd, None
        if fd is not None:
            try:
                os.close(fd)
            except OSError as e:
                logger.debug("closing ziti listener: %s", e)
