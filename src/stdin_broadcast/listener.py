from __future__ import annotations

import enum
import logging
import socket
from dataclasses import dataclass
from typing import Iterable

from stdin_broadcast.common import DEFAULT_BACKLOG, AcceptError, BindError, ListenError
from stdin_broadcast.resolver import BindAddress

logger = logging.getLogger(__name__)


class ListenerState(enum.Enum):
    UNBOUND = "unbound"
    BOUND = "bound"
    LISTENING = "listening"
    CLOSED = "closed"


@dataclass
class PeerConnection:
    address: str
    sock: socket.socket


def presentation_address(family: int, sockaddr) -> str:
    """Render a peer address as text, IPv4 or IPv6 alike."""
    if family in (socket.AF_INET, socket.AF_INET6):
        return sockaddr[0]
    return str(sockaddr)


class Listener:
    """Owns the listening socket for the accept loop."""

    def __init__(self) -> None:
        self.state = ListenerState.UNBOUND
        self.address: BindAddress | None = None
        self._sock: socket.socket | None = None

    def bind(self, addresses: Iterable[BindAddress]) -> BindAddress:
        if self.state is not ListenerState.UNBOUND:
            raise BindError(f"cannot bind a listener that is {self.state.value}")

        for cand in addresses:
            try:
                sock = socket.socket(cand.family, cand.socktype, cand.proto)
            except OSError as e:
                logger.warning("server: socket (%s): %s", cand, e)
                continue

            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            except OSError as e:
                sock.close()
                self.state = ListenerState.CLOSED
                raise BindError(f"setsockopt: {e}") from e

            try:
                sock.bind(cand.sockaddr or (cand.address, cand.port))
            except OSError as e:
                sock.close()
                logger.warning("server: bind (%s): %s", cand, e)
                continue

            self._sock = sock
            self.address = cand
            self.state = ListenerState.BOUND
            logger.info("server: bound %s address %s", cand.family_name, cand)
            return cand

        self.state = ListenerState.CLOSED
        raise BindError("server: failed to bind")

    def listen(self, backlog: int = DEFAULT_BACKLOG) -> None:
        if self.state is not ListenerState.BOUND or self._sock is None:
            raise ListenError(f"cannot listen on a listener that is {self.state.value}")
        try:
            self._sock.listen(backlog)
        except OSError as e:
            self.close()
            raise ListenError(f"listen: {e}") from e
        self.state = ListenerState.LISTENING

    def accept(self) -> PeerConnection:
        if self.state is not ListenerState.LISTENING or self._sock is None:
            raise AcceptError(f"cannot accept on a listener that is {self.state.value}")
        try:
            conn, addr = self._sock.accept()
        except OSError as e:
            raise AcceptError(f"accept: {e}") from e
        return PeerConnection(presentation_address(conn.family, addr), conn)

    def sockname(self):
        if self._sock is None:
            return None
        return self._sock.getsockname()

    def close(self) -> None:
        if self.state is ListenerState.CLOSED:
            return
        self.state = ListenerState.CLOSED
        sock, self._sock = self._sock, None
        if sock is None:
            return
        # shutdown wakes a thread blocked in accept(); close alone does not on Linux
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()
