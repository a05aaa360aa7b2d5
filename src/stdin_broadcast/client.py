from __future__ import annotations

import socket
from dataclasses import dataclass
from typing import Iterator

from stdin_broadcast.common import FRAME_SIZE


@dataclass(frozen=True)
class TcpTarget:
    host: str
    port: int


def recv_frame(sock: socket.socket) -> bytes | None:
    """Read exactly one frame, or None once the server has closed the connection."""
    buf = bytearray()
    while len(buf) < FRAME_SIZE:
        chunk = sock.recv(FRAME_SIZE - len(buf))
        if not chunk:
            return None
        buf += chunk
    return bytes(buf)


def receive_frames(target: TcpTarget, timeout: float | None = None) -> Iterator[bytes]:
    """Connect to a broadcast server and yield every frame it sends."""
    with socket.create_connection((target.host, target.port), timeout=5) as s:
        s.settimeout(timeout)
        while True:
            frame = recv_frame(s)
            if frame is None:
                return
            yield frame