from __future__ import annotations

import socket
from dataclasses import dataclass
from typing import Iterator

from stdin_broadcast.common import ResolutionError


@dataclass(frozen=True)
class BindAddress:
    family: socket.AddressFamily
    address: str
    port: int
    socktype: int = socket.SOCK_STREAM
    proto: int = 0
    sockaddr: tuple = ()

    @property
    def family_name(self) -> str:
        return "IPv6" if self.family == socket.AF_INET6 else "IPv4"

    def __str__(self) -> str:
        if self.family == socket.AF_INET6:
            return f"[{self.address}]:{self.port}"
        return f"{self.address}:{self.port}"


def resolve(service: str | int, host: str | None = None) -> Iterator[BindAddress]:
    """Resolve a service name or port into candidate bind addresses.

    With no host the resolver returns the wildcard addresses of every
    configured family, in the order the system resolver prefers.
    """
    try:
        infos = socket.getaddrinfo(
            host,
            str(service),
            socket.AF_UNSPEC,
            socket.SOCK_STREAM,
            0,
            socket.AI_PASSIVE,
        )
    except socket.gaierror as e:
        raise ResolutionError(f"getaddrinfo: {e}") from e

    candidates = [
        (family, socktype, proto, sockaddr)
        for family, socktype, proto, _canon, sockaddr in infos
        if family in (socket.AF_INET, socket.AF_INET6)
    ]
    if not candidates:
        raise ResolutionError(f"getaddrinfo: no addresses for service {service!r}")

    return (
        BindAddress(family, sockaddr[0], sockaddr[1], socktype, proto, sockaddr)
        for family, socktype, proto, sockaddr in candidates
    )
