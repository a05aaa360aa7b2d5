import socket
import threading

from stdin_broadcast.broadcaster import InputBroadcaster
from stdin_broadcast.client import recv_frame
from stdin_broadcast.common import AcceptError, frame_line
from stdin_broadcast.listener import PeerConnection
from stdin_broadcast.server import BroadcastServer, ServerConfig

from conftest import wait_for


def test_two_clients_then_one_leaves(loopback_server, connect):
    registry = loopback_server.registry
    first, second = connect(), connect()
    assert wait_for(lambda: len(registry) == 2)

    bc = InputBroadcaster(registry, None)
    assert bc.broadcast(b"hello\n") == 2
    expected = b"hello\n" + b"\x00" * 94
    assert recv_frame(first) == expected
    assert recv_frame(second) == expected

    first.close()
    assert wait_for(lambda: len(registry) == 1)

    assert bc.broadcast(b"world\n") == 1
    assert recv_frame(second) == frame_line(b"world\n")


def test_n_connections_make_n_workers(loopback_server, connect):
    clients = [connect() for _ in range(5)]
    assert wait_for(lambda: len(loopback_server.registry) == 5)
    assert wait_for(lambda: loopback_server.accepted == 5)
    workers = loopback_server.registry.snapshot()
    assert len({w.ident for w in workers}) == 5

    for c in clients[:3]:
        c.close()
    assert wait_for(lambda: len(loopback_server.registry) == 2)

    InputBroadcaster(loopback_server.registry, None).broadcast(b"still here\n")
    for c in clients[3:]:
        assert recv_frame(c) == frame_line(b"still here\n")


def test_keeps_accepting_after_disconnects(loopback_server, connect):
    for _ in range(3):
        c = connect()
        assert wait_for(lambda: len(loopback_server.registry) == 1)
        c.close()
        assert wait_for(lambda: len(loopback_server.registry) == 0)
    assert wait_for(lambda: loopback_server.accepted == 3)
    assert wait_for(lambda: loopback_server.reaper.reaped == 3)


class FlakyListener:
    """Fails a few accepts, hands out one peer, then blocks until closed."""

    def __init__(self, failures, peer):
        self.failures = failures
        self.peer = peer
        self.closed = threading.Event()

    def accept(self):
        if self.failures:
            self.failures -= 1
            raise AcceptError("accept: interrupted")
        if self.peer is not None:
            peer, self.peer = self.peer, None
            return peer
        self.closed.wait()
        raise AcceptError("accept: listener closed")

    def close(self):
        self.closed.set()


def test_accept_errors_do_not_stop_the_loop():
    ours, theirs = socket.socketpair()
    listener = FlakyListener(3, PeerConnection("flaky-peer", ours))
    server = BroadcastServer(listener, ServerConfig(accept_backoff=0.0))
    server.start()
    try:
        assert wait_for(lambda: server.accepted == 1)
        assert listener.failures == 0
        assert len(server.registry) == 1
    finally:
        server.shutdown()
        theirs.close()
    assert server._thr is not None and not server._thr.is_alive()


def test_shutdown_closes_every_peer(loopback_server, connect):
    clients = [connect(), connect()]
    assert wait_for(lambda: len(loopback_server.registry) == 2)
    loopback_server.shutdown()
    for c in clients:
        c.settimeout(5)
        assert c.recv(1) == b""
    assert len(loopback_server.registry) == 0
    loopback_server.shutdown()
