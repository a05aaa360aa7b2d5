import socket
import threading
import time

import pytest

from stdin_broadcast.server import BroadcastServer, ServerConfig, open_tcp_listener


def wait_for(predicate, timeout=5.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class FakeWorker:
    """Stands in for a ConnectionWorker where no socket is needed."""

    def __init__(self, name="fake"):
        self.name = name
        self.frames = []
        self.joined = threading.Event()

    def deliver(self, frame):
        self.frames.append(frame)
        return True

    def join(self, timeout=None):
        self.joined.set()


@pytest.fixture
def loopback_server():
    config = ServerConfig(host="127.0.0.1", port="0", accept_backoff=0.0)
    server = BroadcastServer(open_tcp_listener(config), config)
    server.start()
    yield server
    server.shutdown()


@pytest.fixture
def connect(loopback_server):
    opened = []

    def _connect():
        host, port = loopback_server.listener.sockname()[:2]
        s = socket.create_connection((host, port), timeout=5)
        opened.append(s)
        return s

    yield _connect
    for s in opened:
        s.close()
