from __future__ import annotations

import logging
from typing import IO

from stdin_broadcast.common import frame_line
from stdin_broadcast.registry import WorkerRegistry

logger = logging.getLogger(__name__)


class InputBroadcaster:
    """Fans every operator input line out to the live workers."""

    def __init__(self, registry: WorkerRegistry, source: IO) -> None:
        self.registry = registry
        self.source = source
        self.lines = 0

    def broadcast(self, line: bytes | str) -> int:
        """Send one framed line to each worker registered right now.

        Returns how many workers accepted the frame.
        """
        frame = frame_line(line)
        delivered = 0
        for worker in self.registry.snapshot():
            try:
                if worker.deliver(frame):
                    delivered += 1
            except Exception:
                logger.exception("delivery to %s failed", getattr(worker, "name", worker))
        self.lines += 1
        logger.debug("broadcast %d bytes to %d workers", len(frame), delivered)
        return delivered

    def run(self) -> int:
        """Broadcast lines from the source until it is exhausted."""
        while True:
            line = self.source.readline()
            if not line:
                break
            self.broadcast(line)
        logger.info("input closed after %d lines", self.lines)
        return self.lines
