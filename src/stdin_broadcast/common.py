from __future__ import annotations

FRAME_SIZE = 100
DEFAULT_SERVICE = "3490"
DEFAULT_BACKLOG = 10


class BroadcastError(Exception):
    """Base class for server errors."""


class ResolutionError(BroadcastError):
    pass


class BindError(BroadcastError):
    pass


class ListenError(BroadcastError):
    pass


class AcceptError(BroadcastError):
    pass


class WriteError(BroadcastError):
    pass


def frame_line(line: bytes | str) -> bytes:
    """Pack one input line into a fixed-size wire frame.

    The first FRAME_SIZE bytes of the line are kept (newline included) and the
    rest of the frame is zero filled. Longer lines are truncated.
    """
    if isinstance(line, str):
        line = line.encode("utf-8")
    return line[:FRAME_SIZE].ljust(FRAME_SIZE, b"\x00")


def unframe(frame: bytes) -> bytes:
    return frame.rstrip(b"\x00")

