from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import IO

from stdin_broadcast.broadcaster import InputBroadcaster
from stdin_broadcast.client import TcpTarget, receive_frames
from stdin_broadcast.common import DEFAULT_BACKLOG, DEFAULT_SERVICE, BroadcastError, unframe
from stdin_broadcast.server import BroadcastServer, ServerConfig, open_tcp_listener


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _add_serve(sub: argparse._SubParsersAction) -> None:
    srv = sub.add_parser("serve", help="Accept TCP peers and relay stdin lines to all of them")
    srv.add_argument(
        "--host",
        default=os.getenv("STDIN_BROADCAST_HOST"),
        help="Address to bind (default: wildcard on every address family)",
    )
    srv.add_argument("--port", default=os.getenv("STDIN_BROADCAST_PORT", DEFAULT_SERVICE), help="Port or service name")
    srv.add_argument("--backlog", type=int, default=_env_int("STDIN_BROADCAST_BACKLOG", DEFAULT_BACKLOG))
    srv.add_argument(
        "--write-timeout",
        type=float,
        default=_env_float("STDIN_BROADCAST_WRITE_TIMEOUT", None),
        help="Seconds a send may block before the peer is dropped (default: no limit)",
    )


def _add_ziti(sub: argparse._SubParsersAction) -> None:
    host = sub.add_parser("ziti-host", help="Relay stdin lines to peers of an OpenZiti service")
    host.add_argument("--identity", required=True, help="Path to enrolled identity JSON")
    host.add_argument("--service", required=True, help="Ziti service name (must exist on controller)")
    host.add_argument("--backlog", type=int, default=_env_int("STDIN_BROADCAST_BACKLOG", DEFAULT_BACKLOG))
    host.add_argument("--write-timeout", type=float, default=_env_float("STDIN_BROADCAST_WRITE_TIMEOUT", None))


def _add_client(sub: argparse._SubParsersAction) -> None:
    cli = sub.add_parser("client", help="Connect to a server and print every line it relays")
    cli.add_argument("--host", default="localhost")
    cli.add_argument("--port", type=int, default=int(DEFAULT_SERVICE))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stdin-broadcast",
        description=(
            "Relay lines typed on stdin to every connected TCP peer. "
            "Each line goes out as a fixed 100-byte, zero-padded buffer."
        ),
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level for diagnostics on stderr")
    sub = parser.add_subparsers(dest="cmd", required=True)
    _add_serve(sub)
    _add_ziti(sub)
    _add_client(sub)
    return parser


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def run_server(server: BroadcastServer, source: IO) -> int:
    """Serve peers on a background thread while this thread reads operator input."""
    print("server: waiting for connections...", flush=True)
    server.start()
    try:
        InputBroadcaster(server.registry, source).run()
    except KeyboardInterrupt:
        print()
    finally:
        server.shutdown()
    return 0


def main(argv: list[str] | None = None, stdin: IO | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.log_level)
    source = stdin if stdin is not None else sys.stdin.buffer

    if args.cmd == "serve":
        config = ServerConfig(
            host=args.host,
            port=args.port,
            backlog=args.backlog,
            write_timeout=args.write_timeout,
        )
        try:
            listener = open_tcp_listener(config)
        except BroadcastError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        return run_server(BroadcastServer(listener, config), source)

    if args.cmd == "ziti-host":
        from stdin_broadcast.ziti_host import ZitiListener

        config = ServerConfig(backlog=args.backlog, write_timeout=args.write_timeout)
        try:
            listener = ZitiListener.open(args.identity, args.service, args.backlog)
        except BroadcastError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        return run_server(BroadcastServer(listener, config), source)

    if args.cmd == "client":
        try:
            for frame in receive_frames(TcpTarget(args.host, args.port)):
                print(unframe(frame).decode("utf-8", errors="replace"), end="", flush=True)
        except OSError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        except KeyboardInterrupt:
            pass
        return 0

    print(f"Unknown command: {args.cmd}", file=sys.stderr)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
