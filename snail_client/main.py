"""Command-line entry point: evaluate one fragment on a running interpreter.

Exit codes: 0 success, 1 remote failure, 2 timeout, 3 connection failure.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from snail_client.client import ReplClient
from snail_client.config import ClientConfig
from snail_client.errors import ConnectionFailed, RemoteFailure, SessionClosed
from snail_client.helpers import NO_VALUE

EXIT_OK = 0
EXIT_REMOTE_FAILURE = 1
EXIT_TIMEOUT = 2
EXIT_CONNECTION_FAILED = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snail-client",
        description="Evaluate code on a running interpreter and print the result as JSON.",
    )
    parser.add_argument("code", help="Code to evaluate, or '-' to read it from stdin")
    parser.add_argument("--config", help="TOML config file")
    parser.add_argument("--host", help="Interpreter host")
    parser.add_argument("--port", type=int, help="Interpreter port")
    parser.add_argument("--ns", default=None, help="Namespace path, e.g. Main.Foo")
    parser.add_argument("--timeout", type=float, help="Seconds to wait for the result")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="More logging (repeat for debug)"
    )
    return parser


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _to_json(value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return json.dumps(str(value))


def run(argv: list[str] | None = None) -> int:
    """Run the CLI and return its exit code."""
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    config = ClientConfig.load(
        args.config,
        host=args.host,
        port=args.port,
        sync_timeout=args.timeout,
    )
    code = sys.stdin.read() if args.code == "-" else args.code

    client = ReplClient("cli", config)
    try:
        client.connect()
        result = client.call_sync(code, args.ns, raise_on_failure=True, display_error=False)
        timed_out = result is NO_VALUE and bool(client.registry.pending_ids())
    except (ConnectionFailed, SessionClosed) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CONNECTION_FAILED
    except RemoteFailure as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_REMOTE_FAILURE
    finally:
        client.close()

    if timed_out:
        print(f"error: no response within {config.sync_timeout}s", file=sys.stderr)
        return EXIT_TIMEOUT
    print(_to_json(None if result is NO_VALUE else result))
    return EXIT_OK


def main() -> None:
    """Main entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
