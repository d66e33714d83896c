#!/usr/bin/env python3
"""Launch the SWANK server.

Serves one editor connection and exits when it closes.
"""

import argparse
import logging
import sys
from pathlib import Path

from .commands import SwankCommands
from .port_discovery import default_port_file
from .server import DEFAULT_HOST, DEFAULT_PORT, SwankServer


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Start a SWANK server for this Python process"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port to listen on, 0 for an ephemeral port (default: {DEFAULT_PORT})"
    )
    parser.add_argument(
        "--host",
        default=DEFAULT_HOST,
        help=f"Host to bind to (default: {DEFAULT_HOST})"
    )
    parser.add_argument(
        "--port-file",
        nargs="?",
        const=str(default_port_file()),
        default=None,
        help=(
            "Write the bound port number to this file. Without a value the "
            "port goes to ~/.pyswank/port."
        ),
    )
    parser.add_argument(
        "--protocol-version",
        default=None,
        help="Protocol version to report to the client in connection-info.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level for messages on stderr (default: WARNING)",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Do not print the startup banner.",
    )
    return parser.parse_args(argv)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level),
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )


def _print_banner(args, *, out) -> None:
    print("=" * 60, file=out)
    print("pyswank - SWANK server for Python", file=out)
    print("=" * 60, file=out)
    print(f"\nListening on {args.host}:{args.port}", file=out)
    if args.port_file:
        print(f"Port will be written to: {args.port_file}", file=out)
    print("\nConnect from Emacs with M-x slime-connect.", file=out)
    print("The server exits when the connection closes.", file=out)
    print("=" * 60, file=out)


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    _configure_logging(args.log_level)
    if not args.quiet:
        _print_banner(args, out=sys.stderr)

    server = SwankServer(
        SwankCommands(protocol_version=args.protocol_version),
        host=args.host,
        port=args.port,
        port_file=Path(args.port_file).expanduser() if args.port_file else None,
    )
    try:
        server.start()
    except KeyboardInterrupt:
        print("\n✓ Server stopped by user", file=sys.stderr)
        sys.exit(0)
    except OSError as e:
        print(f"\n✗ Error starting server: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
