import argparse
import asyncio
import logging
import os
import sys

import colorama

from orchestrator import FRONTEND_DELAY, FRONTEND_PORT, Orchestrator, Relay


def _non_negative(value):
    delay = float(value)
    if delay < 0:
        raise argparse.ArgumentTypeError("delay must be >= 0")
    return delay


def _port(value):
    port = int(value)
    if not 0 < port < 65536:
        raise argparse.ArgumentTypeError("port must be between 1 and 65535")
    return port


def build_parser():
    parser = argparse.ArgumentParser(
        prog="devboot",
        description="Bootstrap env files and run the backend and frontend dev servers together.",
    )
    parser.add_argument("--root", default=None, help="project root (default: current directory)")
    parser.add_argument("--delay", type=_non_negative, default=FRONTEND_DELAY,
                        help="seconds to wait before starting the frontend (default: %(default)s)")
    parser.add_argument("--port", type=_port, default=FRONTEND_PORT,
                        help="frontend dev server port (default: %(default)s)")
    parser.add_argument("--no-color", action="store_true", help="plain output prefixes")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def configure_logging(verbose=False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    color = not args.no_color and sys.stdout.isatty()
    if color:
        colorama.just_fix_windows_console()

    print("🚀 Starting full-stack development session...\n")
    orchestrator = Orchestrator(
        os.path.abspath(args.root or os.getcwd()),
        delay=args.delay,
        port=args.port,
        relay=Relay(color=color),
    )
    return asyncio.run(orchestrator.run())


def cli():
    sys.exit(main())


if __name__ == "__main__":
    cli()
