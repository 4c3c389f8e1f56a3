"""Command line entry point for portsweep."""

import argparse
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import structlog

from portsweep.app import PortsweepApp
from portsweep.config import GRACEFUL_SIGNALS, Config, parse_signal
from portsweep.logs import configure_logging

log = structlog.get_logger()


def get_version() -> str:
    try:
        return version("portsweep")
    except PackageNotFoundError:
        return "dev"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portsweep",
        description="TUI for finding and killing processes listening on TCP ports.",
        epilog=(
            "keys: ↑/k ↓/j move, space select, a select all, enter/d kill, "
            "/ search, r refresh, s system ports, q quit"
        ),
    )
    parser.add_argument(
        "filter",
        nargs="?",
        help="port number or process name to pre-select once ports are listed",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"portsweep {get_version()}",
    )
    parser.add_argument(
        "-a",
        "--all",
        dest="show_system_ports",
        action="store_true",
        default=None,
        help="also show system ports (<1024)",
    )
    parser.add_argument(
        "-i",
        "--interval",
        dest="refresh_interval",
        type=float,
        help="seconds between automatic refreshes (default: 2)",
    )
    parser.add_argument(
        "--signal",
        dest="kill_signal",
        type=parse_signal,
        metavar="{" + ",".join(sorted(GRACEFUL_SIGNALS)) + "}",
        help="signal sent to killed processes (default: TERM)",
    )
    parser.add_argument("--log-file", type=Path, help="write a debug log to this file")
    parser.add_argument("--log-level", help="log level for --log-file (default: WARNING)")
    return parser


def config_from_args(args: argparse.Namespace) -> Config:
    return Config.from_env(
        refresh_interval=args.refresh_interval,
        show_system_ports=args.show_system_ports,
        kill_signal=args.kill_signal,
        initial_filter=args.filter,
        log_file=args.log_file,
        log_level=args.log_level.upper() if args.log_level else None,
    )


def main(argv: list[str] | None = None) -> int:
    """Entry point for portsweep."""
    args = build_parser().parse_args(argv)
    config = config_from_args(args)

    try:
        log_stream = configure_logging(config.log_level, config.log_file)
    except OSError as exc:
        print(f"Error opening log file: {exc}", file=sys.stderr)
        return 1

    log.info("starting", version=get_version(), interval=config.refresh_interval)
    try:
        app = PortsweepApp(config)
        app.run()
    except Exception as exc:
        print(f"Error running portsweep: {exc}", file=sys.stderr)
        return 1
    finally:
        if log_stream is not None:
            log_stream.close()
    return app.return_code or 0
