"""Command line entry point for proctop."""

from __future__ import annotations

import argparse
from pathlib import Path

from proctop import __version__
from proctop.config import ConfigError, load_settings
from proctop.log import configure, logger


def _positive_float(value: str) -> float:
    """Validate a strictly positive number of seconds."""
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser; every option defaults to None so config files can fill it."""
    parser = argparse.ArgumentParser(
        prog="proctop",
        description="proctop -- live, sortable process table with CPU and memory usage",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config", type=Path, default=None,
        help="JSON settings file (default: ~/.proctop/config.json if present)",
    )
    parser.add_argument(
        "--cadence", dest="cadence_seconds", type=_positive_float, default=None,
        help="Seconds between samples (default: 1.0)",
    )
    parser.add_argument(
        "--max-name-length", dest="max_name_length", type=int, default=None,
        help="Truncate process names longer than this (default: 20)",
    )
    parser.add_argument(
        "--fast-path-delay-ms", dest="fast_path_delay_ms", type=int, default=None,
        help="Refresh delay after a key command, in ms (default: 200)",
    )
    parser.add_argument(
        "--log-level", dest="log_level", default=None,
        help="Log level for ~/.proctop/proctop.log (default: INFO)",
    )
    parser.add_argument(
        "--log-file", dest="log_file", default=None,
        help="Log file location (default: ~/.proctop/proctop.log)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for proctop application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(
            args.config,
            cadence_seconds=args.cadence_seconds,
            max_name_length=args.max_name_length,
            fast_path_delay_ms=args.fast_path_delay_ms,
            log_level=args.log_level,
            log_file=args.log_file,
        )
    except ConfigError as exc:
        parser.error(str(exc))

    configure(settings.log_level, Path(settings.log_file) if settings.log_file else None)
    logger.info("Starting proctop %s with %s", __version__, settings)

    # Textual is imported late so --help and config errors stay fast
    from proctop.app import ProctopApp

    ProctopApp(settings=settings).run()


if __name__ == "__main__":
    main()
