"""DAPNET Announcer - pages the EMF schedule via DAPNET.

Usage:
    python main.py rubric --rubric emfcamp
    python main.py call --recipient M0ABC --recipient M0XYZ
    # or via entry point:
    dapnet-announcer --dry-run rubric
"""

from __future__ import annotations

import argparse

import structlog
from pydantic import ValidationError

from dapnet_announcer.config import Settings
from dapnet_announcer.dispatcher import run_with_signal_handling

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dapnet-announcer", description="Announces the EMF schedule via DAPNET"
    )
    parser.add_argument("--api-url", help="schedule API to source event data from")
    parser.add_argument(
        "--pre-event-announcement-time",
        type=int,
        help="seconds before an event starts to send its notification",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="log what would be sent instead of sending (the startup page is still sent)",
    )
    parser.add_argument("--observability-address", help="host:port for the metrics endpoint")
    parser.add_argument("--log-level")

    modes = parser.add_subparsers(dest="mode")
    rubric = modes.add_parser("rubric", help="send news to a single rubric")
    rubric.add_argument("--rubric")
    call = modes.add_parser("call", help="send calls to a set of individual recipients")
    call.add_argument(
        "-r", "--recipient", dest="recipients", action="append", metavar="RECIPIENT"
    )
    return parser


def settings_from_args(argv: list[str] | None = None) -> Settings:
    """Load settings from the environment, overridden by command line options."""
    args = vars(build_parser().parse_args(argv))
    overrides = {key: value for key, value in args.items() if value is not None}
    return Settings(**overrides)


def main(argv: list[str] | None = None) -> None:
    """Entry point for the dapnet-announcer."""
    try:
        settings = settings_from_args(argv)
    except ValidationError as e:
        logger.error("invalid_configuration", error=str(e))
        raise SystemExit(1) from e

    run_with_signal_handling(settings)


if __name__ == "__main__":
    main()
