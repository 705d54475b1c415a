from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence, Union

from .commands import ICommand, QuickstartContext, get_commands, show_usage
from .layout import DEFAULT_TAS_URL, TasLayout
from .logging_utils import CLI_LOGGER, setup_logging
from .process_manager import ProcessManager
from .process_types import LifecycleTiming

ENV_TAS_DIR = "TAS_DIR"
ENV_TAS_URL = "TAS_URL"
ENV_DATA_DIR = "TAS_QUICKSTART_DATA_DIR"

logger = logging.getLogger(__name__)


def get_default_data_dir() -> Path:
    """Return default data directory, honouring *TAS_QUICKSTART_DATA_DIR*."""

    if os.environ.get(ENV_DATA_DIR):
        return Path(os.environ[ENV_DATA_DIR]).expanduser().resolve()

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "tas-quickstart"
    elif sys.platform.startswith("linux"):
        return (
            Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
            / "tas-quickstart"
        )
    return Path.home() / ".tas-quickstart"


def get_default_tas_dir() -> Path:
    """Return the TAS checkout, honouring *TAS_DIR* (default: cwd)."""

    if os.environ.get(ENV_TAS_DIR):
        return Path(os.environ[ENV_TAS_DIR]).expanduser().resolve()
    return Path.cwd()


def get_default_url() -> str:
    """Return the TAS base URL, honouring *TAS_URL*."""

    return os.environ.get(ENV_TAS_URL) or DEFAULT_TAS_URL


@dataclass
class CommandAction:
    command: ICommand
    context: QuickstartContext

    def run(self) -> int:
        layout = self.context.layout
        if self.command.requires_checkout and not layout.app_entry.is_file():
            CLI_LOGGER.error("app.py not found in %s", layout.tas_dir)
            CLI_LOGGER.info(
                "Please run this from the TAS root directory (where app.py is "
                "located) or pass --tas-dir"
            )
            return 1
        logger.debug("event=command name=%s tas_dir=%s", self.command.name, layout.tas_dir)
        return self.command.run(self.context)


@dataclass
class UnknownCommandAction:
    token: str
    layout: TasLayout

    def run(self) -> int:
        CLI_LOGGER.error("Unknown command: %s", self.token)
        show_usage(self.layout)
        return 1


Action = Union[CommandAction, UnknownCommandAction]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tas-quickstart",
        description="Install, start, test and stop a TEE Attestation Service checkout",
        # -h/--help show the same usage text as the help command.
        add_help=False,
    )
    parser.add_argument("-h", "--help", action="store_true", help=argparse.SUPPRESS)
    parser.add_argument(
        "command",
        nargs="?",
        default="help",
        help="demo | install | start | test | exit (stop) | uninstall | help",
    )
    parser.add_argument(
        "--tas-dir",
        type=Path,
        default=get_default_tas_dir(),
        help=f"TAS checkout containing app.py (env: {ENV_TAS_DIR})",
    )
    parser.add_argument(
        "--url",
        default=get_default_url(),
        help=f"Base URL of the running TAS (env: {ENV_TAS_URL})",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=get_default_data_dir(),
        help=f"Where run logs are written (env: {ENV_DATA_DIR})",
    )
    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Answer yes to every confirmation prompt",
    )
    parser.add_argument(
        "--grace-attempts",
        type=int,
        default=LifecycleTiming.grace_attempts,
        help="Liveness checks after SIGTERM before escalating to SIGKILL",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=LifecycleTiming.poll_interval,
        help="Seconds between liveness checks while stopping",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity; you can use -vv for more",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Only show warnings and errors",
    )
    return parser


def parse_cli(argv: Sequence[str]) -> tuple[Action, Path]:
    """Parse *argv* and configure logging; return the action and the run log path."""
    parser = build_parser()
    args = parser.parse_args(list(argv))

    log_path = setup_logging(args.verbose - args.quiet, args.data_dir)
    logger.debug("Verbose log written to %s", log_path)

    layout = TasLayout(tas_dir=args.tas_dir.expanduser().resolve())

    commands = {}
    for command in get_commands():
        commands[command.name] = command
        for alias in command.aliases:
            commands[alias] = command

    command = commands.get("help" if args.help else args.command)
    if command is None:
        return UnknownCommandAction(token=args.command, layout=layout), log_path

    timing = LifecycleTiming(
        grace_attempts=args.grace_attempts,
        poll_interval=args.poll_interval,
    )
    context = QuickstartContext(
        layout=layout,
        base_url=args.url.rstrip("/"),
        manager=ProcessManager(timing=timing),
        assume_yes=args.yes,
    )
    return CommandAction(command=command, context=context), log_path


def cli(argv: Sequence[str] | None = None) -> int:
    action, log_path = parse_cli(sys.argv[1:] if argv is None else argv)
    try:
        code = action.run()
    except KeyboardInterrupt:
        CLI_LOGGER.warning("Interrupted")
        code = 1
    if code != 0:
        CLI_LOGGER.info("Full log of this run: %s", log_path)
    return code
