from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

CLI_LOGGER_NAME = "tas_quickstart.cli"
RUN_LOG_GLOB = "tas-quickstart.run.*.log"

# Between INFO and WARNING, rendered as ``[SUCCESS]``.
SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

_is_quiet = False


def get_log_path(data_dir: Path, timestamp: str | None = None) -> Path:
    """Run log for *timestamp* (default: now) inside *data_dir*."""
    stamp = timestamp or datetime.now().strftime("%Y%m%d_%H%M%S")
    return data_dir / RUN_LOG_GLOB.replace("*", stamp)


def find_latest_log_path(data_dir: Path) -> Path | None:
    """Newest run log in *data_dir*, or ``None`` if there is none."""
    candidates = sorted(
        data_dir.glob(RUN_LOG_GLOB) if data_dir.is_dir() else [],
        key=lambda p: p.stat().st_mtime,
    )
    return candidates[-1] if candidates else None


def get_is_quiet() -> bool:
    return _is_quiet


class CustomFormatter(logging.Formatter):
    """``[TAG] message`` lines, coloured when writing to a terminal."""

    blue = "\x1b[34;20m"
    green = "\x1b[32;20m"
    yellow = "\x1b[33;1m"
    red = "\x1b[31;20m"
    grey = "\x1b[90;20m"
    reset = "\x1b[0m"

    # Checked top to bottom; first threshold the record reaches wins.
    _TAGS = (
        (logging.ERROR, "ERROR", red),
        (logging.WARNING, "WARNING", yellow),
        (SUCCESS, "SUCCESS", green),
        (logging.INFO, "INFO", blue),
        (logging.NOTSET, "DEBUG", grey),
    )

    def __init__(self, color: bool = True) -> None:
        super().__init__()
        self.color = color

    def format(self, record):
        for threshold, name, color in self._TAGS:
            if record.levelno >= threshold:
                tag = f"[{name}]"
                if self.color:
                    tag = f"{color}{tag}{self.reset}"
                return f"{tag} {record.getMessage()}"
        return record.getMessage()


class _CliOnlyFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.name.startswith(CLI_LOGGER_NAME)


def _console_policy(verbosity: int) -> tuple[int, bool]:
    """Console level and whether only the CLI logger is shown."""
    if verbosity <= -1:
        return logging.WARNING, True
    if verbosity == 0:
        return logging.INFO, True
    if verbosity == 1:
        return logging.INFO, False
    return logging.DEBUG, False


def setup_logging(verbosity: int, data_dir: Path) -> Path:
    """Route this invocation's logging to stdout and a fresh run log.

    The run log under *data_dir* receives every record at DEBUG level; the
    console shows what *verbosity* allows (see ``_console_policy``). Calling
    this again replaces the handlers from the previous call. Returns the run
    log path.
    """
    global _is_quiet

    data_dir.mkdir(parents=True, exist_ok=True)
    log_path = get_log_path(data_dir)
    _is_quiet = verbosity <= -1

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.DEBUG)

    run_log = logging.FileHandler(log_path, encoding="utf-8")
    run_log.setLevel(logging.DEBUG)
    run_log.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")
    )

    level, cli_only = _console_policy(verbosity)
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    if cli_only:
        console.addFilter(_CliOnlyFilter())
    console.setFormatter(CustomFormatter(color=sys.stdout.isatty()))

    root.addHandler(run_log)
    root.addHandler(console)

    # httpx logs every request at INFO.
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return log_path


CLI_LOGGER = logging.getLogger(CLI_LOGGER_NAME)


def log_success(msg: str, *args) -> None:
    CLI_LOGGER.log(SUCCESS, msg, *args)
