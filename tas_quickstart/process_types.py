from __future__ import annotations

"""Shared dataclasses used by *tas_quickstart* components.

Having these types in a dedicated module avoids circular imports between
``process_manager`` and ``commands``.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List

__all__ = [
    "ManagedProcess",
    "ProcessStatus",
    "StatusResult",
    "StartError",
    "StartProcessResult",
    "StopOutcome",
    "StopError",
    "StopProcessResult",
    "LifecycleTiming",
    "MatchedProcesses",
]


@dataclass
class ManagedProcess:
    """Handle for the single supervised service.

    The pid file only records that a start was attempted. Whether the process
    is alive is always checked against the OS.
    """

    command: List[str]
    working_directory: Path
    log_file: Path
    pid_file: Path
    environment: Dict[str, str] | None = None


class ProcessStatus(str, Enum):
    NOT_RUNNING = "not_running"
    RUNNING = "running"
    STALE_FILE = "stale_file"


@dataclass
class StatusResult:
    status: ProcessStatus
    pid: int | None = None


class StartError(str, Enum):
    ALREADY_RUNNING = "already_running"
    CRASHED_IMMEDIATELY = "crashed_immediately"
    SPAWN_FAILED = "spawn_failed"


@dataclass
class StartProcessResult:
    """Result of a start call.

    On success only ``pid`` is set. ``ALREADY_RUNNING`` reports the pid of the
    live process; ``CRASHED_IMMEDIATELY`` reports the pid that died.
    """

    pid: int | None = None
    error: StartError | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class StopOutcome(str, Enum):
    STOPPED = "stopped"
    FORCE_KILLED = "force_killed"
    NOT_RUNNING = "not_running"


class StopError(str, Enum):
    UNRESPONSIVE = "unresponsive"
    # The pid belongs to a process we may not signal (another user).
    NOT_PERMITTED = "not_permitted"


@dataclass
class StopProcessResult:
    """Result of a stop call.

    * ``outcome`` is ``None`` whenever ``error`` is set: the process survived
      SIGKILL (``UNRESPONSIVE``) or could not be signalled at all
      (``NOT_PERMITTED``). The pid file is left in place in both cases.
    * ``signals_sent`` counts the signals delivered during this call.
    """

    outcome: StopOutcome | None = None
    pid: int | None = None
    error: StopError | None = None
    signals_sent: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class LifecycleTiming:
    """Bounded-retry parameters (seconds) for start confirmation and stop."""

    start_confirm_delay: float = 3.0
    grace_attempts: int = 5
    poll_interval: float = 1.0
    kill_wait: float = 1.0

    @property
    def grace_period(self) -> float:
        return self.grace_attempts * self.poll_interval


@dataclass
class MatchedProcesses:
    """Processes found by the pid-file-less fallback search."""

    pattern: str
    pids: List[int] = field(default_factory=list)
