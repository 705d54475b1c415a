from __future__ import annotations

import abc
import logging
import os
import signal
import subprocess
from enum import Enum
from pathlib import Path
from typing import Dict, List

__all__ = ["SignalKind", "ProcessController", "OsProcessController"]

logger = logging.getLogger(__name__)


class SignalKind(str, Enum):
    GRACEFUL = "graceful"
    FORCE = "force"


_SIGNALS = {
    SignalKind.GRACEFUL: signal.SIGTERM,
    SignalKind.FORCE: signal.SIGKILL,
}


class ProcessController(abc.ABC):
    """OS capabilities needed to supervise a detached process.

    Swapping in a fake implementation lets the stop state machine run in
    tests without spawning anything.
    """

    @abc.abstractmethod
    def spawn(
        self,
        command: List[str],
        working_directory: Path,
        log_file: Path,
        environment: Dict[str, str] | None = None,
    ) -> int:
        """Start *command* detached and return its pid."""
        ...

    @abc.abstractmethod
    def is_alive(self, pid: int) -> bool:
        ...

    @abc.abstractmethod
    def send_signal(self, pid: int, kind: SignalKind) -> None:
        """Deliver *kind* to *pid*. Raises ``ProcessLookupError`` if it is gone."""
        ...

    @abc.abstractmethod
    def find(self, pattern: str) -> List[int]:
        """Return pids whose full command line matches *pattern*."""
        ...


class OsProcessController(ProcessController):
    """Controller backed by ``subprocess`` and POSIX signals."""

    def __init__(self) -> None:
        # Children spawned by this controller. Polling them reaps exited
        # children, which ``os.kill(pid, 0)`` would still report as alive.
        self._children: dict[int, subprocess.Popen] = {}

    def spawn(
        self,
        command: List[str],
        working_directory: Path,
        log_file: Path,
        environment: Dict[str, str] | None = None,
    ) -> int:
        if not Path(working_directory).is_dir():
            raise FileNotFoundError(
                f"Working directory '{working_directory}' does not exist."
            )

        log_file.parent.mkdir(parents=True, exist_ok=True)
        with log_file.open("ab") as log_fh:
            proc = subprocess.Popen(  # noqa: S603 - trusted command
                command,
                cwd=str(working_directory),
                env={**os.environ, **(environment or {})},
                stdin=subprocess.DEVNULL,
                stdout=log_fh,
                stderr=subprocess.STDOUT,
                close_fds=True,
                # New session: the child outlives this CLI invocation and can
                # be signalled as a group.
                preexec_fn=os.setsid,
            )

        self._children[proc.pid] = proc
        logger.debug(
            "event=spawn pid=%s cmd=%s cwd=%s log=%s",
            proc.pid,
            command,
            working_directory,
            log_file,
        )
        return proc.pid

    def is_alive(self, pid: int) -> bool:
        proc = self._children.get(pid)
        if proc is not None:
            return proc.poll() is None

        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists but belongs to someone else.
            return True
        return True

    def send_signal(self, pid: int, kind: SignalKind) -> None:
        sig = _SIGNALS[kind]
        pgid = os.getpgid(pid)
        # Group leaders (our own spawns) take their children down with them.
        if pgid == pid:
            os.killpg(pgid, sig)
        else:
            os.kill(pid, sig)
        logger.debug("event=signal pid=%s signal=%s", pid, sig.name)

    def find(self, pattern: str) -> List[int]:
        try:
            res = subprocess.run(
                ["pgrep", "-f", pattern],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            logger.warning("pgrep not available; cannot search for %r", pattern)
            return []

        own = {os.getpid(), os.getppid()}
        pids = []
        for token in res.stdout.split():
            try:
                pid = int(token)
            except ValueError:
                continue
            if pid not in own:
                pids.append(pid)
        return pids
