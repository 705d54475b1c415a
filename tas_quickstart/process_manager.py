from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from tas_quickstart.pid_file import PidFile
from tas_quickstart.process_controller import (
    OsProcessController,
    ProcessController,
    SignalKind,
)
from tas_quickstart.process_types import (
    LifecycleTiming,
    ManagedProcess,
    MatchedProcesses,
    ProcessStatus,
    StartError,
    StartProcessResult,
    StatusResult,
    StopError,
    StopOutcome,
    StopProcessResult,
)

__all__ = ["ProcessManager", "Registry"]

logger = logging.getLogger(__name__)


@dataclass
class Registry:
    """
    Contains the OS-facing dependencies, so swapping in fakes in tests is easy
    """

    controller: Callable[[], ProcessController] = OsProcessController
    sleep: Callable[[float], None] = field(default=time.sleep)


class ProcessManager:  # noqa: D101
    def __init__(
        self,
        registry: Registry | None = None,
        timing: LifecycleTiming | None = None,
    ) -> None:
        registry = registry or Registry()
        self._controller = registry.controller()
        self._sleep = registry.sleep
        self.timing = timing or LifecycleTiming()

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def status(self, process: ManagedProcess) -> StatusResult:  # noqa: D401
        pid_file = PidFile(process.pid_file)
        try:
            pid = pid_file.read()
        except ValueError:
            logger.debug("event=status_unreadable path=%s", pid_file.path)
            return StatusResult(status=ProcessStatus.STALE_FILE)

        if pid is None:
            return StatusResult(status=ProcessStatus.NOT_RUNNING)

        if self._controller.is_alive(pid):
            return StatusResult(status=ProcessStatus.RUNNING, pid=pid)

        return StatusResult(status=ProcessStatus.STALE_FILE, pid=pid)

    # ------------------------------------------------------------------
    # Control helpers
    # ------------------------------------------------------------------

    def start(self, process: ManagedProcess) -> StartProcessResult:  # noqa: D401
        pid_file = PidFile(process.pid_file)

        current = self.status(process)
        if current.status == ProcessStatus.RUNNING:
            logger.debug("event=start_refused pid=%s", current.pid)
            return StartProcessResult(
                pid=current.pid, error=StartError.ALREADY_RUNNING
            )
        if current.status == ProcessStatus.STALE_FILE:
            logger.warning("Stale PID file found (PID %s). Removing...", current.pid)
            pid_file.remove()

        try:
            pid = self._controller.spawn(
                process.command,
                process.working_directory,
                process.log_file,
                process.environment,
            )
        except FileNotFoundError as exc:
            return StartProcessResult(
                error=StartError.SPAWN_FAILED,
                detail=f"Command not found: {exc.filename or exc}",
            )
        except PermissionError as exc:
            return StartProcessResult(
                error=StartError.SPAWN_FAILED,
                detail=f"Permission denied: {exc.filename or exc}",
            )

        pid_file.write(pid)
        logger.info("Process %s started", pid)

        self._sleep(self.timing.start_confirm_delay)
        if not self._controller.is_alive(pid):
            logger.debug("event=start_crashed pid=%s", pid)
            pid_file.remove()
            return StartProcessResult(pid=pid, error=StartError.CRASHED_IMMEDIATELY)

        return StartProcessResult(pid=pid)

    def stop(self, process: ManagedProcess) -> StopProcessResult:  # noqa: D401
        pid_file = PidFile(process.pid_file)

        current = self.status(process)
        if current.status == ProcessStatus.NOT_RUNNING:
            return StopProcessResult(outcome=StopOutcome.NOT_RUNNING)
        if current.status == ProcessStatus.STALE_FILE:
            logger.debug("event=stop_stale pid=%s", current.pid)
            pid_file.remove()
            return StopProcessResult(outcome=StopOutcome.STOPPED, pid=current.pid)

        pid = current.pid
        signals_sent = 0

        # Send SIGTERM first for graceful shutdown
        try:
            self._controller.send_signal(pid, SignalKind.GRACEFUL)
            signals_sent += 1
            logger.debug("Sent SIGTERM to pid=%s", pid)
        except ProcessLookupError:
            # Process already gone
            pass
        except PermissionError:
            return self._not_permitted(pid, signals_sent)

        if self._wait_for_exit(pid):
            pid_file.remove()
            logger.debug("event=stopped pid=%s", pid)
            return StopProcessResult(
                outcome=StopOutcome.STOPPED, pid=pid, signals_sent=signals_sent
            )

        # Escalate to SIGKILL once and re-check once.
        try:
            self._controller.send_signal(pid, SignalKind.FORCE)
            signals_sent += 1
            logger.warning("Escalated to SIGKILL pid=%s", pid)
        except ProcessLookupError:
            pass  # Process vanished between checks.
        except PermissionError:
            return self._not_permitted(pid, signals_sent)

        self._sleep(self.timing.kill_wait)
        if self._controller.is_alive(pid):
            logger.error("event=stop_unresponsive pid=%s", pid)
            return StopProcessResult(
                pid=pid, error=StopError.UNRESPONSIVE, signals_sent=signals_sent
            )

        pid_file.remove()
        logger.debug("event=force_killed pid=%s", pid)
        return StopProcessResult(
            outcome=StopOutcome.FORCE_KILLED, pid=pid, signals_sent=signals_sent
        )

    # ------------------------------------------------------------------
    # Fallback when no pid file exists
    # ------------------------------------------------------------------

    def find_matching(self, pattern: str) -> MatchedProcesses:
        """Search running processes whose command line matches *pattern*.

        Best effort only: a loose pattern can match unrelated processes, so
        callers should confirm before passing the result to
        :py:meth:`signal_matching`.
        """
        pids = self._controller.find(pattern)
        logger.debug("event=find_matching pattern=%r pids=%s", pattern, pids)
        return MatchedProcesses(pattern=pattern, pids=pids)

    def signal_matching(self, matched: MatchedProcesses) -> list[int]:
        """Send one graceful signal to each matched pid; return those signalled."""
        signalled = []
        for pid in matched.pids:
            try:
                self._controller.send_signal(pid, SignalKind.GRACEFUL)
            except ProcessLookupError:
                logger.debug("event=signal_skip pid=%s reason=gone", pid)
                continue
            except PermissionError:
                logger.warning("Permission denied when signalling PID %s", pid)
                continue
            signalled.append(pid)
        return signalled

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _not_permitted(pid: int, signals_sent: int) -> StopProcessResult:
        logger.error("event=stop_not_permitted pid=%s", pid)
        return StopProcessResult(
            pid=pid, error=StopError.NOT_PERMITTED, signals_sent=signals_sent
        )

    def _wait_for_exit(self, pid: int) -> bool:  # noqa: D401
        """Poll liveness once now and once per interval for the grace period."""
        logger.debug(
            "event=wait_for_exit pid=%s grace=%s", pid, self.timing.grace_period
        )
        if not self._controller.is_alive(pid):
            return True
        for _ in range(self.timing.grace_attempts):
            self._sleep(self.timing.poll_interval)
            if not self._controller.is_alive(pid):
                return True
        return False
