from __future__ import annotations

import subprocess
import sys
import time
from pathlib import Path
from typing import Dict, List

from tas_quickstart.process_controller import (
    OsProcessController,
    ProcessController,
    SignalKind,
)
from tas_quickstart.process_manager import ProcessManager, Registry
from tas_quickstart.process_types import LifecycleTiming, ManagedProcess

__all__ = [
    "FakeClock",
    "FakeController",
    "SpyController",
    "make_manager",
    "make_process",
    "run_cli",
    "wait_for_text",
]

PROJECT_ROOT = Path(__file__).resolve().parents[1]


class FakeClock:
    """Stand-in for ``time.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.sleeps: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.sleeps)


class FakeController(ProcessController):
    """In-memory process table.

    * ``graceful_exit_after``: liveness checks a process survives after
      SIGTERM before it is reported dead (``None``: ignores SIGTERM).
    * ``survives_kill``: SIGKILL has no effect.
    * ``crash_on_spawn``: spawned processes are dead by the first check.
    """

    def __init__(
        self,
        graceful_exit_after: int | None = 0,
        survives_kill: bool = False,
        crash_on_spawn: bool = False,
        spawn_error: Exception | None = None,
    ) -> None:
        self.graceful_exit_after = graceful_exit_after
        self.survives_kill = survives_kill
        self.crash_on_spawn = crash_on_spawn
        self.spawn_error = spawn_error
        self.alive: set[int] = set()
        self.spawned: List[List[str]] = []
        self.signals: List[tuple[int, SignalKind]] = []
        self.checks: List[int] = []
        self.matches: List[int] = []
        # Live pids owned by someone else: signalling them is refused.
        self.foreign: set[int] = set()
        self._dying: Dict[int, int] = {}
        self._next_pid = 4242

    def add_live(self, pid: int) -> None:
        self.alive.add(pid)

    def spawn(self, command, working_directory, log_file, environment=None) -> int:
        if self.spawn_error is not None:
            raise self.spawn_error
        pid = self._next_pid
        self._next_pid += 1
        self.spawned.append(list(command))
        if not self.crash_on_spawn:
            self.alive.add(pid)
        return pid

    def is_alive(self, pid: int) -> bool:
        self.checks.append(pid)
        if pid in self._dying:
            if self._dying[pid] <= 0:
                self.alive.discard(pid)
                del self._dying[pid]
            else:
                self._dying[pid] -= 1
        return pid in self.alive

    def send_signal(self, pid: int, kind: SignalKind) -> None:
        if pid not in self.alive:
            raise ProcessLookupError(pid)
        if pid in self.foreign:
            raise PermissionError(1, "Operation not permitted")
        self.signals.append((pid, kind))
        if kind == SignalKind.GRACEFUL and self.graceful_exit_after is not None:
            self._dying[pid] = self.graceful_exit_after
        if kind == SignalKind.FORCE and not self.survives_kill:
            self.alive.discard(pid)
            self._dying.pop(pid, None)

    def find(self, pattern: str) -> List[int]:
        return list(self.matches)


class SpyController(OsProcessController):
    """Real controller that records every signal it delivers."""

    def __init__(self) -> None:
        super().__init__()
        self.signals: List[tuple[int, SignalKind]] = []

    def send_signal(self, pid: int, kind: SignalKind) -> None:
        super().send_signal(pid, kind)
        self.signals.append((pid, kind))


def make_manager(controller: ProcessController, clock=None, **timing) -> ProcessManager:
    registry = Registry(controller=lambda: controller)
    if clock is not None:
        registry.sleep = clock
    return ProcessManager(registry=registry, timing=LifecycleTiming(**timing))


def make_process(tmp_path: Path, command: List[str] | None = None) -> ManagedProcess:
    return ManagedProcess(
        command=command or ["tas-server"],
        working_directory=tmp_path,
        log_file=tmp_path / "tas.log",
        pid_file=tmp_path / ".tas.pid",
    )


def wait_for_text(path: Path, text: str, timeout: float = 10.0) -> None:
    """Block until *text* shows up in *path*."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if path.exists() and text in path.read_text(errors="replace"):
            return
        time.sleep(0.05)
    raise AssertionError(f"{text!r} did not appear in {path} within {timeout}s")


def run_cli(*args: str, cwd: Path | None = None, env: Dict[str, str] | None = None):
    """Invoke the CLI in a subprocess and capture output."""
    cmd = [sys.executable, "-m", "tas_quickstart", *args]
    return subprocess.run(
        cmd,
        text=True,
        capture_output=True,
        check=False,
        cwd=str(cwd or PROJECT_ROOT),
        env=env,
    )
