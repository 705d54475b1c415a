from __future__ import annotations

import logging
import shutil
import subprocess
import time
from collections.abc import Callable

from .errors import ServiceUnavailable
from .logging_utils import CLI_LOGGER, log_success

__all__ = ["RedisService"]

logger = logging.getLogger(__name__)


class RedisService:
    """Drives a local Redis through ``redis-cli`` / ``redis-server``."""

    def __init__(
        self,
        cli: str = "redis-cli",
        server: str = "redis-server",
        settle_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cli = cli
        self.server = server
        self.settle_delay = settle_delay
        self._sleep = sleep

    def _run(self, argv: list[str]) -> subprocess.CompletedProcess[str] | None:
        try:
            return subprocess.run(argv, capture_output=True, text=True, check=False)
        except OSError as exc:
            logger.debug("event=redis_exec_failed argv=%s error=%s", argv, exc)
            return None

    def ping(self) -> bool:
        res = self._run([self.cli, "ping"])
        return res is not None and res.returncode == 0 and "PONG" in res.stdout

    def ensure_running(self, allow_systemctl: bool = True) -> None:
        """Start Redis if it does not answer a ping.

        Tries ``redis-server --daemonize yes`` first, then systemd. Raises
        :class:`ServiceUnavailable` if Redis still does not answer.
        """
        if self.ping():
            log_success("Redis is already running")
            return

        CLI_LOGGER.info("Redis is not running. Starting Redis...")
        res = self._run([self.server, "--daemonize", "yes"])
        if res is not None and res.returncode == 0:
            self._sleep(self.settle_delay)
            if self.ping():
                log_success("Redis started successfully")
                return

        if allow_systemctl and shutil.which("systemctl"):
            CLI_LOGGER.info("Trying to start Redis via systemctl...")
            res = self._run(["sudo", "systemctl", "start", "redis"])
            if res is not None and res.returncode == 0:
                self._sleep(self.settle_delay)
                if self.ping():
                    log_success("Redis started successfully via systemctl")
                    return

        raise ServiceUnavailable(
            "Failed to start Redis. Please start it manually:",
            hints=[f"{self.server} --daemonize yes", "OR", "sudo systemctl start redis"],
        )

    def shutdown(self) -> bool:
        """Ask Redis to shut down; return True if it no longer answers."""
        self._run([self.cli, "shutdown"])
        self._sleep(1.0)
        stopped = not self.ping()
        logger.debug("event=redis_shutdown stopped=%s", stopped)
        return stopped
