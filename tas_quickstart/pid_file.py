"""Filesystem adapter for the pid file."""

from __future__ import annotations

import logging
from pathlib import Path

__all__ = ["PidFile"]

logger = logging.getLogger(__name__)


class PidFile:
    """A plain text file holding a single process id."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> int | None:
        """Return the stored pid, or ``None`` if the file is absent.

        Raises ``ValueError`` if the file holds anything but a positive integer.
        """
        try:
            text = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None

        pid = int(text)
        if pid <= 0:
            raise ValueError(f"Invalid pid {pid} in {self.path}")
        return pid

    def write(self, pid: int) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(f"{pid}\n", encoding="utf-8")
        logger.debug("event=pid_file_written path=%s pid=%s", self.path, pid)

    def remove(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        logger.debug("event=pid_file_removed path=%s", self.path)

    def __repr__(self) -> str:
        return f"PidFile({str(self.path)!r})"
