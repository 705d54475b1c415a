"""Checks for the external tools the install pipeline shells out to."""

from __future__ import annotations

import logging
import platform
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .errors import MissingDependency
from .logging_utils import CLI_LOGGER, log_success

__all__ = ["PrerequisiteReport", "check_prerequisites", "install_hints"]

logger = logging.getLogger(__name__)

# Executable looked up on PATH -> package that provides it.
REQUIRED_TOOLS = {
    "redis-server": "redis-server",
    "redis-cli": "redis-tools",
    "git": "git",
}

OS_RELEASE = Path("/etc/os-release")


@dataclass
class PrerequisiteReport:
    python: str
    python_version: str
    missing: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing


def _read_os_id(os_release: Path = OS_RELEASE) -> str | None:
    try:
        text = os_release.read_text(encoding="utf-8")
    except OSError:
        return None
    for line in text.splitlines():
        if line.startswith("ID="):
            return line[3:].strip().strip('"').lower()
    return None


def install_hints(packages: List[str], os_release: Path = OS_RELEASE) -> List[str]:
    """Return the shell commands a user would run to install *packages*."""
    joined = " ".join(packages)
    os_id = _read_os_id(os_release)
    if os_id in ("ubuntu", "debian"):
        return ["sudo apt update", f"sudo apt install -y {joined}"]
    if os_id in ("rhel", "centos", "fedora"):
        return [f"sudo dnf install -y {joined}"]
    if os_id is None and sys.platform == "darwin":
        # Homebrew ships redis-cli inside the redis formula.
        brew = sorted({"redis" if p.startswith("redis") else p for p in packages})
        return [f"brew install {' '.join(brew)}"]
    return [f"Please install: {joined}"]


def _pip_available(python: str) -> bool:
    try:
        res = subprocess.run(
            [python, "-m", "pip", "--version"],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return False
    return res.returncode == 0


def check_prerequisites(python: str | None = None) -> PrerequisiteReport:
    """Verify Python, pip, Redis and git are available.

    Raises :class:`MissingDependency` with install hints when anything is
    missing.
    """
    python = python or sys.executable
    report = PrerequisiteReport(python=python, python_version=platform.python_version())
    log_success("Python found: %s", report.python_version)

    if _pip_available(python):
        log_success("pip found")
    else:
        CLI_LOGGER.error("pip not found")
        report.missing.append("python3-pip")

    for tool, package in REQUIRED_TOOLS.items():
        if shutil.which(tool):
            log_success("%s found", tool)
        else:
            CLI_LOGGER.error("%s not found", tool)
            if package not in report.missing:
                report.missing.append(package)

    logger.debug("event=prerequisites missing=%s", report.missing)
    if not report.ok:
        raise MissingDependency(report.missing, hints=install_hints(report.missing))

    log_success("All prerequisites satisfied!")
    return report
