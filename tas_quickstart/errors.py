"""Exceptions raised by the setup and test steps."""

from __future__ import annotations

from typing import Sequence

__all__ = [
    "QuickstartError",
    "MissingDependency",
    "MissingFile",
    "ServiceUnavailable",
    "CommandFailed",
    "HTTPUnreachable",
]


class QuickstartError(Exception):
    """Base class; commands report it and exit with status 1."""

    hints: Sequence[str] = ()

    def __init__(self, message: str, hints: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.hints = list(hints)


class MissingDependency(QuickstartError):
    def __init__(self, missing: Sequence[str], hints: Sequence[str] = ()) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing dependencies: {' '.join(self.missing)}", hints)


class MissingFile(QuickstartError):
    pass


class ServiceUnavailable(QuickstartError):
    pass


class CommandFailed(QuickstartError):
    def __init__(self, argv: Sequence[str], returncode: int) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        super().__init__(
            f"Command failed with exit code {returncode}: {' '.join(self.argv)}"
        )


class HTTPUnreachable(QuickstartError):
    pass
