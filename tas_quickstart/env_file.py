"""Shell-sourceable environment file (``export KEY="value"`` lines)."""

from __future__ import annotations

import logging
import re
import secrets
import shlex
from pathlib import Path
from typing import Dict, Mapping

__all__ = ["generate_api_key", "write_env_file", "read_env_file", "render_env_file"]

logger = logging.getLogger(__name__)

_HEADER = (
    "# TAS Demo Environment Variables\n"
    "# Source this file to restore the environment: source {name}\n"
)


def generate_api_key(num_bytes: int = 32) -> str:
    """Random hex key, ``2 * num_bytes`` characters long."""
    return secrets.token_hex(num_bytes)


_SAFE_VALUE = re.compile(r"[A-Za-z0-9_./:@%+=,-]*")


def _quote(value: str) -> str:
    if _SAFE_VALUE.fullmatch(value):
        return f'"{value}"'
    return shlex.quote(value)


def render_env_file(values: Mapping[str, str], name: str = ".env.demo") -> str:
    lines = [_HEADER.format(name=name)]
    for key, value in values.items():
        lines.append(f"export {key}={_quote(value)}\n")
    return "".join(lines)


def write_env_file(path: Path, values: Mapping[str, str]) -> None:
    path.write_text(render_env_file(values, path.name), encoding="utf-8")
    logger.debug("event=env_file_written path=%s keys=%s", path, list(values))


def read_env_file(path: Path) -> Dict[str, str]:
    """Parse ``KEY=value`` assignments, with or without a leading ``export``.

    Comments and blank lines are skipped; values are unquoted the way a POSIX
    shell would.
    """
    values: Dict[str, str] = {}
    for lineno, raw in enumerate(path.read_text(encoding="utf-8").splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        key, sep, rest = line.partition("=")
        if not sep or not key.isidentifier():
            logger.debug("Skipping unparseable line %d in %s", lineno, path)
            continue
        try:
            parts = shlex.split(rest, comments=True)
        except ValueError as exc:
            raise ValueError(f"{path}:{lineno}: {exc}") from exc
        values[key] = parts[0] if parts else ""
    return values
