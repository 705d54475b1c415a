from __future__ import annotations

import logging
import sys

try:
    import termios
    import tty

    HAS_TERMIOS = True
except ImportError:
    HAS_TERMIOS = False

__all__ = ["confirm"]

logger = logging.getLogger(__name__)


CTRL_C = "\x03"


def _interpret_key(char: str) -> str | None:
    """Map a raw-mode read to a key; ``None`` at end of input."""
    if not char:
        return None
    # Raw mode delivers Ctrl+C as a character instead of SIGINT.
    if char == CTRL_C:
        raise KeyboardInterrupt
    return char


def _get_single_char() -> str | None:
    """Read one key press from a TTY stdin without waiting for Enter.

    ``None`` means "fall back to line input": stdin is not a terminal,
    termios is unavailable, the terminal could not be switched to raw mode,
    or stdin is at end of file.
    """
    if not HAS_TERMIOS or not sys.stdin.isatty():
        return None

    try:
        fd = sys.stdin.fileno()
        saved = termios.tcgetattr(fd)
    except (OSError, termios.error):
        return None

    try:
        tty.setraw(fd)
        return _interpret_key(sys.stdin.read(1))
    except (OSError, termios.error):
        return None
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def confirm(question: str, assume_yes: bool = False) -> bool:
    """Ask a y/n question. Non-interactive sessions get "no" unless *assume_yes*."""
    if assume_yes:
        logger.debug("confirm: %r -> yes (assumed)", question)
        return True

    if not sys.stdin.isatty():
        logger.debug("confirm: %r -> no (stdin is not a TTY)", question)
        return False

    try:
        sys.stdout.write(f"{question} (y/n) ")
        sys.stdout.flush()

        char = _get_single_char()
        if char is not None:
            sys.stdout.write(char + "\n")
            sys.stdout.flush()
            answer = char.lower() == "y"
        else:
            # Fall back to regular input() if single char doesn't work
            answer = input().strip().lower() in ("y", "yes")
    except (EOFError, KeyboardInterrupt):
        sys.stdout.write("\n")
        answer = False

    logger.debug("confirm: %r -> %s", question, "yes" if answer else "no")
    return answer
