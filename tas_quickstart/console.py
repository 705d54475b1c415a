from rich.console import Console
from rich.markup import escape

from .logging_utils import get_is_quiet

# Rich output for banners and detail lines. Status lines go through CLI_LOGGER.

_console = Console(highlight=False)


def print_step(title: str) -> None:
    """Print a step banner, e.g. ``==> Checking prerequisites...``."""
    if get_is_quiet():
        return
    _console.print()
    _console.print(f"[bold green]==>[/bold green] [blue]{escape(title)}[/blue]")
    _console.print()


def print_header(title: str) -> None:
    """Print a horizontal rule with a title."""
    if get_is_quiet():
        return
    _console.rule(f"[bold cyan]{escape(title)}[/bold cyan]", style="cyan")
    _console.print()


def print_details(*lines: str, bullet: str = "•") -> None:
    """Print indented detail lines under a status message."""
    if get_is_quiet():
        return
    for line in lines:
        _console.print(f"  {bullet} {escape(line)}" if bullet else f"  {escape(line)}")


def print_blank() -> None:
    if not get_is_quiet():
        _console.print()


def print_rich(*args, **kwargs) -> None:
    """Print with Rich markup."""
    _console.print(*args, **kwargs)
