"""
Entry point for the tas_quickstart package.

This module serves as the main entry point when running `python -m tas_quickstart`.
"""

import os
import sys

# Check for Unix-like system
if os.name != "posix":
    print(
        "Error: tas-quickstart only supports Unix-like systems (Linux, macOS, BSD)",
        file=sys.stderr,
    )
    sys.exit(1)

from .cli import cli  # noqa: E402


def main():
    """Main entry point for the tas-quickstart command."""
    sys.exit(cli())


if __name__ == "__main__":
    main()
