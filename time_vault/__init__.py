"""Time-locked value vault."""

from typing import NoReturn

__version__ = "0.1.0"


def _entry_point() -> NoReturn:
    """Entry point for the time-vault script."""
    import sys

    from time_vault.cli import main

    raise SystemExit(main(sys.argv[1:]))
