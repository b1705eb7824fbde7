"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/logging_setup.py

Rich logging configuration for the chunkify CLI.
All logs go to stderr so that stdout stays free for summaries.

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler


def level_for(verbose: int) -> int:
    """WARNING (no -v), INFO (-v), DEBUG (-vv)."""
    if verbose <= 0:
        return logging.WARNING
    return logging.INFO if verbose == 1 else logging.DEBUG


def configure_logging(verbose: int = 0) -> None:
    root = logging.getLogger()
    # Reset any prior basicConfig/handlers
    for h in list(root.handlers):
        root.removeHandler(h)
    root.setLevel(logging.DEBUG)  # let the handler decide what to emit

    handler = RichHandler(
        console=Console(file=sys.stderr),
        show_time=verbose >= 2,
        show_level=True,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setLevel(level_for(verbose))
    root.addHandler(handler)

    for name in ("asyncio", "concurrent.futures"):
        logging.getLogger(name).setLevel(logging.WARNING)
