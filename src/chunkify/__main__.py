"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/__main__.py

Entrypoint for `python -m chunkify`.

It forwards to the Typer CLI defined in `chunkify.src.app:main`.

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

import sys

from .src.app import main

if __name__ == "__main__":
    sys.exit(main())
