"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/version.py

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

__version__ = "0.1.0"
