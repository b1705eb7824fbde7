"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/__init__.py

Public entry point for chunkify.

    from chunkify import run_chunkify, load_cluster_map, Reconstructor, ShardLocator

    stats = run_chunkify(["a.fasta", "b.fasta"], "chunks/")
    # ... place chunks/chunk_<n>.fasta -> chunks/chunk_<n>.jplace ...
    cmap = load_cluster_map("chunks/cluster_map.tsv")
    rec = Reconstructor(cmap, ShardLocator(directory=Path("chunks")).load)
    rec.run("merged.jplace")

The console script "chunkify" is defined in pyproject.toml.

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

# re-exported API
from .src.chunk_writer import ChunkWriter, LabelPolicy  # noqa: F401
from .src.cluster_map import ClusterMap, ClusterMapEntry, load_cluster_map  # noqa: F401
from .src.cluster_table import ClusterTable, build_table  # noqa: F401
from .src.config import ChunkifyConfig, load_config  # noqa: F401
from .src.dedup import dedup_records, run_chunkify  # noqa: F401
from .src.digest import DigestAlgorithm, digest  # noqa: F401
from .src.errors import (  # noqa: F401
    ChunkifyError,
    ChunkIOError,
    ConfigError,
    DigestMismatchError,
    DuplicateIDError,
    EmptySequenceError,
    InputConsistencyError,
    MapConsistencyError,
    MissingMapEntryError,
    MissingRepresentativeError,
    ResultFormatError,
    TopologyMismatchError,
)
from .src.reconstruct import Reconstructor, Redistribution, Rounding, ShardLocator  # noqa: F401
from .src.result_cache import ResultCache  # noqa: F401
from .src.version import __version__  # noqa: F401

__all__ = [
    "ChunkWriter",
    "LabelPolicy",
    "ClusterMap",
    "ClusterMapEntry",
    "load_cluster_map",
    "ClusterTable",
    "build_table",
    "ChunkifyConfig",
    "load_config",
    "dedup_records",
    "run_chunkify",
    "DigestAlgorithm",
    "digest",
    "ChunkifyError",
    "ChunkIOError",
    "ConfigError",
    "DigestMismatchError",
    "DuplicateIDError",
    "EmptySequenceError",
    "InputConsistencyError",
    "MapConsistencyError",
    "MissingMapEntryError",
    "MissingRepresentativeError",
    "ResultFormatError",
    "TopologyMismatchError",
    "Reconstructor",
    "Redistribution",
    "Rounding",
    "ShardLocator",
    "ResultCache",
    "__version__",
]
