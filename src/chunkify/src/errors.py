"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/errors.py

Narrow, typed exceptions used across chunkify. Every detected inconsistency is
fatal; callers distinguish input problems (bad FASTA, duplicate ids) from map
problems (a reconstruction paired with the wrong dedup run) and from plain I/O.

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class ChunkifyError(Exception):
    """Base class for chunkify errors (operational or validation)."""

    pass


class ConfigError(ChunkifyError):
    """Invalid configuration file or option value."""

    pass


# ----- Input consistency (dedup half) -----


class InputConsistencyError(ChunkifyError):
    """Base class for problems with the input sequence stream."""

    pass


class DuplicateIDError(InputConsistencyError):
    def __init__(self, seq_id: str, sample: Optional[str] = None):
        self.seq_id = seq_id
        self.sample = sample
        where = f" (sample '{sample}')" if sample else ""
        super().__init__(f"Sequence id '{seq_id}' occurs more than once in the input{where}.")


class EmptySequenceError(InputConsistencyError):
    def __init__(self, seq_id: str, sample: Optional[str] = None):
        self.seq_id = seq_id
        self.sample = sample
        where = f" (sample '{sample}')" if sample else ""
        super().__init__(f"Sequence '{seq_id}' has no residues{where}.")


class FastaFormatError(InputConsistencyError):
    pass


# ----- Map consistency (reconstruction half) -----


class MapConsistencyError(ChunkifyError):
    """Base class for cluster map / shard result mismatches."""

    pass


class MissingMapEntryError(MapConsistencyError):
    def __init__(self, original_id: str):
        self.original_id = original_id
        super().__init__(
            f"Sequence '{original_id}' is not in the cluster map; "
            "the cluster map and the sequence input come from different runs."
        )


class MissingRepresentativeError(MapConsistencyError):
    def __init__(self, shard_id: int, label: str, original_id: str):
        self.shard_id = shard_id
        self.label = label
        self.original_id = original_id
        super().__init__(
            f"Result document for shard {shard_id} has no record for representative '{label}' "
            f"(needed by '{original_id}')."
        )


class DigestMismatchError(MapConsistencyError):
    pass


class ResultFormatError(MapConsistencyError):
    """A shard result document is not valid jplace, or names a sequence twice."""

    pass


class TopologyMismatchError(ChunkifyError):
    def __init__(self, first_shard: int, other_shard: int, detail: str = "reference tree"):
        self.first_shard = first_shard
        self.other_shard = other_shard
        super().__init__(
            f"Shards {first_shard} and {other_shard} do not share the same {detail}; "
            "all shards must be placed against the same reference."
        )


# ----- I/O -----


class ChunkIOError(ChunkifyError):
    """File system failure, always reported with the offending path."""

    def __init__(self, path: Path | str, message: str):
        self.path = Path(path)
        super().__init__(f"{message}: {self.path}")
