"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/chunk_writer.py

Partition cluster representatives into fixed-capacity FASTA shards.

Shards are filled in cluster discovery order and numbered from 0 without gaps.
A shard is sealed (file flushed and closed, one line appended to chunks.tsv) as
soon as it holds `capacity` representatives. Duplicates never reach a shard.

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, List, Optional

from .cluster_table import Cluster
from .errors import ChunkIOError, ConfigError
from .fasta import FastaWriter

DEFAULT_SHARD_CAPACITY: int = 50000
SHARD_PREFIX: str = "chunk_"
SHARD_SUFFIX: str = ".fasta"
SHARD_INDEX_NAME: str = "chunks.tsv"

_LOG = logging.getLogger("chunkify.chunks")


class LabelPolicy(str, Enum):
    """How representatives are named inside shard files."""

    REPRESENTATIVE = "representative"
    FINGERPRINT = "fingerprint"

    @classmethod
    def parse(cls, value: str | "LabelPolicy") -> "LabelPolicy":
        if isinstance(value, LabelPolicy):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigError(f"Unsupported label policy {value!r}. Allowed: {[p.value for p in cls]}") from None

    def label_for(self, cluster: Cluster) -> str:
        if self is LabelPolicy.FINGERPRINT:
            return cluster.hex
        return cluster.representative_id


def shard_file_name(shard_id: int) -> str:
    return f"{SHARD_PREFIX}{shard_id}{SHARD_SUFFIX}"


@dataclass
class Shard:
    shard_id: int
    path: Path
    capacity: int
    fingerprints: List[bytes] = field(default_factory=list)
    sealed: bool = False

    @property
    def size(self) -> int:
        return len(self.fingerprints)

    @property
    def is_full(self) -> bool:
        return self.size >= self.capacity


class ChunkWriter:
    def __init__(
        self,
        out_dir: Path,
        *,
        capacity: int = DEFAULT_SHARD_CAPACITY,
        labels: LabelPolicy | str = LabelPolicy.REPRESENTATIVE,
        line_length: int = 0,
    ):
        if int(capacity) < 1:
            raise ConfigError("shard capacity must be >= 1")
        self.out_dir = Path(out_dir)
        self.capacity = int(capacity)
        self.labels = LabelPolicy.parse(labels)
        self.line_length = int(line_length)
        self.shards: List[Shard] = []
        self.written: List[Path] = []
        self._current: Optional[Shard] = None
        self._fh: Optional[IO[str]] = None
        self._writer: Optional[FastaWriter] = None
        self._index_fh: Optional[IO[str]] = None
        self.index_path = self.out_dir / SHARD_INDEX_NAME

    # ---- lifecycle ----

    def __enter__(self) -> "ChunkWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()

    def _open(self, path: Path, what: str) -> IO[str]:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fh = path.open("w", encoding="ascii")
        except OSError as e:
            raise ChunkIOError(path, f"Cannot create {what} ({e.strerror or e})") from e
        self.written.append(path)
        return fh

    def _open_shard(self) -> Shard:
        shard_id = len(self.shards)
        shard = Shard(shard_id=shard_id, path=self.out_dir / shard_file_name(shard_id), capacity=self.capacity)
        self._fh = self._open(shard.path, "shard file")
        self._writer = FastaWriter(self._fh, line_length=self.line_length)
        self.shards.append(shard)
        self._current = shard
        _LOG.debug("Opened shard %d: %s", shard_id, shard.path)
        return shard

    # ---- operations ----

    def assign(self, cluster: Cluster) -> int:
        """
        Place a cluster's representative into the open shard and return the shard
        id. A cluster that already has a shard keeps it.
        """
        if cluster.shard_id is not None:
            return cluster.shard_id
        shard = self._current if self._current is not None else self._open_shard()
        label = self.labels.label_for(cluster)
        try:
            self._writer.write(label, cluster.representative.residues)
        except OSError as e:
            raise ChunkIOError(shard.path, f"Failed writing shard ({e.strerror or e})") from e
        shard.fingerprints.append(cluster.fingerprint)
        cluster.shard_id = shard.shard_id
        self.seal_if_full()
        return shard.shard_id

    def seal_if_full(self) -> bool:
        if self._current is None or not self._current.is_full:
            return False
        self._seal()
        return True

    def _seal(self) -> None:
        shard = self._current
        if shard is None:
            return
        try:
            self._fh.flush()
            self._fh.close()
            if self._index_fh is None:
                self._index_fh = self._open(self.index_path, "shard index")
                self._index_fh.write("shard_id\tpath\trepresentatives\n")
            self._index_fh.write(f"{shard.shard_id}\t{shard.path.name}\t{shard.size}\n")
        except OSError as e:
            raise ChunkIOError(shard.path, f"Failed sealing shard ({e.strerror or e})") from e
        shard.sealed = True
        self._current = None
        self._fh = None
        self._writer = None
        _LOG.info("Sealed shard %d with %d representatives", shard.shard_id, shard.size)

    def close(self) -> None:
        """Seal the last (partial) shard; an empty shard is never opened, so never written."""
        self._seal()
        if self._index_fh is not None:
            try:
                self._index_fh.close()
            except OSError as e:
                raise ChunkIOError(self.index_path, f"Failed closing shard index ({e.strerror or e})") from e
            self._index_fh = None

    def abort(self) -> None:
        """Close handles and delete everything this writer created."""
        for fh in (self._fh, self._index_fh):
            if fh is not None:
                fh.close()
        self._fh = self._index_fh = None
        self._current = None
        for p in self.written:
            p.unlink(missing_ok=True)
        _LOG.debug("Removed %d partial dedup outputs", len(self.written))


def read_shard_index(path: Path) -> List[tuple[int, Path, int]]:
    """Read chunks.tsv back as (shard_id, absolute path, representatives)."""
    path = Path(path)
    rows: List[tuple[int, Path, int]] = []
    try:
        lines = path.read_text(encoding="ascii").splitlines()
    except OSError as e:
        raise ChunkIOError(path, f"Cannot read shard index ({e.strerror or e})") from e
    for line in lines[1:]:
        if not line.strip():
            continue
        shard_id, name, n = line.split("\t")
        rows.append((int(shard_id), (path.parent / name).resolve(), int(n)))
    return rows
