"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/cluster_map.py

The cluster map: one tab-separated row per original sequence,

    #chunkify-map  version=1  digest=sha1  labels=representative
    original_id  fingerprint  shard_id  representative_id  abundance  sample

written incrementally during dedup (to a temporary file that is renamed only
when the run succeeds) and loaded in one pass for reconstruction. The header
carries the digest algorithm and the shard label policy so a reconstruction
paired with an incompatible dedup run fails before touching any shard.

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import os
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Dict, Iterator, List, Optional

from .chunk_writer import LabelPolicy
from .digest import DigestAlgorithm, fingerprint_from_hex
from .errors import ChunkIOError, ConfigError, DigestMismatchError, MapConsistencyError

MAP_MAGIC: str = "#chunkify-map"
MAP_VERSION: str = "1"
MAP_FILENAME: str = "cluster_map.tsv"
COLUMNS = ("original_id", "fingerprint", "shard_id", "representative_id", "abundance", "sample")


@dataclass(frozen=True)
class ClusterMapEntry:
    original_id: str
    fingerprint: bytes
    shard_id: int
    representative_id: str
    abundance: int = 1
    sample: str = ""

    @property
    def hex(self) -> str:
        return self.fingerprint.hex()

    @property
    def is_representative(self) -> bool:
        return self.original_id == self.representative_id

    def to_line(self) -> str:
        return "\t".join(
            [
                self.original_id,
                self.hex,
                str(self.shard_id),
                self.representative_id,
                str(self.abundance),
                self.sample,
            ]
        ) + "\n"


def _header_line(algorithm: DigestAlgorithm, labels: LabelPolicy) -> str:
    return f"{MAP_MAGIC}\tversion={MAP_VERSION}\tdigest={algorithm.value}\tlabels={labels.value}\n"


class ClusterMapWriter:
    def __init__(self, path: Path, algorithm: DigestAlgorithm, labels: LabelPolicy = LabelPolicy.REPRESENTATIVE):
        self.path = Path(path)
        self.tmp_path = self.path.with_name(self.path.name + ".tmp")
        self.algorithm = DigestAlgorithm.parse(algorithm)
        self.labels = LabelPolicy.parse(labels)
        self.rows = 0
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh: Optional[IO[str]] = self.tmp_path.open("w", encoding="utf-8")
            self._fh.write(_header_line(self.algorithm, self.labels))
            self._fh.write("\t".join(COLUMNS) + "\n")
        except OSError as e:
            raise ChunkIOError(self.tmp_path, f"Cannot create cluster map ({e.strerror or e})") from e

    def __enter__(self) -> "ClusterMapWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.abort()

    def append(self, entry: ClusterMapEntry) -> None:
        if len(entry.fingerprint) != self.algorithm.width:
            raise DigestMismatchError(
                f"Fingerprint for '{entry.original_id}' is {len(entry.fingerprint)} bytes; "
                f"{self.algorithm.value} needs {self.algorithm.width}."
            )
        try:
            self._fh.write(entry.to_line())
        except OSError as e:
            raise ChunkIOError(self.tmp_path, f"Failed writing cluster map ({e.strerror or e})") from e
        self.rows += 1

    def commit(self) -> Path:
        if self._fh is None:
            return self.path
        try:
            self._fh.close()
            self._fh = None
            os.replace(self.tmp_path, self.path)
        except OSError as e:
            raise ChunkIOError(self.path, f"Failed finalizing cluster map ({e.strerror or e})") from e
        return self.path

    def abort(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
        self.tmp_path.unlink(missing_ok=True)


class ClusterMap:
    """Loaded cluster map, keyed by original id in file order."""

    def __init__(
        self,
        entries: Dict[str, ClusterMapEntry],
        *,
        algorithm: DigestAlgorithm,
        labels: LabelPolicy,
        path: Optional[Path] = None,
    ):
        self.algorithm = algorithm
        self.labels = labels
        self.path = path
        self._entries = entries
        self._members: Dict[bytes, List[ClusterMapEntry]] = defaultdict(list)
        for e in entries.values():
            self._members[e.fingerprint].append(e)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, original_id: object) -> bool:
        return original_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __getitem__(self, original_id: str) -> ClusterMapEntry:
        return self._entries[original_id]

    def get(self, original_id: str) -> Optional[ClusterMapEntry]:
        return self._entries.get(original_id)

    def entries(self) -> Iterator[ClusterMapEntry]:
        return iter(self._entries.values())

    def members(self, fingerprint: bytes) -> List[ClusterMapEntry]:
        """Cluster members in map (= input) order; the representative comes first."""
        return list(self._members.get(fingerprint, ()))

    def member_count(self, fingerprint: bytes) -> int:
        return len(self._members.get(fingerprint, ()))

    @property
    def cluster_count(self) -> int:
        return len(self._members)

    def shard_ids(self) -> List[int]:
        return sorted({e.shard_id for e in self._entries.values()})

    def samples(self) -> List[str]:
        seen: Dict[str, None] = {}
        for e in self._entries.values():
            seen.setdefault(e.sample, None)
        return list(seen)

    def result_label(self, entry: ClusterMapEntry) -> str:
        """Name of the representative inside the shard's result document."""
        return entry.hex if self.labels is LabelPolicy.FINGERPRINT else entry.representative_id


def _parse_header(line: str, path: Path) -> Dict[str, str]:
    parts = line.rstrip("\n").split("\t")
    if not parts or parts[0] != MAP_MAGIC:
        raise MapConsistencyError(f"Not a chunkify cluster map (missing {MAP_MAGIC} header): {path}")
    meta: Dict[str, str] = {}
    for token in parts[1:]:
        if "=" not in token:
            raise MapConsistencyError(f"Malformed cluster map header field {token!r}: {path}")
        key, value = token.split("=", 1)
        meta[key.strip()] = value.strip()
    for key in ("version", "digest", "labels"):
        if key not in meta:
            raise MapConsistencyError(f"Cluster map header lacks '{key}': {path}")
    if meta["version"] != MAP_VERSION:
        raise MapConsistencyError(f"Unsupported cluster map version {meta['version']!r}: {path}")
    return meta


def load_cluster_map(path: Path | str, expected_digest: Optional[DigestAlgorithm | str] = None) -> ClusterMap:
    path = Path(path)
    try:
        fh = path.open("r", encoding="utf-8")
    except OSError as e:
        raise ChunkIOError(path, f"Cannot open cluster map ({e.strerror or e})") from e

    with fh:
        meta = _parse_header(fh.readline(), path)
        try:
            algorithm = DigestAlgorithm.parse(meta["digest"])
            labels = LabelPolicy.parse(meta["labels"])
        except ConfigError as e:
            raise DigestMismatchError(f"{path}: {e}") from e
        if expected_digest is not None:
            expected = DigestAlgorithm.parse(expected_digest)
            if expected is not algorithm:
                raise DigestMismatchError(
                    f"Cluster map {path} was written with {algorithm.value} fingerprints, "
                    f"but {expected.value} was expected."
                )
        cols = fh.readline().rstrip("\n").split("\t")
        if tuple(cols) != COLUMNS:
            raise MapConsistencyError(f"Unexpected cluster map columns {cols}: {path}")

        entries: Dict[str, ClusterMapEntry] = {}
        reps: Dict[bytes, tuple[str, int]] = {}
        for lineno, line in enumerate(fh, start=3):
            if not line.strip():
                continue
            parts = line.rstrip("\n").split("\t")
            if len(parts) != len(COLUMNS):
                raise MapConsistencyError(f"{path}:{lineno}: expected {len(COLUMNS)} columns, got {len(parts)}")
            original_id, fp_hex, shard_s, rep_id, abun_s, sample = parts
            try:
                shard_id = int(shard_s)
                abundance = int(abun_s)
            except ValueError:
                raise MapConsistencyError(f"{path}:{lineno}: shard_id and abundance must be integers") from None
            if shard_id < 0 or abundance < 1:
                raise MapConsistencyError(f"{path}:{lineno}: shard_id must be >= 0 and abundance >= 1")
            try:
                fingerprint = fingerprint_from_hex(fp_hex, algorithm)
            except DigestMismatchError as e:
                raise DigestMismatchError(f"{path}:{lineno}: {e}") from e
            if original_id in entries:
                raise MapConsistencyError(f"{path}:{lineno}: original id '{original_id}' appears twice")
            known = reps.setdefault(fingerprint, (rep_id, shard_id))
            if known != (rep_id, shard_id):
                raise MapConsistencyError(
                    f"{path}:{lineno}: cluster {fp_hex} maps to ({rep_id}, shard {shard_id}) "
                    f"but earlier rows say ({known[0]}, shard {known[1]})"
                )
            entries[original_id] = ClusterMapEntry(
                original_id=original_id,
                fingerprint=fingerprint,
                shard_id=shard_id,
                representative_id=rep_id,
                abundance=abundance,
                sample=sample,
            )
    return ClusterMap(entries, algorithm=algorithm, labels=labels, path=path)
