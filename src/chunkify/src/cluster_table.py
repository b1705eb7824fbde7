"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/cluster_table.py

Fingerprint -> cluster bookkeeping for one dedup run.

The first record observed with a fingerprint is the cluster representative and
is never replaced. Fingerprints may be computed on a thread pool
(`fingerprint_stream`), but every table mutation goes through `observe`, which
is serialised, so the same input order always gives the same clusters.

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from itertools import islice
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .digest import DEFAULT_DIGEST, DigestAlgorithm
from .errors import DigestMismatchError
from .fasta import SequenceRecord


@dataclass
class Cluster:
    fingerprint: bytes
    representative: SequenceRecord
    member_ids: List[str] = field(default_factory=list)
    member_count: int = 0
    total_abundance: int = 0
    shard_id: Optional[int] = None

    @property
    def representative_id(self) -> str:
        return self.representative.id

    @property
    def hex(self) -> str:
        return self.fingerprint.hex()

    def _add(self, record: SequenceRecord) -> None:
        self.member_ids.append(record.id)
        self.member_count += 1
        self.total_abundance += record.abundance


@dataclass(frozen=True)
class ClusterStats:
    records: int
    clusters: int

    @property
    def duplicates(self) -> int:
        return self.records - self.clusters


class ClusterTable:
    def __init__(self, algorithm: DigestAlgorithm = DEFAULT_DIGEST):
        self.algorithm = DigestAlgorithm.parse(algorithm)
        self._clusters: Dict[bytes, Cluster] = {}
        self._records = 0
        self._lock = threading.Lock()

    def observe(self, record: SequenceRecord, fingerprint: Optional[bytes] = None) -> Tuple[bool, Cluster]:
        """
        Add one record. Returns (is_new, cluster); is_new is True when the record
        opened a new cluster and is therefore its representative.
        """
        fp = self.algorithm.digest(record.residues) if fingerprint is None else fingerprint
        if len(fp) != self.algorithm.width:
            raise DigestMismatchError(
                f"Fingerprint for '{record.id}' is {len(fp)} bytes; "
                f"{self.algorithm.value} needs {self.algorithm.width}."
            )
        with self._lock:
            self._records += 1
            cluster = self._clusters.get(fp)
            if cluster is None:
                cluster = Cluster(fingerprint=fp, representative=record)
                cluster._add(record)
                self._clusters[fp] = cluster
                return True, cluster
            cluster._add(record)
            return False, cluster

    def get(self, fingerprint: bytes) -> Optional[Cluster]:
        return self._clusters.get(fingerprint)

    def __len__(self) -> int:
        return len(self._clusters)

    def __iter__(self) -> Iterator[Cluster]:
        # dicts keep insertion order, i.e. representative discovery order
        return iter(list(self._clusters.values()))

    def stats(self) -> ClusterStats:
        with self._lock:
            return ClusterStats(records=self._records, clusters=len(self._clusters))


def _batched(it: Iterable[SequenceRecord], size: int) -> Iterator[List[SequenceRecord]]:
    it = iter(it)
    while True:
        batch = list(islice(it, size))
        if not batch:
            return
        yield batch


def fingerprint_stream(
    records: Iterable[SequenceRecord],
    algorithm: DigestAlgorithm = DEFAULT_DIGEST,
    *,
    threads: int = 1,
    batch_size: int = 4096,
) -> Iterator[Tuple[SequenceRecord, bytes]]:
    """
    Yield (record, fingerprint) in input order. With threads > 1 each batch is
    hashed on a pool; hashlib releases the GIL on large buffers.
    """
    algorithm = DigestAlgorithm.parse(algorithm)
    if threads <= 1:
        for rec in records:
            yield rec, algorithm.digest(rec.residues)
        return
    with ThreadPoolExecutor(max_workers=int(threads)) as executor:
        for batch in _batched(records, max(1, int(batch_size))):
            digests = executor.map(lambda r: algorithm.digest(r.residues), batch)
            yield from zip(batch, digests)


def build_table(
    records: Iterable[SequenceRecord],
    algorithm: DigestAlgorithm = DEFAULT_DIGEST,
    *,
    threads: int = 1,
) -> ClusterTable:
    """Convenience: run a whole stream through a fresh table."""
    table = ClusterTable(algorithm)
    for rec, fp in fingerprint_stream(records, table.algorithm, threads=threads):
        table.observe(rec, fp)
    return table
