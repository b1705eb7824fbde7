"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/dedup.py

The dedup half: sequence files -> shards + cluster map.

    records --unique_ids--> fingerprint_stream --> ClusterTable.observe
        new cluster  -> ChunkWriter.assign (representative written to a shard)
        every record -> ClusterMapWriter.append (one row per original id)

Outputs are refused if they already exist (unless overwrite), and a failed run
removes what it wrote: the cluster map only appears once the run succeeded.

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence

from .chunk_writer import (
    DEFAULT_SHARD_CAPACITY,
    SHARD_INDEX_NAME,
    SHARD_PREFIX,
    SHARD_SUFFIX,
    ChunkWriter,
    LabelPolicy,
)
from .cluster_map import MAP_FILENAME, ClusterMapEntry, ClusterMapWriter
from .cluster_table import ClusterTable, fingerprint_stream
from .digest import DEFAULT_DIGEST, DigestAlgorithm
from .errors import ChunkIOError
from .fasta import SequenceRecord, iter_fasta_files, unique_ids

_LOG = logging.getLogger("chunkify.dedup")


@dataclass
class DedupStats:
    records_total: int = 0
    records_filtered: int = 0
    records_kept: int = 0
    clusters: int = 0
    shards: int = 0
    map_path: Optional[Path] = None
    shard_paths: List[Path] = field(default_factory=list)

    @property
    def duplicates(self) -> int:
        return self.records_kept - self.clusters


def check_outputs_absent(out_dir: Path, map_name: str = MAP_FILENAME) -> None:
    """Fail before doing any work if a previous run's outputs are in the way."""
    out_dir = Path(out_dir)
    if not out_dir.exists():
        return
    clashes = [p for p in (out_dir / map_name, out_dir / SHARD_INDEX_NAME) if p.exists()]
    clashes += sorted(out_dir.glob(f"{SHARD_PREFIX}*{SHARD_SUFFIX}"))
    if clashes:
        raise ChunkIOError(
            clashes[0],
            f"Output already exists ({len(clashes)} file(s) in the way; pass overwrite to replace)",
        )


def _min_abundance_filter(records: Iterable[SequenceRecord], min_abundance: int, stats: DedupStats) -> Iterator[SequenceRecord]:
    for rec in records:
        stats.records_total += 1
        if rec.abundance < min_abundance:
            stats.records_filtered += 1
            continue
        yield rec


def dedup_records(
    records: Iterable[SequenceRecord],
    out_dir: Path,
    *,
    algorithm: DigestAlgorithm | str = DEFAULT_DIGEST,
    shard_capacity: int = DEFAULT_SHARD_CAPACITY,
    labels: LabelPolicy | str = LabelPolicy.REPRESENTATIVE,
    line_length: int = 0,
    min_abundance: int = 1,
    threads: int = 1,
    overwrite: bool = False,
    map_name: str = MAP_FILENAME,
) -> DedupStats:
    out_dir = Path(out_dir)
    algorithm = DigestAlgorithm.parse(algorithm)
    labels = LabelPolicy.parse(labels)
    if not overwrite:
        check_outputs_absent(out_dir, map_name)
    elif out_dir.exists():
        # a stale map must not outlive the shards it described
        stale = [out_dir / map_name, out_dir / SHARD_INDEX_NAME]
        stale += sorted(out_dir.glob(f"{SHARD_PREFIX}*{SHARD_SUFFIX}"))
        for p in stale:
            p.unlink(missing_ok=True)

    stats = DedupStats()
    table = ClusterTable(algorithm)
    # ids are checked on the raw stream: a repeat is fatal even if one copy is filtered
    stream = _min_abundance_filter(unique_ids(records), int(min_abundance), stats)

    # shards finalize (inner) before the map commits (outer); a failed seal aborts the map
    chunks = ChunkWriter(out_dir, capacity=shard_capacity, labels=labels, line_length=line_length)
    try:
        with ClusterMapWriter(out_dir / map_name, algorithm, labels) as cmap, chunks:
            for rec, fp in fingerprint_stream(stream, algorithm, threads=threads):
                is_new, cluster = table.observe(rec, fp)
                if is_new:
                    chunks.assign(cluster)
                cmap.append(
                    ClusterMapEntry(
                        original_id=rec.id,
                        fingerprint=cluster.fingerprint,
                        shard_id=cluster.shard_id,
                        representative_id=cluster.representative_id,
                        abundance=rec.abundance,
                        sample=rec.sample or "",
                    )
                )
                if cmap.rows % 100000 == 0:
                    _LOG.info("Processed %d sequences, %d unique", cmap.rows, len(table))
    except BaseException:
        # covers a failed map commit after the shards were sealed
        chunks.abort()
        raise

    stats.records_kept = table.stats().records
    stats.clusters = len(table)
    stats.shards = len(chunks.shards)
    stats.map_path = cmap.path
    stats.shard_paths = [s.path for s in chunks.shards]

    if stats.records_total and stats.records_filtered:
        _LOG.info(
            "Filtered %d of %d sequences (%d%%) below min abundance %d",
            stats.records_filtered,
            stats.records_total,
            100 * stats.records_filtered // stats.records_total,
            min_abundance,
        )
    _LOG.info(
        "Wrote %d unique sequences of %d in %d shard file(s)",
        stats.clusters,
        stats.records_kept,
        stats.shards,
    )
    return stats


def run_chunkify(inputs: Sequence[Path | str], out_dir: Path, **kwargs) -> DedupStats:
    """Dedup one or more FASTA files (each file is one sample) into `out_dir`."""
    if not inputs:
        raise ValueError("at least one sequence file is required")
    for i, p in enumerate(inputs, start=1):
        _LOG.info("Input %d of %d: %s", i, len(inputs), p)
    return dedup_records(iter_fasta_files(inputs), out_dir, **kwargs)
