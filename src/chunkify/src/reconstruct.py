"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/reconstruct.py

Expand per-shard placement results back onto every original sequence.

For each original id: cluster map entry -> shard document (through the result
cache) -> representative's record -> record relabelled with the original id
(verbatim) or with its share of the representative's multiplicity
(proportional). Every shard document that gets loaded, reloads included, must
carry the same reference topology as the first one.

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import logging
import string
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from itertools import islice
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .cluster_map import ClusterMap, ClusterMapEntry
from .errors import (
    ChunkIOError,
    ConfigError,
    MapConsistencyError,
    MissingMapEntryError,
    MissingRepresentativeError,
    TopologyMismatchError,
)
from .fasta import iter_fasta
from .jplace import JplaceWriter, ReferenceTopology, ResultDocument, ResultRecord, load_jplace
from .result_cache import ResultCache
from .version import __version__

DEFAULT_RESULT_PATTERN: str = "chunk_{shard}.jplace"

_LOG = logging.getLogger("chunkify.reconstruct")

ShardLoader = Callable[[int], ResultDocument]


class Redistribution(str, Enum):
    VERBATIM = "verbatim"
    PROPORTIONAL = "proportional"


class Rounding(str, Enum):
    LARGEST_REMAINDER = "largest_remainder"
    NONE = "none"


def _is_whole(x: float) -> bool:
    return isinstance(x, int) or (isinstance(x, float) and x.is_integer())


def apportion(mass: float, weights: Sequence[int], rounding: Rounding = Rounding.LARGEST_REMAINDER) -> List[float]:
    """
    Split `mass` over members in proportion to `weights`; the parts always sum
    to `mass`.

    With largest-remainder rounding and a whole-number mass, each member gets the
    floor of its exact share and the leftover units go to the largest fractional
    remainders (earlier members win ties). Otherwise the exact shares are
    returned as floats, the last member absorbing float rounding error.
    """
    if not weights:
        raise ValueError("cannot apportion over zero members")
    if any(w <= 0 for w in weights):
        raise ValueError("weights must be positive")
    if mass < 0:
        raise ValueError(f"cannot apportion a negative mass ({mass})")
    total = sum(weights)
    if rounding is Rounding.LARGEST_REMAINDER and _is_whole(mass):
        whole = int(mass)
        exact = [Fraction(whole * w, total) for w in weights]
        parts = [int(x) for x in exact]  # floor: all shares are >= 0
        leftover = whole - sum(parts)
        order = sorted(range(len(exact)), key=lambda i: (-(exact[i] - parts[i]), i))
        for i in order[:leftover]:
            parts[i] += 1
        return parts
    shares = [float(mass) * w / total for w in weights]
    shares[-1] = float(mass) - sum(shares[:-1])
    return shares


# ---- shard location ----------------------------------------------------------


def check_result_pattern(pattern: str) -> str:
    """A result pattern must use `{shard}` and no other placeholder."""
    try:
        names = {name for _, name, _, _ in string.Formatter().parse(pattern) if name is not None}
    except ValueError as e:
        raise ValueError(f"Result pattern {pattern!r} is not a valid format string ({e})") from None
    if names != {"shard"}:
        raise ValueError(f"Result pattern {pattern!r} must contain '{{shard}}' and no other placeholder")
    return pattern


@dataclass
class ShardLocator:
    """Resolve a shard id to its result document path."""

    directory: Optional[Path] = None
    pattern: str = DEFAULT_RESULT_PATTERN
    paths: Optional[List[Path]] = None

    def __post_init__(self):
        if self.paths is None:
            if self.directory is None:
                raise ConfigError("ShardLocator needs a results directory or an explicit shard list")
            try:
                check_result_pattern(self.pattern)
            except ValueError as e:
                raise ConfigError(str(e)) from None

    @classmethod
    def from_list_file(cls, list_file: Path | str) -> "ShardLocator":
        """One result path per line, line k = shard k; relative paths resolve against the list file."""
        list_file = Path(list_file)
        try:
            lines = list_file.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise ChunkIOError(list_file, f"Cannot read shard list ({e.strerror or e})") from e
        paths = []
        for line in lines:
            if not line.strip():
                continue
            p = Path(line.strip()).expanduser()
            paths.append(p if p.is_absolute() else (list_file.parent / p))
        return cls(paths=paths)

    def path(self, shard_id: int) -> Path:
        if self.paths is not None:
            if not 0 <= shard_id < len(self.paths):
                raise MapConsistencyError(
                    f"Cluster map refers to shard {shard_id}, but the shard list has {len(self.paths)} entries"
                )
            return self.paths[shard_id]
        return self.directory / self.pattern.format(shard=shard_id)

    def load(self, shard_id: int) -> ResultDocument:
        path = self.path(shard_id)
        _LOG.debug("Loading shard %d from %s", shard_id, path)
        return load_jplace(path)


def ids_from_fasta(paths: Iterable[Path | str], min_abundance: int = 1) -> Iterator[str]:
    """
    Original ids in sequence-input order, read lazily. Use the same
    min_abundance as the dedup run, or filtered ids will be reported missing.
    """
    for p in paths:
        for rec in iter_fasta(p):
            if rec.abundance >= min_abundance:
                yield rec.id


# ---- reconstructor -----------------------------------------------------------


def _windows(it: Iterable[str], size: int) -> Iterator[List[str]]:
    it = iter(it)
    while True:
        chunk = list(islice(it, size))
        if not chunk:
            return
        yield chunk


@dataclass
class ReconstructStats:
    records: int = 0
    outputs: List[Path] = field(default_factory=list)
    cache: Dict[str, int] = field(default_factory=dict)


class Reconstructor:
    def __init__(
        self,
        cluster_map: ClusterMap,
        loader: ShardLoader,
        *,
        redistribution: Redistribution | str = Redistribution.VERBATIM,
        rounding: Rounding | str = Rounding.LARGEST_REMAINDER,
        cache_capacity: Optional[int] = None,
        threads: int = 1,
        window: int = 1024,
    ):
        self.cluster_map = cluster_map
        self.redistribution = Redistribution(redistribution)
        self.rounding = Rounding(rounding)
        self.threads = max(1, int(threads))
        self.window = max(1, int(window))
        self.cache: ResultCache[int, ResultDocument] = ResultCache(cache_capacity)
        self._loader = loader
        self._reference: Optional[Tuple[int, ReferenceTopology]] = None
        self._reference_lock = threading.Lock()
        self._shares: Dict[bytes, Dict[str, float]] = {}
        self._shares_lock = threading.Lock()

    @property
    def topology(self) -> Optional[ReferenceTopology]:
        with self._reference_lock:
            return self._reference[1] if self._reference else None

    def _load(self, shard_id: int) -> ResultDocument:
        doc = self._loader(shard_id)
        with self._reference_lock:
            if self._reference is None:
                self._reference = (shard_id, doc.topology)
            else:
                first_shard, first = self._reference
                if not first.same_as(doc.topology):
                    a, b = first.signature(), doc.topology.signature()
                    detail = "reference tree" if a[0] != b[0] else ("field list" if a[1] != b[1] else "jplace version")
                    raise TopologyMismatchError(first_shard, shard_id, detail)
        return doc

    def _share(self, entry: ClusterMapEntry, record: ResultRecord) -> float:
        with self._shares_lock:
            shares = self._shares.get(entry.fingerprint)
        if shares is None:
            members = self.cluster_map.members(entry.fingerprint)
            parts = apportion(record.mass, [m.abundance for m in members], self.rounding)
            shares = {m.original_id: part for m, part in zip(members, parts)}
            with self._shares_lock:
                shares = self._shares.setdefault(entry.fingerprint, shares)
        return shares[entry.original_id]

    def record_for(self, original_id: str) -> Tuple[ClusterMapEntry, Dict[str, Any]]:
        entry = self.cluster_map.get(original_id)
        if entry is None:
            raise MissingMapEntryError(original_id)
        doc = self.cache.get_or_load(entry.shard_id, self._load)
        label = self.cluster_map.result_label(entry)
        record = doc.get(label)
        if record is None:
            raise MissingRepresentativeError(entry.shard_id, label, original_id)
        if self.redistribution is Redistribution.PROPORTIONAL:
            return entry, record.with_multiplicity(original_id, self._share(entry, record))
        return entry, record.relabel(original_id)

    def iter_records(self, ids: Optional[Iterable[str]] = None) -> Iterator[Tuple[ClusterMapEntry, Dict[str, Any]]]:
        """Records in the order of `ids` (default: cluster map order)."""
        ids = iter(self.cluster_map) if ids is None else ids
        if self.threads == 1:
            for original_id in ids:
                yield self.record_for(original_id)
            return
        with ThreadPoolExecutor(max_workers=self.threads) as executor:
            for window in _windows(ids, self.window):
                yield from executor.map(self.record_for, window)

    def output_paths(self, output: Path, *, split_by_sample: bool = False) -> List[Path]:
        """Every file run() may write for this cluster map."""
        output = Path(output)
        if not split_by_sample:
            return [output]
        return [output / f"{sample or 'unnamed'}.jplace" for sample in self.cluster_map.samples()]

    def check_outputs_absent(self, output: Path, *, split_by_sample: bool = False) -> None:
        clashes = [p for p in self.output_paths(output, split_by_sample=split_by_sample) if p.exists()]
        if clashes:
            raise ChunkIOError(
                clashes[0],
                f"Output already exists ({len(clashes)} file(s) in the way; pass overwrite to replace)",
            )

    def run(
        self,
        output: Path,
        *,
        ids: Optional[Iterable[str]] = None,
        split_by_sample: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
        overwrite: bool = False,
    ) -> ReconstructStats:
        """
        Stream the merged document to `output` (a file), or with split_by_sample
        one `<sample>.jplace` per input sample into `output` (a directory).
        Existing outputs are refused unless overwrite is set. Any failure removes
        every output written so far.
        """
        output = Path(output)
        if not overwrite:
            self.check_outputs_absent(output, split_by_sample=split_by_sample)
        stats = ReconstructStats()
        meta = {"software": f"chunkify {__version__}", "redistribution": self.redistribution.value}
        if self.cluster_map.path is not None:
            meta["cluster_map"] = str(self.cluster_map.path)
        meta.update(metadata or {})
        writers: Dict[str, JplaceWriter] = {}

        def _writer_for(sample: str) -> JplaceWriter:
            key = sample if split_by_sample else ""
            w = writers.get(key)
            if w is None:
                target = output / f"{sample or 'unnamed'}.jplace" if split_by_sample else output
                w = JplaceWriter(target, self.topology, {**meta, "sample": sample} if split_by_sample else meta)
                writers[key] = w
            return w

        try:
            for entry, placement in self.iter_records(ids):
                _writer_for(entry.sample).write(placement)
                stats.records += 1
                if stats.records % 100000 == 0:
                    _LOG.info("Reconstructed %d records (%d shard loads)", stats.records, self.cache.loads)
        except BaseException:
            for w in writers.values():
                w.abort()
            raise
        for w in writers.values():
            w.close()
            stats.outputs.append(w.path)
        stats.cache = self.cache.stats()
        if not stats.records:
            _LOG.warning("No records to reconstruct; nothing written")
        _LOG.info(
            "Reconstructed %d records into %d file(s); %d shard loads, %d evictions",
            stats.records,
            len(stats.outputs),
            stats.cache["loads"],
            stats.cache["evictions"],
        )
        return stats
