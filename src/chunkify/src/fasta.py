"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/fasta.py

Lazy FASTA reading and writing.

- `iter_fasta`: one SequenceRecord at a time (plain or gzip input)
- `guess_abundance`: abundance annotation in a header (`size=N` or trailing `_N`)
- `unique_ids`: id-uniqueness stage that runs before any fingerprinting
- `FastaWriter`: representatives-only shard output

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import gzip
import re
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterable, Iterator, Optional

from .errors import ChunkIOError, DuplicateIDError, EmptySequenceError, FastaFormatError

_ABUNDANCE_RE = re.compile(r"(?:;?size=([0-9]+);?)|(?:_([0-9]+)$)")


@dataclass(frozen=True)
class SequenceRecord:
    id: str
    residues: bytes
    abundance: int = 1
    sample: Optional[str] = None

    def __post_init__(self):
        if not self.residues:
            raise EmptySequenceError(self.id, self.sample)
        if self.abundance < 1:
            raise ValueError(f"abundance must be >= 1 for '{self.id}', got {self.abundance}")


def guess_abundance(label: str) -> int:
    """
    Abundance encoded in a sequence label, 1 if there is none.

    >>> guess_abundance("otu7;size=12;")
    12
    >>> guess_abundance("read_3")
    3
    """
    m = _ABUNDANCE_RE.search(label or "")
    if not m:
        return 1
    return int(m.group(1) or m.group(2))


def sample_name(path: Path | str) -> str:
    name = Path(path).name
    for ext in (".gz", ".fasta", ".fas", ".fna", ".fa"):
        if name.endswith(ext):
            name = name[: -len(ext)]
    return name


def _open_text(path: Path) -> IO[str]:
    if path.suffix == ".gz":
        return gzip.open(path, "rt", encoding="ascii")
    return path.open("r", encoding="ascii")


def iter_fasta(path: Path | str, *, sample: Optional[str] = None) -> Iterator[SequenceRecord]:
    """
    Stream records from a FASTA file. The record id is the first whitespace token
    of the header; the whole header is searched for an abundance annotation.
    Residues are kept byte-for-byte (case preserved, line breaks removed).
    """
    path = Path(path)
    if sample is None:
        sample = sample_name(path)
    try:
        fh = _open_text(path)
    except OSError as e:
        raise ChunkIOError(path, f"Cannot open sequence file ({e.strerror or e})") from e

    header: Optional[str] = None
    parts: list[str] = []

    def _emit() -> SequenceRecord:
        seq_id = header.split(None, 1)[0] if header.strip() else ""
        if not seq_id:
            raise FastaFormatError(f"Empty FASTA header in {path}")
        residues = "".join(parts).encode("ascii")
        if not residues:
            raise EmptySequenceError(seq_id, sample)
        return SequenceRecord(
            id=seq_id,
            residues=residues,
            abundance=max(1, guess_abundance(header)),
            sample=sample,
        )

    with fh:
        try:
            for lineno, raw_line in enumerate(fh, start=1):
                line = raw_line.strip()
                if not line:
                    continue
                if line.startswith(">"):
                    if header is not None:
                        yield _emit()
                    header = line[1:].strip()
                    parts = []
                    continue
                if line.startswith(";"):
                    continue
                if header is None:
                    raise FastaFormatError(f"{path}:{lineno}: sequence data before the first header")
                parts.append(line)
        except UnicodeDecodeError as e:
            raise FastaFormatError(f"{path}: non-ASCII content in FASTA input") from e
        except OSError as e:
            raise ChunkIOError(path, f"Failed reading sequence file ({e.strerror or e})") from e
        if header is not None:
            yield _emit()


def iter_fasta_files(paths: Iterable[Path | str]) -> Iterator[SequenceRecord]:
    for p in paths:
        yield from iter_fasta(p)


def unique_ids(records: Iterable[SequenceRecord]) -> Iterator[SequenceRecord]:
    """Pass records through, failing on the first id seen twice."""
    seen: set[str] = set()
    for rec in records:
        if rec.id in seen:
            raise DuplicateIDError(rec.id, rec.sample)
        seen.add(rec.id)
        yield rec


class FastaWriter:
    """Write FASTA records to an open text handle. line_length=0 keeps residues on one line."""

    def __init__(self, handle: IO[str], line_length: int = 0):
        if line_length < 0:
            raise ValueError("line_length must be >= 0")
        self._fh = handle
        self.line_length = int(line_length)
        self.count = 0

    def write(self, label: str, residues: bytes) -> None:
        seq = residues.decode("ascii")
        self._fh.write(f">{label}\n")
        if self.line_length == 0:
            self._fh.write(seq + "\n")
        else:
            n = self.line_length
            for i in range(0, len(seq), n):
                self._fh.write(seq[i : i + n] + "\n")
        self.count += 1
