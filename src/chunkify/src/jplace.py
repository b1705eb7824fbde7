"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/jplace.py

Read per-shard placement results and stream the merged result (jplace, JSON).

A shard document is parsed into its reference topology (tree, field names,
format version) and a name -> ResultRecord lookup. Records are never
interpreted beyond their name entries: the placement payload is copied through
as-is and only the name (and, when redistributing, the multiplicity) changes.

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import gzip
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, Dict, Mapping, Optional, Tuple, Union

from .errors import ChunkIOError, ResultFormatError


def _strip_unquoted_whitespace(tree: str) -> str:
    """Drop whitespace outside single-quoted Newick labels ('' inside a label is a literal quote)."""
    out = []
    quoted = False
    for ch in tree:
        if ch == "'":
            quoted = not quoted
        elif not quoted and ch.isspace():
            continue
        out.append(ch)
    return "".join(out)


@dataclass(frozen=True)
class ReferenceTopology:
    tree: str
    fields: Tuple[str, ...]
    version: int

    def signature(self) -> Tuple[str, Tuple[str, ...], int]:
        """Content used to decide whether two shards share one reference."""
        return _strip_unquoted_whitespace(self.tree), self.fields, self.version

    def same_as(self, other: "ReferenceTopology") -> bool:
        return self.signature() == other.signature()


@dataclass(frozen=True)
class ResultRecord:
    """
    One representative's placement entry without its name list. `multiplicity`
    is None when the source used plain names ("n").
    """

    payload: Mapping[str, Any]
    multiplicity: Optional[float] = None

    @property
    def mass(self) -> float:
        return 1 if self.multiplicity is None else self.multiplicity

    def relabel(self, name: str) -> Dict[str, Any]:
        out = dict(self.payload)
        if self.multiplicity is None:
            out["n"] = [name]
        else:
            out["nm"] = [[name, self.multiplicity]]
        return out

    def with_multiplicity(self, name: str, multiplicity: float) -> Dict[str, Any]:
        out = dict(self.payload)
        out["nm"] = [[name, multiplicity]]
        return out


@dataclass(frozen=True)
class ResultDocument:
    topology: ReferenceTopology
    records: Mapping[str, ResultRecord]
    metadata: Mapping[str, Any] = field(default_factory=dict)
    source: str = ""

    def __len__(self) -> int:
        return len(self.records)

    def get(self, name: str) -> Optional[ResultRecord]:
        return self.records.get(name)


# ---- reading ----------------------------------------------------------------


def _is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)


def parse_jplace(doc: Any, source: str = "<memory>") -> ResultDocument:
    if not isinstance(doc, dict):
        raise ResultFormatError(f"Invalid jplace (top level is not an object): {source}")
    tree = doc.get("tree")
    placements = doc.get("placements")
    fields = doc.get("fields")
    version = doc.get("version", 3)
    if not isinstance(tree, str) or not tree.strip():
        raise ResultFormatError(f"Invalid jplace (missing 'tree'): {source}")
    if not isinstance(placements, list):
        raise ResultFormatError(f"Invalid jplace (missing 'placements' array): {source}")
    if not isinstance(fields, list) or not all(isinstance(f, str) for f in fields):
        raise ResultFormatError(f"Invalid jplace (missing 'fields' list): {source}")
    if not isinstance(version, int) or isinstance(version, bool):
        raise ResultFormatError(f"Invalid jplace (version must be an integer): {source}")

    records: Dict[str, ResultRecord] = {}

    def _add(name: Any, rec: ResultRecord, idx: int) -> None:
        if not isinstance(name, str):
            raise ResultFormatError(f"Invalid jplace (placement {idx} has a non-string name): {source}")
        if name in records:
            raise ResultFormatError(f"Sequence name '{name}' occurs more than once in {source}")
        records[name] = rec

    for idx, pq in enumerate(placements):
        if not isinstance(pq, dict) or "p" not in pq:
            raise ResultFormatError(f"Invalid jplace (placement {idx} has no 'p'): {source}")
        payload = {k: v for k, v in pq.items() if k not in ("n", "nm")}
        if "nm" in pq:
            nm = pq["nm"]
            if not isinstance(nm, list):
                raise ResultFormatError(f"Invalid jplace (placement {idx} 'nm' is not a list): {source}")
            for item in nm:
                if not isinstance(item, list) or len(item) != 2 or not _is_number(item[1]):
                    raise ResultFormatError(f"Invalid jplace (placement {idx} has a malformed 'nm' entry): {source}")
                _add(item[0], ResultRecord(payload=payload, multiplicity=item[1]), idx)
        elif "n" in pq:
            names = pq["n"]
            if isinstance(names, str):
                names = [names]
            if not isinstance(names, list):
                raise ResultFormatError(f"Invalid jplace (placement {idx} 'n' is not a list): {source}")
            for name in names:
                _add(name, ResultRecord(payload=payload, multiplicity=None), idx)
        else:
            raise ResultFormatError(f"Invalid jplace (placement {idx} has no names): {source}")

    metadata = doc.get("metadata") if isinstance(doc.get("metadata"), dict) else {}
    return ResultDocument(
        topology=ReferenceTopology(tree=tree, fields=tuple(fields), version=version),
        records=records,
        metadata=metadata,
        source=source,
    )


def load_jplace(path: Path | str) -> ResultDocument:
    path = Path(path)
    try:
        if path.suffix == ".gz":
            with gzip.open(path, "rt", encoding="utf-8") as fh:
                raw = json.load(fh)
        else:
            with path.open("r", encoding="utf-8") as fh:
                raw = json.load(fh)
    except json.JSONDecodeError as e:
        raise ResultFormatError(f"Invalid JSON in {path}: {e}") from e
    except OSError as e:
        raise ChunkIOError(path, f"Cannot read result document ({e.strerror or e})") from e
    return parse_jplace(raw, source=str(path))


# ---- writing ----------------------------------------------------------------


class JplaceWriter:
    """
    Incremental jplace writer: the header is written on construction, each
    placement as it arrives, and fields/version/metadata on close(). Nothing but
    the current record is held in memory.
    """

    def __init__(
        self,
        target: Union[Path, str, IO[str]],
        topology: ReferenceTopology,
        metadata: Optional[Mapping[str, Any]] = None,
    ):
        self.topology = topology
        self.metadata = dict(metadata or {})
        self.count = 0
        self._owned = not hasattr(target, "write")
        self.path: Optional[Path] = Path(target) if self._owned else None
        if self._owned:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._fh: Optional[IO[str]] = self.path.open("w", encoding="utf-8")
            except OSError as e:
                raise ChunkIOError(self.path, f"Cannot create output ({e.strerror or e})") from e
        else:
            self._fh = target  # type: ignore[assignment]
        self._write('{\n  "tree": ' + json.dumps(topology.tree) + ',\n  "placements": [')

    def __enter__(self) -> "JplaceWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()

    def _write(self, text: str) -> None:
        try:
            self._fh.write(text)
        except OSError as e:
            raise ChunkIOError(self.path or "<stream>", f"Failed writing output ({e.strerror or e})") from e

    def write(self, placement: Mapping[str, Any]) -> None:
        sep = "\n    " if self.count == 0 else ",\n    "
        self._write(sep + json.dumps(placement))
        self.count += 1

    def close(self) -> None:
        if self._fh is None:
            return
        trailer = (
            ("\n  ],\n" if self.count else "],\n")
            + '  "fields": '
            + json.dumps(list(self.topology.fields))
            + ',\n  "version": '
            + json.dumps(self.topology.version)
            + ',\n  "metadata": '
            + json.dumps(self.metadata)
            + "\n}\n"
        )
        self._write(trailer)
        if self._owned:
            self._fh.close()
        else:
            self._fh.flush()
        self._fh = None

    def abort(self) -> None:
        """Partial output is never valid: close and remove a file we created."""
        if self._fh is None:
            return
        if self._owned:
            self._fh.close()
            self.path.unlink(missing_ok=True)
        self._fh = None
