import json

import pytest


def _write_fasta(path, records, line_length=0):
    lines = []
    for name, seq in records:
        lines.append(f">{name}")
        if line_length:
            lines.extend(seq[i : i + line_length] for i in range(0, len(seq), line_length))
        else:
            lines.append(seq)
    path.write_text("\n".join(lines) + "\n", encoding="ascii")
    return path


def _jplace_doc(names, tree="((A:1,B:2){0}:1,C:3){1};", fields=None, version=3, multiplicity=None):
    """One placement per name; edge_num and like_weight_ratio vary with position."""
    fields = fields or ["edge_num", "likelihood", "like_weight_ratio", "distal_length", "pendant_length"]
    placements = []
    for i, name in enumerate(names):
        pq = {"p": [[i % 2, -100.0 - i, 1.0, 0.1, 0.01 * (i + 1)]]}
        if multiplicity is None:
            pq["n"] = [name]
        else:
            pq["nm"] = [[name, multiplicity]]
        placements.append(pq)
    return {"tree": tree, "placements": placements, "fields": fields, "version": version, "metadata": {}}


@pytest.fixture
def write_fasta():
    """Factory: write_fasta(path, [(name, seq), ...]) -> path."""
    return _write_fasta


@pytest.fixture
def jplace_doc():
    return _jplace_doc


@pytest.fixture
def place_shards():
    """
    Fake the external placement step: for every chunk_<n>.fasta under `out_dir`
    write chunk_<n>.jplace placing each shard record by its FASTA label.
    """

    def _place(out_dir, **kwargs):
        written = []
        for shard in sorted(out_dir.glob("chunk_*.fasta")):
            names = [ln[1:].strip() for ln in shard.read_text().splitlines() if ln.startswith(">")]
            target = shard.with_suffix(".jplace")
            target.write_text(json.dumps(_jplace_doc(names, **kwargs)), encoding="utf-8")
            written.append(target)
        return written

    return _place
