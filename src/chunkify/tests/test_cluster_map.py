"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/tests/test_cluster_map.py

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import pytest

from chunkify.src.chunk_writer import LabelPolicy
from chunkify.src.cluster_map import ClusterMapEntry, ClusterMapWriter, load_cluster_map
from chunkify.src.digest import DigestAlgorithm
from chunkify.src.errors import DigestMismatchError, MapConsistencyError

FP_A = DigestAlgorithm.SHA1.digest(b"ACGT")
FP_B = DigestAlgorithm.SHA1.digest(b"GGCC")


def _write(path, entries, algorithm=DigestAlgorithm.SHA1, labels=LabelPolicy.REPRESENTATIVE):
    with ClusterMapWriter(path, algorithm, labels) as w:
        for e in entries:
            w.append(e)
    return path


ENTRIES = [
    ClusterMapEntry("seq1", FP_A, 0, "seq1", 1, "s1"),
    ClusterMapEntry("seq2", FP_B, 0, "seq2", 2, "s1"),
    ClusterMapEntry("seq3", FP_A, 0, "seq1", 3, "s2"),
]


def test_roundtrip_preserves_order_and_members(tmp_path) -> None:
    cmap = load_cluster_map(_write(tmp_path / "map.tsv", ENTRIES))
    assert list(cmap) == ["seq1", "seq2", "seq3"]
    assert cmap["seq3"] == ENTRIES[2]
    assert [m.original_id for m in cmap.members(FP_A)] == ["seq1", "seq3"]
    assert cmap.cluster_count == 2
    assert cmap.shard_ids() == [0]
    assert cmap.samples() == ["s1", "s2"]
    assert cmap.result_label(cmap["seq3"]) == "seq1"
    assert not (tmp_path / "map.tsv.tmp").exists()


def test_fingerprint_label_policy(tmp_path) -> None:
    cmap = load_cluster_map(_write(tmp_path / "map.tsv", ENTRIES, labels=LabelPolicy.FINGERPRINT))
    assert cmap.result_label(cmap["seq3"]) == FP_A.hex()


def test_failed_write_leaves_no_map(tmp_path) -> None:
    path = tmp_path / "map.tsv"
    with pytest.raises(RuntimeError):
        with ClusterMapWriter(path, DigestAlgorithm.SHA1) as w:
            w.append(ENTRIES[0])
            raise RuntimeError("boom")
    assert not path.exists()
    assert not (tmp_path / "map.tsv.tmp").exists()


def test_append_rejects_wrong_width(tmp_path) -> None:
    with ClusterMapWriter(tmp_path / "map.tsv", DigestAlgorithm.SHA256) as w:
        with pytest.raises(DigestMismatchError):
            w.append(ENTRIES[0])


def test_expected_digest_mismatch(tmp_path) -> None:
    path = _write(tmp_path / "map.tsv", ENTRIES)
    with pytest.raises(DigestMismatchError):
        load_cluster_map(path, expected_digest="sha256")


def test_not_a_map(tmp_path) -> None:
    p = tmp_path / "x.tsv"
    p.write_text("id\tfp\n")
    with pytest.raises(MapConsistencyError):
        load_cluster_map(p)


def test_inconsistent_cluster_rows(tmp_path) -> None:
    bad = ENTRIES + [ClusterMapEntry("seq4", FP_A, 1, "seq1", 1, "s2")]
    with pytest.raises(MapConsistencyError):
        load_cluster_map(_write(tmp_path / "map.tsv", bad))


def test_duplicate_original_id(tmp_path) -> None:
    bad = ENTRIES + [ENTRIES[0]]
    with pytest.raises(MapConsistencyError):
        load_cluster_map(_write(tmp_path / "map.tsv", bad))
