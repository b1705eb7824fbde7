"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/tests/test_dedup.py

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import json

import pytest

from chunkify.src.cluster_map import MAP_FILENAME, load_cluster_map
from chunkify.src.dedup import dedup_records, run_chunkify
from chunkify.src.chunk_writer import ChunkWriter
from chunkify.src.errors import ChunkIOError, DuplicateIDError, EmptySequenceError
from chunkify.src.fasta import SequenceRecord, iter_fasta, iter_fasta_files
from chunkify.src.reconstruct import Reconstructor, ShardLocator

SAMPLE_1 = [("seq1", "ACGTACGT"), ("seq2", "GGGGCCCC"), ("seq3", "ACGTACGT"), ("seq4", "TTTTAAAA")]
SAMPLE_2 = [("seq5", "GGGGCCCC"), ("seq6", "CATCATCA"), ("seq7", "ACGTACGT")]


@pytest.fixture
def inputs(tmp_path, write_fasta):
    return [
        write_fasta(tmp_path / "s1.fasta", SAMPLE_1),
        write_fasta(tmp_path / "s2.fasta", SAMPLE_2),
    ]


def test_dedup_counts_and_map(tmp_path, inputs) -> None:
    out = tmp_path / "chunks"
    stats = run_chunkify(inputs, out, shard_capacity=3)
    assert stats.records_kept == 7
    assert stats.clusters == 4
    assert stats.duplicates == 3
    assert stats.shards == 2
    cmap = load_cluster_map(out / MAP_FILENAME)
    assert list(cmap) == ["seq1", "seq2", "seq3", "seq4", "seq5", "seq6", "seq7"]
    assert cmap["seq7"].representative_id == "seq1"
    assert cmap["seq5"].representative_id == "seq2"
    assert cmap["seq6"].shard_id == 1
    assert cmap["seq6"].sample == "s2"
    assert sum(cmap.member_count(fp) for fp in {e.fingerprint for e in cmap.entries()}) == 7
    shard_ids = [r.id for p in sorted(out.glob("chunk_*.fasta")) for r in iter_fasta(p)]
    assert shard_ids == ["seq1", "seq2", "seq4", "seq6"]


def test_dedup_is_idempotent_on_representatives(tmp_path, inputs) -> None:
    first = run_chunkify(inputs, tmp_path / "one")
    again = run_chunkify(sorted((tmp_path / "one").glob("chunk_*.fasta")), tmp_path / "two")
    assert again.records_kept == first.clusters
    assert again.clusters == first.clusters
    assert again.duplicates == 0


@pytest.mark.parametrize("capacity", [1, 2, 1000])
def test_shard_capacity_does_not_change_merged_output(tmp_path, inputs, place_shards, capacity) -> None:
    out = tmp_path / f"cap{capacity}"
    run_chunkify(inputs, out, shard_capacity=capacity)
    place_shards(out)
    cmap = load_cluster_map(out / MAP_FILENAME)
    # the fake placement step assigns payloads by position in the shard, so compare names and sharing only
    rec = Reconstructor(cmap, ShardLocator(directory=out).load)
    merged = tmp_path / f"merged{capacity}.jplace"
    rec.run(merged)
    doc = json.loads(merged.read_text())
    names = [pq["n"][0] for pq in doc["placements"]]
    assert names == ["seq1", "seq2", "seq3", "seq4", "seq5", "seq6", "seq7"]
    by_name = {pq["n"][0]: pq["p"] for pq in doc["placements"]}
    assert by_name["seq3"] == by_name["seq1"] == by_name["seq7"]
    assert by_name["seq5"] == by_name["seq2"]


def test_refuses_existing_outputs(tmp_path, inputs) -> None:
    out = tmp_path / "chunks"
    run_chunkify(inputs, out)
    with pytest.raises(ChunkIOError):
        run_chunkify(inputs, out)
    stats = run_chunkify(inputs[:1], out, overwrite=True)
    assert stats.records_kept == 4
    assert len(load_cluster_map(out / MAP_FILENAME)) == 4


def test_duplicate_id_aborts_without_outputs(tmp_path, write_fasta) -> None:
    a = write_fasta(tmp_path / "a.fasta", [("seq1", "ACGT"), ("seq2", "GGGG")])
    b = write_fasta(tmp_path / "b.fasta", [("seq1", "TTTT")])
    out = tmp_path / "chunks"
    with pytest.raises(DuplicateIDError):
        dedup_records(iter_fasta_files([a, b]), out, shard_capacity=1)
    assert not (out / MAP_FILENAME).exists()
    assert list(out.glob("chunk_*.fasta")) == []


def test_min_abundance_filter(tmp_path, write_fasta) -> None:
    p = write_fasta(
        tmp_path / "a.fasta",
        [("otu1;size=10;", "ACGT"), ("otu2;size=1;", "GGGG"), ("otu3;size=4;", "ACGT")],
    )
    stats = run_chunkify([p], tmp_path / "chunks", min_abundance=2)
    assert stats.records_total == 3
    assert stats.records_filtered == 1
    assert stats.clusters == 1
    cmap = load_cluster_map(tmp_path / "chunks" / MAP_FILENAME)
    assert [e.abundance for e in cmap.entries()] == [10, 4]


def test_requires_inputs(tmp_path) -> None:
    with pytest.raises(ValueError):
        run_chunkify([], tmp_path)


def test_empty_residues_rejected_before_any_output(tmp_path) -> None:
    out = tmp_path / "chunks"

    def records():
        yield SequenceRecord(id="seq1", residues=b"ACGT")
        yield SequenceRecord(id="seq2", residues=b"")

    with pytest.raises(EmptySequenceError):
        dedup_records(records(), out)
    assert not (out / MAP_FILENAME).exists()
    assert list(out.glob("chunk_*.fasta")) == []


def test_repeated_id_is_fatal_even_when_one_copy_is_filtered(tmp_path, write_fasta) -> None:
    p = write_fasta(tmp_path / "a.fasta", [("otu1 size=5", "ACGT"), ("otu1 size=1", "GGGG")])
    with pytest.raises(DuplicateIDError):
        run_chunkify([p], tmp_path / "chunks", min_abundance=2)
    assert not (tmp_path / "chunks" / MAP_FILENAME).exists()


def test_failed_shard_finalize_leaves_no_map(tmp_path, inputs, monkeypatch) -> None:
    def broken_close(self):
        raise ChunkIOError(self.index_path, "Failed sealing shard")

    monkeypatch.setattr(ChunkWriter, "close", broken_close)
    out = tmp_path / "chunks"
    with pytest.raises(ChunkIOError):
        run_chunkify(inputs, out, shard_capacity=3)
    assert not (out / MAP_FILENAME).exists()
    assert not (out / (MAP_FILENAME + ".tmp")).exists()
    assert list(out.glob("chunk_*.fasta")) == []
