"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/__init__.py

Internal package root for chunkify.

Internal modules:

- digest:        Fingerprint hash choice (md5 / sha1 / sha256)
- fasta:         Lazy FASTA reading (plain or .gz), abundance parsing, writer
- cluster_table: Fingerprint -> cluster bookkeeping, threaded hashing
- chunk_writer:  Bounded shard files (chunk_<n>.fasta) and their index
- cluster_map:   Original id -> (fingerprint, shard, representative) on disk
- dedup:         The split half: inputs -> shards + cluster map
- jplace:        Shard result reading and streaming merged output
- result_cache:  Bounded LRU with single-flight loads
- reconstruct:   The merge half: shard results -> one record per original id
- config:        YAML + pydantic configuration
- errors:        Typed exception hierarchy
- app:           Typer CLI

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""
