"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/app.py

Typer CLI for chunkify.

    chunkify split  samples/*.fasta --out chunks/        # dedup into shards + map
    (place chunks/chunk_*.fasta externally -> chunk_*.jplace)
    chunkify merge  --map chunks/cluster_map.tsv --out merged.jplace
    chunkify inspect chunks/cluster_map.tsv

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from .cluster_map import MAP_FILENAME, load_cluster_map
from .config import ChunkifyConfig, load_config
from .dedup import run_chunkify
from .errors import ChunkifyError, ConfigError
from .logging_setup import configure_logging
from .reconstruct import Reconstructor, ShardLocator, ids_from_fasta

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help=(
        "chunkify: collapse identical sequences into shards before placement, "
        "then expand per-shard placement results back onto every original sequence.\n\n"
        "\b\nTypical workflow:\n"
        "  • chunkify split   - dedup FASTA inputs into chunk_<n>.fasta + cluster map\n"
        "  • chunkify merge   - rebuild a jplace covering every original sequence\n"
        "  • chunkify inspect - summarize a cluster map"
    ),
)
console = Console()


def _cfg(ctx: typer.Context) -> ChunkifyConfig:
    obj = ctx.obj or {}
    return obj.get("config") or ChunkifyConfig()


@app.callback()
def _root(
    ctx: typer.Context,
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="More logs (repeatable)."),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config (chunkify: {dedup, reconstruct})."),
):
    """
    Global flags: -v for more logs (repeatable), --config for defaults.
    """
    configure_logging(verbose)
    ctx.obj = {"config": load_config(config)}


def _kv_table(title: str, rows: List[tuple[str, str]]) -> Table:
    table = Table(title=title)
    table.add_column("Property")
    table.add_column("Value")
    for k, v in rows:
        table.add_row(k, v)
    return table


@app.command("split", help="Dedup sequence files into shards and write the cluster map.")
def split(
    ctx: typer.Context,
    inputs: List[Path] = typer.Argument(..., help="FASTA files (optionally .gz); one sample per file."),
    out: Path = typer.Option(..., "--out", "-o", help="Output directory for shards and the cluster map."),
    digest: Optional[str] = typer.Option(None, "--digest", help="Fingerprint hash: md5 | sha1 | sha256."),
    shard_capacity: Optional[int] = typer.Option(None, "--shard-capacity", "-n", help="Representatives per shard."),
    labels: Optional[str] = typer.Option(
        None, "--labels", help="Shard labels: representative (first id) | fingerprint (hex digest)."
    ),
    line_length: Optional[int] = typer.Option(None, "--line-length", help="Residues per FASTA line (0 = one line)."),
    min_abundance: Optional[int] = typer.Option(None, "--min-abundance", help="Drop sequences below this abundance."),
    threads: Optional[int] = typer.Option(None, "--threads", "-t", help="Hashing threads."),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace outputs of a previous run."),
):
    cfg = _cfg(ctx).with_overrides(
        "dedup",
        digest=digest,
        shard_capacity=shard_capacity,
        labels=labels,
        line_length=line_length,
        min_abundance=min_abundance,
        threads=threads,
    )
    d = cfg.dedup
    stats = run_chunkify(
        inputs,
        out,
        algorithm=d.digest,
        shard_capacity=d.shard_capacity,
        labels=d.labels,
        line_length=d.line_length,
        min_abundance=d.min_abundance,
        threads=d.threads,
        overwrite=overwrite,
    )
    console.print(
        _kv_table(
            "chunkify split",
            [
                ("Sequences read", str(stats.records_total)),
                ("Filtered (min abundance)", str(stats.records_filtered)),
                ("Kept", str(stats.records_kept)),
                ("Unique", str(stats.clusters)),
                ("Shards", str(stats.shards)),
                ("Cluster map", str(stats.map_path)),
            ],
        )
    )


@app.command("merge", help="Expand per-shard jplace results onto every original sequence.")
def merge(
    ctx: typer.Context,
    map_path: Path = typer.Option(..., "--map", "-m", help="Cluster map written by 'chunkify split'."),
    out: Path = typer.Option(..., "--out", "-o", help="Output jplace (or directory with --split-by-sample)."),
    results_dir: Optional[Path] = typer.Option(
        None, "--results-dir", "-r", help="Directory with shard results (default: the map's directory)."
    ),
    shard_list: Optional[Path] = typer.Option(
        None, "--shard-list", help="Text file listing one result path per shard, in shard order."
    ),
    pattern: Optional[str] = typer.Option(None, "--pattern", help="Result file name pattern, e.g. chunk_{shard}.jplace."),
    redistribution: Optional[str] = typer.Option(None, "--redistribution", help="verbatim | proportional."),
    rounding: Optional[str] = typer.Option(None, "--rounding", help="largest_remainder | none."),
    cache_capacity: Optional[int] = typer.Option(
        None, "--cache-capacity", help="Shard documents kept in memory (0 = all)."
    ),
    threads: Optional[int] = typer.Option(None, "--threads", "-t", help="Reconstruction threads."),
    order_fasta: Optional[List[Path]] = typer.Option(
        None, "--order-fasta", help="Emit records in the order of these FASTA files (repeatable)."
    ),
    min_abundance: int = typer.Option(
        1, "--min-abundance", help="Same filter as the split run; applies to --order-fasta."
    ),
    split_by_sample: Optional[bool] = typer.Option(
        None, "--split-by-sample/--single-output", help="One jplace per input sample."
    ),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace an existing merged output."),
):
    if results_dir is not None and shard_list is not None:
        raise ConfigError("Use either --results-dir or --shard-list, not both")
    cfg = _cfg(ctx).with_overrides(
        "reconstruct",
        redistribution=redistribution,
        rounding=rounding,
        cache_capacity=cache_capacity,
        threads=threads,
        result_pattern=pattern,
        split_by_sample=split_by_sample,
    )
    r = cfg.reconstruct
    cmap = load_cluster_map(map_path)
    if shard_list is not None:
        locator = ShardLocator.from_list_file(shard_list)
    else:
        locator = ShardLocator(directory=results_dir or map_path.parent, pattern=r.result_pattern)
    rec = Reconstructor(
        cmap,
        locator.load,
        redistribution=r.redistribution,
        rounding=r.rounding,
        cache_capacity=r.cache_capacity,
        threads=r.threads,
    )
    ids = ids_from_fasta(order_fasta, min_abundance) if order_fasta else None
    stats = rec.run(out, ids=ids, split_by_sample=r.split_by_sample, overwrite=overwrite)
    console.print(
        _kv_table(
            "chunkify merge",
            [
                ("Records", str(stats.records)),
                ("Outputs", "\n".join(str(p) for p in stats.outputs) or "—"),
                ("Shard loads", str(stats.cache.get("loads", 0))),
                ("Cache hits", str(stats.cache.get("hits", 0))),
                ("Evictions", str(stats.cache.get("evictions", 0))),
            ],
        )
    )


@app.command("inspect", help="Summarize a cluster map.")
def inspect_(
    map_path: Path = typer.Argument(Path(MAP_FILENAME), help="Cluster map file."),
):
    cmap = load_cluster_map(map_path)
    samples = [s or "(unnamed)" for s in cmap.samples()]
    console.print(
        _kv_table(
            f"Cluster map {map_path}",
            [
                ("Digest", cmap.algorithm.value),
                ("Labels", cmap.labels.value),
                ("Records", str(len(cmap))),
                ("Clusters", str(cmap.cluster_count)),
                ("Duplicates", str(len(cmap) - cmap.cluster_count)),
                ("Shards", str(len(cmap.shard_ids()))),
                ("Samples", ", ".join(samples) or "—"),
            ],
        )
    )


def main() -> int:
    try:
        app()
        return 0
    except ChunkifyError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
