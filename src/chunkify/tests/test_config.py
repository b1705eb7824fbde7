"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/tests/test_config.py

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import textwrap

import pytest

from chunkify.src.chunk_writer import LabelPolicy
from chunkify.src.config import ChunkifyConfig, load_config
from chunkify.src.digest import DigestAlgorithm
from chunkify.src.errors import ConfigError
from chunkify.src.reconstruct import Redistribution


def _write(tmp_path, text: str):
    p = tmp_path / "chunkify.yaml"
    p.write_text(textwrap.dedent(text))
    return p


def test_defaults_without_file() -> None:
    cfg = load_config(None)
    assert cfg.dedup.digest is DigestAlgorithm.SHA1
    assert cfg.dedup.shard_capacity == 50000
    assert cfg.reconstruct.cache_capacity == 0
    assert cfg.reconstruct.redistribution is Redistribution.VERBATIM


def test_loads_sections(tmp_path) -> None:
    cfg = load_config(
        _write(
            tmp_path,
            """
            chunkify:
              dedup:
                digest: SHA-256
                shard_capacity: 10
                labels: fingerprint
              reconstruct:
                redistribution: proportional
                cache_capacity: 4
            """,
        )
    )
    assert cfg.dedup.digest is DigestAlgorithm.SHA256
    assert cfg.dedup.labels is LabelPolicy.FINGERPRINT
    assert cfg.reconstruct.redistribution is Redistribution.PROPORTIONAL
    assert cfg.reconstruct.cache_capacity == 4


@pytest.mark.parametrize(
    "text",
    [
        "chunkify:\n  dedup:\n    shard_capacity: 0\n",
        "chunkify:\n  dedup:\n    typo_key: 1\n",
        "chunkify:\n  dedup:\n    digest: sha1\n    digest: md5\n",
        "chunkify:\n  reconstruct:\n    result_pattern: chunk.jplace\n",
        "chunkify:\n  reconstruct:\n    result_pattern: chunk_{shard}_{x}.jplace\n",
        "other_tool: {}\n",
        "chunkify: [\n",
    ],
)
def test_invalid_configs(tmp_path, text: str) -> None:
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, text))


def test_missing_file(tmp_path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.yaml")


def test_cli_overrides_win() -> None:
    cfg = ChunkifyConfig().with_overrides("dedup", shard_capacity=7, digest=None)
    assert cfg.dedup.shard_capacity == 7
    assert cfg.dedup.digest is DigestAlgorithm.SHA1
    with pytest.raises(ConfigError):
        ChunkifyConfig().with_overrides("reconstruct", rounding="banker")
