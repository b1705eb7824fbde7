"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/config.py

chunkify YAML configuration schema and loader.

    chunkify:
      dedup:
        digest: sha1
        shard_capacity: 50000
        labels: representative
        min_abundance: 1
        line_length: 0
        threads: 1
      reconstruct:
        redistribution: verbatim
        rounding: largest_remainder
        cache_capacity: 0          # 0 = keep every shard document
        threads: 1
        result_pattern: chunk_{shard}.jplace
        split_by_sample: false

CLI options override file values.

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .chunk_writer import DEFAULT_SHARD_CAPACITY, LabelPolicy
from .digest import DEFAULT_DIGEST, DigestAlgorithm
from .errors import ConfigError
from .reconstruct import DEFAULT_RESULT_PATTERN, Redistribution, Rounding, check_result_pattern


# ---- Strict YAML loader (duplicate keys fail) ----
class _StrictLoader(yaml.SafeLoader):
    pass


def _construct_mapping(loader, node, deep: bool = False):
    mapping: Dict[Any, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigError(f"Duplicate key in YAML: {key!r}")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


_StrictLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_mapping)


class DedupConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    digest: DigestAlgorithm = DEFAULT_DIGEST
    shard_capacity: int = Field(default=DEFAULT_SHARD_CAPACITY, ge=1)
    labels: LabelPolicy = LabelPolicy.REPRESENTATIVE
    min_abundance: int = Field(default=1, ge=1)
    line_length: int = Field(default=0, ge=0)
    threads: int = Field(default=1, ge=1)

    @field_validator("digest", mode="before")
    @classmethod
    def _digest_name(cls, v):
        return DigestAlgorithm.parse(v)


class ReconstructConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    redistribution: Redistribution = Redistribution.VERBATIM
    rounding: Rounding = Rounding.LARGEST_REMAINDER
    cache_capacity: int = Field(default=0, ge=0)
    threads: int = Field(default=1, ge=1)
    result_pattern: str = DEFAULT_RESULT_PATTERN
    split_by_sample: bool = False

    @field_validator("result_pattern")
    @classmethod
    def _pattern_has_placeholder(cls, v: str):
        return check_result_pattern(v)


class ChunkifyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    reconstruct: ReconstructConfig = Field(default_factory=ReconstructConfig)

    def with_overrides(self, section: str, **values: Any) -> "ChunkifyConfig":
        """Copy with CLI overrides applied; None means 'not given on the command line'."""
        given = {k: v for k, v in values.items() if v is not None}
        if not given:
            return self
        current = getattr(self, section).model_dump()
        current.update(given)
        try:
            updated = type(getattr(self, section)).model_validate(current)
        except ValidationError as e:
            raise ConfigError(f"Invalid {section} option: {e}") from None
        return self.model_copy(update={section: updated})


def load_config(path: Optional[Path | str] = None) -> ChunkifyConfig:
    if path is None:
        return ChunkifyConfig()
    cfg_path = Path(path).expanduser().resolve()
    try:
        text = cfg_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config {cfg_path}: {e}") from e
    try:
        raw = yaml.load(text, Loader=_StrictLoader) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {cfg_path}: {e}") from e
    if not isinstance(raw, dict) or set(raw) - {"chunkify"}:
        raise ConfigError(f"Config {cfg_path} must have a single top-level 'chunkify' key")
    try:
        return ChunkifyConfig.model_validate(raw.get("chunkify") or {})
    except ValidationError as e:
        raise ConfigError(f"Invalid chunkify config ({cfg_path}): {e}") from None
