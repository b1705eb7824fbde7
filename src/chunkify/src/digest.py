"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/digest.py

Content fingerprints for sequence residues.

The set of algorithms is closed: the algorithm name is written into the cluster
map header and checked again at reconstruction time, so widening the set means
a new map format, not a plugin.

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import hashlib
from enum import Enum

from .errors import ConfigError, DigestMismatchError


class DigestAlgorithm(str, Enum):
    MD5 = "md5"
    SHA1 = "sha1"
    SHA256 = "sha256"

    @property
    def width(self) -> int:
        """Digest size in bytes."""
        return _WIDTHS[self]

    @property
    def hex_width(self) -> int:
        return 2 * _WIDTHS[self]

    def digest(self, residues: bytes) -> bytes:
        return hashlib.new(self.value, residues).digest()

    def hexdigest(self, residues: bytes) -> str:
        return hashlib.new(self.value, residues).hexdigest()

    @classmethod
    def parse(cls, name: str | "DigestAlgorithm") -> "DigestAlgorithm":
        if isinstance(name, DigestAlgorithm):
            return name
        key = str(name or "").strip().lower().replace("-", "")
        for algo in cls:
            if algo.value == key:
                return algo
        raise ConfigError(f"Unsupported digest algorithm {name!r}. Allowed: {[a.value for a in cls]}")


_WIDTHS = {
    DigestAlgorithm.MD5: 16,
    DigestAlgorithm.SHA1: 20,
    DigestAlgorithm.SHA256: 32,
}

DEFAULT_DIGEST = DigestAlgorithm.SHA1


def digest(residues: bytes, algorithm: DigestAlgorithm = DEFAULT_DIGEST) -> bytes:
    return algorithm.digest(residues)


def fingerprint_from_hex(value: str, algorithm: DigestAlgorithm) -> bytes:
    """Parse a stored hex fingerprint, enforcing the width of `algorithm`."""
    text = str(value or "").strip()
    if len(text) != algorithm.hex_width:
        raise DigestMismatchError(
            f"Fingerprint {text!r} has {len(text)} hex digits; "
            f"{algorithm.value} fingerprints have {algorithm.hex_width}."
        )
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise DigestMismatchError(f"Fingerprint {text!r} is not valid hex.") from e
