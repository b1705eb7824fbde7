"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/tests/test_digest.py

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import hashlib

import pytest

from chunkify.src.digest import DigestAlgorithm, digest, fingerprint_from_hex
from chunkify.src.errors import ConfigError, DigestMismatchError


def test_widths_match_hashlib() -> None:
    for algo, name in [(DigestAlgorithm.MD5, "md5"), (DigestAlgorithm.SHA1, "sha1"), (DigestAlgorithm.SHA256, "sha256")]:
        assert algo.width == hashlib.new(name).digest_size
        assert len(algo.digest(b"ACGT")) == algo.width
        assert len(algo.hexdigest(b"ACGT")) == algo.hex_width


def test_default_is_sha1_and_deterministic() -> None:
    assert digest(b"ACGT") == hashlib.sha1(b"ACGT").digest()
    assert digest(b"ACGT") == digest(b"ACGT")


def test_case_is_significant() -> None:
    assert digest(b"acgt") != digest(b"ACGT")


@pytest.mark.parametrize("name", ["SHA-256", "sha256", " Sha256 "])
def test_parse_is_lenient_on_spelling(name: str) -> None:
    assert DigestAlgorithm.parse(name) is DigestAlgorithm.SHA256


def test_parse_rejects_unknown() -> None:
    with pytest.raises(ConfigError):
        DigestAlgorithm.parse("crc32")


def test_fingerprint_from_hex_checks_width() -> None:
    hx = DigestAlgorithm.SHA1.hexdigest(b"ACGT")
    assert fingerprint_from_hex(hx, DigestAlgorithm.SHA1) == DigestAlgorithm.SHA1.digest(b"ACGT")
    with pytest.raises(DigestMismatchError):
        fingerprint_from_hex(hx, DigestAlgorithm.SHA256)
    with pytest.raises(DigestMismatchError):
        fingerprint_from_hex("zz" * 20, DigestAlgorithm.SHA1)
