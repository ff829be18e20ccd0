"""Artifact digests and checksum list parsing.

Checksum lists come in the usual shapes:

    3f5d...e1                                  bare digest
    3f5d...e1  zig-linux-x86_64-0.13.0.tar.xz  sha256sum output
    3f5d...e1 *bun-linux-x64.zip               binary-mode marker
    SHA256 (cmake-3.31.6.tar.gz) = 3f5d...e1   BSD style
"""

from __future__ import annotations

import hashlib
import hmac
import re
from pathlib import Path

from tm.core.result import Err, Ok, Result

__all__ = [
    "file_digest",
    "sha256_file",
    "algorithm_for",
    "parse_checksum_list",
    "verify_digest",
]

_CHUNK = 1024 * 1024
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
_BSD_RE = re.compile(r"^(?:SHA256|SHA512) \((?P<file>.+)\) = (?P<digest>[0-9a-fA-F]+)$")

_ALGORITHMS: dict[int, str] = {64: "sha256", 128: "sha512"}


def file_digest(path: Path, algorithm: str = "sha256") -> str:
    """Hex digest of a file, read in chunks."""
    digest = hashlib.new(algorithm)
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def sha256_file(path: Path) -> str:
    return file_digest(path, "sha256")


def algorithm_for(digest: str) -> str | None:
    """Hash algorithm implied by a hex digest's length."""
    if not _HEX_RE.match(digest):
        return None
    return _ALGORITHMS.get(len(digest))


def parse_checksum_list(content: str, file_name: str) -> str | None:
    """Find the digest for file_name in a checksum list.

    A list holding a single bare digest applies to any file.
    """
    bare: list[str] = []
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        bsd = _BSD_RE.match(line)
        if bsd is not None:
            if bsd.group("file") == file_name:
                return bsd.group("digest").lower()
            continue

        parts = line.split(maxsplit=1)
        if algorithm_for(parts[0]) is None:
            continue
        if len(parts) == 1:
            bare.append(parts[0].lower())
            continue
        name = parts[1].strip().lstrip("*")
        if name == file_name or name.rsplit("/", 1)[-1] == file_name:
            return parts[0].lower()

    if len(bare) == 1:
        return bare[0]
    return None


def verify_digest(path: Path, expected: str) -> Result[str, str]:
    """Compare a file against an expected hex digest.

    Returns:
        Ok(actual digest) on match, Err(reason) otherwise
    """
    expected = expected.strip().lower()
    algorithm = algorithm_for(expected)
    if algorithm is None:
        return Err(f"unsupported checksum format: {expected[:16]}...")
    actual = file_digest(path, algorithm)
    if not hmac.compare_digest(actual, expected):
        return Err(f"{algorithm} mismatch: expected {expected}, got {actual}")
    return Ok(actual)
