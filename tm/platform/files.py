"""Filesystem helpers for the store."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

__all__ = ["atomic_write_bytes", "atomic_write_json", "make_executable"]


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Replace path with data; readers see the old or the new file, never a mix.

    Raises:
        OSError: If the directory cannot be created or the rename fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, staged = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".part", dir=path.parent)
    staged_path = Path(staged)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(staged_path, path)
    except BaseException:
        staged_path.unlink(missing_ok=True)
        raise


def atomic_write_json(path: Path, document: object) -> None:
    """Serialise a manifest or cache document and write it atomically."""
    text = json.dumps(document, indent=2, sort_keys=True) + "\n"
    atomic_write_bytes(path, text.encode("utf-8"))


def make_executable(path: Path) -> None:
    """Add execute bits for user, group and other (no-op on Windows)."""
    if os.name == "nt":
        return
    mode = path.stat().st_mode
    path.chmod(mode | 0o111)
