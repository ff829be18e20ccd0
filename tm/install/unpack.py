"""Artifact unpacking.

Supports zip, tar.gz/tgz, tar.xz/txz and tar.bz2/tbz2 archives, plus bare
executables, which are copied as-is. A bare executable is a name with no
extension or ``.exe``, or any other name whose first bytes are an ELF,
Mach-O, PE or ``#!`` header (e.g. "tool-1.2.0-linux"). Extraction
never writes outside the target directory: absolute member names, ``..``
components and symlinks are skipped. ``archive_prefix`` strips a leading
directory (e.g. "cmake-3.31.6-linux-x86_64") from every member.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import stat
import tarfile
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Literal

from tm.core.result import Err, Ok, Result
from tm.platform.files import make_executable

__all__ = ["Unpacker", "UnpackResult", "UnpackError", "archive_kind", "looks_executable"]

type ArchiveKind = Literal["zip", "gz", "xz", "bz2", "exe"]


@dataclass(frozen=True, slots=True)
class UnpackError:
    """Unpack failure details.

    Attributes:
        archive: Path to the artifact that failed
        message: Human-readable error message
    """

    archive: Path
    message: str

    def __str__(self) -> str:
        return f"{self.message}: {self.archive.name}"


@dataclass(frozen=True, slots=True)
class UnpackResult:
    """Result of an unpack operation.

    Attributes:
        output_dir: Directory the artifact was unpacked into
        files_count: Number of files written
    """

    output_dir: Path
    files_count: int


def archive_kind(name: str) -> ArchiveKind | None:
    """Artifact type from its file name, or None if unsupported."""
    # NOTE: Path.suffixes is not reliable for names like "cmake-3.31.6-linux.tar.gz"
    lower = name.lower()
    if lower.endswith(".zip"):
        return "zip"
    if lower.endswith((".tar.gz", ".tgz")):
        return "gz"
    if lower.endswith((".tar.xz", ".txz")):
        return "xz"
    if lower.endswith((".tar.bz2", ".tbz2")):
        return "bz2"
    if lower.endswith(".exe") or "." not in lower:
        return "exe"
    return None


_EXECUTABLE_MAGIC: tuple[bytes, ...] = (
    b"\x7fELF",
    b"MZ",
    b"#!",
    # Mach-O 32/64 bit, both byte orders, and universal binaries
    b"\xfe\xed\xfa\xce",
    b"\xfe\xed\xfa\xcf",
    b"\xce\xfa\xed\xfe",
    b"\xcf\xfa\xed\xfe",
    b"\xca\xfe\xba\xbe",
)


def looks_executable(path: Path) -> bool:
    """True if the file starts with a known executable header."""
    try:
        with path.open("rb") as handle:
            head = handle.read(4)
    except OSError:
        return False
    return head.startswith(_EXECUTABLE_MAGIC)


def _prefix_parts(archive_prefix: str | None) -> tuple[str, ...]:
    if not archive_prefix:
        return ()
    return tuple(p for p in PurePosixPath(archive_prefix.replace("\\", "/")).parts if p != "/")


class Unpacker:
    """Unpacks downloaded artifacts into install directories.

    Usage:
        result = Unpacker().unpack(artifact, install_dir, archive_prefix="zig-linux-x86_64-0.13.0")
        if is_ok(result):
            print(f"Unpacked {result.value.files_count} files")
    """

    def unpack(
        self,
        artifact: Path,
        output_dir: Path,
        *,
        archive_prefix: str | None = None,
    ) -> Result[UnpackResult, UnpackError]:
        """Unpack artifact into output_dir (replacing any previous content)."""
        if not artifact.is_file():
            return Err(UnpackError(archive=artifact, message="Artifact not found"))

        kind = archive_kind(artifact.name)
        if kind is None and looks_executable(artifact):
            kind = "exe"
        if kind is None:
            return Err(UnpackError(archive=artifact, message="Unsupported archive format"))

        try:
            if output_dir.exists():
                shutil.rmtree(output_dir)
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Err(UnpackError(archive=artifact, message=f"IO error: {e}"))

        prefix = _prefix_parts(archive_prefix)
        match kind:
            case "zip":
                return self._extract_zip(artifact, output_dir, prefix)
            case "exe":
                return self._copy_executable(artifact, output_dir)
            case _:
                return self._extract_tar(artifact, output_dir, prefix, kind)

    def _safe_relative_path(self, member_name: str, prefix: tuple[str, ...]) -> Path | None:
        """Return a sanitized relative extraction path, or None to skip the member."""
        normalized = member_name.replace("\\", "/")
        if normalized.startswith("/"):
            return None

        parts = tuple(p for p in PurePosixPath(normalized).parts if p != ".")
        if prefix:
            if parts[: len(prefix)] != prefix:
                return None
            parts = parts[len(prefix) :]
        if not parts:
            return None
        if any(part in {"", ".."} for part in parts):
            return None
        if parts[0].endswith(":"):
            return None

        return Path(*parts)

    def _is_within_root(self, root: Path, target: Path) -> bool:
        try:
            return target.resolve().is_relative_to(root.resolve())
        except OSError:
            return False

    def _extract_tar(
        self,
        archive: Path,
        output_dir: Path,
        prefix: tuple[str, ...],
        compression: str,
    ) -> Result[UnpackResult, UnpackError]:
        try:
            root = output_dir.resolve()
            files_count = 0

            with tarfile.open(archive, f"r:{compression}") as tar:
                for member in tar:
                    # Skip directories and non-regular entries (symlink, hardlink, device, fifo)
                    if not member.isreg():
                        continue

                    rel_path = self._safe_relative_path(member.name, prefix)
                    if rel_path is None:
                        continue

                    full_path = output_dir / rel_path
                    if not self._is_within_root(root, full_path):
                        continue

                    src = tar.extractfile(member)
                    if src is None:
                        continue

                    full_path.parent.mkdir(parents=True, exist_ok=True)
                    with src, open(full_path, "wb") as dst:
                        shutil.copyfileobj(src, dst)

                    mode = member.mode & 0o777
                    if mode:
                        with contextlib.suppress(OSError):
                            os.chmod(full_path, mode)

                    files_count += 1

            return Ok(UnpackResult(output_dir=output_dir, files_count=files_count))

        except (tarfile.TarError, EOFError) as e:
            return Err(UnpackError(archive=archive, message=f"Tar extraction failed: {e}"))
        except OSError as e:
            return Err(UnpackError(archive=archive, message=f"IO error: {e}"))

    def _extract_zip(
        self,
        archive: Path,
        output_dir: Path,
        prefix: tuple[str, ...],
    ) -> Result[UnpackResult, UnpackError]:
        try:
            root = output_dir.resolve()
            files_count = 0

            with zipfile.ZipFile(archive, "r") as zf:
                for info in zf.infolist():
                    if info.is_dir():
                        continue

                    unix_attrs = info.external_attr >> 16
                    if stat.S_ISLNK(unix_attrs):
                        continue

                    rel_path = self._safe_relative_path(info.filename, prefix)
                    if rel_path is None:
                        continue

                    full_path = output_dir / rel_path
                    if not self._is_within_root(root, full_path):
                        continue

                    full_path.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as src, open(full_path, "wb") as dst:
                        shutil.copyfileobj(src, dst)

                    # Preserve Unix permissions if available
                    if unix_attrs & 0o777:
                        with contextlib.suppress(OSError):
                            full_path.chmod(unix_attrs & 0o777)

                    files_count += 1

            return Ok(UnpackResult(output_dir=output_dir, files_count=files_count))

        except zipfile.BadZipFile as e:
            return Err(UnpackError(archive=archive, message=f"Invalid zip file: {e}"))
        except OSError as e:
            return Err(UnpackError(archive=archive, message=f"IO error: {e}"))

    def _copy_executable(
        self, artifact: Path, output_dir: Path
    ) -> Result[UnpackResult, UnpackError]:
        target = output_dir / artifact.name
        try:
            shutil.copy2(artifact, target)
            make_executable(target)
        except OSError as e:
            return Err(UnpackError(archive=artifact, message=f"IO error: {e}"))
        return Ok(UnpackResult(output_dir=output_dir, files_count=1))

    def cleanup(self, output_dir: Path) -> bool:
        """Remove an unpacked directory; False if it did not exist."""
        if output_dir.exists():
            shutil.rmtree(output_dir)
            return True
        return False
