"""Artifact downloader.

Artifacts land in the tool's temp directory under their download name.
A complete artifact from an earlier attempt is reused; transfers stream
into ``<name>.part`` and are renamed only once complete, so an interrupted
download never passes for a finished one.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlparse

from tm.core.result import Err, Ok, Result
from tm.net.http import HttpError

if TYPE_CHECKING:
    from collections.abc import Callable

    from tm.install.cancel import CancelToken
    from tm.net.http import HttpClient

__all__ = ["Downloader", "DownloadResult", "download_name_for"]

PART_SUFFIX = ".part"


@dataclass(frozen=True, slots=True)
class DownloadResult:
    """Result of a download operation.

    Attributes:
        path: Path to the downloaded file
        reused: True if a previous complete download was reused
        size: File size in bytes
    """

    path: Path
    reused: bool
    size: int


def download_name_for(url: str, download_name: str | None = None) -> str:
    """File name to store an artifact under: explicit name, else last URL segment."""
    if download_name:
        return download_name
    name = PurePosixPath(unquote(urlparse(url).path)).name
    return name or "download"


class Downloader:
    """Fetches artifacts into one temp directory.

    Usage:
        downloader = Downloader(http, store.temp_dir("zig"))
        result = downloader.download(url, "zig-x86_64-linux-0.13.0.tar.xz")
    """

    def __init__(self, http: HttpClient, temp_dir: Path) -> None:
        self._http = http
        self._temp_dir = temp_dir

    @property
    def temp_dir(self) -> Path:
        return self._temp_dir

    def artifact_path(self, name: str) -> Path:
        return self._temp_dir / name

    def download(
        self,
        url: str,
        name: str,
        *,
        force: bool = False,
        cancel: CancelToken | None = None,
        progress: Callable[[int, int], None] | None = None,
    ) -> Result[DownloadResult, HttpError]:
        """Download url to <temp_dir>/<name>.

        Args:
            url: Artifact URL
            name: File name inside the temp directory
            force: Re-download even if a complete artifact exists
            cancel: Checked after every chunk; cancellation raises Cancelled
                and leaves the partial file behind
            progress: Optional callback(downloaded_bytes, total_bytes)

        Returns:
            Ok with DownloadResult, or Err with HttpError
        """
        path = self.artifact_path(name)
        if not force and path.is_file():
            return Ok(DownloadResult(path=path, reused=True, size=path.stat().st_size))

        self._temp_dir.mkdir(parents=True, exist_ok=True)
        partial = path.with_name(path.name + PART_SUFFIX)

        def on_chunk(downloaded: int, total: int) -> None:
            if cancel is not None:
                cancel.raise_if_cancelled()
            if progress is not None:
                progress(downloaded, total)

        result = self._http.download(url, partial, progress=on_chunk)
        if isinstance(result, Err):
            partial.unlink(missing_ok=True)
            return result

        try:
            partial.replace(path)
        except OSError as e:
            return Err(HttpError(url=url, status=0, message=f"cannot store download: {e}"))
        return Ok(DownloadResult(path=path, reused=False, size=path.stat().st_size))

    def fetch_text(self, url: str) -> Result[str, HttpError]:
        """Small text companion files (checksum lists, signatures)."""
        return self._http.get_text(url)
