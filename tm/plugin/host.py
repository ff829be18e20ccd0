"""Host functions: the only capabilities a plugin is given.

A plugin never touches the network or the filesystem directly. It calls
back into the host through a HostFunctions object bound to its tool id:

- HTTP fetches go through the host's HttpClient (and its timeout)
- file access uses virtual paths and is confined to the tool's own
  temp directory (/tm/temp/<tool_id>) and, during a call that carries a
  ToolContext, that context's install directory (/tm/tools/<tool_id>/<version>).
  The tool's manifest and its other versions are never reachable.
- environment variables are readable, never writable
- the tool's settings table is handed over as a copy
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from tm.core.result import Err
from tm.core.structured import StrDict
from tm.output.console import Style
from tm.platform.files import make_executable
from tm.plugin.schema import ToolContext

if TYPE_CHECKING:
    from tm.core.store import Store
    from tm.net.http import HttpClient
    from tm.output.console import ConsoleProtocol
    from tm.platform.detection import HostEnvironment

__all__ = [
    "HostCallError",
    "HostNetworkError",
    "HostFunctions",
    "VirtualFs",
    "VIRTUAL_TEMP",
    "VIRTUAL_TOOLS",
    "NETWORK_HINT",
]

VIRTUAL_TEMP = "/tm/temp"
VIRTUAL_TOOLS = "/tm/tools"

NETWORK_HINT = "A network fetch made by the plugin failed; check connectivity and retry."


class HostCallError(RuntimeError):
    """A host function refused or failed a plugin request."""


class HostNetworkError(HostCallError):
    """A host-mediated fetch failed."""


@dataclass(frozen=True, slots=True)
class VirtualFs:
    """Maps a tool's virtual paths onto the store and back.

    Without a version only the temp directory is in scope; ``scoped`` adds
    one version's install directory.
    """

    store: Store
    tool_id: str
    version: str | None = None

    @property
    def temp_dir(self) -> str:
        return f"{VIRTUAL_TEMP}/{self.tool_id}"

    @property
    def tool_dir(self) -> str:
        return f"{VIRTUAL_TOOLS}/{self.tool_id}"

    def context(self, version: str) -> ToolContext:
        """Fresh context for one operation on this tool."""
        return ToolContext(
            tool_id=self.tool_id,
            version=version,
            temp_dir=self.temp_dir,
            install_dir=f"{self.tool_dir}/{version}",
        )

    def scoped(self, context: ToolContext) -> VirtualFs:
        """Copy whose install scope is context's install directory.

        Raises:
            HostCallError: If the context belongs to another tool or its
                version is not a single path segment.
        """
        version = context.version
        if (
            context.tool_id != self.tool_id
            or version in ("", ".", "..")
            or "/" in version
            or "\\" in version
            or context.install_dir != f"{self.tool_dir}/{version}"
        ):
            raise HostCallError(f"context outside of plugin scope: {context.install_dir!r}")
        return replace(self, version=version)

    def _roots(self) -> tuple[tuple[str, Path], ...]:
        roots = [(self.temp_dir, self.store.temp_dir(self.tool_id))]
        if self.version is not None:
            roots.append(
                (
                    f"{self.tool_dir}/{self.version}",
                    self.store.install_dir(self.tool_id, self.version),
                )
            )
        return tuple(roots)

    def to_real(self, virtual: str) -> Path:
        """Resolve a virtual path to a real one inside the tool's scope.

        Raises:
            HostCallError: If the path escapes the tool's directories.
        """
        posix = PurePosixPath(virtual)
        if not posix.is_absolute() or ".." in posix.parts:
            raise HostCallError(f"invalid virtual path: {virtual!r}")
        for prefix, real_root in self._roots():
            prefix_path = PurePosixPath(prefix)
            if posix == prefix_path or prefix_path in posix.parents:
                return real_root.joinpath(*posix.relative_to(prefix_path).parts)
        raise HostCallError(f"path outside of plugin scope: {virtual!r}")

    def to_virtual(self, real: Path) -> str:
        """Inverse of to_real.

        Raises:
            HostCallError: If the real path is outside the tool's directories.
        """
        for prefix, real_root in self._roots():
            if real == real_root or real.is_relative_to(real_root):
                rel = real.relative_to(real_root).as_posix()
                return prefix if rel == "." else f"{prefix}/{rel}"
        raise HostCallError(f"path outside of plugin scope: {real}")


class HostFunctions:
    """Capability object handed to a plugin at load time."""

    def __init__(
        self,
        *,
        host: HostEnvironment,
        vfs: VirtualFs,
        http: HttpClient,
        settings: StrDict | None = None,
        environ: Mapping[str, str] | None = None,
        console: ConsoleProtocol | None = None,
    ) -> None:
        self._host = host
        self._base_vfs = vfs
        self._vfs = vfs
        self._http = http
        self._settings: StrDict = dict(settings or {})
        self._environ = dict(os.environ if environ is None else environ)
        self._console = console

    @property
    def host_environment(self) -> HostEnvironment:
        return self._host

    @property
    def tool_id(self) -> str:
        return self._vfs.tool_id

    @contextmanager
    def scoped(self, context: ToolContext | None) -> Iterator[None]:
        """Open context's install directory to the plugin for one call.

        Calls into one plugin are serialised on its worker thread, so the
        scope is plain instance state.
        """
        if context is None:
            yield
            return
        previous = self._vfs
        self._vfs = self._base_vfs.scoped(context)
        try:
            yield
        finally:
            self._vfs = previous

    # -- network ---------------------------------------------------------------

    def fetch_json(self, url: str) -> object:
        """GET url and parse JSON.

        Raises:
            HostCallError: On network or parse failure.
        """
        result = self._http.get_json(url)
        if isinstance(result, Err):
            raise HostNetworkError(str(result.error))
        return result.value

    def fetch_text(self, url: str) -> str:
        """GET url as text.

        Raises:
            HostCallError: On network or decode failure.
        """
        result = self._http.get_text(url)
        if isinstance(result, Err):
            raise HostNetworkError(str(result.error))
        return result.value

    # -- virtual filesystem ----------------------------------------------------

    def exists(self, path: str) -> bool:
        return self._vfs.to_real(path).exists()

    def read_bytes(self, path: str) -> bytes:
        try:
            return self._vfs.to_real(path).read_bytes()
        except OSError as e:
            raise HostCallError(f"cannot read {path}: {e}") from e

    def read_text(self, path: str) -> str:
        return self.read_bytes(path).decode("utf-8")

    def write_bytes(self, path: str, data: bytes) -> None:
        real = self._vfs.to_real(path)
        try:
            real.parent.mkdir(parents=True, exist_ok=True)
            real.write_bytes(data)
        except OSError as e:
            raise HostCallError(f"cannot write {path}: {e}") from e

    def write_text(self, path: str, content: str) -> None:
        self.write_bytes(path, content.encode("utf-8"))

    def list_dir(self, path: str) -> list[str]:
        """Names of the entries in a virtual directory, sorted."""
        real = self._vfs.to_real(path)
        if not real.is_dir():
            raise HostCallError(f"not a directory: {path}")
        return sorted(entry.name for entry in real.iterdir())

    def move(self, src: str, dst: str) -> None:
        """Move a file or directory, replacing dst if it exists."""
        real_src = self._vfs.to_real(src)
        real_dst = self._vfs.to_real(dst)
        try:
            if real_dst.is_dir():
                shutil.rmtree(real_dst)
            elif real_dst.exists():
                real_dst.unlink()
            real_dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(real_src), str(real_dst))
        except OSError as e:
            raise HostCallError(f"cannot move {src} to {dst}: {e}") from e

    def remove(self, path: str) -> None:
        real = self._vfs.to_real(path)
        if real.is_dir():
            shutil.rmtree(real)
        else:
            real.unlink(missing_ok=True)

    def make_executable(self, path: str) -> None:
        real = self._vfs.to_real(path)
        if real.is_file():
            make_executable(real)

    # -- environment / config --------------------------------------------------

    def get_env_var(self, name: str) -> str | None:
        return self._environ.get(name) or None

    def tool_config(self) -> StrDict:
        """Copy of the tool's settings table from the host config."""
        return dict(self._settings)

    def log(self, message: str) -> None:
        if self._console is not None:
            self._console.print(f"{self.tool_id}: {message}", Style.DIM)
