"""Version file detection.

Walks from a start directory up to the filesystem root and returns the
first version file that pins a version for the tool. Which file names to
look for comes from the plugin's ``detect_version_files`` hook (default:
``.<tool_id>-version``); how to read them from ``parse_version_file``
(default: the trimmed file content).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from tm.core.errors import ToolError
from tm.core.result import Err, Ok, Result
from tm.plugin.schema import DetectVersionFilesOutput, Hook
from tm.versions.spec import VersionSpec, parse_version_spec

if TYPE_CHECKING:
    from tm.output.console import ConsoleProtocol
    from tm.plugin.gateway import PluginGateway

__all__ = ["DirectoryWalk", "DetectedVersion", "VersionDetector", "default_version_file"]


def default_version_file(tool_id: str) -> str:
    return f".{tool_id}-version"


class DirectoryWalk:
    """Directories from start up to the root, skipping ignored names.

    Iterating again starts over from the start directory.
    """

    def __init__(self, start: Path, ignore: Iterable[str] = ()) -> None:
        self._start = start.resolve()
        self._ignore = frozenset(ignore)

    @property
    def start(self) -> Path:
        return self._start

    def __iter__(self) -> Iterator[Path]:
        current = self._start
        while True:
            if current.name not in self._ignore:
                yield current
            if current.parent == current:
                return
            current = current.parent


@dataclass(frozen=True, slots=True)
class DetectedVersion:
    """A version pinned by a file on disk.

    Attributes:
        spec: Parsed version spec
        raw: Version text as found in (or extracted from) the file
        file: Path of the version file
    """

    spec: VersionSpec
    raw: str
    file: Path


class VersionDetector:
    """Finds a tool's pinned version near a directory."""

    def __init__(self, gateway: PluginGateway, console: ConsoleProtocol) -> None:
        self._gateway = gateway
        self._console = console

    def version_files(self, tool_id: str) -> Result[DetectVersionFilesOutput, ToolError]:
        has_hook = self._gateway.has_hook(tool_id, Hook.DETECT_VERSION_FILES)
        if isinstance(has_hook, Err):
            return has_hook
        if not has_hook.value:
            return Ok(DetectVersionFilesOutput(files=(default_version_file(tool_id),)))
        return self._gateway.detect_version_files(tool_id)

    def detect(self, tool_id: str, start_dir: Path) -> Result[DetectedVersion | None, ToolError]:
        """Search start_dir and its ancestors.

        Returns:
            Ok(DetectedVersion) for the first hit, Ok(None) if no file pins a
            version, Err on plugin faults
        """
        declared = self.version_files(tool_id)
        if isinstance(declared, Err):
            return declared
        files = declared.value.files
        if not files:
            return Ok(None)

        has_parser = self._gateway.has_hook(tool_id, Hook.PARSE_VERSION_FILE)
        if isinstance(has_parser, Err):
            return has_parser

        for directory in DirectoryWalk(start_dir, declared.value.ignore):
            for name in files:
                path = directory / name
                if not path.is_file():
                    continue
                found = self._read(tool_id, path, use_hook=has_parser.value)
                if isinstance(found, Err):
                    return found
                if found.value is not None:
                    return found
        return Ok(None)

    def _read(
        self, tool_id: str, path: Path, *, use_hook: bool
    ) -> Result[DetectedVersion | None, ToolError]:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            self._console.warning(f"{tool_id}: skipping unreadable {path}: {e}")
            return Ok(None)

        if use_hook:
            parsed = self._gateway.parse_version_file(tool_id, content, path.name)
            if isinstance(parsed, Err):
                return parsed
            raw = parsed.value.version
            if raw is None:
                return Ok(None)
        else:
            raw = content.strip()

        match parse_version_spec(raw):
            case Ok(spec):
                return Ok(DetectedVersion(spec=spec, raw=raw, file=path))
            case Err(reason):
                self._console.warning(f"{tool_id}: skipping {path}: {reason} ({raw!r})")
                return Ok(None)
