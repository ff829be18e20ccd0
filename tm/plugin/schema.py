"""Typed records exchanged across the plugin boundary.

Every hook takes one input record and returns one output record. Records
travel as JSON objects; ``to_dict`` produces the wire form and
``from_dict`` validates it, raising SchemaError on any missing or
mistyped field. The host validates every plugin output with ``from_dict``
before using it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal, cast

from tm.core.structured import (
    StrDict,
    as_str_dict,
    get_list,
    get_table,
)
from tm.platform.detection import Arch, HostEnvironment, Os

__all__ = [
    "Hook",
    "HOOKS",
    "REQUIRED_HOOKS",
    "SchemaError",
    "ToolContext",
    "PluginType",
    "RegisterInput",
    "RegisterOutput",
    "LoadVersionsInput",
    "LoadVersionsOutput",
    "ResolveVersionInput",
    "ResolveVersionOutput",
    "DownloadPrebuiltInput",
    "DownloadPrebuiltOutput",
    "UnpackArchiveInput",
    "UnpackArchiveOutput",
    "ExecutableEntry",
    "LocateExecutablesInput",
    "LocateExecutablesOutput",
    "DeclareGlobalsLookupInput",
    "DeclareGlobalsLookupOutput",
    "DetectVersionFilesInput",
    "DetectVersionFilesOutput",
    "ParseVersionFileInput",
    "ParseVersionFileOutput",
    "PostInstallInput",
    "PostInstallOutput",
]


class SchemaError(ValueError):
    """A payload does not match its record schema."""


class Hook(StrEnum):
    """Plugin lifecycle functions."""

    REGISTER = "register"
    LOAD_VERSIONS = "load_versions"
    DOWNLOAD_PREBUILT = "download_prebuilt"
    LOCATE_EXECUTABLES = "locate_executables"
    UNPACK_ARCHIVE = "unpack_archive"
    RESOLVE_VERSION = "resolve_version"
    DETECT_VERSION_FILES = "detect_version_files"
    PARSE_VERSION_FILE = "parse_version_file"
    DECLARE_GLOBALS_LOOKUP = "declare_globals_lookup"
    POST_INSTALL = "post_install"


REQUIRED_HOOKS: frozenset[Hook] = frozenset(
    {Hook.REGISTER, Hook.LOAD_VERSIONS, Hook.DOWNLOAD_PREBUILT, Hook.LOCATE_EXECUTABLES}
)


# -----------------------------------------------------------------------------
# Field readers (raise SchemaError)
# -----------------------------------------------------------------------------


def _obj(data: object, record: str) -> StrDict:
    table = as_str_dict(data)
    if table is None:
        raise SchemaError(f"{record}: expected a JSON object")
    return table


def _req_str(data: Mapping[str, object], key: str, record: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise SchemaError(f"{record}.{key}: required non-empty string")
    return value.strip()


def _opt_str(data: Mapping[str, object], key: str, record: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise SchemaError(f"{record}.{key}: expected string or null")
    return value.strip() or None


def _req_bool(data: Mapping[str, object], key: str, record: str) -> bool:
    value = data.get(key)
    if not isinstance(value, bool):
        raise SchemaError(f"{record}.{key}: required boolean")
    return value


def _str_tuple(data: Mapping[str, object], key: str, record: str) -> tuple[str, ...]:
    if data.get(key) is None:
        return ()
    items = get_list(data, key)
    if items is None or not all(isinstance(item, str) for item in items):
        raise SchemaError(f"{record}.{key}: expected list of strings")
    return tuple(cast(list[str], items))


def _str_map(data: Mapping[str, object], key: str, record: str) -> dict[str, str]:
    if data.get(key) is None:
        return {}
    table = get_table(data, key)
    if table is None or not all(isinstance(v, str) for v in table.values()):
        raise SchemaError(f"{record}.{key}: expected object of strings")
    return cast(dict[str, str], dict(table))


# -----------------------------------------------------------------------------
# Context
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ToolContext:
    """Per-operation state threaded through lifecycle calls.

    Attributes:
        tool_id: Tool being operated on
        version: Resolved exact version, or "latest" before resolution
        temp_dir: Virtual scratch directory (/tm/temp/<tool_id>)
        install_dir: Virtual install directory (/tm/tools/<tool_id>/<version>)
    """

    tool_id: str
    version: str
    temp_dir: str
    install_dir: str

    def to_dict(self) -> StrDict:
        return {
            "tool_id": self.tool_id,
            "version": self.version,
            "temp_dir": self.temp_dir,
            "install_dir": self.install_dir,
        }

    @classmethod
    def from_dict(cls, data: object) -> ToolContext:
        d = _obj(data, "context")
        return cls(
            tool_id=_req_str(d, "tool_id", "context"),
            version=_req_str(d, "version", "context"),
            temp_dir=_req_str(d, "temp_dir", "context"),
            install_dir=_req_str(d, "install_dir", "context"),
        )


@dataclass(frozen=True, slots=True)
class _ContextInput:
    """Base for hooks whose only input is the tool context."""

    context: ToolContext

    def to_dict(self) -> StrDict:
        return {"context": self.context.to_dict()}


# -----------------------------------------------------------------------------
# register
# -----------------------------------------------------------------------------

type PluginType = Literal["language", "dependency-manager", "cli"]
_PLUGIN_TYPES: tuple[str, ...] = ("language", "dependency-manager", "cli")


@dataclass(frozen=True, slots=True)
class RegisterInput:
    tool_id: str

    def to_dict(self) -> StrDict:
        return {"tool_id": self.tool_id}

    @classmethod
    def from_dict(cls, data: object) -> RegisterInput:
        return cls(tool_id=_req_str(_obj(data, "register"), "tool_id", "register"))


@dataclass(frozen=True, slots=True)
class RegisterOutput:
    """Plugin metadata.

    ``supported`` maps an OS name to the architectures the plugin can
    provide builds for; None means every host is supported.
    """

    name: str
    type: PluginType = "language"
    plugin_version: str | None = None
    minimum_host_version: str | None = None
    default_version: str | None = None
    supported: dict[str, tuple[str, ...]] | None = None

    def supports(self, host: HostEnvironment) -> bool:
        if self.supported is None:
            return True
        return host.arch.value in self.supported.get(host.os.value, ())

    def to_dict(self) -> StrDict:
        return {
            "name": self.name,
            "type": self.type,
            "plugin_version": self.plugin_version,
            "minimum_host_version": self.minimum_host_version,
            "default_version": self.default_version,
            "supported": (
                None
                if self.supported is None
                else {os_name: list(archs) for os_name, archs in self.supported.items()}
            ),
        }

    @classmethod
    def from_dict(cls, data: object) -> RegisterOutput:
        record = "register"
        d = _obj(data, record)
        kind = d.get("type", "language")
        if kind not in _PLUGIN_TYPES:
            raise SchemaError(f"{record}.type: expected one of {', '.join(_PLUGIN_TYPES)}")

        supported: dict[str, tuple[str, ...]] | None = None
        if d.get("supported") is not None:
            matrix = _obj(d.get("supported"), f"{record}.supported")
            supported = {}
            for os_name, archs in matrix.items():
                if os_name not in {o.value for o in Os}:
                    raise SchemaError(f"{record}.supported: unknown os {os_name!r}")
                arch_list = _str_tuple(matrix, os_name, f"{record}.supported")
                unknown = [a for a in arch_list if a not in {x.value for x in Arch}]
                if unknown:
                    raise SchemaError(f"{record}.supported.{os_name}: unknown arch {unknown[0]!r}")
                supported[os_name] = arch_list

        return cls(
            name=_req_str(d, "name", record),
            type=cast(PluginType, kind),
            plugin_version=_opt_str(d, "plugin_version", record),
            minimum_host_version=_opt_str(d, "minimum_host_version", record),
            default_version=_opt_str(d, "default_version", record),
            supported=supported,
        )


# -----------------------------------------------------------------------------
# load_versions / resolve_version
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LoadVersionsInput:
    initial: str

    def to_dict(self) -> StrDict:
        return {"initial": self.initial}

    @classmethod
    def from_dict(cls, data: object) -> LoadVersionsInput:
        return cls(initial=_req_str(_obj(data, "load_versions"), "initial", "load_versions"))


def _no_aliases() -> dict[str, str]:
    return {}


@dataclass(frozen=True, slots=True)
class LoadVersionsOutput:
    """Raw catalog as advertised by the plugin, most recent version first."""

    versions: tuple[str, ...]
    aliases: dict[str, str] = field(default_factory=_no_aliases)
    latest: str | None = None
    canary: str | None = None

    def to_dict(self) -> StrDict:
        return {
            "versions": list(self.versions),
            "aliases": dict(self.aliases),
            "latest": self.latest,
            "canary": self.canary,
        }

    @classmethod
    def from_dict(cls, data: object) -> LoadVersionsOutput:
        record = "load_versions"
        d = _obj(data, record)
        if "versions" not in d:
            raise SchemaError(f"{record}.versions: required list of strings")
        return cls(
            versions=_str_tuple(d, "versions", record),
            aliases=_str_map(d, "aliases", record),
            latest=_opt_str(d, "latest", record),
            canary=_opt_str(d, "canary", record),
        )


@dataclass(frozen=True, slots=True)
class ResolveVersionInput:
    initial: str

    def to_dict(self) -> StrDict:
        return {"initial": self.initial}

    @classmethod
    def from_dict(cls, data: object) -> ResolveVersionInput:
        return cls(initial=_req_str(_obj(data, "resolve_version"), "initial", "resolve_version"))


@dataclass(frozen=True, slots=True)
class ResolveVersionOutput:
    """Replacement candidate, or None to keep the parsed input."""

    candidate: str | None = None

    def to_dict(self) -> StrDict:
        return {"candidate": self.candidate}

    @classmethod
    def from_dict(cls, data: object) -> ResolveVersionOutput:
        d = _obj(data, "resolve_version")
        value = d.get("candidate")
        if value is not None and not isinstance(value, str):
            raise SchemaError("resolve_version.candidate: expected string or null")
        return cls(candidate=value)


# -----------------------------------------------------------------------------
# download_prebuilt
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DownloadPrebuiltInput(_ContextInput):
    @classmethod
    def from_dict(cls, data: object) -> DownloadPrebuiltInput:
        d = _obj(data, "download_prebuilt")
        return cls(context=ToolContext.from_dict(d.get("context")))


@dataclass(frozen=True, slots=True)
class DownloadPrebuiltOutput:
    """Where and how to fetch the prebuilt artifact (the download plan)."""

    download_url: str
    archive_prefix: str | None = None
    download_name: str | None = None
    checksum: str | None = None
    checksum_url: str | None = None
    checksum_public_key: str | None = None

    def to_dict(self) -> StrDict:
        return {
            "download_url": self.download_url,
            "archive_prefix": self.archive_prefix,
            "download_name": self.download_name,
            "checksum": self.checksum,
            "checksum_url": self.checksum_url,
            "checksum_public_key": self.checksum_public_key,
        }

    @classmethod
    def from_dict(cls, data: object) -> DownloadPrebuiltOutput:
        record = "download_prebuilt"
        d = _obj(data, record)
        return cls(
            download_url=_req_str(d, "download_url", record),
            archive_prefix=_opt_str(d, "archive_prefix", record),
            download_name=_opt_str(d, "download_name", record),
            checksum=_opt_str(d, "checksum", record),
            checksum_url=_opt_str(d, "checksum_url", record),
            checksum_public_key=_opt_str(d, "checksum_public_key", record),
        )


# -----------------------------------------------------------------------------
# unpack_archive / post_install
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UnpackArchiveInput:
    context: ToolContext
    input_file: str
    output_dir: str

    def to_dict(self) -> StrDict:
        return {
            "context": self.context.to_dict(),
            "input_file": self.input_file,
            "output_dir": self.output_dir,
        }

    @classmethod
    def from_dict(cls, data: object) -> UnpackArchiveInput:
        record = "unpack_archive"
        d = _obj(data, record)
        return cls(
            context=ToolContext.from_dict(d.get("context")),
            input_file=_req_str(d, "input_file", record),
            output_dir=_req_str(d, "output_dir", record),
        )


@dataclass(frozen=True, slots=True)
class UnpackArchiveOutput:
    def to_dict(self) -> StrDict:
        return {}

    @classmethod
    def from_dict(cls, data: object) -> UnpackArchiveOutput:
        _obj(data, "unpack_archive")
        return cls()


@dataclass(frozen=True, slots=True)
class PostInstallInput(_ContextInput):
    @classmethod
    def from_dict(cls, data: object) -> PostInstallInput:
        d = _obj(data, "post_install")
        return cls(context=ToolContext.from_dict(d.get("context")))


@dataclass(frozen=True, slots=True)
class PostInstallOutput:
    def to_dict(self) -> StrDict:
        return {}

    @classmethod
    def from_dict(cls, data: object) -> PostInstallOutput:
        _obj(data, "post_install")
        return cls()


# -----------------------------------------------------------------------------
# locate_executables / declare_globals_lookup
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ExecutableEntry:
    """An executable relative to the install directory."""

    exe_path: str
    primary: bool = False

    def to_dict(self) -> StrDict:
        return {"exe_path": self.exe_path, "primary": self.primary}

    @classmethod
    def from_dict(cls, data: object, name: str = "exe") -> ExecutableEntry:
        record = f"locate_executables.exes.{name}"
        d = _obj(data, record)
        exe_path = _req_str(d, "exe_path", record)
        if exe_path.startswith(("/", "\\")) or ".." in exe_path.replace("\\", "/").split("/"):
            raise SchemaError(f"{record}.exe_path: must be relative to the install directory")
        return cls(exe_path=exe_path, primary=_req_bool(d, "primary", record))


@dataclass(frozen=True, slots=True)
class LocateExecutablesInput(_ContextInput):
    @classmethod
    def from_dict(cls, data: object) -> LocateExecutablesInput:
        d = _obj(data, "locate_executables")
        return cls(context=ToolContext.from_dict(d.get("context")))


@dataclass(frozen=True, slots=True)
class LocateExecutablesOutput:
    """Executables by logical name; exactly one entry is primary."""

    exes: dict[str, ExecutableEntry]

    @property
    def primary(self) -> tuple[str, ExecutableEntry]:
        return next((name, entry) for name, entry in self.exes.items() if entry.primary)

    def to_dict(self) -> StrDict:
        return {"exes": {name: entry.to_dict() for name, entry in self.exes.items()}}

    @classmethod
    def from_dict(cls, data: object) -> LocateExecutablesOutput:
        d = _obj(data, "locate_executables")
        exes_table = _obj(d.get("exes"), "locate_executables.exes")
        exes = {
            name: ExecutableEntry.from_dict(entry, name) for name, entry in exes_table.items()
        }
        primaries = [name for name, entry in exes.items() if entry.primary]
        if len(primaries) != 1:
            raise SchemaError(
                f"locate_executables: expected exactly one primary executable, got {len(primaries)}"
            )
        return cls(exes=exes)


@dataclass(frozen=True, slots=True)
class DeclareGlobalsLookupInput(_ContextInput):
    @classmethod
    def from_dict(cls, data: object) -> DeclareGlobalsLookupInput:
        d = _obj(data, "declare_globals_lookup")
        return cls(context=ToolContext.from_dict(d.get("context")))


@dataclass(frozen=True, slots=True)
class DeclareGlobalsLookupOutput:
    """Candidate global-package directories, in priority order ($VAR allowed)."""

    lookup_dirs: tuple[str, ...] = ()

    def to_dict(self) -> StrDict:
        return {"lookup_dirs": list(self.lookup_dirs)}

    @classmethod
    def from_dict(cls, data: object) -> DeclareGlobalsLookupOutput:
        record = "declare_globals_lookup"
        return cls(lookup_dirs=_str_tuple(_obj(data, record), "lookup_dirs", record))


# -----------------------------------------------------------------------------
# detect_version_files / parse_version_file
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DetectVersionFilesInput:
    def to_dict(self) -> StrDict:
        return {}

    @classmethod
    def from_dict(cls, data: object) -> DetectVersionFilesInput:
        _obj(data, "detect_version_files")
        return cls()


@dataclass(frozen=True, slots=True)
class DetectVersionFilesOutput:
    """Version file names to look for (in order) and directories to skip."""

    files: tuple[str, ...]
    ignore: tuple[str, ...] = ()

    def to_dict(self) -> StrDict:
        return {"files": list(self.files), "ignore": list(self.ignore)}

    @classmethod
    def from_dict(cls, data: object) -> DetectVersionFilesOutput:
        record = "detect_version_files"
        d = _obj(data, record)
        files = _str_tuple(d, "files", record)
        if any(not name or "/" in name or "\\" in name for name in files):
            raise SchemaError(f"{record}.files: expected bare file names")
        return cls(files=files, ignore=_str_tuple(d, "ignore", record))


@dataclass(frozen=True, slots=True)
class ParseVersionFileInput:
    content: str
    file: str

    def to_dict(self) -> StrDict:
        return {"content": self.content, "file": self.file}

    @classmethod
    def from_dict(cls, data: object) -> ParseVersionFileInput:
        record = "parse_version_file"
        d = _obj(data, record)
        content = d.get("content")
        if not isinstance(content, str):
            raise SchemaError(f"{record}.content: required string")
        return cls(content=content, file=_req_str(d, "file", record))


@dataclass(frozen=True, slots=True)
class ParseVersionFileOutput:
    """Version found in the file, or None if the file does not pin one."""

    version: str | None = None

    def to_dict(self) -> StrDict:
        return {"version": self.version}

    @classmethod
    def from_dict(cls, data: object) -> ParseVersionFileOutput:
        record = "parse_version_file"
        return cls(version=_opt_str(_obj(data, record), "version", record))


# -----------------------------------------------------------------------------
# Hook table
# -----------------------------------------------------------------------------

HOOKS: dict[Hook, tuple[type, type]] = {
    Hook.REGISTER: (RegisterInput, RegisterOutput),
    Hook.LOAD_VERSIONS: (LoadVersionsInput, LoadVersionsOutput),
    Hook.RESOLVE_VERSION: (ResolveVersionInput, ResolveVersionOutput),
    Hook.DOWNLOAD_PREBUILT: (DownloadPrebuiltInput, DownloadPrebuiltOutput),
    Hook.UNPACK_ARCHIVE: (UnpackArchiveInput, UnpackArchiveOutput),
    Hook.POST_INSTALL: (PostInstallInput, PostInstallOutput),
    Hook.LOCATE_EXECUTABLES: (LocateExecutablesInput, LocateExecutablesOutput),
    Hook.DECLARE_GLOBALS_LOOKUP: (DeclareGlobalsLookupInput, DeclareGlobalsLookupOutput),
    Hook.DETECT_VERSION_FILES: (DetectVersionFilesInput, DetectVersionFilesOutput),
    Hook.PARSE_VERSION_FILE: (ParseVersionFileInput, ParseVersionFileOutput),
}
