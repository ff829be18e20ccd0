"""Install pipeline: one exact version of one tool onto disk.

    PLANNING -> DOWNLOADING -> VERIFYING -> UNPACKING -> LOCATING -> INSTALLED
    (any stage) -> FAILED

Every stage either hands its output to the next one or stops the run with
a ToolError. Nothing is retried. The returned InstallReport records every
state the run went through.

Stage notes:

- planning checks the plugin's support matrix before anything touches the
  network, then asks the plugin for its download plan
- downloading reuses a complete artifact left in the temp directory
- verifying deletes the artifact (and any checksum list) on mismatch so a
  retry starts clean
- locating keeps the install directory when the primary executable is
  missing, so the unpacked tree can be inspected
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, NoReturn

from tm.core.errors import ErrorKind, ToolError
from tm.core.result import Err, Ok, Result
from tm.install.cancel import Cancelled, CancelToken
from tm.install.checksum import parse_checksum_list, verify_digest
from tm.install.download import Downloader, download_name_for
from tm.install.minisign import verify_bytes, verify_file
from tm.install.state import InstalledVersion, get_installed, record_install, remove_install
from tm.install.unpack import Unpacker
from tm.output.console import Style
from tm.platform.env import expand_env
from tm.plugin.host import VirtualFs
from tm.plugin.schema import DownloadPrebuiltOutput, Hook, ToolContext
from tm.versions.spec import Exact

if TYPE_CHECKING:
    from tm.core.store import Store
    from tm.net.http import HttpClient
    from tm.output.console import ConsoleProtocol
    from tm.plugin.gateway import PluginGateway

__all__ = ["InstallPipeline", "InstallReport", "InstallState"]

MINISIG_SUFFIX = ".minisig"


class InstallState(Enum):
    PLANNING = "planning"
    DOWNLOADING = "downloading"
    VERIFYING = "verifying"
    UNPACKING = "unpacking"
    LOCATING = "locating"
    INSTALLED = "installed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


def _no_paths() -> dict[str, Path]:
    return {}


@dataclass(frozen=True, slots=True)
class InstallReport:
    """Outcome of one install run.

    Attributes:
        tool_id: Tool installed
        version: Exact version installed
        state: INSTALLED or FAILED
        transitions: Every state entered, in order
        install_dir: Real install directory
        executables: Located executables by logical name (real paths)
        primary: Logical name of the primary executable
        globals_dir: First existing globals directory, if any
        error: Failure, when state is FAILED
        reused: True if an existing install satisfied the request
        warnings: Non-fatal issues (missing secondary executables, no checksum)
    """

    tool_id: str
    version: Exact
    state: InstallState
    transitions: tuple[InstallState, ...]
    install_dir: Path
    executables: dict[str, Path] = field(default_factory=_no_paths)
    primary: str | None = None
    globals_dir: Path | None = None
    error: ToolError | None = None
    reused: bool = False
    warnings: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.state == InstallState.INSTALLED

    @property
    def primary_path(self) -> Path | None:
        return self.executables.get(self.primary) if self.primary else None

    def to_result(self) -> Result[InstallReport, ToolError]:
        if self.error is not None:
            return Err(self.error)
        return Ok(self)


def _os_message(error: OSError) -> str:
    reason = error.strerror or str(error)
    return f"{reason}: {error.filename}" if error.filename else reason


class _StageFailed(Exception):
    def __init__(self, error: ToolError) -> None:
        super().__init__(error.message)
        self.error = error


@dataclass(slots=True)
class _Run:
    """Mutable bookkeeping for one install run."""

    tool_id: str
    version: Exact
    install_dir: Path
    console: ConsoleProtocol
    cancel: CancelToken | None
    transitions: list[InstallState] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def enter(self, state: InstallState) -> None:
        if self.cancel is not None and state != InstallState.INSTALLED:
            if self.cancel.cancelled:
                self.fail("cancelled", f"cancelled before {state}")
        self.transitions.append(state)
        self.console.print(f"{self.tool_id} {self.version}: {state}", Style.DIM)

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        self.console.warning(f"{self.tool_id}: {message}")

    def fail(self, kind: ErrorKind, message: str, hint: str | None = None) -> NoReturn:
        raise _StageFailed(ToolError(kind=kind, tool_id=self.tool_id, message=message, hint=hint))

    def check(self, result: Result[object, ToolError]) -> None:
        if isinstance(result, Err):
            raise _StageFailed(result.error)

    def report(
        self,
        state: InstallState,
        *,
        executables: dict[str, Path] | None = None,
        primary: str | None = None,
        globals_dir: Path | None = None,
        error: ToolError | None = None,
        reused: bool = False,
    ) -> InstallReport:
        return InstallReport(
            tool_id=self.tool_id,
            version=self.version,
            state=state,
            transitions=tuple(self.transitions),
            install_dir=self.install_dir,
            executables=executables or {},
            primary=primary,
            globals_dir=globals_dir,
            error=error,
            reused=reused,
            warnings=tuple(self.warnings),
        )


class InstallPipeline:
    """Drives plugins through the install stages."""

    def __init__(
        self,
        *,
        gateway: PluginGateway,
        store: Store,
        http: HttpClient,
        console: ConsoleProtocol,
        environ: Mapping[str, str] | None = None,
        unpacker: Unpacker | None = None,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._http = http
        self._console = console
        self._environ = environ
        self._unpacker = unpacker or Unpacker()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def installed(self, tool_id: str, version: Exact) -> InstalledVersion | None:
        """Manifest entry for a version whose primary executable is on disk."""
        entry = get_installed(self._store, tool_id, str(version))
        if entry is None:
            return None
        install_dir = self._store.install_dir(tool_id, str(version))
        if not (install_dir / entry.executables[entry.primary]).is_file():
            return None
        return entry

    def install(
        self,
        tool_id: str,
        version: Exact,
        *,
        force: bool = False,
        cancel: CancelToken | None = None,
    ) -> InstallReport:
        """Install one exact version.

        Raises:
            TypeError: If version is not an Exact (aliases must be resolved first).
        """
        if not isinstance(version, Exact):
            raise TypeError(f"install() needs an exact version, got {version!r}")

        install_dir = self._store.install_dir(tool_id, str(version))
        run = _Run(
            tool_id=tool_id,
            version=version,
            install_dir=install_dir,
            console=self._console,
            cancel=cancel,
        )

        if not force:
            existing = self.installed(tool_id, version)
            if existing is not None:
                return self._reuse(run, existing)

        try:
            return self._run(run)
        except _StageFailed as failed:
            error = failed.error
        except OSError as e:
            error = ToolError(kind="store_error", tool_id=tool_id, message=_os_message(e))
        run.transitions.append(InstallState.FAILED)
        self._console.print(f"{tool_id} {version}: failed ({error.kind})", Style.DIM)
        return run.report(InstallState.FAILED, error=error)

    def uninstall(self, tool_id: str, version: Exact) -> Result[bool, ToolError]:
        """Remove an installed version.

        Returns:
            Ok(False) if nothing was there, Err(store_error) if the store
            could not be changed
        """
        install_dir = self._store.install_dir(tool_id, str(version))
        try:
            removed_dir = self._unpacker.cleanup(install_dir)
            removed_entry = remove_install(self._store, tool_id, str(version))
        except OSError as e:
            return Err(ToolError(kind="store_error", tool_id=tool_id, message=_os_message(e)))
        return Ok(removed_dir or removed_entry)

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _reuse(self, run: _Run, entry: InstalledVersion) -> InstallReport:
        run.transitions.append(InstallState.INSTALLED)
        run.console.print(f"{run.tool_id} {run.version}: already installed", Style.DIM)
        return run.report(
            InstallState.INSTALLED,
            executables={name: run.install_dir / rel for name, rel in entry.executables.items()},
            primary=entry.primary,
            globals_dir=Path(entry.globals_dir) if entry.globals_dir else None,
            reused=True,
        )

    def _run(self, run: _Run) -> InstallReport:
        tool_id = run.tool_id
        vfs = VirtualFs(store=self._store, tool_id=tool_id)
        context = vfs.context(str(run.version))

        run.enter(InstallState.PLANNING)
        plan = self._plan(run, context)

        run.enter(InstallState.DOWNLOADING)
        downloader = Downloader(self._http, self._store.temp_dir(tool_id))
        artifact = self._download(run, downloader, plan)

        run.enter(InstallState.VERIFYING)
        self._verify(run, downloader, plan, artifact)

        run.enter(InstallState.UNPACKING)
        self._unpack(run, vfs, context, plan, artifact)

        run.enter(InstallState.LOCATING)
        executables, primary = self._locate(run, context)
        globals_dir = self._globals_dir(run, context)

        record_install(
            self._store,
            tool_id,
            InstalledVersion.now(
                str(run.version),
                primary=primary,
                executables={
                    name: path.relative_to(run.install_dir).as_posix()
                    for name, path in executables.items()
                },
                globals_dir=str(globals_dir) if globals_dir else None,
            ),
        )
        run.enter(InstallState.INSTALLED)
        return run.report(
            InstallState.INSTALLED,
            executables=executables,
            primary=primary,
            globals_dir=globals_dir,
        )

    def _plan(self, run: _Run, context: ToolContext) -> DownloadPrebuiltOutput:
        run.check(self._gateway.check_supported(run.tool_id))

        planned = self._gateway.download_prebuilt(run.tool_id, context)
        run.check(planned)
        plan: DownloadPrebuiltOutput = planned.unwrap()

        for url in (plan.download_url, plan.checksum_url):
            if url is not None and not url.startswith("https://"):
                run.fail("invalid_plan", f"refusing non-https URL: {url}")
        name = download_name_for(plan.download_url, plan.download_name)
        if "/" in name or "\\" in name or name in {".", ".."}:
            run.fail("invalid_plan", f"invalid download name: {name!r}")
        if plan.checksum_url and plan.checksum_url.endswith(MINISIG_SUFFIX):
            if not plan.checksum_public_key:
                run.fail("invalid_plan", "minisign signature given without a public key")
        return plan

    def _download(
        self, run: _Run, downloader: Downloader, plan: DownloadPrebuiltOutput
    ) -> Path:
        name = download_name_for(plan.download_url, plan.download_name)
        try:
            result = downloader.download(plan.download_url, name, cancel=run.cancel)
        except Cancelled:
            run.fail("cancelled", "cancelled during download")
        if isinstance(result, Err):
            run.fail("download_error", str(result.error))
        if result.value.reused:
            run.console.print(f"{run.tool_id}: reusing {name}", Style.DIM)
        return result.value.path

    def _fetch_text(self, run: _Run, downloader: Downloader, url: str) -> str:
        fetched = downloader.fetch_text(url)
        if isinstance(fetched, Err):
            run.fail("download_error", str(fetched.error))
        return fetched.value

    def _verify(
        self,
        run: _Run,
        downloader: Downloader,
        plan: DownloadPrebuiltOutput,
        artifact: Path,
    ) -> None:
        key = plan.checksum_public_key
        discard: list[Path] = [artifact]

        def mismatch(message: str) -> NoReturn:
            for path in discard:
                path.unlink(missing_ok=True)
            run.fail("checksum_mismatch", message)

        if plan.checksum:
            match verify_digest(artifact, plan.checksum):
                case Err(reason):
                    mismatch(reason)
                case Ok():
                    run.console.print(f"{run.tool_id}: checksum verified", Style.DIM)
            return

        if plan.checksum_url is None:
            if key is None:
                run.warn("no checksum published, artifact not verified")
                return
            signature = self._fetch_text(run, downloader, plan.download_url + MINISIG_SUFFIX)
            if isinstance(outcome := verify_file(key, signature, artifact), Err):
                mismatch(outcome.error)
            run.console.print(f"{run.tool_id}: signature verified", Style.DIM)
            return

        if plan.checksum_url.endswith(MINISIG_SUFFIX):
            if key is None:
                run.fail("invalid_plan", "minisign signature given without a public key")
            signature = self._fetch_text(run, downloader, plan.checksum_url)
            if isinstance(outcome := verify_file(key, signature, artifact), Err):
                mismatch(outcome.error)
            run.console.print(f"{run.tool_id}: signature verified", Style.DIM)
            return

        sums = self._fetch_text(run, downloader, plan.checksum_url)
        sums_path = downloader.artifact_path(download_name_for(plan.checksum_url))
        if sums_path != artifact:
            sums_path.write_text(sums, encoding="utf-8")
            discard.append(sums_path)

        if key is not None:
            signature = self._fetch_text(run, downloader, plan.checksum_url + MINISIG_SUFFIX)
            if isinstance(outcome := verify_bytes(key, signature, sums.encode("utf-8")), Err):
                mismatch(f"checksum list: {outcome.error}")

        expected = parse_checksum_list(sums, artifact.name)
        if expected is None:
            mismatch(f"no checksum for {artifact.name} in {plan.checksum_url}")
        if isinstance(outcome := verify_digest(artifact, expected), Err):
            mismatch(outcome.error)
        run.console.print(f"{run.tool_id}: checksum verified", Style.DIM)

    def _unpack(
        self,
        run: _Run,
        vfs: VirtualFs,
        context: ToolContext,
        plan: DownloadPrebuiltOutput,
        artifact: Path,
    ) -> None:
        has_unpack = self._gateway.has_hook(run.tool_id, Hook.UNPACK_ARCHIVE)
        run.check(has_unpack)
        if has_unpack.unwrap():
            try:
                self._unpacker.cleanup(run.install_dir)
                run.install_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                run.fail("unpack_error", f"cannot prepare {run.install_dir}: {_os_message(e)}")
            run.check(
                self._gateway.unpack_archive(
                    run.tool_id, context, vfs.to_virtual(artifact), context.install_dir
                )
            )
        else:
            unpacked = self._unpacker.unpack(
                artifact, run.install_dir, archive_prefix=plan.archive_prefix
            )
            if isinstance(unpacked, Err):
                run.fail("unpack_error", str(unpacked.error))
            elif unpacked.value.files_count == 0:
                run.fail("unpack_error", f"nothing to unpack from {artifact.name}")

        has_post = self._gateway.has_hook(run.tool_id, Hook.POST_INSTALL)
        run.check(has_post)
        if has_post.unwrap():
            run.check(self._gateway.post_install(run.tool_id, context))

    def _locate(self, run: _Run, context: ToolContext) -> tuple[dict[str, Path], str]:
        located = self._gateway.locate_executables(run.tool_id, context)
        run.check(located)
        primary, _ = located.unwrap().primary

        executables: dict[str, Path] = {}
        for name, entry in located.unwrap().exes.items():
            rel = PurePosixPath(entry.exe_path.replace("\\", "/"))
            path = run.install_dir.joinpath(*rel.parts)
            if path.is_file():
                executables[name] = path
            elif entry.primary:
                run.fail(
                    "executable_not_found",
                    f"primary executable {entry.exe_path} not found in {run.install_dir}",
                )
            else:
                run.warn(f"executable {entry.exe_path} not found, skipping {name}")
        return executables, primary

    def _globals_dir(self, run: _Run, context: ToolContext) -> Path | None:
        has_lookup = self._gateway.has_hook(run.tool_id, Hook.DECLARE_GLOBALS_LOOKUP)
        run.check(has_lookup)
        if not has_lookup.unwrap():
            return None

        declared = self._gateway.declare_globals_lookup(run.tool_id, context)
        run.check(declared)
        environ = os.environ if self._environ is None else self._environ
        for template in declared.unwrap().lookup_dirs:
            expanded = expand_env(template, environ)
            if expanded is None:
                continue
            candidate = Path(expanded).expanduser()
            if candidate.is_dir():
                return candidate
        return None

