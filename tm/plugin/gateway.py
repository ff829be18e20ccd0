"""Plugin invocation gateway.

Every call into a plugin goes through ``PluginGateway``:

1. the tool's module is loaded once per process (lock-guarded) and its
   ``register`` metadata cached
2. the input record is encoded to JSON and handed to the module on the
   tool's own worker thread, bounded by ``plugin_timeout``
3. the JSON reply is decoded and validated into the hook's output record

Faults come back as ``ToolError``:

- load_failure: locator, import, construction, register or host-version failure
- execution_trap: plugin crash, plugin-raised PluginError, or timeout
- schema_mismatch: reply is not valid JSON or not the expected record
- unsupported_platform: plugin said so, or the support matrix excludes the host
"""

from __future__ import annotations

import json
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast

from tm import __version__
from tm.core.config import HostConfig
from tm.core.errors import ErrorKind, ToolError
from tm.core.result import Err, Ok, Result
from tm.core.structured import as_str_dict, get_str
from tm.platform.detection import HostEnvironment, detect_host
from tm.plugin.host import NETWORK_HINT, HostFunctions, HostNetworkError, VirtualFs
from tm.plugin.pdk import ERROR_KEY, PluginModule
from tm.plugin.schema import (
    HOOKS,
    DeclareGlobalsLookupInput,
    DeclareGlobalsLookupOutput,
    DetectVersionFilesInput,
    DetectVersionFilesOutput,
    DownloadPrebuiltInput,
    DownloadPrebuiltOutput,
    Hook,
    LoadVersionsInput,
    LoadVersionsOutput,
    LocateExecutablesInput,
    LocateExecutablesOutput,
    ParseVersionFileInput,
    ParseVersionFileOutput,
    PostInstallInput,
    PostInstallOutput,
    RegisterInput,
    RegisterOutput,
    ResolveVersionInput,
    ResolveVersionOutput,
    SchemaError,
    ToolContext,
    UnpackArchiveInput,
    UnpackArchiveOutput,
)
from tm.versions.spec import parse_exact

if TYPE_CHECKING:
    from collections.abc import Mapping

    from tm.core.store import Store
    from tm.net.http import HttpClient
    from tm.output.console import ConsoleProtocol
    from tm.plugin.loader import PluginLoader

__all__ = ["PluginGateway"]


@dataclass(frozen=True, slots=True)
class _Loaded:
    module: PluginModule
    metadata: RegisterOutput
    executor: ThreadPoolExecutor
    host_functions: HostFunctions


class PluginGateway:
    """Loads plugins and mediates every call into them."""

    def __init__(
        self,
        *,
        loader: PluginLoader,
        store: Store,
        http: HttpClient,
        config: HostConfig | None = None,
        host: HostEnvironment | None = None,
        console: ConsoleProtocol | None = None,
        environ: Mapping[str, str] | None = None,
        host_version: str = __version__,
    ) -> None:
        self._loader = loader
        self._store = store
        self._http = http
        self._config = config or HostConfig()
        self._host = host
        self._console = console
        self._environ = environ
        self._host_version = host_version
        self._lock = threading.Lock()
        self._tool_locks: dict[str, threading.Lock] = {}
        self._loaded: dict[str, Result[_Loaded, ToolError]] = {}

    @property
    def host(self) -> HostEnvironment:
        if self._host is None:
            self._host = detect_host()
        return self._host

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def _tool_lock(self, tool_id: str) -> threading.Lock:
        with self._lock:
            return self._tool_locks.setdefault(tool_id, threading.Lock())

    def _load(self, tool_id: str) -> Result[_Loaded, ToolError]:
        with self._tool_lock(tool_id):
            cached = self._loaded.get(tool_id)
            if cached is None:
                cached = self._load_uncached(tool_id)
                self._loaded[tool_id] = cached
            return cached

    def _load_uncached(self, tool_id: str) -> Result[_Loaded, ToolError]:
        def failure(message: str) -> Err[ToolError]:
            return Err(ToolError(kind="load_failure", tool_id=tool_id, message=message))

        cls_result = self._loader.load_class(tool_id)
        if isinstance(cls_result, Err):
            return failure(cls_result.error)
        plugin_cls = cls_result.value

        vfs = VirtualFs(store=self._store, tool_id=tool_id)
        host_functions = HostFunctions(
            host=self.host,
            vfs=vfs,
            http=self._http,
            settings=self._config.tool_settings(tool_id),
            environ=self._environ,
            console=self._console,
        )
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"tm-plugin-{tool_id}")

        def construct() -> PluginModule:
            return PluginModule(plugin_cls(host_functions))

        try:
            module = executor.submit(construct).result(timeout=self._config.plugin_timeout)
        except FutureTimeout:
            executor.shutdown(wait=False, cancel_futures=True)
            return failure("plugin construction timed out")
        except Exception as e:  # noqa: BLE001
            executor.shutdown(wait=False, cancel_futures=True)
            return failure(f"cannot construct plugin: {type(e).__name__}: {e}")

        registered = self._call(
            tool_id, module, executor, host_functions, Hook.REGISTER, RegisterInput(tool_id)
        )
        if isinstance(registered, Err):
            executor.shutdown(wait=False, cancel_futures=True)
            return failure(f"register failed: {registered.error.message}")
        metadata = cast(RegisterOutput, registered.value)

        if metadata.minimum_host_version is not None:
            required = parse_exact(metadata.minimum_host_version)
            current = parse_exact(self._host_version)
            if required is None:
                executor.shutdown(wait=False, cancel_futures=True)
                return failure(
                    f"invalid minimum_host_version {metadata.minimum_host_version!r}"
                )
            if current is not None and required > current:
                executor.shutdown(wait=False, cancel_futures=True)
                return failure(
                    f"plugin requires host {required} or newer (running {current})"
                )

        return Ok(
            _Loaded(
                module=module,
                metadata=metadata,
                executor=executor,
                host_functions=host_functions,
            )
        )

    def load(self, tool_id: str) -> Result[RegisterOutput, ToolError]:
        """Load a tool's plugin (once) and return its register metadata."""
        loaded = self._load(tool_id)
        if isinstance(loaded, Err):
            return loaded
        return Ok(loaded.value.metadata)

    def has_hook(self, tool_id: str, hook: Hook) -> Result[bool, ToolError]:
        loaded = self._load(tool_id)
        if isinstance(loaded, Err):
            return loaded
        return Ok(loaded.value.module.has_function(hook.value))

    def check_supported(self, tool_id: str) -> Result[RegisterOutput, ToolError]:
        """Check the register support matrix against the host.

        Never invokes a network-capable hook.
        """
        meta = self.load(tool_id)
        if isinstance(meta, Err):
            return meta
        if not meta.value.supports(self.host):
            return Err(
                ToolError(
                    kind="unsupported_platform",
                    tool_id=tool_id,
                    message=f"{meta.value.name} has no build for {self.host}",
                )
            )
        return meta

    def supports(self, tool_id: str) -> Result[bool, ToolError]:
        meta = self.load(tool_id)
        if isinstance(meta, Err):
            return meta
        return Ok(meta.value.supports(self.host))

    def context(self, tool_id: str, version: str) -> ToolContext:
        return VirtualFs(store=self._store, tool_id=tool_id).context(version)

    def close(self) -> None:
        """Stop every plugin worker thread."""
        with self._lock:
            loaded = list(self._loaded.values())
            self._loaded.clear()
        for entry in loaded:
            if isinstance(entry, Ok):
                entry.value.executor.shutdown(wait=False, cancel_futures=True)

    # -------------------------------------------------------------------------
    # Invocation
    # -------------------------------------------------------------------------

    def invoke(self, tool_id: str, hook: Hook, input: Any) -> Result[Any, ToolError]:
        """Call one hook and return its validated output record.

        A missing optional hook is reported as execution_trap; callers check
        has_hook first when the hook is optional.
        """
        loaded = self._load(tool_id)
        if isinstance(loaded, Err):
            return loaded
        entry = loaded.value
        if not entry.module.has_function(hook.value):
            return Err(
                ToolError(
                    kind="execution_trap",
                    tool_id=tool_id,
                    message=f"plugin does not export {hook.value}",
                )
            )
        return self._call(
            tool_id, entry.module, entry.executor, entry.host_functions, hook, input
        )

    def _call(
        self,
        tool_id: str,
        module: PluginModule,
        executor: ThreadPoolExecutor,
        host_functions: HostFunctions,
        hook: Hook,
        input: Any,
    ) -> Result[Any, ToolError]:
        """Run one hook on the plugin's worker thread.

        Hooks whose input carries a ToolContext get that context's install
        directory in file scope for the duration of the call.
        """
        def fault(kind: ErrorKind, message: str, hint: str | None = None) -> Err[ToolError]:
            return Err(
                ToolError(
                    kind=kind,
                    tool_id=tool_id,
                    message=f"{hook.value}: {message}",
                    hint=hint,
                )
            )

        payload = json.dumps(input.to_dict())
        context: ToolContext | None = getattr(input, "context", None)

        def run() -> str:
            with host_functions.scoped(context):
                return module.call(hook.value, payload)

        future: Future[str] = executor.submit(run)
        try:
            raw = future.result(timeout=self._config.plugin_timeout)
        except FutureTimeout:
            future.cancel()
            return fault("execution_trap", f"timed out after {self._config.plugin_timeout:g}s")
        except HostNetworkError as e:
            return fault("execution_trap", str(e), NETWORK_HINT)
        except SchemaError as e:
            return fault("schema_mismatch", f"plugin rejected its input: {e}")
        except Exception as e:  # noqa: BLE001
            return fault("execution_trap", f"plugin crashed: {type(e).__name__}: {e}")

        try:
            data: object = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            return fault("schema_mismatch", f"reply is not JSON: {e}")

        table = as_str_dict(data)
        envelope = as_str_dict(table.get(ERROR_KEY)) if table is not None else None
        if envelope is not None:
            message = get_str(envelope, "message") or "plugin reported an error"
            match envelope.get("kind"):
                case "unsupported_platform":
                    return fault("unsupported_platform", message)
                case "execution_trap":
                    return fault("execution_trap", message)
                case other:
                    return fault("schema_mismatch", f"unknown error kind {other!r}")

        _, output_cls = HOOKS[hook]
        try:
            return Ok(output_cls.from_dict(data))
        except SchemaError as e:
            return fault("schema_mismatch", str(e))

    # -------------------------------------------------------------------------
    # Typed hook calls
    # -------------------------------------------------------------------------

    def load_versions(self, tool_id: str, initial: str) -> Result[LoadVersionsOutput, ToolError]:
        return self.invoke(tool_id, Hook.LOAD_VERSIONS, LoadVersionsInput(initial))

    def resolve_version(
        self, tool_id: str, initial: str
    ) -> Result[ResolveVersionOutput, ToolError]:
        return self.invoke(tool_id, Hook.RESOLVE_VERSION, ResolveVersionInput(initial))

    def download_prebuilt(
        self, tool_id: str, context: ToolContext
    ) -> Result[DownloadPrebuiltOutput, ToolError]:
        return self.invoke(tool_id, Hook.DOWNLOAD_PREBUILT, DownloadPrebuiltInput(context))

    def unpack_archive(
        self, tool_id: str, context: ToolContext, input_file: str, output_dir: str
    ) -> Result[UnpackArchiveOutput, ToolError]:
        return self.invoke(
            tool_id,
            Hook.UNPACK_ARCHIVE,
            UnpackArchiveInput(context=context, input_file=input_file, output_dir=output_dir),
        )

    def post_install(
        self, tool_id: str, context: ToolContext
    ) -> Result[PostInstallOutput, ToolError]:
        return self.invoke(tool_id, Hook.POST_INSTALL, PostInstallInput(context))

    def locate_executables(
        self, tool_id: str, context: ToolContext
    ) -> Result[LocateExecutablesOutput, ToolError]:
        return self.invoke(tool_id, Hook.LOCATE_EXECUTABLES, LocateExecutablesInput(context))

    def declare_globals_lookup(
        self, tool_id: str, context: ToolContext
    ) -> Result[DeclareGlobalsLookupOutput, ToolError]:
        return self.invoke(
            tool_id, Hook.DECLARE_GLOBALS_LOOKUP, DeclareGlobalsLookupInput(context)
        )

    def detect_version_files(self, tool_id: str) -> Result[DetectVersionFilesOutput, ToolError]:
        return self.invoke(tool_id, Hook.DETECT_VERSION_FILES, DetectVersionFilesInput())

    def parse_version_file(
        self, tool_id: str, content: str, file: str
    ) -> Result[ParseVersionFileOutput, ToolError]:
        return self.invoke(
            tool_id, Hook.PARSE_VERSION_FILE, ParseVersionFileInput(content=content, file=file)
        )
