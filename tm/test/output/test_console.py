"""Tests for tm.output.console and tm.output.errors."""

from __future__ import annotations

import threading

from tm.core.errors import ErrorCode, ToolError
from tm.output.console import MockConsole, Style
from tm.output.errors import config_error_exit_code, print_tool_error, tool_error_exit_code


class TestMockConsole:
    """MockConsole captures output for assertions."""

    def test_print_captures_style(self) -> None:
        console = MockConsole()
        console.print("hello", Style.DIM)
        assert console.outputs[0].message == "hello"
        assert console.outputs[0].style == Style.DIM

    def test_prefixes(self) -> None:
        console = MockConsole()
        console.success("done")
        console.error("bad")
        console.warning("careful")
        console.info("fyi")
        assert console.messages == ["OK done", "error: bad", "warning: careful", "info: fyi"]

    def test_has_error_and_warning(self) -> None:
        console = MockConsole()
        assert not console.has_error()
        console.warning("w")
        assert console.has_warning()
        assert not console.has_error()
        console.error("e")
        assert console.has_error()

    def test_text(self) -> None:
        console = MockConsole()
        console.print("a")
        console.print("b")
        assert console.text == "a\nb"

    def test_thread_safe(self) -> None:
        console = MockConsole()

        def emit() -> None:
            for i in range(200):
                console.print(str(i))

        threads = [threading.Thread(target=emit) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(console.outputs) == 800


class TestPrintToolError:
    """Kind-specific hints for ToolError."""

    def test_message_and_input(self) -> None:
        console = MockConsole()
        error = ToolError(
            kind="unknown_alias", tool_id="zig", message="unknown alias 'lts'", input="lts"
        )
        print_tool_error(error, console)
        assert console.messages[0] == "error: zig: unknown alias 'lts' (input: 'lts')"
        assert "tm versions zig" in console.text

    def test_checksum_hint(self) -> None:
        console = MockConsole()
        print_tool_error(ToolError(kind="checksum_mismatch", tool_id="bun", message="x"), console)
        assert "discarded" in console.text

    def test_explicit_hint(self) -> None:
        console = MockConsole()
        error = ToolError(
            kind="catalog_unavailable", tool_id="zig", message="offline", hint="check network"
        )
        print_tool_error(error, console)
        assert console.messages[-1] == "hint: check network"

    def test_exit_codes(self) -> None:
        error = ToolError(kind="download_error", tool_id="zig", message="x")
        assert tool_error_exit_code(error) == ErrorCode.NETWORK_ERROR
        assert config_error_exit_code() == ErrorCode.USER_ERROR
