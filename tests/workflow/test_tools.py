"""
Unit tests for tool invocation.

Tests cover:
- unknown tools and failing handlers become failed results
- concurrent invocation keeps request order
- built-in http_fetch (httpx mock transport) and workspace_files
- format_results rendering
"""

import asyncio
import os
from pathlib import Path

import httpx
import pytest

from spindle.state import PreviousOutput
from spindle.tools import ToolContext, ToolInvoker, ToolResult, format_results, http_fetch, workspace_files


def _context(user_input):
    return ToolContext(user_input=user_input)


class TestToolInvoker:

    @pytest.mark.asyncio
    async def test_unknown_tool_is_failed_result(self):
        invoker = ToolInvoker({"echo": lambda ctx: asyncio.sleep(0, result="hi")})

        [result] = await invoker.invoke_tools(["search"], "X")

        assert result.success is False
        assert "Unknown tool 'search'" in result.error
        assert "echo" in result.error

    @pytest.mark.asyncio
    async def test_failing_handler_is_failed_result(self):
        async def broken(context):
            raise ValueError("bad input")

        invoker = ToolInvoker()
        invoker.register("broken", broken)

        [result] = await invoker.invoke_tools(["broken"], "X")

        assert result.success is False
        assert result.error == "bad input"

    @pytest.mark.asyncio
    async def test_results_follow_request_order(self):
        async def slow(context):
            await asyncio.sleep(0.05)
            return "slow"

        async def context_echo(context):
            return [p.agent_id for p in context.previous_outputs] + [context.user_input]

        invoker = ToolInvoker({"slow": slow, "echo": context_echo})
        results = await invoker.invoke_tools(
            ["slow", "echo"], "request", [PreviousOutput("a", "A", "out")]
        )

        assert [r.tool_name for r in results] == ["slow", "echo"]
        assert results[1].payload == ["a", "request"]

    def test_builtins_registered(self, tmp_path):
        assert ToolInvoker.with_builtins(tmp_path).available_tools == ["http_fetch", "workspace_files"]


class TestBuiltinTools:

    @pytest.mark.asyncio
    async def test_http_fetch_reads_urls_from_input(self):
        requested = []

        def handler(request):
            requested.append(str(request.url))
            if request.url.host == "missing.test":
                return httpx.Response(404, text="not here")
            return httpx.Response(200, text="x" * 5000)

        invoker = ToolInvoker({"http_fetch": http_fetch(httpx.MockTransport(handler))})
        [result] = await invoker.invoke_tools(
            ["http_fetch"],
            "Compare https://docs.test/a, https://missing.test/b and https://docs.test/a."
        )

        assert result.success is True
        assert sorted(requested) == ["https://docs.test/a", "https://missing.test/b"]
        ok, missing = result.payload
        assert ok["status_code"] == 200
        assert len(ok["body"]) == 2000
        assert missing["status_code"] == 404

    @pytest.mark.asyncio
    async def test_http_fetch_caps_url_count(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="ok"))
        urls = " ".join(f"https://site{i}.test/" for i in range(5))

        pages = await http_fetch(transport)(_context(urls))

        assert len(pages) == 3

    @pytest.mark.asyncio
    async def test_http_fetch_without_urls(self):
        assert await http_fetch()(_context("no links here")) == []

    @pytest.mark.asyncio
    async def test_http_fetch_records_transport_errors(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        pages = await http_fetch(httpx.MockTransport(handler))(_context("see https://down.test/"))

        assert pages[0]["url"] == "https://down.test/"
        assert "refused" in pages[0]["error"]

    @pytest.mark.asyncio
    async def test_workspace_files_skips_hidden(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "app.py").write_text("print('hi')")
        (tmp_path / "README.md").write_text("# readme")
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "config").write_text("")

        files = await workspace_files(tmp_path)(_context("X"))

        assert files == ["README.md", "src/app.py"]

    @pytest.mark.asyncio
    async def test_workspace_files_prunes_hidden_directories(self, tmp_path, monkeypatch):
        (tmp_path / "src" / ".cache").mkdir(parents=True)
        (tmp_path / "src" / ".cache" / "blob").write_text("")
        (tmp_path / "src" / "main.py").write_text("")
        (tmp_path / ".env").write_text("SECRET=1")
        (tmp_path / ".venv" / "lib").mkdir(parents=True)

        visited = []
        real_walk = os.walk

        def recording_walk(top):
            for dirpath, dirnames, filenames in real_walk(top):
                visited.append(Path(dirpath).relative_to(tmp_path).as_posix())
                yield dirpath, dirnames, filenames

        monkeypatch.setattr(os, "walk", recording_walk)

        files = await workspace_files(tmp_path)(_context("X"))

        assert files == ["src/main.py"]
        assert sorted(visited) == [".", "src"]

    @pytest.mark.asyncio
    async def test_workspace_files_missing_root(self, tmp_path):
        invoker = ToolInvoker({"workspace_files": workspace_files(tmp_path / "nope")})
        [result] = await invoker.invoke_tools(["workspace_files"], "X")

        assert result.success is False
        assert "Workspace root not found" in result.error


class TestFormatResults:

    def test_empty(self):
        assert format_results([]) == ""

    def test_renders_success_and_failure(self):
        text = format_results([
            ToolResult("listing", True, 0.5, payload=["a.py"]),
            ToolResult("note", True, 0.0, payload="plain text"),
            ToolResult("search", False, 0.1, error="Unknown tool 'search'"),
        ])

        assert text.startswith("--- TOOL OUTPUTS ---")
        assert "[listing] (success, 0.50s)" in text
        assert '"a.py"' in text
        assert "plain text" in text
        assert "[search] (failed, 0.10s)\nError: Unknown tool 'search'" in text
        assert text.endswith("--- END OF TOOL OUTPUTS ---")
