"""
Tool invocation for agents that declare ``tools``.

Tools are async handlers registered by name. Invocation never raises: an
unknown tool or a failing handler turns into a ``ToolResult`` with
``success=False`` so the agent still runs with whatever context exists.

Built-in tools:
- http_fetch: fetch URLs mentioned in the user input (httpx)
- workspace_files: list files under a workspace root
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
import asyncio
import json
import os
import re
import time

import httpx

from .logging_config import get_logger
from .state import PreviousOutput

logger = get_logger("tools")

URL_PATTERN = re.compile(r"https?://[^\s<>\"')\]]+")
MAX_FETCH_URLS = 3
MAX_BODY_CHARS = 2000
MAX_LISTED_FILES = 200


@dataclass(frozen=True)
class ToolContext:
    """What a tool may read: the run's input and the outputs so far."""
    user_input: str
    previous_outputs: Sequence[PreviousOutput] = ()


@dataclass
class ToolResult:
    tool_name: str
    success: bool
    duration: float
    payload: Any = None
    error: Optional[str] = None


ToolHandler = Callable[[ToolContext], Awaitable[Any]]


def http_fetch(transport: Optional[httpx.AsyncBaseTransport] = None) -> ToolHandler:
    """Build a handler fetching up to three URLs found in the user input."""

    async def fetch(context: ToolContext) -> List[Dict[str, Any]]:
        return await _fetch_urls(context.user_input, transport)

    return fetch


async def _fetch_urls(
    text: str,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> List[Dict[str, Any]]:
    urls: List[str] = []
    for url in URL_PATTERN.findall(text):
        url = url.rstrip(".,;:")
        if url not in urls:
            urls.append(url)
    urls = urls[:MAX_FETCH_URLS]

    if not urls:
        return []

    async with httpx.AsyncClient(timeout=10.0, follow_redirects=True, transport=transport) as client:
        responses = await asyncio.gather(
            *(client.get(url) for url in urls),
            return_exceptions=True
        )

    pages = []
    for url, response in zip(urls, responses):
        if isinstance(response, Exception):
            pages.append({"url": url, "error": str(response)})
            continue
        pages.append({
            "url": url,
            "status_code": response.status_code,
            "body": response.text[:MAX_BODY_CHARS],
        })
    return pages


def workspace_files(root: Path) -> ToolHandler:
    """Build a handler listing files under ``root`` (relative paths)."""

    async def list_files(context: ToolContext) -> List[str]:
        if not root.is_dir():
            raise FileNotFoundError(f"Workspace root not found: {root}")

        files = await asyncio.to_thread(_walk_visible, root)
        return files[:MAX_LISTED_FILES]

    return list_files


def _walk_visible(root: Path) -> List[str]:
    """Sorted relative paths of files under root, not descending into dot-directories."""
    files = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if not d.startswith(".")]
        base = Path(dirpath).relative_to(root)
        files.extend(
            (base / name).as_posix() for name in filenames if not name.startswith(".")
        )
    return sorted(files)


class ToolInvoker:
    """
    Registry and runner for named tools.

    Example:
        ```python
        invoker = ToolInvoker.with_builtins(Path.cwd())
        results = await invoker.invoke_tools(["http_fetch"], "see https://example.com")
        ```
    """

    def __init__(self, handlers: Optional[Dict[str, ToolHandler]] = None):
        self._handlers: Dict[str, ToolHandler] = dict(handlers or {})

    @classmethod
    def with_builtins(cls, workspace_root: Optional[Path] = None) -> "ToolInvoker":
        invoker = cls()
        invoker.register("http_fetch", http_fetch())
        invoker.register("workspace_files", workspace_files(workspace_root or Path.cwd()))
        return invoker

    def register(self, name: str, handler: ToolHandler):
        self._handlers[name] = handler

    @property
    def available_tools(self) -> List[str]:
        return sorted(self._handlers)

    async def invoke_tools(
        self,
        tool_names: Sequence[str],
        user_input: str,
        previous_outputs: Sequence[PreviousOutput] = ()
    ) -> List[ToolResult]:
        """
        Run the named tools concurrently.

        Args:
            tool_names: Tools declared by the agent
            user_input: The run's user input
            previous_outputs: Timeline outputs visible to the agent

        Returns:
            One ToolResult per requested name, in request order
        """
        context = ToolContext(user_input=user_input, previous_outputs=tuple(previous_outputs))
        return list(await asyncio.gather(
            *(self._invoke(name, context) for name in tool_names)
        ))

    async def _invoke(self, name: str, context: ToolContext) -> ToolResult:
        start = time.time()
        handler = self._handlers.get(name)

        if handler is None:
            logger.warning(f"[ToolInvoker] Unknown tool: {name}")
            return ToolResult(
                tool_name=name,
                success=False,
                duration=0.0,
                error=f"Unknown tool '{name}'. Available: {', '.join(self.available_tools) or 'none'}"
            )

        try:
            payload = await handler(context)
        except Exception as e:
            duration = time.time() - start
            logger.warning(f"[ToolInvoker] Tool {name} failed after {duration:.2f}s: {e}")
            return ToolResult(tool_name=name, success=False, duration=duration, error=str(e))

        duration = time.time() - start
        logger.debug(f"[ToolInvoker] Tool {name} completed in {duration:.2f}s")
        return ToolResult(tool_name=name, success=True, duration=duration, payload=payload)


def format_results(results: Sequence[ToolResult]) -> str:
    """Render tool results as the block inserted into agent prompts."""
    if not results:
        return ""

    blocks = ["--- TOOL OUTPUTS ---"]
    for result in results:
        status = "success" if result.success else "failed"
        blocks.append(f"[{result.tool_name}] ({status}, {result.duration:.2f}s)")
        if result.success:
            if isinstance(result.payload, str):
                blocks.append(result.payload)
            else:
                blocks.append(json.dumps(result.payload, indent=2, default=str))
        else:
            blocks.append(f"Error: {result.error}")
    blocks.append("--- END OF TOOL OUTPUTS ---")
    return "\n".join(blocks)
