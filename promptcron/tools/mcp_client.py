"""
MCP tool connection — a Model Context Protocol server over stdio.

The server (by default @modelcontextprotocol/server-filesystem via npx) runs
as a child process. The session lives inside one background task for its
whole life: the stdio transport is built on anyio cancel scopes, which must
be entered and exited by the same task. connect() starts that task and waits
until the session is initialized; disconnect() signals it and waits for it
to unwind.

If the server dies, the task ends, is_ready() turns False, and the next
scheduler firing reconnects.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from promptcron.core.errors import ErrorKind, PromptCronError
from promptcron.core.types import ToolResult, ToolSpec
from promptcron.tools.base import ToolConnection

logger = logging.getLogger(__name__)


class McpToolConnection(ToolConnection):
    """
    Usage:
        connection = McpToolConnection(
            command="npx",
            args=["-y", "@modelcontextprotocol/server-filesystem"],
            allowed_directories=["./data"],
        )
        await connection.connect()
        result = await connection.call_tool("list_directory", {"path": "./data"})
        await connection.disconnect()
    """

    def __init__(
        self,
        command: str,
        args: list[str] | None = None,
        allowed_directories: list[str] | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        self._command = command
        self._args = list(args or [])
        self._allowed_directories = list(allowed_directories or [])
        self._env = env
        self._session: ClientSession | None = None
        self._tools: dict[str, ToolSpec] = {}
        self._runner: asyncio.Task | None = None
        self._closing: asyncio.Event | None = None

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def is_ready(self) -> bool:
        return (
            self._session is not None
            and self._runner is not None
            and not self._runner.done()
        )

    async def connect(self) -> None:
        if self.is_ready():
            logger.debug("MCP client already connected")
            return

        # A previous session may have died; make sure it is fully gone
        await self.disconnect()

        logger.info(f"Starting MCP server: {self._command} {' '.join(self._args)}")
        loop = asyncio.get_running_loop()
        ready: asyncio.Future[None] = loop.create_future()
        self._closing = asyncio.Event()
        self._runner = loop.create_task(self._run_session(ready), name="mcp-session")

        try:
            await ready
        except Exception as e:
            await self.disconnect()
            if isinstance(e, PromptCronError) and e.kind is ErrorKind.CONNECTION:
                raise
            raise PromptCronError.connection(
                f"Failed to connect to MCP server: {e}", command=self._command
            ) from e

        logger.info(f"MCP client connected successfully ({len(self._tools)} tools)")

    async def disconnect(self) -> None:
        runner = self._runner
        if runner is None:
            return

        logger.info("Disconnecting MCP client")
        if self._closing is not None:
            self._closing.set()
        try:
            await asyncio.wait_for(asyncio.shield(runner), timeout=10.0)
        except asyncio.TimeoutError:
            runner.cancel()
            logger.warning("MCP session did not close in time, cancelled")
        except Exception as e:
            logger.error(f"Error closing MCP session: {e}")

        self._runner = None
        self._closing = None
        self._session = None
        self._tools.clear()

    def _server_parameters(self) -> StdioServerParameters:
        env = dict(self._env if self._env is not None else os.environ)
        env["MCP_ALLOWED_DIRECTORIES"] = ",".join(self._allowed_directories)
        return StdioServerParameters(
            command=self._command,
            args=[*self._args, *self._allowed_directories],
            env=env,
        )

    async def _run_session(self, ready: asyncio.Future[None]) -> None:
        try:
            async with stdio_client(self._server_parameters()) as (read, write):
                async with ClientSession(read, write) as session:
                    await session.initialize()
                    self._tools = await self._discover_tools(session)
                    self._session = session
                    ready.set_result(None)
                    assert self._closing is not None
                    await self._closing.wait()
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logger.error(f"MCP session terminated: {e}")
        finally:
            self._session = None

    async def _discover_tools(self, session: ClientSession) -> dict[str, ToolSpec]:
        try:
            listing = await session.list_tools()
        except Exception as e:
            raise PromptCronError.connection(f"Failed to discover tools: {e}") from e

        tools: dict[str, ToolSpec] = {}
        for tool in listing.tools or []:
            schema = dict(tool.inputSchema or {})
            schema.setdefault("type", "object")
            tools[tool.name] = ToolSpec(
                name=tool.name,
                description=tool.description or "",
                input_schema=schema,
            )
            logger.debug(f"Discovered tool {tool.name!r}")
        return tools

    # ── Tools ────────────────────────────────────────────────────────────────

    def list_tools(self) -> list[ToolSpec]:
        return list(self._tools.values())

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        session = self._session
        if session is None or not self.is_ready():
            raise PromptCronError.connection("MCP client not connected")

        if name not in self._tools:
            raise PromptCronError.connection(
                f"Tool not found: {name}", available_tools=list(self._tools)
            )

        logger.debug(f"Calling MCP tool {name!r} with {arguments}")
        try:
            response = await session.call_tool(name, arguments=arguments)
        except Exception as e:
            logger.error(f"MCP tool call failed: {name!r}: {e}")
            raise PromptCronError.connection(f"Tool call failed: {name}: {e}") from e

        content: list[dict[str, Any]] = []
        for item in response.content:
            if item.type == "text":
                content.append({"type": "text", "text": item.text})
            else:
                data = item.model_dump() if hasattr(item, "model_dump") else None
                content.append({"type": item.type, "data": data})

        is_error = bool(getattr(response, "isError", False))
        logger.debug(f"MCP tool call completed: {name!r} is_error={is_error}")
        return ToolResult(tool_name=name, content=content, is_error=is_error)
