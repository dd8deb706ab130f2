"""
ToolConnection interface — the long-lived session that exposes tools.

The scheduler only asks whether the connection is ready and, if not, tells
it to connect. Executors additionally list and call tools through it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from promptcron.core.types import ToolResult, ToolSpec


class ToolConnection(ABC):
    """
    Abstract base class for tool connections.

    Implementations:
        McpToolConnection — MCP server over stdio
    """

    @abstractmethod
    def is_ready(self) -> bool:
        """True when tools can be listed and called right now."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish the session. A no-op when already connected.

        Raises:
            PromptCronError(CONNECTION): if the session cannot be established
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Tear the session down. Safe to call when not connected."""
        ...

    @abstractmethod
    def list_tools(self) -> list[ToolSpec]:
        """Tools discovered during connect()."""
        ...

    @abstractmethod
    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """
        Invoke one tool.

        Raises:
            PromptCronError(CONNECTION): not connected, unknown tool, or transport failure
        """
        ...
