"""
Anthropic prompt executor — Claude with tool use via the Messages API.

This executor:
- Offers every tool of the connection to the model
- Runs the tool-use loop: while the model stops for tool_use, call the
  requested tools through the connection and send the results back
- Turns failing tool calls into is_error tool results so the model can
  react, rather than aborting the whole prompt
- Caps the loop at max_tool_rounds round trips
"""

from __future__ import annotations

import logging
from typing import Any

import anthropic

from promptcron.core.errors import PromptCronError
from promptcron.core.types import ToolSpec
from promptcron.llm.base import PromptExecutor
from promptcron.tools.base import ToolConnection

logger = logging.getLogger(__name__)


class AnthropicExecutor(PromptExecutor):
    """
    Prompt executor backed by anthropic.AsyncAnthropic.

    Usage:
        executor = AnthropicExecutor(api_key="sk-...", model="claude-3-5-sonnet-20241022")
        text = await executor.execute("List the files in ./data", connection)
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "claude-3-5-sonnet-20241022",
        max_tokens: int = 4096,
        temperature: float = 0.7,
        max_tool_rounds: int = 10,
        client: Any | None = None,
    ) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._max_tool_rounds = max_tool_rounds
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key)

    async def execute(self, prompt: str, connection: ToolConnection) -> str:
        if not connection.is_ready():
            raise PromptCronError.execution("Tool connection is not connected")

        tools = [self._convert_tool_spec(t) for t in connection.list_tools()]
        messages: list[dict[str, Any]] = [{"role": "user", "content": prompt}]

        logger.info(
            f"Executing prompt: model={self._model} prompt_length={len(prompt)} "
            f"tools={len(tools)}"
        )

        input_tokens = 0
        output_tokens = 0
        tool_calls = 0

        for round_no in range(self._max_tool_rounds + 1):
            response = await self._send(messages, tools)
            usage = getattr(response, "usage", None)
            if usage is not None:
                input_tokens += getattr(usage, "input_tokens", 0) or 0
                output_tokens += getattr(usage, "output_tokens", 0) or 0

            text, tool_uses = self._split_content(response.content)

            if response.stop_reason != "tool_use" or not tool_uses:
                logger.info(
                    f"Prompt execution completed: tokens={input_tokens + output_tokens} "
                    f"tool_calls={tool_calls}"
                )
                return text

            if round_no == self._max_tool_rounds:
                break

            messages.append(
                {"role": "assistant", "content": self._assistant_blocks(response.content)}
            )
            results = []
            for block in tool_uses:
                tool_calls += 1
                results.append(await self._run_tool(block, connection))
            messages.append({"role": "user", "content": results})

        raise PromptCronError.execution(
            f"Model still requesting tools after {self._max_tool_rounds} rounds",
            tool_calls=tool_calls,
        )

    # ── API ──────────────────────────────────────────────────────────────────

    async def _send(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]
    ) -> Any:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "messages": messages,
        }
        if tools:
            kwargs["tools"] = tools

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as e:
            status = getattr(e, "status_code", None)
            raise PromptCronError.execution(
                f"Anthropic API error: {e}", status_code=status
            ) from e

        logger.debug(f"Claude API response: stop_reason={response.stop_reason}")
        return response

    # ── Tools ────────────────────────────────────────────────────────────────

    async def _run_tool(self, block: Any, connection: ToolConnection) -> dict[str, Any]:
        logger.debug(f"Executing tool {block.name!r} (id={block.id})")
        try:
            result = await connection.call_tool(block.name, dict(block.input or {}))
            return {
                "type": "tool_result",
                "tool_use_id": block.id,
                "content": result.text,
                "is_error": result.is_error,
            }
        except Exception as e:
            logger.error(f"Tool execution failed: {block.name!r}: {e}")
            return {
                "type": "tool_result",
                "tool_use_id": block.id,
                "content": f"Error executing tool: {e}",
                "is_error": True,
            }

    @staticmethod
    def _convert_tool_spec(spec: ToolSpec) -> dict[str, Any]:
        schema = dict(spec.input_schema)
        schema["type"] = "object"
        return {
            "name": spec.name,
            "description": spec.description,
            "input_schema": schema,
        }

    @staticmethod
    def _split_content(content: list[Any]) -> tuple[str, list[Any]]:
        parts: list[str] = []
        tool_uses: list[Any] = []
        for block in content:
            if block.type == "text":
                parts.append(block.text)
            elif block.type == "tool_use":
                tool_uses.append(block)
        return "".join(parts), tool_uses

    @staticmethod
    def _assistant_blocks(content: list[Any]) -> list[dict[str, Any]]:
        """Echo the assistant turn back, tool_use blocks included."""
        blocks: list[dict[str, Any]] = []
        for block in content:
            if block.type == "text":
                blocks.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": block.id,
                        "name": block.name,
                        "input": block.input,
                    }
                )
        return blocks
