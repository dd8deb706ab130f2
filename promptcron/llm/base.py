"""
PromptExecutor interface — turns a prompt into finished text.

The scheduler never talks to a model API directly. It hands the prompt and
the tool connection to an executor and awaits a single string. Whatever
happens in between (several model round trips, tool calls) is the
executor's business.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from promptcron.tools.base import ToolConnection


class PromptExecutor(ABC):
    """
    Abstract base class for prompt executors.

    Implementations:
        AnthropicExecutor — Claude via the Anthropic Messages API
        MockExecutor — for testing
    """

    @abstractmethod
    async def execute(self, prompt: str, connection: ToolConnection) -> str:
        """
        Run `prompt` to completion and return the final text.

        Raises:
            PromptCronError(EXECUTION): connection not ready, API failure,
                or the model never produced a final answer
        """
        ...
