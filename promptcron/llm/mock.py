"""
Mock prompt executor — for testing.

Returns configurable responses without making any API calls.
Tracks all calls for test assertions.
"""

from __future__ import annotations

import asyncio

from promptcron.core.errors import PromptCronError
from promptcron.llm.base import PromptExecutor
from promptcron.tools.base import ToolConnection


class MockExecutor(PromptExecutor):
    """
    Mock executor that returns pre-configured responses.

    Usage in tests:
        mock = MockExecutor()
        mock.set_response("report body")
        mock.set_error(PromptCronError.execution("rate limited"))
        mock.delay = 0.5   # make each call take a while

        text = await mock.execute("prompt", connection)
        assert mock.prompts == ["prompt"]

    Concurrency is tracked per prompt, so tests can assert that two
    executions of the same job never overlapped.
    """

    def __init__(self, default_response: str = "mock result") -> None:
        self._default_response = default_response
        self._queue: list[str | BaseException] = []
        self._gates: dict[str, asyncio.Event] = {}
        self._failures: dict[str, BaseException] = {}
        self.delay: float = 0.0
        self.require_ready: bool = False

        # Call tracking
        self.call_count: int = 0
        self.prompts: list[str] = []
        self.in_flight: dict[str, int] = {}
        self.max_in_flight: dict[str, int] = {}

    def set_response(self, text: str) -> None:
        """Queue a text response for the next execute() call."""
        self._queue.append(text)

    def set_error(self, error: BaseException) -> None:
        """Queue an error for the next execute() call."""
        self._queue.append(error)

    def fail_on(self, prompt: str, error: BaseException) -> None:
        """Make every call for `prompt` raise `error`."""
        self._failures[prompt] = error

    def hold(self, prompt: str) -> asyncio.Event:
        """Block calls for `prompt` until the returned event is set."""
        gate = asyncio.Event()
        self._gates[prompt] = gate
        return gate

    async def execute(self, prompt: str, connection: ToolConnection) -> str:
        self.call_count += 1
        self.prompts.append(prompt)

        if self.require_ready and not connection.is_ready():
            raise PromptCronError.execution("Tool connection is not connected")

        self.in_flight[prompt] = self.in_flight.get(prompt, 0) + 1
        self.max_in_flight[prompt] = max(
            self.max_in_flight.get(prompt, 0), self.in_flight[prompt]
        )
        try:
            gate = self._gates.get(prompt)
            if gate is not None:
                await gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            if prompt in self._failures:
                raise self._failures[prompt]

            response = self._queue.pop(0) if self._queue else self._default_response
            if isinstance(response, BaseException):
                raise response
            return response
        finally:
            self.in_flight[prompt] -= 1
