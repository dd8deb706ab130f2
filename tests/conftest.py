"""Shared test fixtures for promptcron."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest

from promptcron.core.errors import PromptCronError
from promptcron.core.types import JobDefinition, ToolResult, ToolSpec
from promptcron.llm.mock import MockExecutor
from promptcron.scheduler.triggers import Trigger
from promptcron.tools.base import ToolConnection

FIXED_NOW = datetime(2024, 1, 15, 3, 0, 0, tzinfo=timezone.utc)


class FakeConnection(ToolConnection):
    """In-memory tool connection with controllable readiness."""

    def __init__(self, ready: bool = True) -> None:
        self.ready = ready
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.connect_error: BaseException | None = None
        self.connect_delay: float = 0.0
        self.ready_after_connect = True
        self.tools = [ToolSpec(name="read_file", description="Read a file")]
        self.tool_calls: list[tuple[str, dict[str, Any]]] = []
        self.tool_results: dict[str, ToolResult | BaseException] = {}

    def is_ready(self) -> bool:
        return self.ready

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        self.ready = self.ready_after_connect

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.ready = False

    def list_tools(self) -> list[ToolSpec]:
        return list(self.tools)

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        self.tool_calls.append((name, arguments))
        result = self.tool_results.get(name)
        if isinstance(result, BaseException):
            raise result
        if result is None:
            if not any(t.name == name for t in self.tools):
                raise PromptCronError.connection(f"Tool not found: {name}")
            return ToolResult(tool_name=name, content=[{"type": "text", "text": f"{name} ok"}])
        return result


class FakeTrigger(Trigger):
    """Trigger that only fires when a test calls fire()."""

    def __init__(self, definition: JobDefinition, callback, tz) -> None:
        self.definition = definition
        self.callback = callback
        self.tz = tz
        self.started = False
        self.stopped = False
        self.fired = 0

    def start(self) -> None:
        if self.stopped:
            raise RuntimeError("stopped")
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    @property
    def running(self) -> bool:
        return self.started and not self.stopped

    @property
    def next_run(self) -> datetime | None:
        return None if self.stopped else FIXED_NOW

    def fire(self) -> None:
        self.fired += 1
        self.callback()


class FakeTriggerFactory:
    def __init__(self) -> None:
        self.triggers: dict[str, FakeTrigger] = {}
        self.created: list[str] = []

    def __call__(self, definition, callback, tz) -> FakeTrigger:
        trigger = FakeTrigger(definition, callback, tz)
        self.triggers[definition.name] = trigger
        self.created.append(definition.name)
        return trigger


@pytest.fixture
def make_job():
    """Build a JobDefinition with sensible defaults."""

    def _make(name: str = "nightly", cadence: str = "0 3 * * *", **kwargs) -> JobDefinition:
        kwargs.setdefault("prompt", f"prompt for {name}")
        return JobDefinition(name=name, cadence=cadence, **kwargs)

    return _make


@pytest.fixture
def connection():
    return FakeConnection()


@pytest.fixture
def executor():
    return MockExecutor()


@pytest.fixture
def trigger_factory():
    return FakeTriggerFactory()
