"""Tests for the MCP tool connection, with the stdio transport faked out."""

import asyncio
from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest

from promptcron.core.errors import ErrorKind, PromptCronError
from promptcron.tools import mcp_client
from promptcron.tools.mcp_client import McpToolConnection


class FakeSession:
    """Stands in for mcp.ClientSession."""

    instances: list["FakeSession"] = []
    tools = [
        SimpleNamespace(
            name="read_file",
            description="Read a file",
            inputSchema={"type": "object", "properties": {"path": {"type": "string"}}},
        ),
        SimpleNamespace(name="list_directory", description=None, inputSchema=None),
    ]
    fail_initialize: BaseException | None = None

    def __init__(self, read, write):
        self.read = read
        self.write = write
        self.calls = []
        self.closed = False
        self.call_error: BaseException | None = None
        self.response = SimpleNamespace(
            content=[SimpleNamespace(type="text", text="hello from file")],
            isError=False,
        )
        FakeSession.instances.append(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed = True
        return False

    async def initialize(self):
        if FakeSession.fail_initialize is not None:
            raise FakeSession.fail_initialize

    async def list_tools(self):
        return SimpleNamespace(tools=list(FakeSession.tools))

    async def call_tool(self, name, arguments=None):
        self.calls.append((name, arguments))
        if self.call_error is not None:
            raise self.call_error
        return self.response


@pytest.fixture
def transport(monkeypatch):
    state = SimpleNamespace(params=[], closed=0)

    @asynccontextmanager
    async def fake_stdio_client(params):
        state.params.append(params)
        try:
            yield ("read-stream", "write-stream")
        finally:
            state.closed += 1

    FakeSession.instances = []
    FakeSession.fail_initialize = None
    monkeypatch.setattr(mcp_client, "stdio_client", fake_stdio_client)
    monkeypatch.setattr(mcp_client, "ClientSession", FakeSession)
    return state


def make_connection(**kwargs):
    kwargs.setdefault("command", "npx")
    kwargs.setdefault("args", ["-y", "@modelcontextprotocol/server-filesystem"])
    kwargs.setdefault("allowed_directories", ["./data", "./reports"])
    kwargs.setdefault("env", {"PATH": "/usr/bin"})
    return McpToolConnection(**kwargs)


# ── Lifecycle ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_connect_discovers_tools(transport):
    conn = make_connection()
    assert not conn.is_ready()

    await conn.connect()
    try:
        assert conn.is_ready()
        names = [t.name for t in conn.list_tools()]
        assert names == ["read_file", "list_directory"]

        listing = {t.name: t for t in conn.list_tools()}
        assert listing["list_directory"].description == ""
        assert listing["list_directory"].input_schema == {"type": "object"}
    finally:
        await conn.disconnect()


@pytest.mark.asyncio
async def test_server_parameters(transport):
    conn = make_connection()
    await conn.connect()
    await conn.disconnect()

    [params] = transport.params
    assert params.command == "npx"
    assert params.args == [
        "-y",
        "@modelcontextprotocol/server-filesystem",
        "./data",
        "./reports",
    ]
    assert params.env["MCP_ALLOWED_DIRECTORIES"] == "./data,./reports"
    assert params.env["PATH"] == "/usr/bin"


@pytest.mark.asyncio
async def test_connect_is_idempotent(transport):
    conn = make_connection()
    await conn.connect()
    await conn.connect()
    try:
        assert len(transport.params) == 1
    finally:
        await conn.disconnect()


@pytest.mark.asyncio
async def test_disconnect_closes_session(transport):
    conn = make_connection()
    await conn.connect()
    await conn.disconnect()

    assert not conn.is_ready()
    assert conn.list_tools() == []
    assert transport.closed == 1
    assert FakeSession.instances[0].closed


@pytest.mark.asyncio
async def test_disconnect_when_never_connected():
    await make_connection().disconnect()


@pytest.mark.asyncio
async def test_connect_failure_is_connection_error(transport):
    FakeSession.fail_initialize = OSError("npx: command not found")
    conn = make_connection()

    with pytest.raises(PromptCronError) as exc:
        await conn.connect()

    assert exc.value.kind is ErrorKind.CONNECTION
    assert "Failed to connect to MCP server" in exc.value.message
    assert not conn.is_ready()


@pytest.mark.asyncio
async def test_reconnect_after_failure(transport):
    FakeSession.fail_initialize = OSError("boom")
    conn = make_connection()
    with pytest.raises(PromptCronError):
        await conn.connect()

    FakeSession.fail_initialize = None
    await conn.connect()
    try:
        assert conn.is_ready()
    finally:
        await conn.disconnect()


# ── Tool calls ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_call_tool_returns_text(transport):
    conn = make_connection()
    await conn.connect()
    try:
        result = await conn.call_tool("read_file", {"path": "./data/a.txt"})
    finally:
        await conn.disconnect()

    assert result.tool_name == "read_file"
    assert result.content == [{"type": "text", "text": "hello from file"}]
    assert result.text == "hello from file"
    assert result.is_error is False
    assert FakeSession.instances[0].calls == [("read_file", {"path": "./data/a.txt"})]


@pytest.mark.asyncio
async def test_call_tool_error_flag(transport):
    conn = make_connection()
    await conn.connect()
    try:
        FakeSession.instances[0].response = SimpleNamespace(
            content=[SimpleNamespace(type="text", text="ENOENT")], isError=True
        )
        result = await conn.call_tool("read_file", {"path": "missing"})
    finally:
        await conn.disconnect()

    assert result.is_error is True
    assert result.text == "ENOENT"


@pytest.mark.asyncio
async def test_call_tool_not_connected():
    with pytest.raises(PromptCronError) as exc:
        await make_connection().call_tool("read_file", {})
    assert exc.value.kind is ErrorKind.CONNECTION
    assert "not connected" in exc.value.message


@pytest.mark.asyncio
async def test_call_unknown_tool(transport):
    conn = make_connection()
    await conn.connect()
    try:
        with pytest.raises(PromptCronError) as exc:
            await conn.call_tool("delete_everything", {})
    finally:
        await conn.disconnect()

    assert "Tool not found" in exc.value.message
    assert exc.value.details["available_tools"] == ["read_file", "list_directory"]


@pytest.mark.asyncio
async def test_transport_failure_is_connection_error(transport):
    conn = make_connection()
    await conn.connect()
    try:
        FakeSession.instances[0].call_error = EOFError("pipe closed")
        with pytest.raises(PromptCronError) as exc:
            await conn.call_tool("read_file", {"path": "x"})
    finally:
        await conn.disconnect()

    assert exc.value.kind is ErrorKind.CONNECTION


@pytest.mark.asyncio
async def test_session_ending_makes_connection_not_ready(transport):
    conn = make_connection()
    await conn.connect()

    # Simulate the server going away: the session task ends on its own
    conn._closing.set()
    await asyncio.sleep(0.01)

    assert not conn.is_ready()
    await conn.disconnect()
