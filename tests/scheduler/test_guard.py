"""Tests for same-name exclusion and shared reconnects."""

import asyncio

import pytest

from promptcron.core.errors import ErrorKind, PromptCronError
from promptcron.scheduler.guard import ExecutionGuard


# ── Same-name exclusion ──────────────────────────────────────────────────────

def test_acquire_and_release(connection):
    guard = ExecutionGuard(connection)

    assert guard.try_acquire("nightly")
    assert "nightly" in guard.in_flight
    assert not guard.try_acquire("nightly")

    guard.release("nightly")
    assert "nightly" not in guard.in_flight
    assert guard.try_acquire("nightly")


def test_different_names_do_not_block(connection):
    guard = ExecutionGuard(connection)

    assert guard.try_acquire("a")
    assert guard.try_acquire("b")
    assert guard.in_flight == frozenset({"a", "b"})


def test_release_unknown_is_noop(connection):
    ExecutionGuard(connection).release("never-acquired")


# ── Readiness ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_ready_connection_is_not_reconnected(connection):
    guard = ExecutionGuard(connection)
    await guard.ensure_ready()
    assert connection.connect_calls == 0


@pytest.mark.asyncio
async def test_reconnects_when_not_ready(connection):
    connection.ready = False
    guard = ExecutionGuard(connection)

    await guard.ensure_ready()

    assert connection.connect_calls == 1
    assert connection.is_ready()


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_reconnect(connection):
    connection.ready = False
    connection.connect_delay = 0.05
    guard = ExecutionGuard(connection)

    await asyncio.gather(*(guard.ensure_ready() for _ in range(5)))

    assert connection.connect_calls == 1


@pytest.mark.asyncio
async def test_reconnect_failure_is_connection_error(connection):
    connection.ready = False
    connection.connect_error = OSError("spawn failed")
    guard = ExecutionGuard(connection)

    with pytest.raises(PromptCronError) as exc:
        await guard.ensure_ready()

    assert exc.value.kind is ErrorKind.CONNECTION
    assert "spawn failed" in exc.value.message


@pytest.mark.asyncio
async def test_connection_error_passes_through(connection):
    connection.ready = False
    original = PromptCronError.connection("Failed to connect to MCP server")
    connection.connect_error = original
    guard = ExecutionGuard(connection)

    with pytest.raises(PromptCronError) as exc:
        await guard.ensure_ready()

    assert exc.value is original


@pytest.mark.asyncio
async def test_still_not_ready_after_connect(connection):
    connection.ready = False
    connection.ready_after_connect = False
    guard = ExecutionGuard(connection)

    with pytest.raises(PromptCronError) as exc:
        await guard.ensure_ready()

    assert exc.value.kind is ErrorKind.CONNECTION


@pytest.mark.asyncio
async def test_failed_reconnect_is_retried_next_time(connection):
    connection.ready = False
    connection.connect_error = OSError("down")
    guard = ExecutionGuard(connection)

    with pytest.raises(PromptCronError):
        await guard.ensure_ready()

    connection.connect_error = None
    await guard.ensure_ready()

    assert connection.connect_calls == 2
    assert connection.is_ready()


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_reconnect(connection):
    connection.ready = False
    connection.connect_delay = 0.05
    guard = ExecutionGuard(connection)

    first = asyncio.create_task(guard.ensure_ready())
    second = asyncio.create_task(guard.ensure_ready())
    await asyncio.sleep(0.01)
    first.cancel()

    await second
    with pytest.raises(asyncio.CancelledError):
        await first
    assert connection.is_ready()
    assert connection.connect_calls == 1
