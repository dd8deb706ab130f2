"""
ExecutionGuard — same-name exclusion and tool-connection readiness.

Two rules:
- A job name is either idle or has exactly one execution in flight.
  try_acquire() on a busy name returns False and the caller skips.
- Reconnects are shared. If the connection is down and several jobs fire
  at once, the first caller starts connect() and everyone else awaits that
  same attempt instead of spawning another server process.
"""

from __future__ import annotations

import asyncio
import logging

from promptcron.core.errors import ErrorKind, PromptCronError
from promptcron.tools.base import ToolConnection

logger = logging.getLogger(__name__)


class ExecutionGuard:
    def __init__(self, connection: ToolConnection) -> None:
        self._connection = connection
        self._in_flight: set[str] = set()
        self._reconnect: asyncio.Task | None = None

    # ── Same-name exclusion ──────────────────────────────────────────────────

    def try_acquire(self, name: str) -> bool:
        """Claim `name` for one execution. False if it is already running."""
        if name in self._in_flight:
            return False
        self._in_flight.add(name)
        return True

    def release(self, name: str) -> None:
        self._in_flight.discard(name)

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    # ── Readiness ────────────────────────────────────────────────────────────

    async def ensure_ready(self) -> None:
        """
        Make sure the tool connection is usable, reconnecting if needed.

        Raises:
            PromptCronError(CONNECTION): if reconnecting failed
        """
        if self._connection.is_ready():
            return

        if self._reconnect is None or self._reconnect.done():
            logger.warning("Tool connection not ready, attempting to reconnect")
            self._reconnect = asyncio.create_task(
                self._connection.connect(), name="tool-reconnect"
            )
        else:
            logger.debug("Reconnect already in progress, waiting for it")

        try:
            # shield: a cancelled waiter must not cancel everyone's reconnect
            await asyncio.shield(self._reconnect)
        except asyncio.CancelledError:
            raise
        except PromptCronError as e:
            if e.kind is ErrorKind.CONNECTION:
                raise
            raise PromptCronError.connection(f"Reconnect failed: {e.message}") from e
        except Exception as e:
            raise PromptCronError.connection(f"Reconnect failed: {e}") from e

        if not self._connection.is_ready():
            raise PromptCronError.connection(
                "Tool connection still not ready after reconnect"
            )
        logger.info("Tool connection re-established")
