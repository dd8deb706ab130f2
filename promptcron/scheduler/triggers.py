"""
Triggers — fire a callback whenever a cadence matches.

Each CronTrigger owns one asyncio task that sleeps until the next match and
then calls the callback. The callback runs on the event loop and must not
block; the scheduler hands it a function that only spawns the real work as
a separate task.

Usage:
    trigger = CronTrigger("*/5 * * * *", on_fire, tz=ZoneInfo("UTC"))
    trigger.start()
    ...
    trigger.stop()   # final: a stopped trigger cannot be started again
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone, tzinfo
from typing import Callable

from promptcron.scheduler.cadence import next_fire_time

logger = logging.getLogger(__name__)

FireCallback = Callable[[], None]
Clock = Callable[[tzinfo], datetime]


def _wall_clock(tz: tzinfo) -> datetime:
    return datetime.now(tz)


def seconds_until(target: datetime, now: datetime) -> float:
    """Real seconds from `now` to `target`, correct across DST changes."""
    # Subtracting two datetimes with the same tzinfo ignores their UTC offsets
    return target.timestamp() - now.timestamp()


class Trigger(ABC):
    """Start/stop handle around a recurring callback."""

    @abstractmethod
    def start(self) -> None:
        """Begin firing. Raises RuntimeError if the trigger was stopped."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop firing immediately. Idempotent."""
        ...

    @property
    @abstractmethod
    def running(self) -> bool:
        ...

    @property
    @abstractmethod
    def next_run(self) -> datetime | None:
        """Next scheduled firing, or None when unknown or stopped."""
        ...


class CronTrigger(Trigger):
    """
    Fires on a cron cadence.

    cadence: 5-field or seconds-first 6-field cron string, already validated.
    """

    def __init__(
        self,
        cadence: str,
        callback: FireCallback,
        tz: tzinfo = timezone.utc,
        name: str = "",
        clock: Clock = _wall_clock,
    ) -> None:
        self._cadence = cadence
        self._callback = callback
        self._tz = tz
        self._name = name or cadence
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._stopped = False
        self._next_run: datetime | None = None

    @property
    def cadence(self) -> str:
        return self._cadence

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def next_run(self) -> datetime | None:
        if self._stopped:
            return None
        return self._next_run

    def start(self) -> None:
        if self._stopped:
            raise RuntimeError(f"Trigger {self._name!r} was stopped and cannot restart")
        if self.running:
            return
        # Known before the first sleep so it can be inspected right away
        self._next_run = next_fire_time(self._cadence, self._clock(self._tz))
        self._task = asyncio.get_running_loop().create_task(
            self._loop(), name=f"trigger:{self._name}"
        )

    def stop(self) -> None:
        self._stopped = True
        self._next_run = None
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _loop(self) -> None:
        while not self._stopped:
            scheduled = self._next_run
            if scheduled is None:
                scheduled = next_fire_time(self._cadence, self._clock(self._tz))
                self._next_run = scheduled

            delay = seconds_until(scheduled, self._clock(self._tz))
            if delay > 0:
                await asyncio.sleep(delay)
                # asyncio.sleep can wake a hair early against the wall clock
                remaining = seconds_until(scheduled, self._clock(self._tz))
                if remaining > 0:
                    continue

            if self._stopped:
                return

            # Next slot strictly after the one just fired, never a repeat of it
            now = self._clock(self._tz)
            self._next_run = next_fire_time(
                self._cadence, max(now, scheduled, key=datetime.timestamp)
            )

            try:
                self._callback()
            except Exception as e:
                logger.error(f"Trigger {self._name!r} callback failed: {e}", exc_info=True)
