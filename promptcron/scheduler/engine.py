"""
Scheduler — runs prompts on cron cadences.

Design:
- start() takes a batch of JobDefinitions, checks the whole batch first
  (cadence syntax, unique names) and only then creates triggers, so a bad
  batch leaves nothing behind
- Each active job has its own CronTrigger; a firing spawns execute() as a
  separate asyncio task so the trigger keeps its cadence
- execute() is the failure boundary: readiness check, prompt execution and
  output persistence all report into an ExecutionOutcome and nothing is
  raised back to the trigger, so a job that keeps failing keeps firing
- Same-name firings never overlap: a firing that finds its job still
  running is skipped
- stop() cancels triggers immediately; executions already in flight run to
  completion and are only logged
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Callable, Iterable
from zoneinfo import ZoneInfo

from promptcron.core.errors import PromptCronError
from promptcron.core.types import ExecutionOutcome, JobDefinition, TaskStatus
from promptcron.llm.base import PromptExecutor
from promptcron.scheduler.cadence import validate_cadence
from promptcron.scheduler.guard import ExecutionGuard
from promptcron.scheduler.job import ActiveTask
from promptcron.scheduler.output import FileOutputSink, OutputSink, resolve_output_path
from promptcron.scheduler.registry import TaskRegistry
from promptcron.scheduler.triggers import CronTrigger, FireCallback, Trigger
from promptcron.tools.base import ToolConnection

logger = logging.getLogger(__name__)

TriggerFactory = Callable[[JobDefinition, FireCallback, tzinfo], Trigger]


def cron_trigger_factory(
    definition: JobDefinition, callback: FireCallback, tz: tzinfo
) -> Trigger:
    return CronTrigger(definition.cadence, callback, tz=tz, name=definition.name)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Scheduler:
    """
    Owns the active tasks and executes them.

    Usage:
        scheduler = Scheduler(executor, connection)
        scheduler.start(config.definitions())   # inside a running event loop
        ...
        await scheduler.shutdown()
    """

    def __init__(
        self,
        executor: PromptExecutor,
        connection: ToolConnection,
        sink: OutputSink | None = None,
        tz: str | tzinfo = "UTC",
        execution_timeout: float | None = None,
        trigger_factory: TriggerFactory = cron_trigger_factory,
        base_dir: Path | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._executor = executor
        self._connection = connection
        self._sink = sink or FileOutputSink()
        self._tz = ZoneInfo(tz) if isinstance(tz, str) else tz
        self._execution_timeout = execution_timeout
        self._trigger_factory = trigger_factory
        self._base_dir = base_dir
        self._clock = clock
        self._registry: TaskRegistry[ActiveTask] = TaskRegistry()
        self._guard = ExecutionGuard(connection)
        self._running: set[asyncio.Task] = set()

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def start(self, definitions: Iterable[JobDefinition]) -> int:
        """
        Activate every enabled definition.

        Returns the number of tasks activated.

        Raises:
            PromptCronError(CONFIGURATION): invalid cadence or duplicate name;
                nothing from the batch is registered in that case
        """
        batch = list(definitions)
        logger.info(f"Starting scheduler ({len(batch)} schedule(s))")

        eligible = self._check_batch(batch)

        created: list[ActiveTask] = []
        try:
            for definition in eligible:
                trigger = self._trigger_factory(
                    definition, self._callback_for(definition), self._tz
                )
                task = ActiveTask(definition=definition, trigger=trigger)
                self._registry.register(definition.name, task)
                created.append(task)
                trigger.start()
                logger.info(
                    f"Task scheduled: {definition.name!r} cron={definition.cadence!r} "
                    f"next_run={trigger.next_run}"
                )
        except Exception:
            # Roll back whatever part of the batch made it in
            for task in created:
                task.trigger.stop()
                self._registry.unregister(task.name)
            raise

        logger.info(
            f"Scheduler started: {len(created)} active task(s) of {len(batch)} schedule(s)"
        )
        return len(created)

    def _check_batch(self, batch: list[JobDefinition]) -> list[JobDefinition]:
        seen: set[str] = set()
        eligible: list[JobDefinition] = []
        for definition in batch:
            name = definition.name
            if not definition.enabled:
                logger.debug(f"Skipping disabled schedule {name!r}")
                continue
            if not name or not name.strip():
                raise PromptCronError.configuration("Schedule must have a name")
            if name in seen or self._registry.has(name):
                raise PromptCronError.configuration(
                    f"Schedule '{name}' is already scheduled", job=name
                )
            if not validate_cadence(definition.cadence):
                raise PromptCronError.configuration(
                    f"Invalid cron expression for schedule '{name}': {definition.cadence}",
                    job=name,
                    cadence=definition.cadence,
                )
            seen.add(name)
            eligible.append(definition)
        return eligible

    def stop(self, name: str | None = None) -> None:
        """Stop one task by name, or every task when `name` is omitted."""
        if name is not None:
            task = self._registry.unregister(name)
            if task is None:
                logger.warning(f"Task not found: {name!r}")
                return
            task.trigger.stop()
            logger.info(f"Task stopped: {name!r}")
            return

        for task in self._registry.clear():
            task.trigger.stop()
            logger.debug(f"Stopping task {task.name!r}")
        logger.info("All tasks stopped")

    async def drain(self) -> None:
        """Wait for every in-flight execution to finish."""
        pending = list(self._running)
        if pending:
            names = ", ".join(sorted(self.running_jobs())) or "-"
            logger.info(f"Waiting for {len(pending)} running execution(s): {names}")
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        self.stop()
        await self.drain()

    # ── Inspection ───────────────────────────────────────────────────────────

    def get_active_tasks(self) -> list[TaskStatus]:
        return [task.status() for task in self._registry.list()]

    def is_task_active(self, name: str) -> bool:
        return self._registry.has(name)

    def running_jobs(self) -> frozenset[str]:
        """Names of jobs with an execution in flight right now."""
        return self._guard.in_flight

    # ── Firing ───────────────────────────────────────────────────────────────

    def _callback_for(self, definition: JobDefinition) -> FireCallback:
        def fire() -> None:
            self.dispatch(definition)

        return fire

    def dispatch(self, definition: JobDefinition) -> asyncio.Task:
        """Spawn execute() for one firing without waiting for it."""
        task = asyncio.get_running_loop().create_task(
            self.execute(definition), name=f"job:{definition.name}"
        )
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return task

    async def execute(self, definition: JobDefinition) -> ExecutionOutcome:
        """
        Run one firing of `definition` and report what happened.

        Never raises for readiness, executor or persistence failures; those
        end up in the returned outcome and the log.
        """
        name = definition.name
        outcome = ExecutionOutcome(job_name=name, started_at=self._clock())

        if not self._guard.try_acquire(name):
            logger.warning(f"Job {name!r} is still executing, skipping this firing")
            outcome.skipped = True
            return outcome

        logger.info(f"Executing scheduled task {name!r}")
        started = time.monotonic()
        try:
            await self._run(definition, outcome)
        except PromptCronError as e:
            outcome.error = e
        except Exception as e:
            outcome.error = PromptCronError.execution(f"Unexpected error: {e}", job=name)
        finally:
            outcome.duration_ms = int((time.monotonic() - started) * 1000)
            self._guard.release(name)

        self._log_outcome(definition, outcome)
        return outcome

    async def _run(self, definition: JobDefinition, outcome: ExecutionOutcome) -> None:
        await self._guard.ensure_ready()

        outcome.result = await self._call_executor(definition)

        if definition.output_path is not None:
            try:
                outcome.output_path = await self._persist(
                    definition, outcome.result, outcome.started_at
                )
                outcome.persisted = True
            except Exception as e:
                outcome.error = PromptCronError.persistence(
                    f"Failed to save output: {e}",
                    job=definition.name,
                    path=definition.output_path,
                )

    async def _call_executor(self, definition: JobDefinition) -> str:
        call = self._executor.execute(definition.prompt, self._connection)
        try:
            if self._execution_timeout is None:
                return await call
            return await asyncio.wait_for(call, timeout=self._execution_timeout)
        except asyncio.TimeoutError as e:
            raise PromptCronError.execution(
                f"Prompt execution timed out after {self._execution_timeout}s",
                job=definition.name,
            ) from e
        except PromptCronError:
            raise
        except Exception as e:
            raise PromptCronError.execution(
                f"Prompt execution failed: {e}", job=definition.name
            ) from e

    async def _persist(
        self, definition: JobDefinition, content: str, now: datetime
    ) -> Path:
        path = resolve_output_path(
            definition.output_path or "", definition.name, now, base_dir=self._base_dir
        )
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._sink.ensure_dir, path.parent)
        await loop.run_in_executor(None, self._sink.write_file, path, content)
        return path

    def _log_outcome(self, definition: JobDefinition, outcome: ExecutionOutcome) -> None:
        name = definition.name
        if outcome.success:
            if outcome.error is not None:
                logger.error(f"Job {name!r} produced a result but {outcome.error}")
            logger.info(
                f"Scheduled task completed: {name!r} duration={outcome.duration_ms}ms "
                f"output_saved={outcome.persisted}"
            )
        else:
            logger.error(
                f"Failed to execute scheduled task {name!r}: {outcome.error} "
                f"(duration={outcome.duration_ms}ms)"
            )

        if not self._registry.has(name):
            logger.info(f"Job {name!r} finished but is no longer registered")
