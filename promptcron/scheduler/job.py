"""
ActiveTask — a job definition bound to its live trigger.
"""

from __future__ import annotations

from dataclasses import dataclass

from promptcron.core.types import JobDefinition, TaskStatus
from promptcron.scheduler.triggers import Trigger


@dataclass
class ActiveTask:
    """A scheduled job the engine currently owns."""

    definition: JobDefinition
    trigger: Trigger

    @property
    def name(self) -> str:
        return self.definition.name

    def status(self) -> TaskStatus:
        return TaskStatus(
            name=self.definition.name,
            cadence=self.definition.cadence,
            next_run=self.trigger.next_run,
        )
