"""
TaskRegistry — job name → ActiveTask, unique by name.

Unlike a plain dict, registering an existing name is an error rather than
an overwrite: two live triggers under one name would both fire.
"""

from __future__ import annotations

import logging
from typing import Generic, Iterator, TypeVar

from promptcron.core.errors import PromptCronError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TaskRegistry(Generic[T]):
    """
    Usage:
        registry = TaskRegistry()
        registry.register("nightly", task)
        registry.get("nightly")         # task
        registry.unregister("nightly")  # task, then None on a second call
    """

    def __init__(self) -> None:
        self._tasks: dict[str, T] = {}

    def register(self, name: str, task: T) -> None:
        """
        Raises:
            PromptCronError(CONFIGURATION): if `name` is already registered
        """
        if name in self._tasks:
            raise PromptCronError.configuration(
                f"Duplicate job: '{name}' is already scheduled", job=name
            )
        self._tasks[name] = task
        logger.debug(f"Registered task {name!r}")

    def unregister(self, name: str) -> T | None:
        """Remove and return the task, or None if `name` is not registered."""
        task = self._tasks.pop(name, None)
        if task is not None:
            logger.debug(f"Unregistered task {name!r}")
        return task

    def get(self, name: str) -> T | None:
        return self._tasks.get(name)

    def has(self, name: str) -> bool:
        return name in self._tasks

    def list(self) -> list[T]:
        """Current tasks in registration order."""
        return list(self._tasks.values())

    def names(self) -> list[str]:
        return list(self._tasks)

    def clear(self) -> list[T]:
        """Remove every task and return them in registration order."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        return tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._tasks))
